"""Recover the MangaRock database from Android backups for Tachiyomi migration."""

__version__ = "0.1.0"
