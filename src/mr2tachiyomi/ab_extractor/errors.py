"""Android backup extraction errors."""

from mr2tachiyomi.common import MR2TachiyomiError


class BackupError(MR2TachiyomiError):
    """Android backup processing failed."""
    pass


class MalformedContainerError(BackupError):
    """Backup container header is missing or has unexpected content."""
    pass


class UnsupportedEncryptionError(BackupError):
    """Backup is encrypted; decryption is not supported."""
    pass


class TranscodeError(BackupError):
    """Backup payload could not be decompressed."""
    pass


class CorruptedArchiveError(BackupError):
    """Tar stream inside the backup is corrupted or truncated."""
    pass


class EntryNotFoundError(BackupError):
    """Requested entry does not exist in the backup."""
    pass


class BackupIOError(BackupError):
    """Reading the backup or writing the recovered file failed."""
    pass
