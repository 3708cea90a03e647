"""Android backup (.ab) extraction for the MangaRock database."""

from .errors import (
    BackupError,
    BackupIOError,
    CorruptedArchiveError,
    EntryNotFoundError,
    MalformedContainerError,
    TranscodeError,
    UnsupportedEncryptionError,
)
from .header import BackupHeader, parse_header
from .transcoder import InflatingReader, open_payload
from .tar_scanner import TarBlockScanner, TarEntryHeader, block_count, decode_header, parse_octal
from .extractor import (
    MANGAROCK_DB_ENTRY,
    BackupExtractor,
    ExtractionStage,
    extract,
    list_entries,
    read_backup_header,
    resolve_database,
)

__all__ = [
    'BackupError',
    'BackupIOError',
    'CorruptedArchiveError',
    'EntryNotFoundError',
    'MalformedContainerError',
    'TranscodeError',
    'UnsupportedEncryptionError',
    'BackupHeader',
    'parse_header',
    'InflatingReader',
    'open_payload',
    'TarBlockScanner',
    'TarEntryHeader',
    'block_count',
    'decode_header',
    'parse_octal',
    'MANGAROCK_DB_ENTRY',
    'BackupExtractor',
    'ExtractionStage',
    'extract',
    'list_entries',
    'read_backup_header',
    'resolve_database',
]
