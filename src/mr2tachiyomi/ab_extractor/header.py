"""Android Backup container header parsing.

An ``.ab`` file starts with four newline-terminated text lines::

    ANDROID BACKUP
    <version>
    <compressed: 0|1>
    <encryption: none|AES-256>

followed by the (optionally DEFLATE-compressed) tar payload. Encrypted
backups carry further header lines (salts, rounds, key blob); those are
never read since decryption is not supported.
"""

import logging
from dataclasses import dataclass
from typing import BinaryIO

from .errors import MalformedContainerError

logger = logging.getLogger(__name__)

BACKUP_MAGIC = "ANDROID BACKUP"
ENCRYPTION_NONE = "none"
MAX_KNOWN_VERSION = 5

# Header lines are short; never scan into binary payload looking for "\n"
MAX_HEADER_LINE = 1024


@dataclass(frozen=True)
class BackupHeader:
    """Parsed Android Backup container header."""
    magic: str
    version: int
    compressed: bool
    encryption: str
    payload_offset: int  # Bytes consumed by the header lines

    @property
    def is_encrypted(self) -> bool:
        return self.encryption != ENCRYPTION_NONE


def _read_line(stream: BinaryIO, what: str) -> bytes:
    line = stream.readline(MAX_HEADER_LINE)
    if not line.endswith(b"\n"):
        raise MalformedContainerError(
            f"Unable to parse backup header: missing {what} line",
            field=what,
        )
    return line


def _decode(raw: bytes, what: str) -> str:
    try:
        return raw.rstrip(b"\r\n").decode("ascii")
    except UnicodeDecodeError as e:
        raise MalformedContainerError(
            f"Unable to parse backup header: {what} is not ASCII text",
            field=what,
        ) from e


def parse_header(stream: BinaryIO) -> BackupHeader:
    """Parse the container header from a stream positioned at offset 0.

    On return the stream is positioned at the first payload byte.

    Args:
        stream: Binary stream supporting ``readline``

    Returns:
        Parsed BackupHeader. Encrypted backups are returned, not rejected;
        check ``is_encrypted`` before reading the payload.

    Raises:
        MalformedContainerError: If any header line is missing or invalid
    """
    consumed = 0

    raw = _read_line(stream, "magic")
    consumed += len(raw)
    magic = _decode(raw, "magic")
    if magic != BACKUP_MAGIC:
        raise MalformedContainerError(
            "Not an Android backup file",
            field="magic",
            value=magic[:32],
        )

    raw = _read_line(stream, "version")
    consumed += len(raw)
    version_text = _decode(raw, "version")
    if not version_text.isdigit():
        raise MalformedContainerError(
            f"Invalid backup version: {version_text!r}",
            field="version",
            value=version_text,
        )
    version = int(version_text)
    if version > MAX_KNOWN_VERSION:
        logger.warning(f"Backup version {version} is newer than known versions, continuing")

    raw = _read_line(stream, "compression")
    consumed += len(raw)
    compression_text = _decode(raw, "compression")
    if compression_text not in ("0", "1"):
        raise MalformedContainerError(
            f"Invalid compression flag: {compression_text!r}",
            field="compression",
            value=compression_text,
        )

    raw = _read_line(stream, "encryption")
    consumed += len(raw)
    encryption = _decode(raw, "encryption")

    header = BackupHeader(
        magic=magic,
        version=version,
        compressed=compression_text == "1",
        encryption=encryption,
        payload_offset=consumed,
    )
    logger.debug(
        "Parsed backup header",
        extra={"extra_fields": {
            "version": header.version,
            "compressed": header.compressed,
            "encryption": header.encryption,
            "payload_offset": header.payload_offset,
        }},
    )
    return header
