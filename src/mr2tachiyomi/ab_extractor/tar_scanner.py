"""Sequential tar stream scanner.

Reads a tar byte stream strictly front to back in 512-byte blocks, without
seeking, so it works directly on the inflated backup payload. Only the
header fields needed to locate and copy an entry are decoded.

Layout of the relevant POSIX ustar header fields::

    offset  length  field
         0     100  name
       124      12  size (ASCII octal)
       156       1  type flag
       257       6  magic ("ustar")
       345     155  name prefix
"""

import dataclasses
import logging
from dataclasses import dataclass
from typing import BinaryIO, Dict, Iterator, Optional

from .errors import CorruptedArchiveError, EntryNotFoundError

logger = logging.getLogger(__name__)

BLOCK_SIZE = 512

NAME_FIELD = slice(0, 100)
SIZE_FIELD = slice(124, 136)
TYPE_FLAG_FIELD = slice(156, 157)
MAGIC_FIELD = slice(257, 263)
POSIX_MAGIC = b"ustar\x00"  # GNU "ustar  " headers keep atime/ctime where the prefix would be
PREFIX_FIELD = slice(345, 500)

REGTYPE = b"0"
AREGTYPE = b"\0"
LNKTYPE = b"1"
SYMTYPE = b"2"
CHRTYPE = b"3"
BLKTYPE = b"4"
DIRTYPE = b"5"
FIFOTYPE = b"6"
CONTTYPE = b"7"
XHDTYPE = b"x"  # pax extended header for the next entry
XGLTYPE = b"g"  # pax global header

FILE_TYPES = {REGTYPE, AREGTYPE, CONTTYPE}
# Entry types whose size field does not describe data blocks
NO_DATA_TYPES = {LNKTYPE, SYMTYPE, CHRTYPE, BLKTYPE, DIRTYPE, FIFOTYPE}

MAX_PAX_HEADER_SIZE = 1024 * 1024

OCTAL_DIGITS = frozenset(b"01234567")


def block_count(size: int) -> int:
    """Number of 512-byte blocks occupied by ``size`` bytes of data."""
    return (size + BLOCK_SIZE - 1) // BLOCK_SIZE


def parse_octal(field: bytes) -> int:
    """Parse a NUL/space terminated ASCII octal header field.

    GNU base-256 encoding (high bit set on the first byte) is accepted for
    values that do not fit in octal.

    Raises:
        CorruptedArchiveError: If the field holds anything but octal digits
    """
    if field and field[0] == 0x80:
        value = 0
        for byte in field[1:]:
            value = (value << 8) | byte
        return value

    text = field.split(b"\0", 1)[0].strip(b" ")
    if not text:
        return 0
    if not OCTAL_DIGITS.issuperset(text):
        raise CorruptedArchiveError(
            f"Invalid octal field in tar header: {field!r}",
            field=field,
        )
    return int(text, 8)


def _decode_text(field: bytes) -> str:
    return field.split(b"\0", 1)[0].decode("utf-8", "replace")


@dataclass(frozen=True)
class TarEntryHeader:
    """Header fields of one tar entry."""
    name: str
    size: int
    type_flag: bytes

    @property
    def is_file(self) -> bool:
        return self.type_flag in FILE_TYPES

    @property
    def block_count(self) -> int:
        """Data blocks following this header."""
        if self.type_flag in NO_DATA_TYPES:
            return 0
        return block_count(self.size)


def decode_header(block: bytes) -> Optional[TarEntryHeader]:
    """Decode one 512-byte header block.

    Returns:
        The entry header, or None for a terminator/padding block (empty name)

    Raises:
        CorruptedArchiveError: If the size field is not valid octal
    """
    name = _decode_text(block[NAME_FIELD])
    if not name:
        return None

    if block[MAGIC_FIELD] == POSIX_MAGIC:
        prefix = _decode_text(block[PREFIX_FIELD])
        if prefix:
            name = f"{prefix}/{name}"

    return TarEntryHeader(
        name=name,
        size=parse_octal(block[SIZE_FIELD]),
        type_flag=block[TYPE_FLAG_FIELD],
    )


def parse_pax_records(data: bytes) -> Dict[str, str]:
    """Parse pax extended header records (``"<len> <key>=<value>\\n"``).

    Raises:
        CorruptedArchiveError: If a record is malformed
    """
    records: Dict[str, str] = {}
    pos = 0
    while pos < len(data) and data[pos] != 0:
        space = data.find(b" ", pos)
        length_text = data[pos:space] if space > 0 else b""
        if not length_text.isdigit():
            raise CorruptedArchiveError("Malformed pax header record", offset=pos)

        length = int(length_text)
        record = data[space + 1:pos + length]
        if pos + length > len(data) or not record.endswith(b"\n") or b"=" not in record:
            raise CorruptedArchiveError("Malformed pax header record", offset=pos)

        key, value = record[:-1].split(b"=", 1)
        records[key.decode("utf-8", "replace")] = value.decode("utf-8", "replace")
        pos += length

    return records


class TarBlockScanner:
    """Pull-based scanner over a tar byte stream.

    Usage::

        scanner = TarBlockScanner(stream)
        header = scanner.find("apps/x/db/x.db")
        scanner.copy_data(header, sink)

    The scanner tracks the entry whose data blocks are next in the stream;
    reading the next header skips any data the caller did not consume.
    """

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream
        self._pending: Optional[TarEntryHeader] = None
        self._finished = False
        self.blocks_read = 0

    def read_block(self) -> Optional[bytes]:
        """Read exactly one block, or None once the stream is exhausted.

        A trailing partial block is treated as end of stream.
        """
        block = self._stream.read(BLOCK_SIZE)
        while len(block) < BLOCK_SIZE:
            more = self._stream.read(BLOCK_SIZE - len(block))
            if not more:
                if block:
                    logger.debug(f"Ignoring {len(block)} trailing bytes after last full block")
                return None
            block += more

        self.blocks_read += 1
        return block

    def _read_data_block(self, header: TarEntryHeader, index: int) -> bytes:
        block = self.read_block()
        if block is None:
            raise CorruptedArchiveError(
                f"Tar stream ends inside data of {header.name}",
                entry=header.name,
                expected_blocks=header.block_count,
                blocks_read=index,
            )
        return block

    def _read_pax_data(self, header: TarEntryHeader) -> bytes:
        if header.size > MAX_PAX_HEADER_SIZE:
            raise CorruptedArchiveError(
                f"Pax header too large: {header.size} bytes",
                entry=header.name,
            )
        data = b"".join(
            self._read_data_block(header, i) for i in range(header.block_count)
        )
        return data[:header.size]

    def _apply_pax(self, header: TarEntryHeader, records: Dict[str, str]) -> TarEntryHeader:
        changes = {}
        if "path" in records:
            changes["name"] = records["path"]
        if "size" in records:
            size_text = records["size"]
            if not (size_text.isascii() and size_text.isdigit()):
                raise CorruptedArchiveError(
                    f"Invalid pax size for {header.name}: {size_text!r}",
                    entry=header.name,
                )
            changes["size"] = int(size_text)
        return dataclasses.replace(header, **changes) if changes else header

    def next_entry(self) -> Optional[TarEntryHeader]:
        """Read the next entry header, skipping unconsumed data first.

        Returns:
            Entry header with the stream positioned at its data, or None at
            end of archive (terminator block or end of stream)
        """
        if self._pending is not None:
            self.skip_data(self._pending)
        if self._finished:
            return None

        pax_records: Dict[str, str] = {}
        while True:
            block = self.read_block()
            if block is None:
                logger.debug("Tar stream ended without terminator block")
                self._finished = True
                return None

            header = decode_header(block)
            if header is None:
                logger.debug(f"Reached end of archive after {self.blocks_read} blocks")
                self._finished = True
                return None

            if header.type_flag == XHDTYPE:
                pax_records = parse_pax_records(self._read_pax_data(header))
                continue
            if header.type_flag == XGLTYPE:
                self._pending = header
                self.skip_data(header)
                continue

            header = self._apply_pax(header, pax_records)
            self._pending = header
            return header

    def entries(self) -> Iterator[TarEntryHeader]:
        """Iterate over all remaining entry headers."""
        while (header := self.next_entry()) is not None:
            yield header

    def _check_pending(self, header: TarEntryHeader) -> None:
        if header is not self._pending:
            raise ValueError(f"Data of {header.name} is not at the current stream position")

    def skip_data(self, header: TarEntryHeader) -> None:
        """Discard the data blocks of ``header`` block by block."""
        self._check_pending(header)
        for i in range(header.block_count):
            self._read_data_block(header, i)
        self._pending = None

    def copy_data(self, header: TarEntryHeader, sink: BinaryIO) -> int:
        """Copy the full padded data run of ``header`` to ``sink``.

        The final block is written whole, so the caller truncates the sink
        to ``header.size`` when byte-exact output is needed.

        Returns:
            Number of bytes written

        Raises:
            CorruptedArchiveError: If the stream ends inside the data run
        """
        self._check_pending(header)
        written = 0
        for i in range(header.block_count):
            written += sink.write(self._read_data_block(header, i))
        self._pending = None
        return written

    def find(self, target: str) -> TarEntryHeader:
        """Advance to the entry named exactly ``target``.

        Returns:
            The matching header; its data is next in the stream

        Raises:
            EntryNotFoundError: If the archive ends without a match
        """
        while True:
            header = self.next_entry()
            if header is None:
                raise EntryNotFoundError(
                    f"Entry not found in backup: {target}",
                    entry=target,
                    blocks_read=self.blocks_read,
                )

            if header.name == target:
                logger.debug(f"Found {target} ({header.size} bytes)")
                return header

            self.skip_data(header)
