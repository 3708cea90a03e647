"""Payload transcoding: compressed backup payload to raw tar bytes."""

import logging
import zlib
from typing import Any, BinaryIO, Union

from .errors import TranscodeError

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024


class InflatingReader:
    """File-like reader that inflates a zlib stream on demand.

    Only as much input is pulled from the wrapped stream as is needed to
    satisfy each ``read``; inflated output per step is capped at
    ``chunk_size`` bytes so memory stays bounded for any archive size.
    """

    def __init__(self, fobj: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self._fobj = fobj
        self._chunk_size = chunk_size
        self._decompressor = zlib.decompressobj()
        self._buffer = bytearray()
        self._eof = False
        self.bytes_in = 0
        self.bytes_out = 0

    def _inflate(self, data: bytes) -> None:
        try:
            self._buffer += self._decompressor.decompress(data, self._chunk_size)
        except zlib.error as e:
            raise TranscodeError(
                f"Corrupt compressed payload: {e}",
                bytes_in=self.bytes_in,
                bytes_out=self.bytes_out,
            ) from e
        if self._decompressor.eof:
            self._eof = True
            if self._decompressor.unused_data:
                logger.debug(f"Ignoring {len(self._decompressor.unused_data)} trailing bytes after payload")

    def _finish(self) -> None:
        self._eof = True
        try:
            self._buffer += self._decompressor.flush()
        except zlib.error as e:
            raise TranscodeError(f"Corrupt compressed payload: {e}", bytes_in=self.bytes_in) from e
        if not self._decompressor.eof:
            raise TranscodeError(
                "Compressed payload is truncated",
                bytes_in=self.bytes_in,
                bytes_out=self.bytes_out + len(self._buffer),
            )

    def _fill(self, size: int) -> None:
        while not self._eof and (size < 0 or len(self._buffer) < size):
            tail = self._decompressor.unconsumed_tail
            if tail:
                self._inflate(tail)
                continue

            data = self._fobj.read(self._chunk_size)
            if not data:
                self._finish()
                break
            self.bytes_in += len(data)
            self._inflate(data)

    def read(self, size: int = -1) -> bytes:
        """Read up to ``size`` inflated bytes (all remaining if negative).

        Raises:
            TranscodeError: If the payload is corrupt or truncated
        """
        self._fill(size)

        if size < 0 or size >= len(self._buffer):
            result = bytes(self._buffer)
            self._buffer.clear()
        else:
            result = bytes(self._buffer[:size])
            del self._buffer[:size]

        self.bytes_out += len(result)
        return result

    def close(self) -> None:
        self._fobj.close()

    def __enter__(self) -> "InflatingReader":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()


def open_payload(
    stream: BinaryIO,
    compressed: bool,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> Union[BinaryIO, InflatingReader]:
    """Return a reader yielding the raw tar bytes of a backup payload.

    Args:
        stream: Stream positioned at the first payload byte
        compressed: Header compression flag
        chunk_size: Compressed bytes pulled from ``stream`` per read

    Returns:
        ``stream`` itself when uncompressed, otherwise an InflatingReader
    """
    if not compressed:
        logger.debug("Payload is not compressed, reading tar stream directly")
        return stream

    logger.debug(f"Inflating payload in {chunk_size} byte chunks")
    return InflatingReader(stream, chunk_size=chunk_size)
