"""Shared fixtures for building tar streams and Android backups."""

import io
import tarfile
import zlib

import pytest


def build_tar(entries, format=tarfile.USTAR_FORMAT) -> bytes:
    """Create a tar archive in memory.

    Args:
        entries: Iterable of (name, data) pairs; data None makes a directory
        format: tarfile format constant
    """
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w", format=format) as tf:
        for name, data in entries:
            info = tarfile.TarInfo(name=name)
            if data is None:
                info.type = tarfile.DIRTYPE
                tf.addfile(info)
            else:
                info.size = len(data)
                tf.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


def build_backup(
    tar_bytes: bytes,
    compressed: bool = True,
    version: int = 5,
    encryption: str = "none",
) -> bytes:
    """Wrap tar bytes in an Android backup container."""
    header = f"ANDROID BACKUP\n{version}\n{int(compressed)}\n{encryption}\n".encode("ascii")
    payload = zlib.compress(tar_bytes) if compressed else tar_bytes
    return header + payload


def header_block(name: str, size: int, type_flag: bytes = b"0") -> bytes:
    """Hand-built 512-byte ustar header block (checksum not filled in)."""
    block = bytearray(512)
    encoded = name.encode("utf-8")
    block[0:len(encoded)] = encoded
    block[124:136] = f"{size:011o}\0".encode("ascii")
    block[156:157] = type_flag
    return bytes(block)


def pattern_data(size: int) -> bytes:
    """Deterministic non-repeating-per-block test payload."""
    return bytes((i * 7 + i // 256) % 256 for i in range(size))


@pytest.fixture
def make_tar():
    return build_tar


@pytest.fixture
def make_backup():
    return build_backup


@pytest.fixture
def make_header_block():
    return header_block


@pytest.fixture
def make_pattern():
    return pattern_data


@pytest.fixture
def write_backup(tmp_path):
    """Write a backup file under tmp_path and return its path."""

    def _write(entries, name="backup.ab", **kwargs):
        path = tmp_path / name
        path.write_bytes(build_backup(build_tar(entries), **kwargs))
        return path

    return _write
