"""Tests for Android backup container header parsing."""

import io

import pytest

from mr2tachiyomi.ab_extractor.errors import MalformedContainerError
from mr2tachiyomi.ab_extractor.header import BackupHeader, parse_header


class TestParseHeader:
    """Test parse_header on well-formed headers."""

    def test_compressed_unencrypted(self):
        """Test the common header of a compressed, unencrypted backup."""
        stream = io.BytesIO(b"ANDROID BACKUP\n5\n1\nnone\nPAYLOAD")

        header = parse_header(stream)

        assert header == BackupHeader(
            magic="ANDROID BACKUP",
            version=5,
            compressed=True,
            encryption="none",
            payload_offset=24,
        )
        assert header.is_encrypted is False
        assert stream.read() == b"PAYLOAD"

    def test_uncompressed(self):
        """Test compression flag 0."""
        header = parse_header(io.BytesIO(b"ANDROID BACKUP\n1\n0\nnone\n"))

        assert header.version == 1
        assert header.compressed is False

    def test_encrypted_is_reported_not_rejected(self):
        """Test that an encryption token is returned for the caller to refuse."""
        stream = io.BytesIO(b"ANDROID BACKUP\n5\n1\nAES-256\nSALT\n")

        header = parse_header(stream)

        assert header.is_encrypted is True
        assert header.encryption == "AES-256"
        # Nothing past the fourth line is consumed
        assert stream.read() == b"SALT\n"

    def test_payload_offset_matches_stream_position(self):
        """Test payload_offset equals the bytes consumed."""
        stream = io.BytesIO(b"ANDROID BACKUP\n12\n1\nnone\n\x78\x9c")

        header = parse_header(stream)

        assert header.payload_offset == stream.tell()

    def test_newer_version_logs_warning(self, caplog):
        """Test that unknown future versions are accepted with a warning."""
        with caplog.at_level("WARNING"):
            header = parse_header(io.BytesIO(b"ANDROID BACKUP\n9\n1\nnone\n"))

        assert header.version == 9
        assert "newer than known versions" in caplog.text


class TestMalformedHeader:
    """Test header validation failures."""

    def test_wrong_magic(self):
        """Test that a non-backup file is rejected."""
        with pytest.raises(MalformedContainerError) as exc_info:
            parse_header(io.BytesIO(b"NOT A BACKUP\n5\n1\nnone\n"))

        assert exc_info.value.context["field"] == "magic"

    def test_empty_file(self):
        """Test that an empty stream is rejected."""
        with pytest.raises(MalformedContainerError):
            parse_header(io.BytesIO(b""))

    @pytest.mark.parametrize("version", [b"", b"x", b"1.0", b"-1"])
    def test_non_numeric_version(self, version):
        """Test that the version line must be a non-negative integer."""
        data = b"ANDROID BACKUP\n" + version + b"\n1\nnone\n"

        with pytest.raises(MalformedContainerError) as exc_info:
            parse_header(io.BytesIO(data))

        assert exc_info.value.context["field"] == "version"

    @pytest.mark.parametrize("flag", [b"2", b"", b"yes"])
    def test_invalid_compression_flag(self, flag):
        """Test that only 0 and 1 are accepted as compression flag."""
        data = b"ANDROID BACKUP\n5\n" + flag + b"\nnone\n"

        with pytest.raises(MalformedContainerError) as exc_info:
            parse_header(io.BytesIO(data))

        assert exc_info.value.context["field"] == "compression"

    def test_truncated_header(self):
        """Test that a header ending before the encryption line is rejected."""
        with pytest.raises(MalformedContainerError) as exc_info:
            parse_header(io.BytesIO(b"ANDROID BACKUP\n5\n1\n"))

        assert exc_info.value.context["field"] == "encryption"

    def test_unterminated_last_line(self):
        """Test that a header line without newline is rejected."""
        with pytest.raises(MalformedContainerError):
            parse_header(io.BytesIO(b"ANDROID BACKUP\n5\n1\nnone"))

    def test_binary_garbage_does_not_read_whole_stream(self):
        """Test that a long line without newline fails instead of scanning on."""
        stream = io.BytesIO(b"\x00" * 100_000)

        with pytest.raises(MalformedContainerError):
            parse_header(stream)

        assert stream.tell() < 100_000
