"""Recover a single file from an Android backup.

The pipeline is single pass: container header, payload inflation, tar scan,
copy of the matching entry. The input is never unpacked to disk; only the
target entry's bytes are written, first to ``<output>.part`` and then
renamed into place, so a failed run never leaves a partial file behind.
"""

import logging
import os
from contextlib import ExitStack
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import List, Optional, Tuple, Union

from mr2tachiyomi.common import (
    FileProcessingError,
    LogContext,
    MR2TachiyomiError,
    UnsupportedFormatError,
    compute_crc32_hex,
)

from .errors import BackupIOError, EntryNotFoundError, UnsupportedEncryptionError
from .header import BackupHeader, parse_header
from .tar_scanner import TarBlockScanner, TarEntryHeader
from .transcoder import DEFAULT_CHUNK_SIZE, open_payload

logger = logging.getLogger(__name__)

MANGAROCK_DB_ENTRY = "apps/com.notabasement.mangarock.android.lotus/db/mangarock.db"

PART_SUFFIX = ".part"

PathLike = Union[str, Path]


class ExtractionStage(Enum):
    """Progress of one extraction run."""
    START = "start"
    HEADER_PARSED = "header_parsed"
    TRANSCODING = "transcoding"
    SCANNING = "scanning"
    FOUND = "found"
    EXTRACTING = "extracting"
    DONE = "done"
    NOT_FOUND = "not_found"
    FAILED = "failed"


def is_closed_file_error(error: ValueError) -> bool:
    """True for the ValueError raised by I/O on a file object that was closed."""
    return "closed file" in str(error)


def default_output_path(input_path: Path, target_entry: str) -> Path:
    """Place the recovered file next to the backup, named after the entry."""
    return input_path.with_name(PurePosixPath(target_entry).name)


class BackupExtractor:
    """Extracts one entry from Android backup files."""

    def __init__(
        self,
        target_entry: str = MANGAROCK_DB_ENTRY,
        read_chunk_size: int = DEFAULT_CHUNK_SIZE,
        verify_checksum: bool = False,
    ) -> None:
        """Initialize backup extractor.

        Args:
            target_entry: Exact in-archive path of the entry to recover
            read_chunk_size: Compressed bytes read from the backup per step
            verify_checksum: Log a CRC32 of the recovered file
        """
        self.target_entry = target_entry
        self.read_chunk_size = read_chunk_size
        self.verify_checksum = verify_checksum
        self.stage = ExtractionStage.START

    def _set_stage(self, stage: ExtractionStage) -> None:
        self.stage = stage
        logger.debug(f"Extraction stage: {stage.value}")

    def _open_scanner(
        self, stack: ExitStack, input_path: Path
    ) -> Tuple[BackupHeader, TarBlockScanner]:
        stream = stack.enter_context(open(input_path, "rb"))

        header = parse_header(stream)
        self._set_stage(ExtractionStage.HEADER_PARSED)
        if header.is_encrypted:
            raise UnsupportedEncryptionError(
                f"Encrypted backups are not supported (encryption: {header.encryption})",
                path=str(input_path),
                encryption=header.encryption,
            )

        payload = open_payload(stream, header.compressed, chunk_size=self.read_chunk_size)
        if payload is not stream:
            stack.callback(payload.close)
        self._set_stage(ExtractionStage.TRANSCODING)

        return header, TarBlockScanner(payload)

    def read_header(self, input_path: PathLike) -> BackupHeader:
        """Read only the container header of a backup.

        Raises:
            MalformedContainerError: If the header is invalid
            BackupIOError: If the file cannot be read
        """
        input_path = Path(input_path)
        try:
            with open(input_path, "rb") as stream:
                return parse_header(stream)
        except OSError as e:
            raise BackupIOError(
                f"Failed to read {input_path}: {e}", path=str(input_path)
            ) from e

    def list_entries(self, input_path: PathLike) -> List[TarEntryHeader]:
        """List every entry header in a backup.

        Raises:
            MalformedContainerError, UnsupportedEncryptionError, TranscodeError,
            CorruptedArchiveError, BackupIOError
        """
        input_path = Path(input_path)
        self.stage = ExtractionStage.START
        try:
            with ExitStack() as stack:
                _, scanner = self._open_scanner(stack, input_path)
                self._set_stage(ExtractionStage.SCANNING)
                entries = list(scanner.entries())
        except (OSError, ValueError) as e:
            if isinstance(e, ValueError) and not is_closed_file_error(e):
                raise
            raise BackupIOError(
                f"Failed to read {input_path}: {e}", path=str(input_path)
            ) from e

        self._set_stage(ExtractionStage.DONE)
        return entries

    def extract(self, input_path: PathLike, output_path: Optional[PathLike] = None) -> Path:
        """Extract the target entry from a backup.

        Args:
            input_path: Path to the ``.ab`` file
            output_path: Where to write the entry; defaults to the entry's
                base name next to the input file

        Returns:
            Path of the recovered file, exactly ``size`` bytes long

        Raises:
            MalformedContainerError: If the container header is invalid
            UnsupportedEncryptionError: If the backup is encrypted
            TranscodeError: If the payload cannot be decompressed
            CorruptedArchiveError: If the tar stream is damaged
            EntryNotFoundError: If the backup has no such entry
            BackupIOError: If reading or writing fails
        """
        input_path = Path(input_path)
        output_path = (
            Path(output_path) if output_path
            else default_output_path(input_path, self.target_entry)
        )
        part_path = output_path.with_name(output_path.name + PART_SUFFIX)
        self.stage = ExtractionStage.START

        with LogContext(logger, input=str(input_path), entry=self.target_entry):
            logger.info(f"Extracting {self.target_entry} from {input_path}")
            try:
                with ExitStack() as stack:
                    _, scanner = self._open_scanner(stack, input_path)

                    self._set_stage(ExtractionStage.SCANNING)
                    try:
                        entry = scanner.find(self.target_entry)
                    except EntryNotFoundError:
                        self._set_stage(ExtractionStage.NOT_FOUND)
                        raise
                    self._set_stage(ExtractionStage.FOUND)

                    if not entry.is_file:
                        logger.warning(
                            f"{entry.name} is not a regular file (type {entry.type_flag!r}), "
                            f"extracting its data anyway"
                        )

                    output_path.parent.mkdir(parents=True, exist_ok=True)
                    sink = stack.enter_context(open(part_path, "wb"))
                    self._set_stage(ExtractionStage.EXTRACTING)
                    recovered = min(entry.size, scanner.copy_data(entry, sink))
                    sink.truncate(recovered)

                os.replace(part_path, output_path)

            except (OSError, ValueError) as e:
                failed_stage = self.stage
                self._fail(part_path)
                if isinstance(e, ValueError) and not is_closed_file_error(e):
                    raise
                raise BackupIOError(
                    f"I/O error while extracting from {input_path}: {e}",
                    path=str(input_path),
                    stage=failed_stage.value,
                ) from e
            except MR2TachiyomiError as e:
                e.context.setdefault("stage", self.stage.value)
                self._fail(part_path)
                raise
            except BaseException:
                self._fail(part_path)
                raise

            self._set_stage(ExtractionStage.DONE)
            fields = {"output": str(output_path), "size": recovered}
            if self.verify_checksum:
                try:
                    fields["crc32"] = compute_crc32_hex(output_path)
                except OSError as e:
                    raise BackupIOError(
                        f"Failed to checksum {output_path}: {e}",
                        path=str(output_path),
                        stage=self.stage.value,
                    ) from e
            logger.info(
                f"Recovered {entry.name} ({recovered} bytes) to {output_path}",
                extra={"extra_fields": fields},
            )
            return output_path

    def _fail(self, part_path: Path) -> None:
        logger.debug(f"Extraction failed at stage {self.stage.value}")
        self.stage = ExtractionStage.FAILED
        part_path.unlink(missing_ok=True)


def extract(
    input_path: PathLike,
    target_entry: str = MANGAROCK_DB_ENTRY,
    output_path: Optional[PathLike] = None,
) -> Path:
    """Extract ``target_entry`` from the backup at ``input_path``.

    See BackupExtractor.extract for errors.
    """
    return BackupExtractor(target_entry=target_entry).extract(input_path, output_path)


def read_backup_header(input_path: PathLike) -> BackupHeader:
    return BackupExtractor().read_header(input_path)


def list_entries(input_path: PathLike) -> List[TarEntryHeader]:
    return BackupExtractor().list_entries(input_path)


def resolve_database(
    input_path: PathLike,
    output_path: Optional[PathLike] = None,
    extractor: Optional[BackupExtractor] = None,
) -> Path:
    """Return a path to the database file for a converter input.

    ``.db`` inputs are already databases and are returned unchanged;
    ``.ab`` inputs have the database extracted first.

    Raises:
        FileProcessingError: If the input does not exist
        UnsupportedFormatError: If the input is neither ``.db`` nor ``.ab``
        BackupError: If extraction from a backup fails
    """
    input_path = Path(input_path)
    if not input_path.exists():
        raise FileProcessingError(f"File {input_path} not found!", path=str(input_path))

    extension = input_path.suffix.lower()
    if extension == ".db":
        logger.info(f"Using database {input_path} directly")
        return input_path
    if extension == ".ab":
        return (extractor or BackupExtractor()).extract(input_path, output_path)

    raise UnsupportedFormatError(
        f"Unsupported File Format: {extension.lstrip('.') or input_path.name}",
        path=str(input_path),
    )
