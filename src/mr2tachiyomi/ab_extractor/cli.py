"""CLI for recovering the MangaRock database from Android backups."""

import argparse
import logging
import sys
from pathlib import Path, PurePosixPath
from typing import List, Optional

from mr2tachiyomi.common import (
    ConfigLoader,
    MR2TachiyomiError,
    setup_logging,
    setup_logging_from_config,
)

from .config import AbExtractorConfig
from .extractor import BackupExtractor, resolve_database
from .tar_scanner import DIRTYPE, SYMTYPE, LNKTYPE

# Application name derived from package name
_package = __package__ or "mr2tachiyomi.ab_extractor"
APP_NAME = _package.replace('_', '-').replace('.', '-')

COMMANDS = ("extract", "info", "list")

_TYPE_LETTERS = {DIRTYPE: "d", SYMTYPE: "l", LNKTYPE: "h"}


def build_extractor(config: AbExtractorConfig, entry_override: Optional[str] = None) -> BackupExtractor:
    """Create a BackupExtractor from configuration and CLI overrides."""
    return BackupExtractor(
        target_entry=entry_override or config.extraction.target_entry,
        read_chunk_size=config.extraction.read_chunk_size,
        verify_checksum=config.extraction.verify_checksum,
    )


def resolve_output_path(
    config: AbExtractorConfig,
    target_entry: str,
    output_override: Optional[Path] = None,
) -> Optional[Path]:
    """Pick the output path: CLI flag, then configured directory, else default."""
    if output_override:
        return output_override
    if config.extraction.output_dir:
        return Path(config.extraction.output_dir) / PurePosixPath(target_entry).name
    return None


def extract_command(
    config: AbExtractorConfig,
    input_path: Path,
    output_override: Optional[Path] = None,
    entry_override: Optional[str] = None,
) -> int:
    """Recover the database from a backup (or accept a database as-is).

    Returns:
        Exit code (0 for success)
    """
    logger = logging.getLogger(__package__ or __name__)
    extractor = build_extractor(config, entry_override)
    output_path = resolve_output_path(config, extractor.target_entry, output_override)

    try:
        database = resolve_database(input_path, output_path, extractor=extractor)
    except MR2TachiyomiError as e:
        logger.error(
            f"Extraction failed: {e}",
            extra={"extra_fields": {"error": type(e).__name__, **e.context}},
        )
        return 1

    print(database)
    return 0


def info_command(config: AbExtractorConfig, input_path: Path) -> int:
    """Print the container header of a backup."""
    logger = logging.getLogger(__package__ or __name__)
    try:
        header = build_extractor(config).read_header(input_path)
    except MR2TachiyomiError as e:
        logger.error(f"Cannot read backup header: {e}")
        return 1

    print(f"version={header.version}")
    print(f"compressed={int(header.compressed)}")
    print(f"encryption={header.encryption}")
    return 0


def list_command(config: AbExtractorConfig, input_path: Path) -> int:
    """Print type, size and name of every entry in a backup."""
    logger = logging.getLogger(__package__ or __name__)
    try:
        entries = build_extractor(config).list_entries(input_path)
    except MR2TachiyomiError as e:
        logger.error(f"Cannot list backup: {e}")
        return 1

    for entry in entries:
        kind = _TYPE_LETTERS.get(entry.type_flag, "-")
        print(f"{kind} {entry.size:>12} {entry.name}")
    logger.info(f"{len(entries)} entries")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mr2tachiyomi-extract",
        description="Recover the MangaRock database from an Android backup (.ab)",
    )
    parser.add_argument(
        "command",
        nargs="?",
        choices=COMMANDS,
        default="extract",
        help="extract (default): recover the database; "
             "info: show the backup header; list: list backup entries"
    )
    parser.add_argument(
        "-i", "--input",
        type=Path,
        default=Path("mangarock.ab"),
        help="Backup (.ab) or database (.db) file (default: mangarock.ab)"
    )
    parser.add_argument(
        "-o", "--output",
        type=Path,
        help="Recovered database path (overrides config)"
    )
    parser.add_argument(
        "--entry",
        help="Entry path inside the backup (overrides config)"
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to config file (TOML)"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the extractor CLI."""
    args = build_parser().parse_args(argv)

    # Console logging until the configured setup is known
    setup_logging()
    logger = logging.getLogger(__package__ or __name__)

    loader = ConfigLoader(app_name=APP_NAME, config_class=AbExtractorConfig)
    try:
        config = loader.load(defaults_path=args.config)
    except (OSError, ValueError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    setup_logging_from_config(config.logging)

    if args.command == "info":
        return info_command(config, args.input)
    if args.command == "list":
        return list_command(config, args.input)
    return extract_command(
        config=config,
        input_path=args.input,
        output_override=args.output,
        entry_override=args.entry,
    )


if __name__ == "__main__":
    sys.exit(main())
