"""Base error definitions for mr2tachiyomi packages."""

from typing import Any, Dict


class MR2TachiyomiError(Exception):
    """Base exception for all mr2tachiyomi errors."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context


class FileProcessingError(MR2TachiyomiError):
    """Base exception for input/output file errors."""
    pass


class UnsupportedFormatError(FileProcessingError):
    """File format is not supported."""
    pass
