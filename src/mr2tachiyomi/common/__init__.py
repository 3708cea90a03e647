"""Common utilities for mr2tachiyomi packages."""

from .config import ConfigLoader
from .logging import setup_logging, setup_logging_from_config, LogContext
from .logging_config import LoggingConfig
from .errors import MR2TachiyomiError, FileProcessingError, UnsupportedFormatError
from .checksums import compute_crc32, compute_crc32_hex

__all__ = [
    'ConfigLoader',
    'LoggingConfig',
    'setup_logging',
    'setup_logging_from_config',
    'LogContext',
    'MR2TachiyomiError',
    'FileProcessingError',
    'UnsupportedFormatError',
    'compute_crc32',
    'compute_crc32_hex',
]
