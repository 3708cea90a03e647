"""Configuration schema for the backup extractor."""

from typing import Optional

from pydantic import BaseModel, Field, ConfigDict, field_validator

from mr2tachiyomi.common import LoggingConfig

from .extractor import MANGAROCK_DB_ENTRY
from .tar_scanner import BLOCK_SIZE
from .transcoder import DEFAULT_CHUNK_SIZE


class ExtractionConfig(BaseModel):
    """Configuration for backup extraction."""

    model_config = ConfigDict(extra='forbid')

    target_entry: str = Field(
        default=MANGAROCK_DB_ENTRY,
        min_length=1,
        description="Exact path of the entry to recover inside the backup"
    )
    output_dir: Optional[str] = Field(
        default=None,
        description="Directory for the recovered file (default: next to the backup)"
    )
    read_chunk_size: int = Field(
        default=DEFAULT_CHUNK_SIZE,
        ge=BLOCK_SIZE,
        description="Compressed bytes read from the backup per step"
    )
    verify_checksum: bool = Field(
        default=True,
        description="Log a CRC32 checksum of the recovered file"
    )

    @field_validator('target_entry')
    @classmethod
    def strip_leading_slash(cls, v: str) -> str:
        """Tar entry names are relative; accept '/apps/...' as 'apps/...'."""
        return v.lstrip('/')


class AbExtractorConfig(BaseModel):
    """Root configuration for the backup extractor."""

    model_config = ConfigDict(extra='forbid')

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
