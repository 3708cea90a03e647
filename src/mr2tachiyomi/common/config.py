"""Layered TOML configuration for mr2tachiyomi tools."""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Generic, List, Optional, Tuple, Type, TypeVar

import platformdirs
import toml
from pydantic import BaseModel

logger = logging.getLogger(__name__)

T = TypeVar('T', bound=BaseModel)

CONFIG_FILE_NAME = "config.toml"

# MR2TACHIYOMI_AB_EXTRACTOR_EXTRACTION__TARGET_ENTRY -> extraction.target_entry
ENV_NESTING_SEPARATOR = "__"


def merge_config(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Merge ``override`` into a copy of ``base``, section by section."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = merge_config(current, value)
        else:
            merged[key] = value
    return merged


class ConfigLoader(Generic[T]):
    """Builds a validated config model from files and environment.

    Layers, lowest priority first:

    1. defaults file (explicit ``--config`` path or ``./config/defaults.toml``)
    2. system file (``/etc/<app>/config.toml``, ``%PROGRAMDATA%`` on Windows)
    3. user file (``platformdirs.user_config_dir(<app>)/config.toml``)
    4. ``<APP>_<SECTION>__<KEY>`` environment variables
    """

    def __init__(self, app_name: str, config_class: Type[T]) -> None:
        self.app_name = app_name
        self.config_class = config_class
        self._config: Optional[T] = None

    @property
    def env_prefix(self) -> str:
        return self.app_name.upper().replace('-', '_') + "_"

    def load(self, defaults_path: Optional[Path] = None) -> T:
        """Read every layer and validate the merged result.

        Args:
            defaults_path: TOML file replacing ``./config/defaults.toml``

        Raises:
            FileNotFoundError: If defaults_path is given but does not exist
            toml.TomlDecodeError: If a config file is not valid TOML
            pydantic.ValidationError: If the merged values are invalid
        """
        if defaults_path is not None and not Path(defaults_path).exists():
            raise FileNotFoundError(f"Config file not found: {defaults_path}")

        values: Dict[str, Any] = {}
        for label, path in self._file_layers(defaults_path):
            if not path.exists():
                logger.debug(f"No {label} config at {path}")
                continue
            logger.debug(f"Loading {label} config from {path}")
            values = merge_config(values, toml.load(path))

        values = merge_config(values, self._env_layer())

        self._config = self.config_class(**values)
        return self._config

    def _file_layers(self, defaults_path: Optional[Path]) -> List[Tuple[str, Path]]:
        if defaults_path is not None:
            defaults = Path(defaults_path)
        else:
            defaults = Path.cwd() / "config" / "defaults.toml"

        if os.name == "nt":
            system_root = Path(os.environ.get("PROGRAMDATA", "C:\\ProgramData")) / self.app_name
        else:
            system_root = Path("/etc") / self.app_name

        user_root = Path(platformdirs.user_config_dir(appname=self.app_name, appauthor=False))

        return [
            ("defaults", defaults),
            ("system", system_root / CONFIG_FILE_NAME),
            ("user", user_root / CONFIG_FILE_NAME),
        ]

    def _env_layer(self) -> Dict[str, Any]:
        """Collect overrides from environment variables into nested sections."""
        prefix = self.env_prefix
        layer: Dict[str, Any] = {}

        # Shallow keys first so a nested key replaces a scalar set for its section
        overrides = sorted(
            (key, value) for key, value in os.environ.items() if key.startswith(prefix)
        )
        overrides.sort(key=lambda item: item[0].count(ENV_NESTING_SEPARATOR))

        for env_key, env_value in overrides:
            *sections, key = env_key[len(prefix):].lower().split(ENV_NESTING_SEPARATOR)
            target = layer
            for section in sections:
                if not isinstance(target.get(section), dict):
                    target[section] = {}
                target = target[section]
            target[key] = self._convert_env_value(env_value)
            logger.debug(f"Config override from environment: {env_key}")

        return layer

    def _convert_env_value(self, value: str) -> Any:
        """Turn an environment string into bool, int or float where it looks like one."""
        lowered = value.lower()
        if lowered in ("true", "yes"):
            return True
        if lowered in ("false", "no"):
            return False

        for convert in (int, float):
            try:
                return convert(value)
            except ValueError:
                continue

        return value

    @property
    def config(self) -> T:
        """Loaded configuration, read on first access."""
        if self._config is None:
            self._config = self.load()
        return self._config
