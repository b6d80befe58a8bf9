import logging
import re
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .constants import APP_NAME, CONFIG_FILE, LOCAL_CONFIG_NAME

logger = logging.getLogger(APP_NAME)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '100MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


def parse_level(value: str) -> str:
    """Normalizes a logging level name (e.g., 'debug' -> 'DEBUG')."""
    level = str(value).strip().upper()
    if level not in LOG_LEVELS:
        raise ValueError(f"Invalid log level '{value}'")
    return level


@dataclass
class AttributesConfig:
    """Which attribute classes are stored and restored.

    Attributes:
        acl (bool): Store and restore ACLs (on platforms that support them).
        xattr (bool): Store and restore extended attributes.
        ownership (bool): Restore ownership. Ownership is always recorded,
            since restoring it usually needs privileges another clone may have.
    """

    acl: bool = True
    xattr: bool = True
    ownership: bool = True


@dataclass
class LoggingConfig:
    """Logging settings.

    Attributes:
        level (str): Minimum level emitted to stderr and the log file.
        file (str): Optional log file path; empty disables file logging.
        max_log_size (int): Max bytes for the log file before rotation.
    """

    level: str = "INFO"
    file: str = ""
    max_log_size: int = 1024 * 1024


@dataclass
class Config:
    """Global configuration aggregator.

    Attributes:
        attributes (AttributesConfig): Attribute selection.
        logging (LoggingConfig): Logging settings.
    """

    attributes: AttributesConfig = field(default_factory=AttributesConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Cache for the base global configuration
    _global_cache: "Config | None" = None

    @classmethod
    def load(cls, git_dir: Path | None = None) -> "Config":
        """Loads and merges configuration from defaults, global, and local sources.

        Args:
            git_dir (Path | None): The repository's git directory, searched for
                                   the per-clone `attributesdb.toml`.

        Returns:
            Config: The fully merged configuration object.
        """
        # 1. Load or Retrieve Global Config
        if cls._global_cache is None:
            instance = cls()
            if CONFIG_FILE.exists():
                instance._merge_from_file(CONFIG_FILE)
            cls._global_cache = instance

        # Start with a copy of the cached global config
        instance = replace(cls._global_cache)

        # 2. Load Local Config (if applicable)
        if git_dir:
            local_toml = git_dir / LOCAL_CONFIG_NAME
            if local_toml.exists():
                instance._merge_from_file(local_toml)

        return instance

    def _merge_from_file(self, path: Path) -> None:
        """Parses a TOML file and merges it into the current instance.

        Args:
            path (Path): Path to the TOML file.
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            if "attributes" in data:
                self.attributes = self._update_dataclass(
                    "attributes", self.attributes, data["attributes"]
                )
            if "logging" in data:
                self.logging = self._update_dataclass(
                    "logging", self.logging, data["logging"]
                )

        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
        except Exception as e:
            logger.warning(f"Failed to load config from {path}: {e}")

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and parsing human-readable formats."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        # 1. Catch and warn about typos / unknown keys
        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: "
                f"{', '.join(sorted(invalid_keys))}. Ignoring."
            )

        # 2. Process valid keys
        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                if k == "max_log_size":
                    filtered_updates[k] = parse_size(v)
                elif k == "level":
                    filtered_updates[k] = parse_level(v)
                elif isinstance(getattr(instance, k), bool) and not isinstance(
                    v, bool
                ):
                    raise ValueError(f"Expected true or false, got '{v}'")
                else:
                    filtered_updates[k] = v
            except ValueError as e:
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)
