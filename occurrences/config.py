"""
Configuration management for occurrence stores.

The configuration is stored as a TOML file at the vault root. It specifies
where occurrence files live, how their filenames are dated, which header
fields hold each property, and how long to wait for the metadata cache.
"""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import tomli_w

from .errors import ConfigError
from .types import DERIVED_PROPERTIES, MAPPABLE_PROPERTIES, TAGS_FIELD


CONFIG_FILENAME = ".occurrences.toml"
CONFIG_VERSION = 1

DEFAULT_FOLDER = "Occurrences"
DEFAULT_EXTENSION = ".md"
DEFAULT_DATE_FORMAT = "YYYY-MM-DD HHmm"

# Logical property -> header field name
DEFAULT_PROPERTY_MAPPING: dict[str, str] = {
    "occurredAt": "occurred_at",
    "toProcess": "to_process",
    "participants": "participants",
    "topics": "topics",
    "location": "location",
}


@dataclass
class RetryConfig:
    """How long to wait for a file's header to appear in the metadata cache."""
    attempts: int = 10
    delay: float = 0.05
    backoff: float = 1.0


@dataclass
class StoreConfig:
    """Complete store configuration."""
    path: Path
    version: int = CONFIG_VERSION
    folder: str = DEFAULT_FOLDER
    extension: str = DEFAULT_EXTENSION
    date_format: str = DEFAULT_DATE_FORMAT
    property_mapping: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_PROPERTY_MAPPING))
    retry: RetryConfig = field(default_factory=RetryConfig)

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()

    def is_relevant(self, path: str) -> bool:
        """True if a vault path is an occurrence file (folder prefix + extension)."""
        return path.startswith(f"{self.folder}/") and path.endswith(self.extension)

    def field_name(self, prop: str) -> str:
        """
        Header field name for a logical property.

        Derived properties map to themselves and tags is always "tags".
        Unknown properties fall back to the property name.
        """
        if prop in DERIVED_PROPERTIES:
            return prop
        if prop == "tags":
            return TAGS_FIELD
        return (
            self.property_mapping.get(prop)
            or DEFAULT_PROPERTY_MAPPING.get(prop)
            or prop
        )

    def property_for_field(self, field_name: str) -> Optional[str]:
        """Reverse lookup: logical property for a header field name, or None."""
        if field_name == TAGS_FIELD:
            return "tags"
        if field_name in DERIVED_PROPERTIES:
            return field_name
        for prop, name in self.property_mapping.items():
            if name == field_name:
                return prop
        for prop, name in DEFAULT_PROPERTY_MAPPING.items():
            if name == field_name:
                return prop
        return None

    def property_mapping_with_tags(self) -> dict[str, str]:
        """Full logical property -> field mapping, including tags."""
        mapping = {prop: self.field_name(prop) for prop in MAPPABLE_PROPERTIES}
        mapping["tags"] = TAGS_FIELD
        return mapping


def get_default_vault_path() -> Path:
    """Vault root from OCCURRENCES_VAULT, else the current directory."""
    env = os.environ.get("OCCURRENCES_VAULT")
    if env:
        return Path(env).expanduser()
    return Path.cwd()


def get_tool_directory() -> Path:
    """Directory for logs written by the tool (OCCURRENCES_HOME or ~/.occurrences)."""
    env = os.environ.get("OCCURRENCES_HOME")
    if env:
        return Path(env).expanduser()
    return Path.home() / ".occurrences"


def load_config(vault_path: Path) -> StoreConfig:
    """
    Load configuration from a vault directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ConfigError: If config is invalid (a ValueError)
    """
    config_path = vault_path / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    store = data.get("store", {})
    version = store.get("version", 1)
    if version > CONFIG_VERSION:
        raise ConfigError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    fields = data.get("fields", {})
    unknown = set(fields) - set(MAPPABLE_PROPERTIES)
    if unknown:
        raise ConfigError(f"Unknown properties in [fields]: {', '.join(sorted(unknown))}")

    retry = data.get("retry", {})
    attempts = int(retry.get("attempts", RetryConfig.attempts))
    if attempts < 1:
        raise ConfigError(f"retry.attempts must be at least 1, got {attempts}")

    return StoreConfig(
        path=vault_path,
        version=version,
        folder=store.get("folder", DEFAULT_FOLDER).strip("/"),
        extension=store.get("extension", DEFAULT_EXTENSION),
        date_format=store.get("date_format", DEFAULT_DATE_FORMAT),
        property_mapping={**DEFAULT_PROPERTY_MAPPING, **fields},
        retry=RetryConfig(
            attempts=attempts,
            delay=float(retry.get("delay", RetryConfig.delay)),
            backoff=float(retry.get("backoff", RetryConfig.backoff)),
        ),
    )


def save_config(config: StoreConfig) -> None:
    """
    Save configuration to the vault directory.

    Creates the directory if it doesn't exist.
    """
    config.path.mkdir(parents=True, exist_ok=True)

    data: dict[str, Any] = {
        "store": {
            "version": config.version,
            "folder": config.folder,
            "extension": config.extension,
            "date_format": config.date_format,
        },
        "fields": {prop: config.field_name(prop) for prop in MAPPABLE_PROPERTIES},
        "retry": {
            "attempts": config.retry.attempts,
            "delay": config.retry.delay,
            "backoff": config.retry.backoff,
        },
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(vault_path: Path) -> StoreConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    config_path = vault_path / CONFIG_FILENAME

    if config_path.exists():
        return load_config(vault_path)
    config = StoreConfig(path=vault_path)
    save_config(config)
    return config
