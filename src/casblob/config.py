"""Store configuration helpers."""

import hashlib
import os
from pathlib import Path
from typing import Optional

import platformdirs
import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from .constants import AZURE_CONNECTION_ENV, CONFIG_ENV, CONFIG_FILE, ENV_PREFIX
from .errors import ConfigError

PROVIDERS = ("azure", "fs")
KEY_LAYOUTS = ("sharded", "flat")
DEDUPE_MODES = ("none", "memory", "sqlite", "probe")
HASH_ALGORITHMS = ("sha256", "sha512", "blake2b", "sha3_256")


def default_data_dir() -> Path:
    """Platform-appropriate directory for the local store and dedupe index."""
    return Path(platformdirs.user_data_dir("casblob", "casblob"))


class StoreSettings(BaseModel):
    """
    Settings for one blob store and the content-addressing pipeline above it.

    For provider "fs", container is a directory path; for "azure" it is the
    container name and the connection string comes from
    AZURE_STORAGE_CONNECTION_STRING.
    """
    provider: str = "fs"
    container: str = ""
    prefix: str = ""
    page_size: int = Field(default=1000, gt=0)

    key_layout: str = "sharded"
    hash_algorithm: str = "sha256"
    dedupe: str = "sqlite"
    dedupe_path: Optional[Path] = None
    sniff_content_type: bool = True

    max_workers: int = Field(default=8, gt=0)

    @model_validator(mode="after")
    def validate_choices(self):
        """Reject unknown providers, layouts and algorithms early."""
        for name, value, allowed in (
            ("provider", self.provider, PROVIDERS),
            ("key_layout", self.key_layout, KEY_LAYOUTS),
            ("dedupe", self.dedupe, DEDUPE_MODES),
            ("hash_algorithm", self.hash_algorithm, HASH_ALGORITHMS),
        ):
            if value not in allowed:
                raise ValueError(f"{name} must be one of {', '.join(allowed)}; got {value!r}")
        return self

    @property
    def resolved_container(self) -> str:
        """Container, defaulting the fs store to the platform data directory."""
        if self.container:
            return self.container
        if self.provider == "fs":
            return str(default_data_dir() / "store")
        return ""

    @property
    def store_identity(self) -> str:
        """Short digest naming the backing store (provider, location, prefix).

        For Azure the storage account comes from the connection string, so
        it is folded into the digest as well.
        """
        location = self.resolved_container
        if self.provider == "fs":
            location = str(Path(location).expanduser().resolve())
        parts = [self.provider, location, self.prefix.strip("/")]
        if self.provider == "azure":
            parts.append(os.environ.get(AZURE_CONNECTION_ENV, ""))
        return hashlib.sha256("\0".join(parts).encode("utf-8")).hexdigest()[:16]

    @property
    def resolved_dedupe_path(self) -> Path:
        """Dedupe index path; by default one index per backing store."""
        if self.dedupe_path is not None:
            return self.dedupe_path
        return default_data_dir() / "dedupe" / f"{self.store_identity}.sqlite"


def _env_overrides() -> dict:
    """Collect CASBLOB_<FIELD> environment overrides."""
    overrides = {}
    for name in StoreSettings.model_fields:
        value = os.environ.get(f"{ENV_PREFIX}{name.upper()}")
        if value is not None:
            overrides[name] = value
    return overrides


def load_settings(config_path: Optional[Path] = None) -> StoreSettings:
    """Load store settings from YAML, overlaid with environment variables.

    Args:
        config_path: Path to config file. Defaults to $CASBLOB_CONFIG or
            ./casblob.yaml

    Returns:
        StoreSettings instance (defaults when ./casblob.yaml is absent)

    Raises:
        ConfigError: If an explicitly named file (argument or $CASBLOB_CONFIG)
            is missing, cannot be parsed, or holds invalid values
    """
    explicit = config_path is not None or CONFIG_ENV in os.environ
    if config_path is None:
        config_path = Path(os.environ.get(CONFIG_ENV, CONFIG_FILE))
    config_path = Path(config_path)

    if explicit and not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    data = {}
    if config_path.exists():
        try:
            data = yaml.safe_load(config_path.read_text()) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{config_path} must contain a mapping")
        data = data.get("store", data)

    data.update(_env_overrides())
    try:
        return StoreSettings(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid store settings: {e}") from e
