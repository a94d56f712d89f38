"""Storage configuration models and loading.

A configuration file names one backend by its ``provider`` and carries that
backend's settings, e.g.::

    provider: fs
    root: /var/lib/blobtree

JSON files are accepted too (JSON is valid YAML).
"""

from pathlib import Path
from typing import Annotated, Literal, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from .constants import AZURE_CONNECTION_ENV, DEFAULT_LOCK_TIMEOUT
from .errors import ConfigError


class FilesystemConfig(BaseModel):
    """Settings for the filesystem backend."""
    model_config = ConfigDict(extra="forbid")

    provider: Literal["fs"] = "fs"
    root: Path
    lock_timeout: float = Field(DEFAULT_LOCK_TIMEOUT, gt=0)
    fsync: bool = True

    @field_validator("root")
    @classmethod
    def expand_root(cls, v: Path) -> Path:
        """Expand ``~`` so configs can point into the home directory."""
        return v.expanduser()


class MemoryConfig(BaseModel):
    """Settings for the in-memory backend (there are none)."""
    model_config = ConfigDict(extra="forbid")

    provider: Literal["memory"] = "memory"


class AzureConfig(BaseModel):
    """Settings for the Azure Blob Storage backend."""
    model_config = ConfigDict(extra="forbid")

    provider: Literal["azure"] = "azure"
    container: str = Field(..., min_length=1)
    prefix: str = ""
    # Falls back to $AZURE_STORAGE_CONNECTION_STRING when unset
    connection_string: Optional[str] = None
    connection_string_env: str = AZURE_CONNECTION_ENV

    @field_validator("prefix")
    @classmethod
    def strip_prefix(cls, v: str) -> str:
        return v.strip("/")


StorageConfig = Annotated[
    Union[FilesystemConfig, MemoryConfig, AzureConfig],
    Field(discriminator="provider"),
]

_adapter = TypeAdapter(StorageConfig)


def parse_storage_config(data: dict) -> StorageConfig:
    """
    Validate a configuration mapping.

    Args:
        data: Mapping with a ``provider`` key and backend settings

    Returns:
        The matching config model

    Raises:
        ConfigError: If the mapping is not a valid configuration
    """
    if not isinstance(data, dict):
        raise ConfigError(f"Storage config must be a mapping, got {type(data).__name__}")
    if "provider" not in data:
        raise ConfigError("Storage config requires 'provider' (fs, memory or azure)")
    try:
        return _adapter.validate_python(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid storage config: {e}") from e


def load_storage_config(path: Path) -> StorageConfig:
    """Load a storage configuration from a YAML or JSON file."""
    path = Path(path)
    try:
        data = yaml.safe_load(path.read_text())
    except FileNotFoundError:
        raise ConfigError(f"Storage config not found: {path}")
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Could not read storage config {path}: {e}") from e
    return parse_storage_config(data or {})
