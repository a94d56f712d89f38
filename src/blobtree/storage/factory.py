"""Factory for creating storage instances from configuration."""

import logging
import os
from pathlib import Path

from ..config import AzureConfig, FilesystemConfig, MemoryConfig, StorageConfig, load_storage_config
from ..errors import ConfigError
from .base import Storage

logger = logging.getLogger(__name__)


def validate_azure_config(config: AzureConfig) -> str:
    """
    Early validation of Azure configuration.

    Args:
        config: Azure settings to validate

    Returns:
        The connection string to use

    Raises:
        ConfigError: If no connection string is available
    """
    if config.connection_string:
        return config.connection_string
    conn_str = os.environ.get(config.connection_string_env)
    if not conn_str:
        raise ConfigError(
            f"Set {config.connection_string_env} or storage.connection_string "
            f"for Azure blob storage"
        )
    return conn_str


def make_storage(config: StorageConfig) -> Storage:
    """
    Create and initialize a storage instance for a configuration.

    Every call builds a fresh instance; there is no process-wide backend.

    Args:
        config: Validated storage configuration

    Returns:
        Initialized storage, starting from whatever the medium holds

    Raises:
        ConfigError: If configuration is incomplete
        MediumError: If the medium cannot be initialized
    """
    if isinstance(config, FilesystemConfig):
        from .fs import FilesystemStorage
        storage = FilesystemStorage(config.root, lock_timeout=config.lock_timeout, fsync=config.fsync)

    elif isinstance(config, MemoryConfig):
        from .memory import MemoryStorage
        storage = MemoryStorage()

    elif isinstance(config, AzureConfig):
        conn_str = validate_azure_config(config)
        from .azure import AzureBlobStorage
        storage = AzureBlobStorage(conn_str, config.container, config.prefix)

    else:
        raise ConfigError(f"Unsupported storage config: {type(config).__name__}")

    storage.init()
    logger.debug("Created %r", storage)
    return storage


def open_storage(path: Path) -> Storage:
    """Load a configuration file and build the storage it describes."""
    return make_storage(load_storage_config(path))
