"""Test configuration loading and the storage factory."""

import json
from unittest.mock import patch

import pytest
import yaml

from blobtree.config import (
    AzureConfig,
    FilesystemConfig,
    MemoryConfig,
    load_storage_config,
    parse_storage_config,
)
from blobtree.constants import DEFAULT_LOCK_TIMEOUT
from blobtree.errors import ConfigError, EmptyOrAbsentError
from blobtree.storage import FilesystemStorage, MemoryStorage, make_storage, open_storage
from blobtree.storage.factory import validate_azure_config


class TestParseConfig:
    """Test validation of configuration mappings."""

    def test_filesystem_defaults(self, tmp_path):
        config = parse_storage_config({"provider": "fs", "root": str(tmp_path)})
        assert isinstance(config, FilesystemConfig)
        assert config.root == tmp_path
        assert config.lock_timeout == DEFAULT_LOCK_TIMEOUT
        assert config.fsync is True

    def test_filesystem_expands_home(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HOME", str(tmp_path))
        config = parse_storage_config({"provider": "fs", "root": "~/blobs"})
        assert config.root == tmp_path / "blobs"

    def test_memory(self):
        assert isinstance(parse_storage_config({"provider": "memory"}), MemoryConfig)

    def test_azure(self):
        config = parse_storage_config({"provider": "azure", "container": "c", "prefix": "/p/"})
        assert isinstance(config, AzureConfig)
        assert config.prefix == "p"
        assert config.connection_string is None

    def test_missing_provider(self):
        with pytest.raises(ConfigError, match="requires 'provider'"):
            parse_storage_config({"root": "/tmp/x"})

    def test_unknown_provider(self):
        with pytest.raises(ConfigError, match="Invalid storage config"):
            parse_storage_config({"provider": "s3", "bucket": "b"})

    def test_unknown_field_rejected(self, tmp_path):
        with pytest.raises(ConfigError):
            parse_storage_config({"provider": "fs", "root": str(tmp_path), "rot": "typo"})

    def test_fs_requires_root(self):
        with pytest.raises(ConfigError):
            parse_storage_config({"provider": "fs"})

    def test_non_positive_lock_timeout(self, tmp_path):
        with pytest.raises(ConfigError):
            parse_storage_config({"provider": "fs", "root": str(tmp_path), "lock_timeout": 0})

    def test_azure_requires_container(self):
        with pytest.raises(ConfigError):
            parse_storage_config({"provider": "azure", "container": ""})

    def test_not_a_mapping(self):
        with pytest.raises(ConfigError, match="must be a mapping"):
            parse_storage_config(["fs"])


class TestLoadConfig:
    """Test reading configuration files."""

    def test_load_yaml(self, tmp_path):
        cfg = tmp_path / "storage.yaml"
        cfg.write_text(yaml.safe_dump({"provider": "fs", "root": str(tmp_path / "data"), "fsync": False}))
        config = load_storage_config(cfg)
        assert config.root == tmp_path / "data"
        assert config.fsync is False

    def test_load_json(self, tmp_path):
        cfg = tmp_path / "storage.json"
        cfg.write_text(json.dumps({"provider": "memory"}))
        assert isinstance(load_storage_config(cfg), MemoryConfig)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_storage_config(tmp_path / "absent.yaml")

    def test_malformed_yaml(self, tmp_path):
        cfg = tmp_path / "bad.yaml"
        cfg.write_text("provider: [fs\n")
        with pytest.raises(ConfigError, match="Could not read"):
            load_storage_config(cfg)

    def test_empty_file(self, tmp_path):
        cfg = tmp_path / "empty.yaml"
        cfg.write_text("")
        with pytest.raises(ConfigError, match="requires 'provider'"):
            load_storage_config(cfg)


class TestMakeStorage:
    """Test the explicit storage factory."""

    def test_filesystem_is_initialized(self, tmp_path):
        root = tmp_path / "store"
        storage = make_storage(FilesystemConfig(root=root, lock_timeout=5))
        assert isinstance(storage, FilesystemStorage)
        assert storage.lock_timeout == 5
        assert storage.staging_dir.is_dir()
        with pytest.raises(EmptyOrAbsentError):
            storage.list("/")

    def test_memory(self):
        assert isinstance(make_storage(MemoryConfig()), MemoryStorage)

    def test_no_shared_instances(self):
        """Test that each call builds an independent backend."""
        first = make_storage(MemoryConfig())
        second = make_storage(MemoryConfig())
        first.put("/a", b"1")
        assert not second.exists("/a")

    def test_azure_uses_env_connection_string(self, monkeypatch):
        monkeypatch.setenv("AZURE_STORAGE_CONNECTION_STRING", "UseDevelopmentStorage=true")
        with patch("blobtree.storage.azure.AzureBlobStorage") as MockStorage:
            storage = make_storage(AzureConfig(container="blobs", prefix="p"))
        MockStorage.assert_called_once_with("UseDevelopmentStorage=true", "blobs", "p")
        storage.init.assert_called_once_with()

    def test_azure_prefers_config_connection_string(self, monkeypatch):
        monkeypatch.setenv("AZURE_STORAGE_CONNECTION_STRING", "from-env")
        config = AzureConfig(container="blobs", connection_string="from-config")
        assert validate_azure_config(config) == "from-config"

    def test_azure_without_connection_string(self, monkeypatch):
        monkeypatch.delenv("AZURE_STORAGE_CONNECTION_STRING", raising=False)
        with pytest.raises(ConfigError, match="AZURE_STORAGE_CONNECTION_STRING"):
            make_storage(AzureConfig(container="blobs"))

    def test_open_storage_from_file(self, tmp_path):
        cfg = tmp_path / "storage.yaml"
        cfg.write_text(f"provider: fs\nroot: {tmp_path / 'tree'}\n")
        storage = open_storage(cfg)
        storage.put("/hello", b"world")
        assert (tmp_path / "tree" / "hello").read_bytes() == b"world"
