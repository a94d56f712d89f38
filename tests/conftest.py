"""Shared test fixtures and utilities."""

import pytest

from blobtree.storage.azure import AzureBlobStorage
from blobtree.storage.fs import FilesystemStorage
from blobtree.storage.memory import MemoryStorage

from fake_azure import FakeBlobServiceClient


@pytest.fixture
def fs_storage(tmp_path):
    """Initialized filesystem storage in a temp directory."""
    storage = FilesystemStorage(tmp_path / "store")
    storage.init()
    return storage


@pytest.fixture
def memory_storage():
    """Initialized in-memory storage."""
    storage = MemoryStorage()
    storage.init()
    return storage


@pytest.fixture
def fake_service():
    """Fake BlobServiceClient holding blobs in a dict."""
    return FakeBlobServiceClient()


@pytest.fixture
def azure_storage(fake_service):
    """Azure storage wired to the fake service client."""
    storage = AzureBlobStorage(None, "blobs", prefix="registry", client=fake_service)
    storage.init()
    return storage
