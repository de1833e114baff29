"""Testing utilities for CardMint."""

from .factory import CatalogItemFactory, WalletFactory
from .fixtures import CONTRACT, app_fixture, memory_app
from .test_client import TestClient

__all__ = [
    "CONTRACT",
    "CatalogItemFactory",
    "WalletFactory",
    "app_fixture",
    "memory_app",
    "TestClient",
]
