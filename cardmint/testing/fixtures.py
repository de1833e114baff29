"""Pytest fixtures for CardMint."""

from __future__ import annotations

from random import Random

import pytest

from ..app import MintApp
from ..chain.memory import InMemoryChain
from ..config import CardMintConfig, ListenerConfig
from ..domain.cards import CatalogIndex
from .factory import CatalogItemFactory

CONTRACT = "0x" + "ab" * 20


@pytest.fixture()
def memory_app() -> MintApp:
    return app_fixture()


def app_fixture(
    catalog: CatalogIndex | None = None,
    *,
    chain: InMemoryChain | None = None,
    seed: int = 7,
    **listener_overrides,
) -> MintApp:
    """Helper for ad-hoc tests where pytest is not available."""
    if catalog is None:
        catalog = CatalogItemFactory(rng=Random(seed)).catalog()
    listener = ListenerConfig(
        contract_address=CONTRACT,
        retry_base_delay=0.0,
        retry_max_delay=0.0,
        **listener_overrides,
    )
    config = CardMintConfig(listener=listener, rng_seed=seed)
    return MintApp(config, catalog=catalog, gateway=chain)
