"""CardMint: unique card issuance and on-chain pack fulfillment."""

from .app import MintApp
from .config import CardMintConfig
from .domain.cards import CardIdentity, CatalogIndex, CatalogItem, Role

__all__ = [
    "CardIdentity",
    "CardMintConfig",
    "CatalogIndex",
    "CatalogItem",
    "MintApp",
    "Role",
]
