"""External ledger (blockchain) contract and in-process implementation."""

from .base import ChainGateway, ItemMinted, MintReceipt, PurchaseRecorded
from .memory import InMemoryChain, MintCall

__all__ = [
    "ChainGateway",
    "InMemoryChain",
    "ItemMinted",
    "MintCall",
    "MintReceipt",
    "PurchaseRecorded",
]
