"""Domain models and services."""

from .exceptions import (
    AlreadyIssuedError,
    CardMintError,
    CatalogExhaustedError,
    CatalogLoadError,
    ExternalCallError,
    InvalidPurchaseTransition,
    PurchaseNotFound,
)
from .cards import CardIdentity, CatalogIndex, CatalogItem, Role
from .events import EventBus
from .ledger import AvailabilityStats, UniquenessLedger
from .lottery import TierLottery
from .packs import STARTER_PACK_ROLES, PackAssembler, PackResult, PackShape
from .retry import RetryPolicy, call_with_retry
from .fulfillment import FulfillmentListener, PollReport

__all__ = [
    "AlreadyIssuedError",
    "CardMintError",
    "CatalogExhaustedError",
    "CatalogLoadError",
    "ExternalCallError",
    "InvalidPurchaseTransition",
    "PurchaseNotFound",
    "CardIdentity",
    "CatalogIndex",
    "CatalogItem",
    "Role",
    "EventBus",
    "AvailabilityStats",
    "UniquenessLedger",
    "TierLottery",
    "STARTER_PACK_ROLES",
    "PackAssembler",
    "PackResult",
    "PackShape",
    "RetryPolicy",
    "call_with_retry",
    "FulfillmentListener",
    "PollReport",
]
