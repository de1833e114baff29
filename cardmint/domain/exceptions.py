"""Exceptions raised by CardMint domain services."""


class CardMintError(RuntimeError):
    """Base class for domain exceptions."""


class AlreadyIssuedError(CardMintError):
    """Raised when an item identity already has an owner."""

    def __init__(self, item_key: str) -> None:
        super().__init__(f"Card already issued: {item_key}")
        self.item_key = item_key


class CatalogExhaustedError(CardMintError):
    """Raised when no item remains in any fallback tier or role."""


class CatalogLoadError(CardMintError):
    """Raised when the catalog source is missing or corrupt."""


class ExternalCallError(CardMintError):
    """Raised when the external ledger cannot be read or a mint call fails."""


class PurchaseNotFound(CardMintError):
    """Raised when an administrative action targets an unknown purchase."""


class InvalidPurchaseTransition(CardMintError):
    """Raised when a purchase status change is not allowed."""

    def __init__(self, key: str, current: str, target: str) -> None:
        super().__init__(f"Purchase {key} cannot move from {current} to {target}")
        self.current = current
        self.target = target
