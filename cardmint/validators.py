"""Validation utilities for CardMint applications."""

from __future__ import annotations

from .app import MintApp
from .config import CardMintConfig


def validate_config(config: CardMintConfig) -> list[str]:
    """Return list of problems found in a configuration."""
    errors: list[str] = []

    if config.storage.backend not in ("memory", "sqlalchemy"):
        errors.append(f"Unsupported storage backend '{config.storage.backend}'.")

    lottery = config.lottery
    if not any(weight > 0 for weight in lottery.tier_weights.values()):
        errors.append("Tier weights must contain at least one positive weight.")
    for tier, weight in lottery.tier_weights.items():
        if weight < 0:
            errors.append(f"Tier {tier} has negative weight '{weight}'.")
    if lottery.pack_size <= 0:
        errors.append("Lottery 'pack_size' must be positive.")
    if lottery.max_attempts <= 0:
        errors.append("Lottery 'max_attempts' must be positive.")
    if lottery.issue_retries <= 0:
        errors.append("Lottery 'issue_retries' must be positive.")
    if lottery.starter_pack_count < 0:
        errors.append("Lottery 'starter_pack_count' cannot be negative.")
    low, high = lottery.starter_tier_band
    if low > high:
        errors.append(f"Starter tier band {low}-{high} is inverted.")

    listener = config.listener
    if listener.chunk_size <= 0:
        errors.append("Listener 'chunk_size' must be positive.")
    if listener.lookback < 0:
        errors.append("Listener 'lookback' cannot be negative.")
    if listener.poll_interval_seconds <= 0:
        errors.append("Listener 'poll_interval_seconds' must be positive.")
    if listener.mint_timeout_seconds <= 0:
        errors.append("Listener 'mint_timeout_seconds' must be positive.")
    if listener.mint_attempts <= 0 or listener.read_attempts <= 0:
        errors.append("Listener retry attempts must be positive.")
    if listener.min_cards <= 0:
        errors.append("Listener 'min_cards' must be positive.")
    elif listener.min_cards > lottery.pack_size:
        errors.append(
            f"Listener 'min_cards' ({listener.min_cards}) exceeds pack size ({lottery.pack_size})."
        )
    if listener.contract_address and not listener.contract_address.startswith("0x"):
        errors.append(f"Contract address '{listener.contract_address}' must start with 0x.")

    return errors


def validate_app(app: MintApp) -> list[str]:
    """Return list of validation errors discovered in a wired app."""
    errors = validate_config(app.config)
    if not len(app.catalog):
        errors.append("Catalog does not contain any cards.")
    if app.config.lottery.pack_size > len(app.catalog):
        errors.append(
            f"Pack size {app.config.lottery.pack_size} exceeds catalog size {len(app.catalog)}."
        )
    return errors


__all__ = ["validate_app", "validate_config"]
