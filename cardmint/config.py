"""Configuration models for CardMint."""

from __future__ import annotations

import os
import json
from dataclasses import dataclass, field
from typing import Literal, Mapping


StorageBackend = Literal["memory", "sqlalchemy"]

# Relative weights, lower tiers are more common.
DEFAULT_TIER_WEIGHTS: Mapping[int, float] = {
    10: 1,
    9: 3,
    8: 7,
    7: 12,
    6: 18,
    5: 22,
    4: 20,
    3: 10,
    2: 5,
    1: 2,
}

_TRUTHY = {"1", "true", "yes"}


@dataclass(slots=True)
class StorageConfig:
    """Configure where the ledger and reconciliation records are persisted."""

    backend: StorageBackend = "memory"
    dsn: str | None = None
    echo_sql: bool = False

    def resolve_dsn(self) -> str | None:
        if self.dsn:
            return self.dsn
        if self.backend == "sqlalchemy":
            return "sqlite+aiosqlite:///./cardmint.db"
        return None


@dataclass(slots=True)
class LotteryConfig:
    """Rules controlling how cards are drawn into packs."""

    tier_weights: Mapping[int, float] = field(default_factory=lambda: dict(DEFAULT_TIER_WEIGHTS))
    max_attempts: int = 100
    pack_size: int = 5
    starter_pack_count: int = 3
    starter_tier_band: tuple[int, int] = (4, 7)
    issue_retries: int = 10


@dataclass(slots=True)
class ListenerConfig:
    """On-chain fulfillment listener settings."""

    network_id: int = 84532
    contract_address: str = ""
    chunk_size: int = 2000
    lookback: int = 1000
    poll_interval_seconds: float = 15.0
    min_cards: int = 5
    mint_timeout_seconds: float = 120.0
    mint_attempts: int = 1
    read_attempts: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0


@dataclass(slots=True)
class AdminConfig:
    """Feature switches for admin tooling."""

    enable_audit_logs: bool = True
    allow_ledger_reset: bool = False


@dataclass(slots=True)
class CardMintConfig:
    """Top-level configuration container."""

    catalog_path: str | None = None
    storage: StorageConfig = field(default_factory=StorageConfig)
    lottery: LotteryConfig = field(default_factory=LotteryConfig)
    listener: ListenerConfig = field(default_factory=ListenerConfig)
    admin: AdminConfig = field(default_factory=AdminConfig)
    rng_seed: int | None = None

    @classmethod
    def from_env(cls) -> "CardMintConfig":
        """Create config from environment variables prefixed with CARDMINT_."""
        prefix = "CARDMINT_"
        storage_backend = os.getenv(f"{prefix}STORAGE_BACKEND", "memory")
        dsn = os.getenv(f"{prefix}STORAGE_DSN")
        echo_sql = os.getenv(f"{prefix}STORAGE_ECHO_SQL", "false").lower() in _TRUTHY

        band = _parse_band(os.getenv(f"{prefix}STARTER_TIER_BAND", "4,7"))
        lottery = LotteryConfig(
            tier_weights=_parse_tier_weights(os.getenv(f"{prefix}TIER_WEIGHTS"))
            or dict(DEFAULT_TIER_WEIGHTS),
            max_attempts=int(os.getenv(f"{prefix}MAX_ATTEMPTS", "100")),
            pack_size=int(os.getenv(f"{prefix}PACK_SIZE", "5")),
            starter_pack_count=int(os.getenv(f"{prefix}STARTER_PACKS", "3")),
            starter_tier_band=band,
            issue_retries=int(os.getenv(f"{prefix}ISSUE_RETRIES", "10")),
        )

        listener = ListenerConfig(
            network_id=int(os.getenv(f"{prefix}NETWORK_ID", "84532")),
            contract_address=os.getenv(f"{prefix}CONTRACT_ADDRESS", "").lower(),
            chunk_size=int(os.getenv(f"{prefix}CHUNK_SIZE", "2000")),
            lookback=int(os.getenv(f"{prefix}LOOKBACK", "1000")),
            poll_interval_seconds=float(os.getenv(f"{prefix}POLL_INTERVAL", "15")),
            min_cards=int(os.getenv(f"{prefix}MIN_CARDS", "5")),
            mint_timeout_seconds=float(os.getenv(f"{prefix}MINT_TIMEOUT", "120")),
            mint_attempts=int(os.getenv(f"{prefix}MINT_ATTEMPTS", "1")),
            read_attempts=int(os.getenv(f"{prefix}READ_ATTEMPTS", "3")),
            retry_base_delay=float(os.getenv(f"{prefix}RETRY_BASE_DELAY", "1.0")),
            retry_max_delay=float(os.getenv(f"{prefix}RETRY_MAX_DELAY", "30.0")),
        )

        admin = AdminConfig(
            enable_audit_logs=os.getenv(f"{prefix}ADMIN_ENABLE_AUDIT_LOGS", "true").lower()
            in _TRUTHY,
            allow_ledger_reset=os.getenv(f"{prefix}ADMIN_ALLOW_LEDGER_RESET", "false").lower()
            in _TRUTHY,
        )

        return cls(
            catalog_path=os.getenv(f"{prefix}CATALOG_PATH"),
            storage=StorageConfig(backend=storage_backend, dsn=dsn, echo_sql=echo_sql),
            lottery=lottery,
            listener=listener,
            admin=admin,
            rng_seed=(
                int(os.getenv(f"{prefix}RNG_SEED")) if os.getenv(f"{prefix}RNG_SEED") else None
            ),
        )


def _parse_tier_weights(raw: str | None) -> Mapping[int, float]:
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError("Invalid JSON for CARDMINT_TIER_WEIGHTS") from exc
    if not isinstance(data, dict):
        raise ValueError("CARDMINT_TIER_WEIGHTS must be a JSON object")
    return {int(k): float(v) for k, v in data.items()}


def _parse_band(raw: str) -> tuple[int, int]:
    parts = [part.strip() for part in raw.split(",") if part.strip()]
    if len(parts) != 2:
        raise ValueError("CARDMINT_STARTER_TIER_BAND must look like '4,7'")
    low, high = int(parts[0]), int(parts[1])
    return (min(low, high), max(low, high))
