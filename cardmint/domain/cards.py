"""Card catalog models and the read-only catalog index."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Iterator, Mapping, Sequence


class Role(str, Enum):
    QB = "QB"
    RB = "RB"
    WR = "WR"
    TE = "TE"
    OL = "OL"
    DL = "DL"
    LB = "LB"
    DB = "DB"
    K = "K"
    P = "P"

    @classmethod
    def parse(cls, value: str | None) -> "Role | None":
        if not value:
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


@dataclass(frozen=True, slots=True)
class CardIdentity:
    """Canonical (name, season) identity of a catalog item."""

    name: str
    season: int

    @property
    def key(self) -> str:
        return f"{self.name.strip().lower()}_{self.season}"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CardIdentity):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)


@dataclass(frozen=True, slots=True)
class CatalogItem:
    """Immutable definition of a collectible player card."""

    identity: CardIdentity
    tier: int
    role: Role | None
    team: str = ""
    stats: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def key(self) -> str:
        return self.identity.key

    @property
    def name(self) -> str:
        return self.identity.name

    @property
    def season(self) -> int:
        return self.identity.season


class CatalogIndex:
    """Catalog built once at startup, indexed by tier and by role.

    The index is never mutated after construction, so any number of
    coroutines or threads may read it without locking.
    """

    def __init__(self, items: Iterable[CatalogItem]) -> None:
        by_key: dict[str, CatalogItem] = {}
        by_tier: dict[int, list[CatalogItem]] = {}
        by_role: dict[Role, list[CatalogItem]] = {}
        by_role_tier: dict[tuple[Role, int], list[CatalogItem]] = {}

        for item in items:
            if item.key in by_key:
                raise ValueError(f"Catalog item {item.key} defined multiple times")
            by_key[item.key] = item
            by_tier.setdefault(item.tier, []).append(item)
            if item.role is not None:
                by_role.setdefault(item.role, []).append(item)
                by_role_tier.setdefault((item.role, item.tier), []).append(item)

        self._items: tuple[CatalogItem, ...] = tuple(by_key.values())
        self._by_key = by_key
        self._by_tier = {tier: tuple(group) for tier, group in by_tier.items()}
        self._by_role = {role: tuple(group) for role, group in by_role.items()}
        self._by_role_tier = {key: tuple(group) for key, group in by_role_tier.items()}

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[CatalogItem]:
        return iter(self._items)

    def __contains__(self, key: object) -> bool:
        if isinstance(key, CatalogItem):
            key = key.key
        elif isinstance(key, CardIdentity):
            key = key.key
        return key in self._by_key

    @property
    def tiers(self) -> tuple[int, ...]:
        return tuple(sorted(self._by_tier))

    def items(self) -> Sequence[CatalogItem]:
        return self._items

    def items_in_tier(self, tier: int) -> Sequence[CatalogItem]:
        return self._by_tier.get(tier, ())

    def items_in_role(self, role: Role, tier: int | None = None) -> Sequence[CatalogItem]:
        if tier is None:
            return self._by_role.get(role, ())
        return self._by_role_tier.get((role, tier), ())

    def get(self, key: str | CardIdentity) -> CatalogItem:
        lookup = key.key if isinstance(key, CardIdentity) else key.strip().lower()
        try:
            return self._by_key[lookup]
        except KeyError as exc:
            raise KeyError(f"Catalog item {lookup} not found") from exc

    def search(self, query: str, limit: int = 20) -> list[CatalogItem]:
        needle = query.strip().lower()
        return [item for item in self._items if needle in item.name.lower()][:limit]

    def stats(self) -> dict[str, Any]:
        return {
            "total": len(self._items),
            "by_tier": {tier: len(self._by_tier[tier]) for tier in self.tiers},
            "by_role": {role.value: len(group) for role, group in self._by_role.items()},
        }
