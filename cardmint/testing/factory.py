"""Factories for tests and prototyping."""

from __future__ import annotations

from dataclasses import dataclass, field
from random import Random
from typing import Iterable

from faker import Faker

from ..domain.cards import CardIdentity, CatalogIndex, CatalogItem, Role
from ..domain.packs import STARTER_PACK_ROLES


@dataclass(slots=True)
class CatalogItemFactory:
    faker: Faker = field(default_factory=Faker)
    rng: Random = field(default_factory=Random)

    def build(
        self,
        tier: int | None = None,
        role: Role | None = None,
        *,
        name: str | None = None,
        season: int | None = None,
    ) -> CatalogItem:
        return CatalogItem(
            identity=CardIdentity(
                name=name or self.faker.unique.name(),
                season=season or self.rng.randint(1995, 2024),
            ),
            tier=tier if tier is not None else self.rng.randint(1, 10),
            role=role or self.rng.choice(list(Role)),
            team=self.faker.lexify(text="???").upper(),
            stats={"games": self.rng.randint(1, 17)},
        )

    def batch(self, count: int, tier: int | None = None, role: Role | None = None) -> Iterable[CatalogItem]:
        for _ in range(count):
            yield self.build(tier=tier, role=role)

    def catalog(self, per_tier: int = 3, tiers: Iterable[int] = range(1, 11)) -> CatalogIndex:
        """Catalog with every tier populated and every starter role present in each tier."""
        roles = [role for roles in STARTER_PACK_ROLES.values() for role in roles if role]
        items: list[CatalogItem] = []
        for tier in tiers:
            for index in range(max(per_tier, len(roles))):
                items.append(self.build(tier=tier, role=roles[index % len(roles)]))
        return CatalogIndex(items)

    def as_row(self, item: CatalogItem) -> dict:
        """Render an item the way the catalog JSON export stores it."""
        return {
            "player": item.name,
            "season": item.season,
            "tier": item.tier,
            "pos_group": item.role.value if item.role else None,
            "team": item.team,
            **dict(item.stats),
        }


@dataclass(slots=True)
class WalletFactory:
    faker: Faker = field(default_factory=Faker)

    def address(self) -> str:
        return "0x" + self.faker.unique.hexify(text="^" * 40)
