"""Automated checks to highlight catalog and balancing issues."""

from __future__ import annotations

from dataclasses import dataclass

from ..app import MintApp
from ..domain.packs import STARTER_PACK_ROLES


@dataclass(slots=True)
class ChecklistIssue:
    severity: str
    message: str


async def run_checklist(app: MintApp) -> list[ChecklistIssue]:
    issues: list[ChecklistIssue] = []
    catalog = app.catalog
    if not len(catalog):
        issues.append(ChecklistIssue("error", "Catalog is empty."))
        return issues

    weights = app.lottery.weights
    for tier in weights:
        if not catalog.items_in_tier(tier):
            issues.append(
                ChecklistIssue("warning", f"Tier {tier} has a weight but no cards; draws fall back.")
            )
    for tier in catalog.tiers:
        if tier not in weights:
            issues.append(ChecklistIssue("warning", f"Tier {tier} has cards but is never rolled."))

    starter_roles = {
        role for roles in STARTER_PACK_ROLES.values() for role in roles if role is not None
    }
    for role in sorted(starter_roles, key=lambda r: r.value):
        if not catalog.items_in_role(role):
            issues.append(
                ChecklistIssue("error", f"No {role.value} cards; starter packs will be backfilled.")
            )

    unknown_roles = sum(1 for item in catalog if item.role is None)
    if unknown_roles:
        issues.append(
            ChecklistIssue("info", f"{unknown_roles} cards have no recognised position.")
        )

    stats = await app.availability_stats()
    if stats.total and stats.available < app.config.lottery.pack_size:
        issues.append(
            ChecklistIssue(
                "error",
                f"Only {stats.available} cards left; a full pack of "
                f"{app.config.lottery.pack_size} cannot be opened.",
            )
        )
    elif stats.percent_issued >= 90.0:
        issues.append(
            ChecklistIssue("warning", f"{stats.percent_issued:.1f}% of the catalog is issued.")
        )
    return issues


__all__ = ["ChecklistIssue", "run_checklist"]
