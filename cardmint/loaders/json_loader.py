"""Load the player catalog from its JSON export."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable

from ..domain.cards import CardIdentity, CatalogIndex, CatalogItem, Role
from ..domain.exceptions import CatalogLoadError

logger = logging.getLogger(__name__)

# Fields that describe the card itself; everything else is the stat block.
_RESERVED_FIELDS = {"player", "name", "season", "tier", "pos_group", "pos", "position", "team"}
MIN_TIER = 1
MAX_TIER = 11


def load_catalog(path: str | Path) -> CatalogIndex:
    """Read and validate the catalog file, failing fast on any problem."""
    source = Path(path)
    try:
        data = json.loads(source.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise CatalogLoadError(f"Catalog file {source} not found") from exc
    except (OSError, json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise CatalogLoadError(f"Catalog file {source} is unreadable: {exc}") from exc

    catalog = parse_catalog(data)
    stats = catalog.stats()
    logger.info("Loaded %s players from %s.", stats["total"], source)
    for tier in sorted(stats["by_tier"], reverse=True):
        logger.debug("  Tier %s: %s players", tier, stats["by_tier"][tier])
    return catalog


def parse_catalog(data: Any) -> CatalogIndex:
    """Build a catalog from already decoded JSON."""
    errors = validate_catalog_data(data)
    if errors:
        raise CatalogLoadError(_format_errors("Catalog validation failed", errors))
    return CatalogIndex(parse_item(row) for row in _rows(data))


def parse_item(row: dict[str, Any]) -> CatalogItem:
    name = str(row.get("player") or row.get("name")).strip()
    position = row.get("pos_group") or row.get("pos") or row.get("position")
    return CatalogItem(
        identity=CardIdentity(name=name, season=int(row.get("season") or 0)),
        tier=int(row.get("tier") or MIN_TIER),
        role=Role.parse(position),
        team=str(row.get("team") or ""),
        stats={key: value for key, value in row.items() if key not in _RESERVED_FIELDS},
    )


def validate_catalog_file(path: str | Path) -> list[str]:
    """Validate catalog JSON file and return a list of errors."""
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError, UnicodeDecodeError) as exc:
        return [f"Catalog file {path} is unreadable: {exc}"]
    return validate_catalog_data(data)


def validate_catalog_data(data: Any) -> list[str]:
    rows = _rows(data)
    if rows is None:
        return ["Catalog must be a JSON array of players or an object with a 'players' array."]
    if not rows:
        return ["Catalog must contain at least one player."]

    errors: list[str] = []
    seen: set[str] = set()
    for idx, row in enumerate(rows, start=1):
        if not isinstance(row, dict):
            errors.append(f"Player #{idx} must be an object.")
            continue
        name = row.get("player") or row.get("name")
        if not isinstance(name, str) or not name.strip():
            errors.append(f"Player #{idx} must define non-empty 'player'.")
            continue

        season = row.get("season")
        if season is not None and not _is_int(season):
            errors.append(f"Player '{name}' has invalid season '{season}'.")
            continue

        tier = row.get("tier", MIN_TIER)
        if tier is not None and (not _is_int(tier) or not MIN_TIER <= int(tier) <= MAX_TIER):
            errors.append(
                f"Player '{name}' has invalid tier '{tier}' (expected {MIN_TIER}-{MAX_TIER})."
            )

        key = CardIdentity(name=name, season=int(season or 0)).key
        if key in seen:
            errors.append(f"Player '{name}' season {season} defined multiple times.")
        seen.add(key)
    return errors


def _rows(data: Any) -> list[Any] | None:
    if isinstance(data, dict):
        data = data.get("players")
    if isinstance(data, list):
        return data
    return None


def _is_int(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, str) and value.strip().lstrip("-").isdigit()


def _format_errors(prefix: str, errors: Iterable[str]) -> str:
    formatted = "\n".join(f"- {err}" for err in errors)
    return f"{prefix}:\n{formatted}"
