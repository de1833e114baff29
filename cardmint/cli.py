"""Command line helpers for CardMint."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .app import MintApp
from .chain.memory import InMemoryChain
from .config import CardMintConfig
from .diagnostics.checklist import run_checklist
from .diagnostics.distribution import DistributionSimulator
from .domain.exceptions import CardMintError
from .loaders import validate_catalog_file
from .validators import validate_app

console = Console()


def run_simulator() -> None:
    parser = argparse.ArgumentParser(description="CardMint tier distribution simulator")
    parser.add_argument("--catalog", help="Path to the catalog JSON file")
    parser.add_argument("--draws", type=int, default=100_000, help="Number of tier rolls")
    parser.add_argument("--seed", type=int, help="Seed for reproducible runs")
    parser.add_argument(
        "--tolerance",
        type=float,
        default=0.3,
        help="Allowed deviation in percentage points",
    )
    args = parser.parse_args()

    config = _config(args.catalog)
    if args.seed is not None:
        config.rng_seed = args.seed
    app = _build_app(config)

    result = DistributionSimulator(app.lottery).simulate(draws=args.draws)
    table = Table(title=f"Tier distribution over {result.draws:,} draws")
    table.add_column("Tier", justify="right")
    table.add_column("Expected %", justify="right")
    table.add_column("Observed %", justify="right")
    table.add_column("Delta", justify="right")
    for row in result.deviations:
        style = "red" if abs(row.delta) > args.tolerance else ""
        table.add_row(
            str(row.tier),
            f"{row.expected:.2f}",
            f"{row.observed:.2f}",
            f"{row.delta:+.2f}",
            style=style,
        )
    console.print(table)
    if not result.within(args.tolerance):
        console.print(f"[red]Max deviation {result.max_deviation:.2f}pp exceeds {args.tolerance}pp[/red]")
        sys.exit(1)
    console.print("[green]Distribution within tolerance ✅[/green]")


def run_validate() -> None:
    parser = argparse.ArgumentParser(description="CardMint validator")
    parser.add_argument("catalog", nargs="?", help="Path to catalog JSON file")
    args = parser.parse_args()

    config = CardMintConfig.from_env()
    path = args.catalog or config.catalog_path
    if not path:
        parser.error("catalog path is required (argument or CARDMINT_CATALOG_PATH)")

    errors = validate_catalog_file(Path(path))
    if errors:
        console.print("[red]Catalog errors:[/red]")
        for err in errors:
            console.print(f"- {escape(err)}")
        sys.exit(1)

    config.catalog_path = path
    app = _build_app(config)
    issues = validate_app(app)
    if issues:
        console.print("[red]Configuration errors:[/red]")
        for issue in issues:
            console.print(f"- {escape(issue)}")
        sys.exit(1)
    console.print("Catalog and configuration are valid ✅")


def run_stats() -> None:
    parser = argparse.ArgumentParser(description="CardMint catalog and availability stats")
    parser.add_argument("--catalog", help="Path to the catalog JSON file")
    args = parser.parse_args()

    app = _build_app(_config(args.catalog))
    asyncio.run(_stats(app))


async def _stats(app: MintApp) -> None:
    try:
        await _print_stats(app)
    finally:
        await app.close()


def run_demo_listener() -> None:
    parser = argparse.ArgumentParser(description="Run fulfillment against an in-memory chain")
    parser.add_argument("--catalog", help="Path to the catalog JSON file")
    parser.add_argument("--purchases", type=int, default=3, help="Purchases to simulate")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)
    config = _config(args.catalog)
    if not config.listener.contract_address:
        config.listener.contract_address = "0x" + "0" * 40
    chain = InMemoryChain(start_position=100)
    app = _build_app(config, gateway=chain)
    asyncio.run(_demo(app, chain, args.purchases))


async def _demo(app: MintApp, chain: InMemoryChain, purchases: int) -> None:
    await app.init_backend()
    try:
        listener = app.listener
        assert listener is not None
        await listener.poll_once()
        for index in range(purchases):
            chain.record_purchase(f"0x{index + 1:040x}")
        report = await listener.poll_once()
        console.print(
            f"Cursor {report.cursor_before} -> {report.cursor_after}: "
            f"{report.fulfilled} fulfilled, {report.failed} failed, {report.skipped} skipped."
        )
        for event in chain.events:
            record = await listener.purchase_status(event.external_pack_id)
            if record is None:
                continue
            table = Table(title=f"Pack {event.external_pack_id} ({record.status.value})")
            table.add_column("Token")
            table.add_column("Player")
            table.add_column("Season", justify="right")
            table.add_column("Tier", justify="right")
            table.add_column("Pos")
            for card in record.cards:
                table.add_row(card.token_ref, card.name, str(card.season), str(card.tier), card.role or "-")
            console.print(table)
        await _print_stats(app)
    finally:
        await app.close()


async def _print_stats(app: MintApp) -> None:
    stats = app.catalog.stats()
    table = Table(title=f"Catalog ({stats['total']} players)")
    table.add_column("Tier", justify="right")
    table.add_column("Players", justify="right")
    table.add_column("Roll %", justify="right")
    rates = app.lottery.expected_rates()
    for tier in sorted(stats["by_tier"], reverse=True):
        rate = rates.get(tier)
        table.add_row(str(tier), str(stats["by_tier"][tier]), f"{rate:.2f}" if rate else "-")
    console.print(table)

    await app.init_backend()
    availability = await app.availability_stats()
    console.print(
        f"Issued {availability.issued} of {availability.total} "
        f"({availability.percent_issued:.2f}%), {availability.available} available."
    )
    for issue in await run_checklist(app):
        colour = {"error": "red", "warning": "yellow"}.get(issue.severity, "blue")
        console.print(f"[{colour}]{issue.severity.upper()}[/{colour}] {escape(issue.message)}")


def _config(catalog: str | None) -> CardMintConfig:
    config = CardMintConfig.from_env()
    if catalog:
        config.catalog_path = catalog
    if not config.catalog_path:
        console.print("[red]No catalog given (use --catalog or CARDMINT_CATALOG_PATH).[/red]")
        sys.exit(2)
    return config


def _build_app(config: CardMintConfig, **kwargs) -> MintApp:
    try:
        return MintApp(config, **kwargs)
    except (CardMintError, ValueError) as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        sys.exit(1)
