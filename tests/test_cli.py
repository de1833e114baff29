import json
import sys
from random import Random

import pytest

from cardmint import cli
from cardmint.testing import CatalogItemFactory


@pytest.fixture()
def catalog_file(tmp_path, monkeypatch):
    for name in ("CARDMINT_CATALOG_PATH", "CARDMINT_TIER_WEIGHTS", "CARDMINT_STORAGE_BACKEND"):
        monkeypatch.delenv(name, raising=False)
    factory = CatalogItemFactory(rng=Random(8))
    rows = [factory.as_row(item) for item in factory.catalog(per_tier=1)]
    path = tmp_path / "players.json"
    path.write_text(json.dumps(rows), encoding="utf-8")
    return path


def test_validate_accepts_good_catalog(catalog_file, monkeypatch, capsys):
    monkeypatch.setattr(sys, "argv", ["cardmint-validate", str(catalog_file)])
    cli.run_validate()
    assert "valid" in capsys.readouterr().out


def test_validate_rejects_bad_catalog(tmp_path, monkeypatch, capsys):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps([{"player": "A", "season": 2001, "tier": 99}]), encoding="utf-8")
    monkeypatch.setattr(sys, "argv", ["cardmint-validate", str(path)])
    with pytest.raises(SystemExit) as exc:
        cli.run_validate()
    assert exc.value.code == 1
    assert "invalid tier" in capsys.readouterr().out


def test_simulate_within_tolerance(catalog_file, monkeypatch, capsys):
    monkeypatch.setattr(
        sys,
        "argv",
        ["cardmint-simulate", "--catalog", str(catalog_file), "--draws", "20000", "--seed", "1", "--tolerance", "2"],
    )
    cli.run_simulator()
    assert "within tolerance" in capsys.readouterr().out


def test_demo_listener_fulfills_purchases(catalog_file, monkeypatch, capsys):
    monkeypatch.setattr(
        sys,
        "argv",
        ["cardmint-demo-listener", "--catalog", str(catalog_file), "--purchases", "2"],
    )
    cli.run_demo_listener()
    out = capsys.readouterr().out
    assert "2 fulfilled" in out
    assert "Issued 10 of 110" in out
