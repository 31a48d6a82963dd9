from __future__ import annotations

import json
from pathlib import Path

from edge_ingest.budget import BudgetLedger, RunContext, read_usage


def test_ledger_denies_call_that_would_cross_ceiling() -> None:
    ledger = BudgetLedger(100)

    for _ in range(3):
        assert ledger.can_afford(30)
        assert ledger.reserve(30)

    assert ledger.consumed_units == 90
    assert not ledger.can_afford(30)
    assert not ledger.reserve(30)
    assert ledger.consumed_units == 90
    assert ledger.remaining == 10


def test_ledger_settle_replaces_reservation_with_actual() -> None:
    ledger = BudgetLedger(100)
    ledger.reserve(30)

    ledger.settle(30, 10)
    assert ledger.consumed_units == 10

    ledger.reserve(30)
    ledger.settle(30, 45)
    assert ledger.consumed_units == 55


def test_zero_budget_is_exhausted() -> None:
    ledger = BudgetLedger(0)

    assert ledger.exhausted
    assert not ledger.can_afford(0)
    assert ledger.snapshot() == {"consumed_units": 0, "max_units": 0, "remaining_units": 0}


def test_run_context_keeps_first_stop_reason() -> None:
    ctx = RunContext(ledger=BudgetLedger(10))

    ctx.stop("budget_exhausted", resume_point="nfl:2023-09-10")
    ctx.stop("quota_exhausted", resume_point="nba:2023-10-24")

    assert ctx.stopped_early
    assert ctx.stop_reason == "budget_exhausted"
    assert ctx.resume_point == "nfl:2023-09-10"
    assert ctx.summary()["resume_point"] == "nfl:2023-09-10"


def test_read_usage_summarizes_by_upstream(tmp_path: Path) -> None:
    usage_dir = tmp_path / "usage"
    usage_dir.mkdir()
    rows = [
        {"upstream": "odds_api", "units": 30, "units_remaining": "470"},
        {"upstream": "odds_api", "units": 20, "units_remaining": "450"},
        {"upstream": "x_api", "units": 1, "units_remaining": ""},
    ]
    (usage_dir / "usage-2024-01.jsonl").write_text(
        "\n".join(json.dumps(row) for row in rows) + "\n", encoding="utf-8"
    )

    report = read_usage(tmp_path, "2024-01")

    assert report["rows"] == 3
    assert report["total_units"] == 51
    assert report["upstreams"]["odds_api"] == {
        "calls": 2,
        "units": 50,
        "provider_remaining": "450",
    }
    assert report["upstreams"]["x_api"]["calls"] == 1
    assert read_usage(tmp_path, "2024-02")["rows"] == 0
