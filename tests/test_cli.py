from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import polars as pl
import pytest

from edge_ingest.budget import current_month_utc
from edge_ingest.cli import main
from edge_ingest.metering import FetchOutcome, OutcomeKind
from edge_ingest.store import IdempotentStore


def _snapshot(snapshot: str) -> dict[str, Any]:
    day = snapshot[:10]
    return {
        "timestamp": snapshot,
        "data": [
            {
                "id": f"evt-{day}",
                "sport_key": "americanfootball_nfl",
                "commence_time": f"{day}T17:00:00Z",
                "home_team": "Kansas City Chiefs",
                "away_team": "Detroit Lions",
                "bookmakers": [
                    {
                        "key": "draftkings",
                        "markets": [
                            {
                                "key": "totals",
                                "outcomes": [
                                    {"name": "Over", "price": -110, "point": 52.5},
                                    {"name": "Under", "price": -110, "point": 52.5},
                                ],
                            }
                        ],
                    }
                ],
            }
        ],
    }


def _install_fake_odds(
    monkeypatch: pytest.MonkeyPatch, kind: OutcomeKind = OutcomeKind.SUCCESS
) -> list[str]:
    snapshots: list[str] = []

    class FakeOddsClient:
        def __init__(self, settings, *, usage_sink=None) -> None:
            self.usage_sink = usage_sink

        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc_val, exc_tb) -> None:
            return None

        def historical_odds(self, *, sport_key, snapshot, ledger=None, reserved_units=0):
            snapshots.append(snapshot)
            if self.usage_sink is not None:
                self.usage_sink(
                    upstream="odds_api",
                    endpoint=f"/historical/sports/{sport_key}/odds",
                    status_code=200,
                    units=reserved_units,
                    units_remaining="470",
                )
            if kind != OutcomeKind.SUCCESS:
                return FetchOutcome(kind=kind, status_code=401, error="out of credits")
            return FetchOutcome(
                kind=kind,
                payload=_snapshot(snapshot),
                status_code=200,
                units_consumed=reserved_units,
                units_reported=True,
            )

    monkeypatch.setattr("edge_ingest.cli.OddsHistoryClient", FakeOddsClient)
    return snapshots


def _import_args(data_dir: Path, *extra: str) -> list[str]:
    return [
        "--data-dir",
        str(data_dir),
        "odds",
        "import",
        "--sports",
        "nfl",
        "--from",
        "2023-09-07",
        "--to",
        "2023-09-13",
        "--delay",
        "0",
        *extra,
    ]


def test_cli_no_command_prints_help(capsys: pytest.CaptureFixture[str]) -> None:
    code = main([])

    assert code == 0
    assert "edge-ingest" in capsys.readouterr().out


def test_odds_import_then_status(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    data_dir = tmp_path / "data"
    snapshots = _install_fake_odds(monkeypatch)

    assert main(_import_args(data_dir, "--create-tables")) == 0
    assert len(snapshots) == 3
    out = capsys.readouterr().out
    assert "records_imported=3" in out

    assert main(["--data-dir", str(data_dir), "odds", "status", "--json"]) == 0
    rows = json.loads(capsys.readouterr().out)
    assert [row["window_key"] for row in rows] == ["2023-09-07", "2023-09-10", "2023-09-13"]
    assert {row["status"] for row in rows} == {"success"}

    assert main(_import_args(data_dir)) == 0
    assert len(snapshots) == 3
    assert "skipped=3" in capsys.readouterr().out


def test_odds_import_requires_bootstrapped_store(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    snapshots = _install_fake_odds(monkeypatch)

    code = main(_import_args(tmp_path / "empty"))

    assert code == 2
    assert snapshots == []
    assert "--create-tables" in capsys.readouterr().err


def test_odds_import_budget_stop_prints_resume_hint(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    _install_fake_odds(monkeypatch)

    code = main(_import_args(tmp_path / "data", "--create-tables", "--max-credits", "60"))

    assert code == 2
    out = capsys.readouterr().out
    assert "stopped=budget_exhausted resume_point=nfl:2023-09-13" in out
    assert "resume with: --sports nfl --from 2023-09-13 --to 2023-09-13" in out


def test_odds_import_quota_exhaustion_exits_fatal(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    _install_fake_odds(monkeypatch, OutcomeKind.QUOTA_EXHAUSTED)

    code = main(_import_args(tmp_path / "data", "--create-tables"))

    assert code == 3
    assert "aborted" in capsys.readouterr().err


def test_odds_import_dry_run_leaves_no_trace(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    data_dir = tmp_path / "data"
    snapshots = _install_fake_odds(monkeypatch)

    assert main(_import_args(data_dir, "--dry-run")) == 0

    assert len(snapshots) == 3
    assert not data_dir.exists()


def test_resume_hint_keeps_original_start_for_later_sports(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    data_dir = tmp_path / "data"
    snapshots = _install_fake_odds(monkeypatch)
    base = ["--data-dir", str(data_dir), "odds", "import", "--delay", "0"]

    code = main(
        [*base, "--create-tables", "--sports", "nfl,nba", "--from", "2023-09-07"]
        + ["--to", "2023-10-27", "--max-credits", "60"]
    )

    assert code == 2
    out = capsys.readouterr().out
    assert "resume with: --sports nfl --from 2023-09-13 --to 2023-10-27" in out
    assert "then: --sports nba --from 2023-09-07 --to 2023-10-27" in out

    assert main([*base, "--sports", "nfl", "--from", "2023-09-13", "--to", "2023-10-27"]) == 0
    nfl_calls = len(snapshots)
    assert main([*base, "--sports", "nba", "--from", "2023-09-07", "--to", "2023-10-27"]) == 0

    assert snapshots[nfl_calls:] == ["2023-10-24T12:00:00Z", "2023-10-27T12:00:00Z"]


def test_dry_run_ignores_create_tables(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    data_dir = tmp_path / "data"
    snapshots = _install_fake_odds(monkeypatch)

    assert main(_import_args(data_dir, "--dry-run", "--create-tables")) == 0

    assert len(snapshots) == 3
    assert not data_dir.exists()


def test_odds_import_rejects_unknown_sport(
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    code = main(["--data-dir", str(tmp_path), "odds", "import", "--sports", "cricket"])

    assert code == 2
    assert "unknown sport" in capsys.readouterr().err


def test_odds_export_csv(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    data_dir = tmp_path / "data"
    _install_fake_odds(monkeypatch)
    assert main(_import_args(data_dir, "--create-tables")) == 0
    capsys.readouterr()
    out_path = tmp_path / "exports" / "nfl.csv"

    code = main(
        ["--data-dir", str(data_dir), "odds", "export", "--out", str(out_path), "--format", "csv"]
    )

    assert code == 0
    assert "rows=3" in capsys.readouterr().out
    frame = pl.read_csv(out_path)
    assert frame.height == 3
    assert frame["consensus_total"].to_list() == [52.5, 52.5, 52.5]
    assert "draftkings_total" in frame.columns


def test_credits_report_reads_usage_ledger(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    data_dir = tmp_path / "data"
    _install_fake_odds(monkeypatch)
    assert main(_import_args(data_dir, "--create-tables")) == 0
    capsys.readouterr()

    code = main(["--data-dir", str(data_dir), "credits", "report", "--month", current_month_utc()])

    assert code == 0
    out = capsys.readouterr().out
    assert "total_units=90 calls=3" in out
    assert "upstream=odds_api calls=3 units=90 remaining=470" in out


def test_social_sources_add_and_list(
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    data_dir = tmp_path / "data"

    assert main(["--data-dir", str(data_dir), "social", "sources", "add", "@Alpha", "beta"]) == 0
    inactive = ["social", "sources", "add", "gamma", "--inactive"]
    assert main(["--data-dir", str(data_dir), *inactive]) == 0
    capsys.readouterr()

    assert main(["--data-dir", str(data_dir), "social", "sources", "ls"]) == 0
    out = capsys.readouterr().out
    assert "handle=alpha" in out
    assert "handle=gamma" not in out
    assert "sources=2 cached_ids=0" in out


def test_social_ingest_and_pending(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    data_dir = tmp_path / "data"

    class FakeSocialClient:
        def __init__(self, settings, *, usage_sink=None) -> None:
            return None

        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc_val, exc_tb) -> None:
            return None

        def lookup_user(self, handle, *, ledger=None, reserved_units=1):
            return FetchOutcome(
                kind=OutcomeKind.SUCCESS, payload={"data": {"id": "77"}}, status_code=200
            )

        def user_posts(self, user_id, *, since_id=None, max_results=50, **kwargs):
            return FetchOutcome(
                kind=OutcomeKind.SUCCESS,
                status_code=200,
                payload={
                    "data": [{"id": "5001", "text": "Bills -2.5 lock of the week"}],
                    "meta": {"newest_id": "5001"},
                },
            )

    monkeypatch.setattr("edge_ingest.cli.SocialClient", FakeSocialClient)
    assert main(["--data-dir", str(data_dir), "social", "sources", "add", "capper"]) == 0

    code = main(
        ["--data-dir", str(data_dir), "social", "ingest", "--delay", "0", "--create-tables"]
    )

    assert code == 0
    assert "records_imported=1" in capsys.readouterr().out
    source = IdempotentStore(data_dir).get_tracked_source("capper")
    assert source is not None
    assert source.cached_external_id == "77"

    assert main(["--data-dir", str(data_dir), "social", "pending"]) == 0
    out = capsys.readouterr().out
    assert "subject=Buffalo Bills kind=spread line=-2.5" in out
    assert "pending=1" in out


def test_social_search_prints_parsed_picks(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    queries: list[tuple[str, int]] = []

    class FakeSocialClient:
        def __init__(self, settings, *, usage_sink=None) -> None:
            return None

        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc_val, exc_tb) -> None:
            return None

        def search_posts(self, query, *, max_results=100, **kwargs):
            queries.append((query, max_results))
            return FetchOutcome(
                kind=OutcomeKind.SUCCESS,
                status_code=200,
                payload={
                    "data": [
                        {"id": "9001", "text": "Lions +3 hammer", "author_id": "5"},
                        {"id": "9002", "text": "game day!", "author_id": "5"},
                    ],
                    "includes": {"users": [{"id": "5", "username": "detcapper"}]},
                },
            )

    monkeypatch.setattr("edge_ingest.cli.SocialClient", FakeSocialClient)
    data_dir = tmp_path / "data"
    search = ["social", "search", "lions hammer", "--max-results", "20", "--picks-only"]

    code = main(["--data-dir", str(data_dir), *search])

    assert code == 0
    assert queries == [("lions hammer", 20)]
    out = capsys.readouterr().out
    assert "post=9001 author=@detcapper subject=Detroit Lions kind=spread line=3.0" in out
    assert "tier=lock" in out
    assert "9002" not in out
    assert "results=2 picks=1" in out
    assert not (data_dir / "raw_posts").exists()


def test_missing_bearer_token_exits_fatal(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    for name in ("X_BEARER_TOKEN", "TWITTER_BEARER_TOKEN", "EDGE_INGEST_X_BEARER_TOKEN"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    data_dir = tmp_path / "data"
    assert main(["--data-dir", str(data_dir), "social", "sources", "add", "capper"]) == 0

    code = main(["--data-dir", str(data_dir), "social", "ingest"])

    assert code == 3
    assert "missing X bearer token" in capsys.readouterr().err
