from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Any

import pytest

from edge_ingest.aggregate import NormalizedOddsRecord
from edge_ingest.budget import BudgetLedger, RunContext
from edge_ingest.errors import PersistenceError, QuotaExhaustedError
from edge_ingest.metering import FetchOutcome, OutcomeKind
from edge_ingest.odds_import import NO_GAMES_MESSAGE, planned_dates, run_odds_import
from edge_ingest.store import IdempotentStore


def _payload(snapshot: str) -> dict[str, Any]:
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
                        "key": "fanduel",
                        "markets": [
                            {
                                "key": "h2h",
                                "outcomes": [
                                    {"name": "Kansas City Chiefs", "price": -150},
                                    {"name": "Detroit Lions", "price": 130},
                                ],
                            }
                        ],
                    }
                ],
            }
        ],
    }


class FakeOddsClient:
    def __init__(self, kinds: dict[str, OutcomeKind] | None = None) -> None:
        self.kinds = kinds or {}
        self.calls: list[tuple[str, str]] = []

    def historical_odds(
        self,
        *,
        sport_key: str,
        snapshot: str,
        ledger: BudgetLedger | None = None,
        reserved_units: int = 0,
    ) -> FetchOutcome:
        self.calls.append((sport_key, snapshot))
        kind = self.kinds.get(snapshot[:10], OutcomeKind.SUCCESS)
        if kind == OutcomeKind.SUCCESS:
            return FetchOutcome(
                kind=kind,
                payload=_payload(snapshot),
                status_code=200,
                units_consumed=reserved_units,
                units_reported=True,
            )
        return FetchOutcome(kind=kind, status_code=500, error=f"fake {kind}")


def _store(tmp_path: Path) -> IdempotentStore:
    store = IdempotentStore(tmp_path / "data")
    store.bootstrap()
    return store


def _run(
    store: IdempotentStore,
    client: FakeOddsClient,
    *,
    max_credits: int = 1000,
    dry_run: bool = False,
    to_day: date = date(2023, 9, 13),
) -> RunContext:
    ctx = RunContext(ledger=BudgetLedger(max_credits), dry_run=dry_run)
    sleeps: list[float] = []
    run_odds_import(
        store=store,
        client=client,  # type: ignore[arg-type]
        ctx=ctx,
        sports=["nfl"],
        from_day=date(2023, 9, 7),
        to_day=to_day,
        delay_s=1.0,
        sleep=sleeps.append,
    )
    return ctx


def test_planned_dates_follow_sport_cadence() -> None:
    days = planned_dates("nfl", from_day=date(2023, 9, 1), to_day=date(2023, 9, 13))

    assert days == [date(2023, 9, 7), date(2023, 9, 10), date(2023, 9, 13)]


def test_import_writes_records_and_logs(tmp_path: Path) -> None:
    store = _store(tmp_path)
    client = FakeOddsClient()

    ctx = _run(store, client)

    assert [snapshot for _, snapshot in client.calls] == [
        "2023-09-07T12:00:00Z",
        "2023-09-10T12:00:00Z",
        "2023-09-13T12:00:00Z",
    ]
    assert ctx.units_processed == 3
    assert ctx.records_imported == 3
    assert not ctx.errors
    assert len(store.odds_records("nfl")) == 3
    entry = store.get_log("nfl", "2023-09-10")
    assert entry is not None
    assert entry.status == "success"
    assert entry.units_found == 1
    assert entry.credits_used == 30


def test_second_run_makes_no_upstream_calls(tmp_path: Path) -> None:
    store = _store(tmp_path)
    _run(store, FakeOddsClient())
    client = FakeOddsClient()

    ctx = _run(store, client)

    assert client.calls == []
    assert ctx.skipped == 3
    assert ctx.ledger.consumed_units == 0


def test_budget_stop_records_resume_point(tmp_path: Path) -> None:
    store = _store(tmp_path)
    client = FakeOddsClient()

    ctx = _run(store, client, max_credits=100, to_day=date(2023, 9, 19))

    assert len(client.calls) == 3
    assert ctx.ledger.consumed_units == 90
    assert ctx.stop_reason == "budget_exhausted"
    assert ctx.resume_point == "nfl:2023-09-16"
    assert store.get_log("nfl", "2023-09-16") is None


def test_no_data_is_logged_as_skipped(tmp_path: Path) -> None:
    store = _store(tmp_path)
    client = FakeOddsClient({"2023-09-10": OutcomeKind.NO_DATA})

    ctx = _run(store, client)

    entry = store.get_log("nfl", "2023-09-10")
    assert entry is not None
    assert entry.status == "skipped"
    assert entry.error_message == NO_GAMES_MESSAGE
    assert ctx.skipped == 1
    assert ctx.records_imported == 2


def test_transient_failure_is_logged_and_retried_next_run(tmp_path: Path) -> None:
    store = _store(tmp_path)
    ctx = _run(store, FakeOddsClient({"2023-09-10": OutcomeKind.TRANSIENT_ERROR}))

    entry = store.get_log("nfl", "2023-09-10")
    assert entry is not None
    assert entry.status == "error"
    assert len(ctx.errors) == 1

    client = FakeOddsClient()
    _run(store, client)
    assert [snapshot[:10] for _, snapshot in client.calls] == ["2023-09-10"]
    assert store.has_succeeded("nfl", "2023-09-10")


def test_dry_run_writes_nothing(tmp_path: Path) -> None:
    store = _store(tmp_path)
    client = FakeOddsClient()

    ctx = _run(store, client, dry_run=True)

    assert len(client.calls) == 3
    assert ctx.records_imported == 3
    assert store.odds_records() == []
    assert store.log_entries() == []


def test_quota_exhaustion_aborts_run(tmp_path: Path) -> None:
    store = _store(tmp_path)
    client = FakeOddsClient({"2023-09-10": OutcomeKind.QUOTA_EXHAUSTED})
    ctx = RunContext(ledger=BudgetLedger(1000))

    with pytest.raises(QuotaExhaustedError):
        run_odds_import(
            store=store,
            client=client,  # type: ignore[arg-type]
            ctx=ctx,
            sports=["nfl"],
            from_day=date(2023, 9, 7),
            to_day=date(2023, 9, 13),
            delay_s=0,
        )

    assert ctx.stop_reason == "quota_exhausted"
    assert ctx.resume_point == "nfl:2023-09-10"
    assert store.has_succeeded("nfl", "2023-09-07")
    assert store.get_log("nfl", "2023-09-10") is None


def test_unknown_sport_is_recorded_and_skipped(tmp_path: Path) -> None:
    store = _store(tmp_path)
    client = FakeOddsClient()
    ctx = RunContext(ledger=BudgetLedger(1000))

    run_odds_import(
        store=store,
        client=client,  # type: ignore[arg-type]
        ctx=ctx,
        sports=["curling", "nfl"],
        from_day=date(2023, 9, 7),
        to_day=date(2023, 9, 7),
        delay_s=0,
    )

    assert len(client.calls) == 1
    assert ctx.errors and "unknown sport" in ctx.errors[0]


class SplitOddsClient(FakeOddsClient):
    """Two events per day: the fixture game plus a second one."""

    def historical_odds(self, **kwargs: Any) -> FetchOutcome:
        outcome = super().historical_odds(**kwargs)
        if outcome.kind == OutcomeKind.SUCCESS:
            first = outcome.payload["data"][0]
            outcome.payload["data"].append({**first, "id": f"{first['id']}-late"})
        return outcome


class FlakyStore(IdempotentStore):
    def __init__(self, root: Path, failing_event_ids: set[str]) -> None:
        super().__init__(root)
        self.failing_event_ids = failing_event_ids

    def upsert_odds_record(self, record: NormalizedOddsRecord) -> None:
        if record.event_id in self.failing_event_ids:
            raise PersistenceError(f"odds_record {record.event_id}: disk full")
        super().upsert_odds_record(record)


def test_record_write_failure_keeps_day_retryable(tmp_path: Path) -> None:
    flaky = FlakyStore(tmp_path / "data", {"evt-2023-09-10-late"})
    flaky.bootstrap()

    ctx = _run(flaky, SplitOddsClient())

    assert ctx.units_processed == 3
    assert ctx.records_imported == 5
    assert ctx.errors == ["odds_record evt-2023-09-10-late: disk full"]
    assert len(flaky.odds_records("nfl")) == 5
    entry = flaky.get_log("nfl", "2023-09-10")
    assert entry is not None
    assert entry.status == "error"
    assert entry.units_imported == 1
    assert entry.error_message == "1 of 2 record writes failed"
    assert flaky.has_succeeded("nfl", "2023-09-13")

    store = IdempotentStore(tmp_path / "data")
    client = SplitOddsClient()
    _run(store, client)

    assert [snapshot[:10] for _, snapshot in client.calls] == ["2023-09-10"]
    assert store.has_succeeded("nfl", "2023-09-10")
    assert len(store.odds_records("nfl")) == 6


def test_imported_days_are_skipped_without_budget(tmp_path: Path) -> None:
    store = _store(tmp_path)
    _run(store, FakeOddsClient())
    client = FakeOddsClient()

    ctx = _run(store, client, max_credits=0)

    assert client.calls == []
    assert ctx.skipped == 3
    assert not ctx.stopped_early
    assert ctx.resume_point is None


def test_budget_stop_skips_past_imported_days(tmp_path: Path) -> None:
    store = _store(tmp_path)
    _run(store, FakeOddsClient(), to_day=date(2023, 9, 10))

    ctx = _run(store, FakeOddsClient(), max_credits=0, to_day=date(2023, 9, 16))

    assert ctx.skipped == 2
    assert ctx.resume_point == "nfl:2023-09-13"
