from __future__ import annotations

from typing import Any

import pytest

from edge_ingest.aggregate import (
    NormalizedOddsRecord,
    aggregate_event,
    aggregate_payload,
    payload_events,
)


def _book(
    key: str,
    *,
    home_ml: int,
    away_ml: int,
    spread: float | None = None,
    spread_odds: tuple[int, int] = (-110, -110),
    total: float | None = None,
    total_odds: tuple[int, int] = (-110, -110),
) -> dict[str, Any]:
    markets: list[dict[str, Any]] = [
        {
            "key": "h2h",
            "outcomes": [
                {"name": "Kansas City Chiefs", "price": home_ml},
                {"name": "Detroit Lions", "price": away_ml},
            ],
        }
    ]
    if spread is not None:
        markets.append(
            {
                "key": "spreads",
                "outcomes": [
                    {"name": "Kansas City Chiefs", "price": spread_odds[0], "point": spread},
                    {"name": "Detroit Lions", "price": spread_odds[1], "point": -spread},
                ],
            }
        )
    if total is not None:
        markets.append(
            {
                "key": "totals",
                "outcomes": [
                    {"name": "Over", "price": total_odds[0], "point": total},
                    {"name": "Under", "price": total_odds[1], "point": total},
                ],
            }
        )
    return {"key": key, "title": key.title(), "markets": markets}


def _event(bookmakers: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "id": "evt-1",
        "sport_key": "americanfootball_nfl",
        "commence_time": "2023-09-08T00:20:00Z",
        "home_team": "Kansas City Chiefs",
        "away_team": "Detroit Lions",
        "bookmakers": bookmakers,
    }


def test_consensus_and_best_across_books() -> None:
    event = _event(
        [
            _book("fanduel", home_ml=-150, away_ml=130, spread=-3.0, total=52.5),
            _book("draftkings", home_ml=-140, away_ml=120, spread=-3.5, total=53.0),
            _book("betmgm", home_ml=-160, away_ml=135, spread=-2.5, total=53.0),
        ]
    )

    record = aggregate_event(event, sport="nfl", snapshot_time="2023-09-07T12:00:00Z")

    assert record.consensus_home_ml == -150
    assert record.best_home_ml == -140
    assert record.consensus_away_ml == 128
    assert record.best_away_ml == 135
    assert record.consensus_spread == -3.0
    assert record.best_spread == -3.5
    assert record.consensus_total == 53.0
    assert record.consensus_spread_home_odds == -110
    assert record.consensus_spread_hold == pytest.approx(0.0476)
    assert record.source_count == 3
    assert record.game_date == "2023-09-08"
    assert record.season == 2023


def test_priority_books_are_flattened_into_row() -> None:
    event = _event(
        [
            _book("fanduel", home_ml=-150, away_ml=130, spread=-3.0),
            _book("pointsbetus", home_ml=-145, away_ml=125),
        ]
    )

    row = aggregate_event(event, sport="nfl", snapshot_time="").to_row()

    assert row["fanduel_home_ml"] == -150
    assert row["fanduel_spread"] == -3.0
    assert row["fanduel_spread_away_odds"] == -110
    assert row["draftkings_home_ml"] is None
    assert row["betmgm_total"] is None
    assert set(row["bookmaker_odds"]) == {"fanduel", "pointsbetus"}
    assert "total" not in row["bookmaker_odds"]["pointsbetus"]


def test_missing_markets_leave_consensus_empty() -> None:
    record = aggregate_event(
        _event([_book("fanduel", home_ml=-150, away_ml=130)]),
        sport="nfl",
        snapshot_time="",
    )

    assert record.consensus_spread is None
    assert record.consensus_total is None
    assert record.best_total is None
    assert record.consensus_total_hold is None
    assert record.consensus_ml_hold is not None


def test_event_without_books_keeps_zero_sources() -> None:
    record = aggregate_event(_event([]), sport="nfl", snapshot_time="")

    assert record.source_count == 0
    assert record.consensus_home_ml is None
    assert record.bookmaker_odds == {}


def test_invalid_events_raise() -> None:
    with pytest.raises(ValueError, match="missing an id"):
        aggregate_event({"commence_time": "2023-09-08T00:20:00Z"}, sport="nfl", snapshot_time="")
    with pytest.raises(ValueError, match="invalid commence_time"):
        aggregate_event({"id": "x", "commence_time": "soon"}, sport="nfl", snapshot_time="")


def test_row_round_trip_keeps_priority_quotes() -> None:
    record = aggregate_event(
        _event([_book("draftkings", home_ml=-140, away_ml=120, total=47.5)]),
        sport="nfl",
        snapshot_time="2023-09-07T12:00:00Z",
    )

    restored = NormalizedOddsRecord.from_row(record.to_row())

    assert restored == record


def test_aggregate_payload_uses_snapshot_timestamp() -> None:
    payload = {
        "timestamp": "2023-09-07T11:55:00Z",
        "data": [_event([_book("fanduel", home_ml=-150, away_ml=130)]), "junk"],
    }

    records = aggregate_payload(payload, sport="nfl")

    assert len(payload_events(payload)) == 1
    assert [record.snapshot_time for record in records] == ["2023-09-07T11:55:00Z"]
