"""Collapse multi-bookmaker market quotes into one normalized record per event."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from edge_ingest.odds_math import (
    best_price,
    largest_magnitude,
    market_hold,
    mean_half_point,
    mean_price,
)
from edge_ingest.sports import season_windows
from edge_ingest.time_utils import parse_iso_z
from edge_ingest.util.parsing import safe_float, safe_int
from edge_ingest.windows import season_for

PRIORITY_BOOKS: tuple[str, ...] = ("fanduel", "draftkings", "betmgm")
PRIORITY_FIELDS: tuple[str, ...] = (
    "home_ml",
    "away_ml",
    "spread",
    "spread_home_odds",
    "spread_away_odds",
    "total",
    "over_odds",
    "under_odds",
)


@dataclass
class NormalizedOddsRecord:
    """Consensus, best-price and per-book view of one event at one snapshot."""

    event_id: str
    sport: str
    sport_key: str
    home_team: str
    away_team: str
    commence_time: str
    game_date: str
    season: int
    snapshot_time: str
    consensus_home_ml: int | None = None
    consensus_away_ml: int | None = None
    consensus_spread: float | None = None
    consensus_spread_home_odds: int | None = None
    consensus_spread_away_odds: int | None = None
    consensus_total: float | None = None
    consensus_over_odds: int | None = None
    consensus_under_odds: int | None = None
    consensus_ml_hold: float | None = None
    consensus_spread_hold: float | None = None
    consensus_total_hold: float | None = None
    best_home_ml: int | None = None
    best_away_ml: int | None = None
    best_spread: float | None = None
    best_total: float | None = None
    priority_books: dict[str, dict[str, Any]] = field(default_factory=dict)
    bookmaker_odds: dict[str, dict[str, Any]] = field(default_factory=dict)
    source_count: int = 0

    def to_row(self) -> dict[str, Any]:
        row: dict[str, Any] = {
            key: value
            for key, value in self.__dict__.items()
            if key not in {"priority_books", "bookmaker_odds"}
        }
        for book in PRIORITY_BOOKS:
            quotes = self.priority_books.get(book, {})
            for name in PRIORITY_FIELDS:
                row[f"{book}_{name}"] = quotes.get(name)
        row["bookmaker_odds"] = self.bookmaker_odds
        return row

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> NormalizedOddsRecord:
        scalar = {
            key: row.get(key)
            for key in cls.__dataclass_fields__
            if key not in {"priority_books", "bookmaker_odds"} and key in row
        }
        priority = {
            book: {name: row.get(f"{book}_{name}") for name in PRIORITY_FIELDS}
            for book in PRIORITY_BOOKS
        }
        odds = row.get("bookmaker_odds")
        return cls(
            **scalar,
            priority_books=priority,
            bookmaker_odds=odds if isinstance(odds, dict) else {},
        )


def _market(book: dict[str, Any], key: str) -> dict[str, Any] | None:
    markets = book.get("markets", [])
    if not isinstance(markets, list):
        return None
    for market in markets:
        if isinstance(market, dict) and market.get("key") == key:
            return market
    return None


def _outcome(market: dict[str, Any] | None, name: str) -> dict[str, Any] | None:
    if market is None:
        return None
    outcomes = market.get("outcomes", [])
    if not isinstance(outcomes, list):
        return None
    for outcome in outcomes:
        if isinstance(outcome, dict) and str(outcome.get("name", "")) == name:
            return outcome
    return None


def _price(outcome: dict[str, Any] | None) -> int | None:
    if outcome is None:
        return None
    return safe_int(outcome.get("price"))


def _point(outcome: dict[str, Any] | None) -> float | None:
    if outcome is None:
        return None
    return safe_float(outcome.get("point"))


def _book_quotes(book: dict[str, Any], *, home_team: str, away_team: str) -> dict[str, Any]:
    """Flat per-book quote map; absent markets leave their fields out."""
    quotes: dict[str, Any] = {"key": str(book.get("key", "")), "title": book.get("title", "")}

    h2h = _market(book, "h2h")
    home_ml = _price(_outcome(h2h, home_team))
    away_ml = _price(_outcome(h2h, away_team))
    if home_ml is not None:
        quotes["home_ml"] = home_ml
    if away_ml is not None:
        quotes["away_ml"] = away_ml

    spreads = _market(book, "spreads")
    home_spread = _outcome(spreads, home_team)
    away_spread = _outcome(spreads, away_team)
    if _point(home_spread) is not None:
        quotes["spread"] = _point(home_spread)
        quotes["spread_home_odds"] = _price(home_spread)
    if away_spread is not None and _price(away_spread) is not None:
        quotes["spread_away_odds"] = _price(away_spread)

    totals = _market(book, "totals")
    over = _outcome(totals, "Over")
    under = _outcome(totals, "Under")
    if _point(over) is not None:
        quotes["total"] = _point(over)
        quotes["over_odds"] = _price(over)
    if under is not None and _price(under) is not None:
        quotes["under_odds"] = _price(under)
    return quotes


def _collect(books: list[dict[str, Any]], name: str) -> list[Any]:
    return [quotes[name] for quotes in books if quotes.get(name) is not None]


def aggregate_event(
    event: dict[str, Any],
    *,
    sport: str,
    snapshot_time: str,
) -> NormalizedOddsRecord:
    """Normalize one upstream event object."""
    event_id = str(event.get("id", "")).strip()
    if not event_id:
        raise ValueError("event is missing an id")
    home_team = str(event.get("home_team", ""))
    away_team = str(event.get("away_team", ""))
    commence_time = str(event.get("commence_time", ""))
    commence = parse_iso_z(commence_time)
    if commence is None:
        raise ValueError(f"event {event_id} has invalid commence_time: {commence_time!r}")

    raw_books = event.get("bookmakers", [])
    if not isinstance(raw_books, list):
        raw_books = []
    per_book: list[dict[str, Any]] = []
    bookmaker_odds: dict[str, dict[str, Any]] = {}
    for book in raw_books:
        if not isinstance(book, dict):
            continue
        quotes = _book_quotes(book, home_team=home_team, away_team=away_team)
        per_book.append(quotes)
        bookmaker_odds[quotes["key"]] = quotes

    priority_books = {
        book: {name: bookmaker_odds.get(book, {}).get(name) for name in PRIORITY_FIELDS}
        for book in PRIORITY_BOOKS
    }

    consensus_home_ml = mean_price(_collect(per_book, "home_ml"))
    consensus_away_ml = mean_price(_collect(per_book, "away_ml"))
    consensus_spread_home_odds = mean_price(_collect(per_book, "spread_home_odds"))
    consensus_spread_away_odds = mean_price(_collect(per_book, "spread_away_odds"))
    consensus_over_odds = mean_price(_collect(per_book, "over_odds"))
    consensus_under_odds = mean_price(_collect(per_book, "under_odds"))

    return NormalizedOddsRecord(
        event_id=event_id,
        sport=sport,
        sport_key=str(event.get("sport_key", "")),
        home_team=home_team,
        away_team=away_team,
        commence_time=commence_time,
        game_date=commence.date().isoformat(),
        season=season_for(season_windows(sport), commence, label=sport),
        snapshot_time=snapshot_time,
        consensus_home_ml=consensus_home_ml,
        consensus_away_ml=consensus_away_ml,
        consensus_spread=mean_half_point(_collect(per_book, "spread")),
        consensus_spread_home_odds=consensus_spread_home_odds,
        consensus_spread_away_odds=consensus_spread_away_odds,
        consensus_total=mean_half_point(_collect(per_book, "total")),
        consensus_over_odds=consensus_over_odds,
        consensus_under_odds=consensus_under_odds,
        consensus_ml_hold=market_hold(consensus_home_ml, consensus_away_ml),
        consensus_spread_hold=market_hold(consensus_spread_home_odds, consensus_spread_away_odds),
        consensus_total_hold=market_hold(consensus_over_odds, consensus_under_odds),
        best_home_ml=best_price(_collect(per_book, "home_ml")),
        best_away_ml=best_price(_collect(per_book, "away_ml")),
        best_spread=largest_magnitude(_collect(per_book, "spread")),
        best_total=largest_magnitude(_collect(per_book, "total")),
        priority_books=priority_books,
        bookmaker_odds=bookmaker_odds,
        source_count=len(raw_books),
    )


def payload_events(payload: Any) -> list[dict[str, Any]]:
    """Event list of a historical snapshot (`{"timestamp", "data": [...]}`)."""
    if isinstance(payload, dict):
        data = payload.get("data")
    else:
        data = payload
    if not isinstance(data, list):
        return []
    return [item for item in data if isinstance(item, dict)]


def snapshot_timestamp(payload: Any) -> str:
    if isinstance(payload, dict):
        return str(payload.get("timestamp", "") or "")
    return ""


def aggregate_payload(payload: Any, *, sport: str) -> list[NormalizedOddsRecord]:
    """Normalize every event in one historical snapshot payload."""
    snapshot_time = snapshot_timestamp(payload)
    return [
        aggregate_event(event, sport=sport, snapshot_time=snapshot_time)
        for event in payload_events(payload)
    ]
