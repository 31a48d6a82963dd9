"""Export normalized odds records to Parquet or CSV."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import polars as pl

from edge_ingest.aggregate import PRIORITY_BOOKS, PRIORITY_FIELDS
from edge_ingest.store import IdempotentStore

EXPORT_FORMATS: tuple[str, ...] = ("parquet", "csv")

_BASE_SCHEMA: list[tuple[str, Any]] = [
    ("event_id", pl.Utf8),
    ("sport", pl.Utf8),
    ("sport_key", pl.Utf8),
    ("season", pl.Int64),
    ("game_date", pl.Utf8),
    ("commence_time", pl.Utf8),
    ("home_team", pl.Utf8),
    ("away_team", pl.Utf8),
    ("snapshot_time", pl.Utf8),
    ("source_count", pl.Int64),
    ("consensus_home_ml", pl.Int64),
    ("consensus_away_ml", pl.Int64),
    ("consensus_spread", pl.Float64),
    ("consensus_spread_home_odds", pl.Int64),
    ("consensus_spread_away_odds", pl.Int64),
    ("consensus_total", pl.Float64),
    ("consensus_over_odds", pl.Int64),
    ("consensus_under_odds", pl.Int64),
    ("consensus_ml_hold", pl.Float64),
    ("consensus_spread_hold", pl.Float64),
    ("consensus_total_hold", pl.Float64),
    ("best_home_ml", pl.Int64),
    ("best_away_ml", pl.Int64),
    ("best_spread", pl.Float64),
    ("best_total", pl.Float64),
]
_LINE_FIELDS = {"spread", "total"}

ODDS_RECORD_SCHEMA: list[tuple[str, Any]] = (
    _BASE_SCHEMA
    + [
        (f"{book}_{name}", pl.Float64 if name in _LINE_FIELDS else pl.Int64)
        for book in PRIORITY_BOOKS
        for name in PRIORITY_FIELDS
    ]
    + [("bookmaker_odds_json", pl.Utf8)]
)


def odds_frame(rows: list[dict[str, Any]]) -> pl.DataFrame:
    """Typed frame over stored odds rows, sorted by game date then event id."""
    prepared = []
    for row in rows:
        item = dict(row)
        item["bookmaker_odds_json"] = json.dumps(item.pop("bookmaker_odds", {}), sort_keys=True)
        prepared.append(item)
    columns = {
        name: pl.Series(name, [item.get(name) for item in prepared], dtype=dtype, strict=False)
        for name, dtype in ODDS_RECORD_SCHEMA
    }
    return pl.DataFrame(columns).sort(["game_date", "event_id"])


def export_odds_records(
    store: IdempotentStore,
    *,
    out_path: Path,
    fmt: str = "parquet",
    sport: str | None = None,
) -> dict[str, Any]:
    """Write every stored odds record (optionally one sport) to `out_path`."""
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"unsupported export format: {fmt}")
    frame = odds_frame(store.odds_records(sport))
    out_path.parent.mkdir(parents=True, exist_ok=True)
    if fmt == "parquet":
        frame.write_parquet(out_path, compression="zstd")
    else:
        frame.write_csv(out_path)
    return {"path": str(out_path), "format": fmt, "rows": frame.height, "sport": sport or ""}
