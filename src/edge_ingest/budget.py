"""Per-run credit ledger, run context, and monthly usage summaries."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from edge_ingest.util.parsing import count

logger = logging.getLogger(__name__)


def current_month_utc() -> str:
    """Return current UTC month as YYYY-MM."""
    return datetime.now(UTC).strftime("%Y-%m")


class BudgetLedger:
    """Process-local counter of consumed quota units against a ceiling.

    The ledger never talks to the network and never raises. `reserve` is
    called strictly before each upstream call; a `False` answer means the
    call must not be issued. `settle` replaces a reservation with what the
    upstream actually billed, which may be more or less than reserved.
    """

    def __init__(self, max_units: int) -> None:
        self.max_units = max(0, int(max_units))
        self.consumed_units = 0

    @property
    def remaining(self) -> int:
        return max(0, self.max_units - self.consumed_units)

    @property
    def exhausted(self) -> bool:
        return self.consumed_units >= self.max_units

    def can_afford(self, units: int) -> bool:
        cost = max(0, int(units))
        if self.exhausted:
            return False
        return self.consumed_units + cost <= self.max_units

    def reserve(self, units: int) -> bool:
        if not self.can_afford(units):
            return False
        self.consumed_units += max(0, int(units))
        return True

    def settle(self, reserved: int, actual: int) -> None:
        delta = max(0, int(actual)) - max(0, int(reserved))
        if delta:
            logger.debug("budget settle reserved=%s actual=%s", reserved, actual)
        self.consumed_units = max(0, self.consumed_units + delta)

    def snapshot(self) -> dict[str, int]:
        return {
            "consumed_units": self.consumed_units,
            "max_units": self.max_units,
            "remaining_units": self.remaining,
        }


@dataclass
class RunContext:
    """Mutable state for one run, threaded through every call."""

    ledger: BudgetLedger
    dry_run: bool = False
    units_processed: int = 0
    records_imported: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)
    resume_point: str | None = None
    stop_reason: str | None = None

    @property
    def stopped_early(self) -> bool:
        return self.stop_reason is not None

    def stop(self, reason: str, *, resume_point: str | None = None) -> None:
        if self.stop_reason is None:
            self.stop_reason = reason
            self.resume_point = resume_point

    def record_error(self, message: str) -> None:
        self.errors.append(message)

    def summary(self) -> dict[str, Any]:
        return {
            "units_processed": self.units_processed,
            "records_imported": self.records_imported,
            "skipped": self.skipped,
            "units_consumed": self.ledger.consumed_units,
            "max_units": self.ledger.max_units,
            "errors": len(self.errors),
            "dry_run": self.dry_run,
            "stop_reason": self.stop_reason or "",
            "resume_point": self.resume_point or "",
        }


def _load_jsonl(path: Path) -> list[dict[str, Any]]:
    if not path.exists():
        return []
    rows: list[dict[str, Any]] = []
    for line in path.read_text(encoding="utf-8").splitlines():
        if not line.strip():
            continue
        item = json.loads(line)
        if isinstance(item, dict):
            rows.append(item)
    return rows


def read_usage(data_root: Path, month: str) -> dict[str, Any]:
    """Summarize upstream usage for one month from the usage ledger."""
    path = data_root / "usage" / f"usage-{month}.jsonl"
    rows = _load_jsonl(path)
    by_upstream: dict[str, dict[str, Any]] = {}
    for row in rows:
        upstream = str(row.get("upstream", "unknown"))
        bucket = by_upstream.setdefault(
            upstream,
            {"calls": 0, "units": 0, "provider_remaining": ""},
        )
        bucket["calls"] += 1
        bucket["units"] += count(row.get("units", 0))
        remaining = str(row.get("units_remaining", "")).strip()
        if remaining:
            bucket["provider_remaining"] = remaining
    return {
        "month": month,
        "path": str(path),
        "rows": len(rows),
        "total_units": sum(item["units"] for item in by_upstream.values()),
        "upstreams": dict(sorted(by_upstream.items())),
    }
