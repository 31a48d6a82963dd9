"""Season windows: sampling-date generation and season classification."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SeasonWindow:
    """One configured `[start, end]` period, both ends inclusive."""

    season: int
    start: date
    end: date

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


def sample_dates(
    windows: Iterable[SeasonWindow],
    *,
    from_day: date,
    to_day: date,
    interval_days: int,
) -> list[date]:
    """Sampling days inside both the configured windows and `[from_day, to_day]`.

    Windows are walked in definition order and their dates concatenated;
    a gap between windows (an off-season) never yields a date even when the
    global range spans it.
    """
    if interval_days <= 0:
        raise ValueError(f"interval_days must be positive, got {interval_days}")
    step = timedelta(days=interval_days)
    out: list[date] = []
    for window in windows:
        effective_start = max(window.start, from_day)
        effective_end = min(window.end, to_day)
        if effective_start > effective_end:
            continue
        current = effective_start
        while current <= effective_end:
            out.append(current)
            current += step
    return out


def season_for(
    windows: Iterable[SeasonWindow],
    when: date | datetime,
    *,
    label: str = "",
) -> int:
    """Season label for a date; calendar year when no window matches."""
    day = when.date() if isinstance(when, datetime) else when
    for window in windows:
        if window.contains(day):
            return window.season
    logger.warning(
        "season fallback to calendar year sport=%s day=%s season=%s",
        label or "-",
        day.isoformat(),
        day.year,
    )
    return day.year
