"""Sport catalogue: upstream keys, season windows, and sampling cadence."""

from __future__ import annotations

from datetime import date

from edge_ingest.windows import SeasonWindow

SPORT_KEYS: dict[str, str] = {
    "nfl": "americanfootball_nfl",
    "nba": "basketball_nba",
    "nhl": "icehockey_nhl",
    "mlb": "baseball_mlb",
    "ncaaf": "americanfootball_ncaaf",
    "ncaab": "basketball_ncaab",
}

DEFAULT_SPORTS: tuple[str, ...] = ("nfl", "nba", "mlb", "nhl")
DEFAULT_SAMPLE_INTERVAL_DAYS = 7

# Historical odds are available upstream from this day onward.
EARLIEST_HISTORICAL_DAY = date(2020, 6, 6)


def _w(season: int, start: str, end: str) -> SeasonWindow:
    return SeasonWindow(season=season, start=date.fromisoformat(start), end=date.fromisoformat(end))


SEASON_WINDOWS: dict[str, tuple[SeasonWindow, ...]] = {
    "nfl": (
        _w(2020, "2020-09-10", "2021-02-08"),
        _w(2021, "2021-09-09", "2022-02-14"),
        _w(2022, "2022-09-08", "2023-02-13"),
        _w(2023, "2023-09-07", "2024-02-12"),
        _w(2024, "2024-09-05", "2025-02-10"),
        _w(2025, "2025-09-04", "2026-02-09"),
    ),
    "nba": (
        _w(2021, "2020-12-22", "2021-07-21"),
        _w(2022, "2021-10-19", "2022-06-17"),
        _w(2023, "2022-10-18", "2023-06-13"),
        _w(2024, "2023-10-24", "2024-06-18"),
        _w(2025, "2024-10-22", "2025-06-20"),
    ),
    "mlb": (
        _w(2020, "2020-07-23", "2020-10-28"),
        _w(2021, "2021-04-01", "2021-11-03"),
        _w(2022, "2022-04-07", "2022-11-06"),
        _w(2023, "2023-03-30", "2023-11-02"),
        _w(2024, "2024-03-28", "2024-10-31"),
        _w(2025, "2025-03-27", "2025-10-31"),
    ),
    "nhl": (
        _w(2021, "2021-01-13", "2021-07-08"),
        _w(2022, "2021-10-12", "2022-06-27"),
        _w(2023, "2022-10-07", "2023-06-14"),
        _w(2024, "2023-10-10", "2024-06-25"),
        _w(2025, "2024-10-08", "2025-06-25"),
    ),
    "ncaaf": (
        _w(2020, "2020-09-03", "2021-01-12"),
        _w(2021, "2021-09-02", "2022-01-11"),
        _w(2022, "2022-09-01", "2023-01-10"),
        _w(2023, "2023-08-26", "2024-01-09"),
        _w(2024, "2024-08-24", "2025-01-21"),
        _w(2025, "2025-08-23", "2026-01-20"),
    ),
    "ncaab": (
        _w(2021, "2020-11-25", "2021-04-06"),
        _w(2022, "2021-11-09", "2022-04-05"),
        _w(2023, "2022-11-07", "2023-04-04"),
        _w(2024, "2023-11-06", "2024-04-09"),
        _w(2025, "2024-11-04", "2025-04-08"),
    ),
}

SAMPLE_INTERVAL_DAYS: dict[str, int] = {
    "nfl": 3,
    "nba": 3,
    "mlb": 3,
    "nhl": 3,
    "ncaaf": 7,
    "ncaab": 7,
}


def sport_key(sport: str) -> str:
    """Map a short sport code to the upstream sport key."""
    try:
        return SPORT_KEYS[sport]
    except KeyError as exc:
        known = ",".join(sorted(SPORT_KEYS))
        raise ValueError(f"unknown sport: {sport} (known: {known})") from exc


def season_windows(sport: str) -> tuple[SeasonWindow, ...]:
    return SEASON_WINDOWS.get(sport, ())


def sample_interval(sport: str) -> int:
    return SAMPLE_INTERVAL_DAYS.get(sport, DEFAULT_SAMPLE_INTERVAL_DAYS)


def parse_sports(raw_value: str | None) -> list[str]:
    """Parse a comma list of sport codes, keeping caller order and dropping repeats."""
    if not raw_value:
        return list(DEFAULT_SPORTS)
    out: list[str] = []
    for item in raw_value.split(","):
        code = item.strip().lower()
        if code and code not in out:
            out.append(code)
    return out
