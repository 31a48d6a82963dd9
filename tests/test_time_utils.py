from __future__ import annotations

from datetime import UTC, date, datetime, timedelta, timezone

import pytest

from edge_ingest.time_utils import iso_z, noon_utc, parse_day, parse_iso_z, utc_now, utc_now_str


def test_utc_now_is_utc_without_microseconds() -> None:
    now = utc_now()

    assert now.tzinfo == UTC
    assert now.microsecond == 0


def test_utc_now_str_uses_z_suffix() -> None:
    value = utc_now_str()

    assert value.endswith("Z")
    assert "+00:00" not in value


def test_iso_z_normalizes_non_utc_datetime() -> None:
    eastern = datetime(2023, 9, 10, 8, 0, 0, tzinfo=timezone(timedelta(hours=-5)))

    assert iso_z(eastern) == "2023-09-10T13:00:00Z"


def test_parse_iso_z_parses_z_and_naive() -> None:
    parsed_z = parse_iso_z("2023-09-10T17:00:00Z")
    parsed_naive = parse_iso_z("2023-09-10T17:00:00")

    assert parsed_z == datetime(2023, 9, 10, 17, 0, 0, tzinfo=UTC)
    assert parsed_naive == datetime(2023, 9, 10, 17, 0, 0, tzinfo=UTC)


def test_parse_iso_z_invalid_returns_none() -> None:
    assert parse_iso_z("not-a-date") is None
    assert parse_iso_z("") is None


def test_parse_day_and_noon_anchor() -> None:
    assert parse_day(" 2023-09-10 ") == date(2023, 9, 10)
    assert noon_utc(date(2023, 9, 10)) == "2023-09-10T12:00:00Z"
    with pytest.raises(ValueError, match="invalid day value"):
        parse_day("2023-13-40")
