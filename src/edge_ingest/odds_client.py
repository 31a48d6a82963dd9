"""Metered client for The Odds API v4 historical snapshots."""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import httpx

from edge_ingest.budget import BudgetLedger
from edge_ingest.errors import UpstreamAuthError
from edge_ingest.metering import FetchOutcome, MeteredClient, OutcomeKind, RetryPolicy, UsageSink
from edge_ingest.settings import Settings
from edge_ingest.util.parsing import header_count

HISTORICAL_MARKETS = "h2h,spreads,totals"
OUT_OF_CREDITS_MARKER = "OUT_OF_USAGE_CREDITS"
# Worst-case charge of one historical featured-markets request
# (10 per market per region).
ESTIMATED_CREDITS_PER_REQUEST = 30


class OddsHistoryClient(MeteredClient):
    """`GET /historical/sports/{sport_key}/odds` with credit accounting."""

    upstream = "odds_api"

    def __init__(
        self,
        settings: Settings,
        *,
        usage_sink: UsageSink | None = None,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        extra: dict[str, Any] = {}
        if sleep is not None:
            extra["sleep"] = sleep
        super().__init__(
            base_url=settings.odds_api_base_url,
            timeout_s=settings.odds_api_timeout_s,
            retry_policy=RetryPolicy(
                max_attempts=settings.retry_max_attempts,
                base_delay_s=settings.retry_base_delay_s,
                max_delay_s=settings.retry_max_delay_s,
            ),
            usage_sink=usage_sink,
            transport=transport,
            **extra,
        )
        self.settings = settings

    def _billed_units(self, response: httpx.Response) -> tuple[int, bool]:
        billed = header_count(response.headers, "x-requests-last")
        if billed is None:
            return 0, False
        return billed, True

    def _units_remaining(self, response: httpx.Response) -> str:
        return response.headers.get("x-requests-remaining", "")

    def _classify(self, response: httpx.Response, *, endpoint: str) -> FetchOutcome:
        status = response.status_code
        remaining = self._units_remaining(response)
        if 200 <= status <= 299:
            try:
                payload = response.json()
            except (json.JSONDecodeError, ValueError) as exc:
                return FetchOutcome(
                    kind=OutcomeKind.TRANSIENT_ERROR,
                    status_code=status,
                    units_remaining=remaining,
                    error=f"invalid JSON from {endpoint}: {exc}",
                )
            data = payload.get("data") if isinstance(payload, dict) else payload
            if not isinstance(data, list) or not data:
                return FetchOutcome(
                    kind=OutcomeKind.NO_DATA,
                    payload=payload,
                    status_code=status,
                    units_remaining=remaining,
                )
            return FetchOutcome(
                kind=OutcomeKind.SUCCESS,
                payload=payload,
                status_code=status,
                units_remaining=remaining,
            )
        if status == 422:
            # Date outside the archive or nothing recorded for it.
            return FetchOutcome(
                kind=OutcomeKind.NO_DATA, status_code=status, units_remaining=remaining
            )
        body = response.text
        if status == 401 and OUT_OF_CREDITS_MARKER in body:
            return FetchOutcome(
                kind=OutcomeKind.QUOTA_EXHAUSTED,
                status_code=status,
                units_remaining=remaining,
                error="odds api reports the account is out of usage credits",
            )
        if status in {401, 403}:
            raise UpstreamAuthError(
                f"odds api rejected credentials: status={status} endpoint={endpoint}"
            )
        return FetchOutcome(
            kind=OutcomeKind.TRANSIENT_ERROR,
            status_code=status,
            units_remaining=remaining,
            error=f"{endpoint} failed with status {status}",
        )

    def historical_odds(
        self,
        *,
        sport_key: str,
        snapshot: str,
        ledger: BudgetLedger | None = None,
        reserved_units: int = 0,
    ) -> FetchOutcome:
        """Fetch the featured-markets snapshot nearest `snapshot` (ISO-Z)."""
        api_key = str(self.settings.odds_api_key).strip()
        if not api_key:
            raise UpstreamAuthError("missing Odds API key; set ODDS_API_KEY")
        params = {
            "apiKey": api_key,
            "regions": "us",
            "markets": HISTORICAL_MARKETS,
            "oddsFormat": "american",
            "dateFormat": "iso",
            "date": snapshot,
        }
        return self.fetch(
            f"/historical/sports/{sport_key}/odds",
            params=params,
            ledger=ledger,
            reserved_units=reserved_units,
        )
