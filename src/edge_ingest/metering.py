"""Metered upstream calls: outcome classification, bounded retry, and unit accounting."""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from enum import StrEnum
from typing import Any

import httpx
from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt

from edge_ingest.budget import BudgetLedger

logger = logging.getLogger(__name__)

UsageSink = Callable[..., None]


class OutcomeKind(StrEnum):
    SUCCESS = "success"
    NO_DATA = "no_data"
    RATE_LIMITED = "rate_limited"
    QUOTA_EXHAUSTED = "quota_exhausted"
    TRANSIENT_ERROR = "transient_error"


@dataclass(frozen=True)
class FetchOutcome:
    """Classified result of one metered call (after any rate-limit retries).

    `units_reported` is False when the upstream did not say what it billed;
    the reservation then stands as the best estimate.
    """

    kind: OutcomeKind
    payload: Any = None
    units_consumed: int = 0
    units_reported: bool = False
    units_remaining: str = ""
    status_code: int | None = None
    retry_count: int = 0
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.kind == OutcomeKind.SUCCESS


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff for rate-limited calls."""

    max_attempts: int = 4
    base_delay_s: float = 60.0
    max_delay_s: float = 600.0

    def delay_for(self, attempt_number: int, retry_after_s: float | None = None) -> float:
        if retry_after_s is not None:
            return min(max(0.0, retry_after_s), self.max_delay_s)
        return min(self.base_delay_s * (2 ** max(0, attempt_number - 1)), self.max_delay_s)


class RateLimited(RuntimeError):
    """One attempt hit the upstream rate limit."""

    def __init__(self, response: httpx.Response) -> None:
        self.response = response
        super().__init__(f"rate limited status {response.status_code}")

    def retry_after_seconds(self) -> float | None:
        raw_value = self.response.headers.get("Retry-After")
        if not raw_value:
            return None
        try:
            return max(0.0, float(raw_value))
        except ValueError:
            try:
                date_value = parsedate_to_datetime(raw_value)
            except (TypeError, ValueError):
                return None
            return max(0.0, (date_value - datetime.now(UTC)).total_seconds())


def redact_secrets(raw_message: str) -> str:
    """Strip API keys and bearer tokens from text bound for logs or the store."""
    message = re.sub(r"([?&](?:apiKey|api_key)=)[^&\s'\"]+", r"\1REDACTED", str(raw_message))
    return re.sub(r"(Bearer\s+)[A-Za-z0-9%._~+/=-]+", r"\1REDACTED", message)


def settle_outcome(ledger: BudgetLedger, reserved: int, outcome: FetchOutcome) -> None:
    """Replace a reservation with what the upstream billed for this call."""
    actual = outcome.units_consumed if outcome.units_reported else reserved
    ledger.settle(reserved, actual)


class MeteredClient:
    """Shared httpx plumbing for the metered upstream clients.

    Subclasses implement `_classify`, which maps one HTTP response to an
    outcome (or raises `RateLimited` / `UpstreamAuthError`), and
    `_billed_units`, which reads what the upstream charged for it.
    """

    upstream = "upstream"

    def __init__(
        self,
        *,
        base_url: str,
        timeout_s: float,
        retry_policy: RetryPolicy | None = None,
        usage_sink: UsageSink | None = None,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
        headers: dict[str, str] | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self.retry_policy = retry_policy or RetryPolicy()
        self.usage_sink = usage_sink
        self._sleep = sleep
        limits = httpx.Limits(max_connections=4, max_keepalive_connections=2)
        self._http = httpx.Client(
            timeout=timeout_s,
            limits=limits,
            transport=transport,
            headers=headers,
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _classify(self, response: httpx.Response, *, endpoint: str) -> FetchOutcome:
        raise NotImplementedError

    def _billed_units(self, response: httpx.Response) -> tuple[int, bool]:
        raise NotImplementedError

    def _units_remaining(self, response: httpx.Response) -> str:
        return ""

    def _is_quota_body(self, response: httpx.Response) -> bool:
        """Whether a 429 body means the quota is spent rather than a burst limit."""
        return False

    def _wait(self, retry_state: RetryCallState) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        retry_after = exc.retry_after_seconds() if isinstance(exc, RateLimited) else None
        return self.retry_policy.delay_for(retry_state.attempt_number, retry_after)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            "rate limited upstream=%s attempt=%s/%s sleeping=%.1fs",
            self.upstream,
            retry_state.attempt_number,
            self.retry_policy.max_attempts,
            delay,
        )

    def _record_usage(self, endpoint: str, outcome: FetchOutcome) -> None:
        if self.usage_sink is None:
            return
        self.usage_sink(
            upstream=self.upstream,
            endpoint=endpoint,
            status_code=outcome.status_code or 0,
            units=outcome.units_consumed,
            units_remaining=outcome.units_remaining,
            retry_count=outcome.retry_count,
            outcome=str(outcome.kind),
        )

    def fetch(
        self,
        endpoint: str,
        *,
        params: dict[str, Any] | None = None,
        ledger: BudgetLedger | None = None,
        reserved_units: int = 0,
    ) -> FetchOutcome:
        """Issue one GET, retrying only rate limits, and settle units with `ledger`.

        `UpstreamAuthError` propagates; every other failure becomes an outcome.
        """
        url = f"{self._base_url}/{endpoint.lstrip('/')}"
        billed = 0
        reported = False
        retries = 0
        outcome: FetchOutcome | None = None
        try:
            for attempt in Retrying(
                stop=stop_after_attempt(max(1, self.retry_policy.max_attempts)),
                retry=retry_if_exception_type(RateLimited),
                wait=self._wait,
                sleep=self._sleep,
                before_sleep=self._log_retry,
                reraise=True,
            ):
                with attempt:
                    retries = attempt.retry_state.attempt_number - 1
                    try:
                        response = self._http.get(url, params=params)
                    except httpx.HTTPError as exc:
                        outcome = FetchOutcome(
                            kind=OutcomeKind.TRANSIENT_ERROR,
                            error=redact_secrets(f"transport error: {exc}"),
                        )
                    else:
                        units, has_units = self._billed_units(response)
                        billed += units
                        reported = reported or has_units
                        if response.status_code == 429 and not self._is_quota_body(response):
                            raise RateLimited(response)
                        outcome = self._classify(response, endpoint=endpoint)
        except RateLimited as exc:
            outcome = FetchOutcome(
                kind=OutcomeKind.TRANSIENT_ERROR,
                status_code=exc.response.status_code,
                units_remaining=self._units_remaining(exc.response),
                error=f"rate limited after {self.retry_policy.max_attempts} attempts",
            )
        if outcome is None:
            raise RuntimeError(f"{endpoint} finished without an outcome")
        outcome = FetchOutcome(
            kind=outcome.kind,
            payload=outcome.payload,
            units_consumed=billed,
            units_reported=reported,
            units_remaining=outcome.units_remaining,
            status_code=outcome.status_code,
            retry_count=retries,
            error=outcome.error,
        )
        if ledger is not None:
            settle_outcome(ledger, reserved_units, outcome)
        self._record_usage(endpoint, outcome)
        return outcome
