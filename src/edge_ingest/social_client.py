"""Metered client for the X API v2 endpoints used by social ingest."""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import httpx

from edge_ingest.budget import BudgetLedger
from edge_ingest.errors import UpstreamAuthError
from edge_ingest.metering import FetchOutcome, MeteredClient, OutcomeKind, RetryPolicy, UsageSink
from edge_ingest.settings import Settings
from edge_ingest.util.parsing import count

USAGE_CAP_MARKER = "UsageCapExceeded"
UNITS_PER_CALL = 1
TIMELINE_FIELDS = "created_at,public_metrics,referenced_tweets"
SEARCH_FIELDS = f"{TIMELINE_FIELDS},author_id"
REPOST_REFERENCE_TYPES = frozenset({"retweeted", "quoted"})


@dataclass(frozen=True)
class SocialPost:
    """One timeline entry as returned upstream."""

    post_id: str
    text: str
    created_at: str = ""
    engagement: dict[str, int] = field(default_factory=dict)
    is_repost: bool = False
    author_id: str = ""


def parse_timeline(payload: Any) -> tuple[list[SocialPost], str | None]:
    """Posts of one timeline page plus `meta.newest_id`."""
    if not isinstance(payload, dict):
        return [], None
    posts: list[SocialPost] = []
    for item in payload.get("data") or []:
        if not isinstance(item, dict) or not str(item.get("id", "")).strip():
            continue
        metrics = item.get("public_metrics") or {}
        references = item.get("referenced_tweets") or []
        posts.append(
            SocialPost(
                post_id=str(item["id"]).strip(),
                text=str(item.get("text", "")),
                created_at=str(item.get("created_at", "") or ""),
                engagement={
                    "likes": count(metrics.get("like_count")),
                    "reposts": count(metrics.get("retweet_count")),
                    "replies": count(metrics.get("reply_count")),
                    "quotes": count(metrics.get("quote_count")),
                },
                is_repost=any(
                    isinstance(ref, dict) and ref.get("type") in REPOST_REFERENCE_TYPES
                    for ref in references
                ),
                author_id=str(item.get("author_id", "") or ""),
            )
        )
    meta = payload.get("meta") or {}
    newest = str(meta.get("newest_id", "") or "").strip() if isinstance(meta, dict) else ""
    return posts, newest or None


class SocialClient(MeteredClient):
    """X API v2 client; every call costs one unit of the shared call budget."""

    upstream = "x_api"

    def __init__(
        self,
        settings: Settings,
        *,
        usage_sink: UsageSink | None = None,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        token = settings.x_bearer_token.strip()
        if not token:
            raise UpstreamAuthError(
                "missing X bearer token; set X_BEARER_TOKEN or TWITTER_BEARER_TOKEN"
            )
        extra: dict[str, Any] = {}
        if sleep is not None:
            extra["sleep"] = sleep
        super().__init__(
            base_url=settings.x_api_base_url,
            timeout_s=settings.x_api_timeout_s,
            retry_policy=RetryPolicy(
                max_attempts=settings.retry_max_attempts,
                base_delay_s=settings.retry_base_delay_s,
                max_delay_s=settings.retry_max_delay_s,
            ),
            usage_sink=usage_sink,
            transport=transport,
            headers={"Authorization": f"Bearer {token}"},
            **extra,
        )

    def _billed_units(self, response: httpx.Response) -> tuple[int, bool]:
        return UNITS_PER_CALL, True

    def _units_remaining(self, response: httpx.Response) -> str:
        return response.headers.get("x-rate-limit-remaining", "")

    def _is_quota_body(self, response: httpx.Response) -> bool:
        return USAGE_CAP_MARKER in response.text

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
            if not isinstance(payload, dict) or payload.get("data") is None:
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
        if status in {403, 429} and self._is_quota_body(response):
            return FetchOutcome(
                kind=OutcomeKind.QUOTA_EXHAUSTED,
                status_code=status,
                units_remaining=remaining,
                error="x api usage cap exceeded",
            )
        if status == 401:
            raise UpstreamAuthError(f"x api rejected bearer token: endpoint={endpoint}")
        return FetchOutcome(
            kind=OutcomeKind.TRANSIENT_ERROR,
            status_code=status,
            units_remaining=remaining,
            error=f"{endpoint} failed with status {status}",
        )

    def lookup_user(
        self,
        handle: str,
        *,
        ledger: BudgetLedger | None = None,
        reserved_units: int = UNITS_PER_CALL,
    ) -> FetchOutcome:
        """Resolve `handle` to the numeric account id (payload `data.id`)."""
        return self.fetch(
            f"/users/by/username/{handle}",
            ledger=ledger,
            reserved_units=reserved_units,
        )

    def user_posts(
        self,
        user_id: str,
        *,
        since_id: str | None = None,
        max_results: int = 50,
        ledger: BudgetLedger | None = None,
        reserved_units: int = UNITS_PER_CALL,
    ) -> FetchOutcome:
        """One page of original posts newer than `since_id`."""
        params: dict[str, Any] = {
            "tweet.fields": TIMELINE_FIELDS,
            "exclude": "retweets,replies",
            # Upstream accepts 5..100.
            "max_results": max(5, min(100, int(max_results))),
        }
        if since_id:
            params["since_id"] = since_id
        return self.fetch(
            f"/users/{user_id}/tweets",
            params=params,
            ledger=ledger,
            reserved_units=reserved_units,
        )

    def search_posts(
        self,
        query: str,
        *,
        max_results: int = 100,
        ledger: BudgetLedger | None = None,
        reserved_units: int = UNITS_PER_CALL,
    ) -> FetchOutcome:
        """One page of recent posts matching `query`, with author usernames expanded."""
        params: dict[str, Any] = {
            "query": query,
            "tweet.fields": SEARCH_FIELDS,
            "expansions": "author_id",
            "user.fields": "username,name",
            # Recent search accepts 10..100.
            "max_results": max(10, min(100, int(max_results))),
        }
        return self.fetch(
            "/tweets/search/recent",
            params=params,
            ledger=ledger,
            reserved_units=reserved_units,
        )


def lookup_user_id(outcome: FetchOutcome) -> str | None:
    if not outcome.ok or not isinstance(outcome.payload, dict):
        return None
    data = outcome.payload.get("data")
    if not isinstance(data, dict):
        return None
    value = str(data.get("id", "") or "").strip()
    return value or None


def parse_authors(payload: Any) -> dict[str, str]:
    """`includes.users` of a search page as account id -> username."""
    if not isinstance(payload, dict):
        return {}
    includes = payload.get("includes") or {}
    users = includes.get("users") if isinstance(includes, dict) else None
    authors: dict[str, str] = {}
    for user in users or []:
        if isinstance(user, dict) and user.get("id") and user.get("username"):
            authors[str(user["id"])] = str(user["username"])
    return authors
