"""Social post ingestion: tracked sources -> timelines -> pick extraction -> store."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from edge_ingest.aliases import DEFAULT_ALIAS_TABLE, AliasTable
from edge_ingest.budget import RunContext
from edge_ingest.errors import PersistenceError, QuotaExhaustedError
from edge_ingest.extract import extract_pick
from edge_ingest.metering import FetchOutcome, OutcomeKind
from edge_ingest.models import ParsedPickCandidate, RawPost, TrackedSource, normalize_handle
from edge_ingest.social_client import (
    UNITS_PER_CALL,
    SocialClient,
    SocialPost,
    lookup_user_id,
    parse_authors,
    parse_timeline,
)
from edge_ingest.store import IdempotentStore
from edge_ingest.time_utils import utc_now_str

logger = logging.getLogger(__name__)


def post_url(handle: str, post_id: str) -> str:
    return f"https://x.com/{handle}/status/{post_id}"


def priority_order(sources: list[TrackedSource]) -> list[TrackedSource]:
    """Cached-identity sources first, then never scraped, then least recently scraped."""
    return sorted(
        sources,
        key=lambda item: (
            item.cached_external_id is None,
            item.last_scraped_at is not None,
            item.last_scraped_at or "",
            item.handle,
        ),
    )


@dataclass
class _Pacer:
    """Fixed politeness gap between successive upstream calls."""

    delay_s: float
    sleep: Callable[[float], None]
    _called: bool = False

    def before_call(self) -> None:
        if self._called and self.delay_s > 0:
            self.sleep(self.delay_s)
        self._called = True


def _save_source(store: IdempotentStore, ctx: RunContext, source: TrackedSource) -> None:
    if ctx.dry_run:
        return
    try:
        store.upsert_tracked_source(source)
    except PersistenceError as exc:
        logger.error("tracked source write failed handle=%s error=%s", source.handle, exc)
        ctx.record_error(str(exc))


def _metered_call(
    ctx: RunContext,
    pacer: _Pacer,
    *,
    resume_point: str,
    call: Callable[..., FetchOutcome],
    **kwargs,
) -> FetchOutcome | None:
    """Reserve one call unit and issue `call`; None when the budget is spent."""
    if not ctx.ledger.can_afford(UNITS_PER_CALL):
        ctx.stop("budget_exhausted", resume_point=resume_point)
        logger.warning(
            "call budget reached consumed=%s max=%s; next source %s",
            ctx.ledger.consumed_units,
            ctx.ledger.max_units,
            resume_point,
        )
        return None
    pacer.before_call()
    ctx.ledger.reserve(UNITS_PER_CALL)
    outcome = call(ledger=ctx.ledger, reserved_units=UNITS_PER_CALL, **kwargs)
    if outcome.kind == OutcomeKind.QUOTA_EXHAUSTED:
        ctx.stop("quota_exhausted", resume_point=resume_point)
        raise QuotaExhaustedError(outcome.error or "upstream quota exhausted")
    return outcome


def _resolve_identity(
    store: IdempotentStore,
    client: SocialClient,
    ctx: RunContext,
    pacer: _Pacer,
    source: TrackedSource,
) -> str | None:
    if source.cached_external_id:
        return source.cached_external_id
    outcome = _metered_call(
        ctx,
        pacer,
        resume_point=f"@{source.handle}",
        call=client.lookup_user,
        handle=source.handle,
    )
    if outcome is None:
        return None
    user_id = lookup_user_id(outcome)
    if user_id is None:
        if outcome.kind == OutcomeKind.NO_DATA:
            logger.warning("no account found handle=%s", source.handle)
        else:
            logger.warning(
                "identity lookup failed handle=%s error=%s", source.handle, outcome.error
            )
        ctx.record_error(f"@{source.handle}: identity lookup {outcome.kind}")
        return None
    source.cached_external_id = user_id
    _save_source(store, ctx, source)
    logger.info("cached identity handle=%s id=%s", source.handle, user_id)
    return user_id


def _store_posts(
    store: IdempotentStore,
    ctx: RunContext,
    source: TrackedSource,
    outcome: FetchOutcome,
    alias_table: AliasTable,
) -> tuple[str | None, int, int]:
    posts, newest_id = parse_timeline(outcome.payload)
    stored = 0
    picks = 0
    failed = 0
    for item in posts:
        if store.has_raw_post(item.post_id):
            continue
        parsed = extract_pick(item.text, alias_table, is_repost=item.is_repost)
        post = RawPost(
            post_id=item.post_id,
            source_handle=source.handle,
            source_external_id=source.cached_external_id,
            text=item.text,
            url=post_url(source.handle, item.post_id),
            created_at=item.created_at,
            engagement=item.engagement,
            parsed_pick=parsed,
        )
        if parsed is not None:
            logger.info(
                "pick handle=%s post=%s subject=%s kind=%s tier=%s",
                source.handle,
                item.post_id,
                parsed.subject_entity,
                parsed.pick_kind,
                parsed.confidence_tier,
            )
        if ctx.dry_run:
            stored += 1
            picks += int(parsed is not None)
            continue
        try:
            inserted = store.upsert_raw_post(post)
        except PersistenceError as exc:
            logger.error("raw post write failed post=%s error=%s", item.post_id, exc)
            ctx.record_error(str(exc))
            failed += 1
            continue
        if inserted:
            stored += 1
            picks += int(parsed is not None)
    if failed:
        # Keep the old cursor so the next run refetches the lost posts.
        logger.warning("cursor kept handle=%s failed_posts=%s", source.handle, failed)
        return None, stored, picks
    return newest_id, stored, picks


def run_social_ingest(
    *,
    store: IdempotentStore,
    client: SocialClient,
    ctx: RunContext,
    batch_size: int = 5,
    posts_per_source: int = 50,
    delay_s: float = 2.0,
    sleep: Callable[[float], None] = time.sleep,
    alias_table: AliasTable = DEFAULT_ALIAS_TABLE,
    handle: str | None = None,
) -> RunContext:
    """Pull new posts for up to `batch_size` active sources in priority order.

    Each upstream call (identity lookup or timeline page) costs one unit of
    `ctx.ledger`. Raises `QuotaExhaustedError` when the usage cap is hit.
    """
    sources = priority_order(store.tracked_sources(active_only=True))
    if handle:
        wanted = normalize_handle(handle)
        sources = [item for item in sources if item.handle == wanted]
        if not sources:
            raise ValueError(f"no active tracked source: @{wanted}")
    batch = sources[: max(0, batch_size)]
    deferred = len(sources) - len(batch)
    logger.info("social batch sources=%s deferred=%s", len(batch), deferred)

    pacer = _Pacer(delay_s=delay_s, sleep=sleep)
    for source in batch:
        if ctx.stopped_early:
            break
        user_id = _resolve_identity(store, client, ctx, pacer, source)
        if user_id is None:
            continue
        outcome = _metered_call(
            ctx,
            pacer,
            resume_point=f"@{source.handle}",
            call=client.user_posts,
            user_id=user_id,
            since_id=source.last_post_id,
            max_results=posts_per_source,
        )
        if outcome is None:
            break
        ctx.units_processed += 1

        if outcome.kind == OutcomeKind.SUCCESS:
            newest_id, stored, picks = _store_posts(store, ctx, source, outcome, alias_table)
            ctx.records_imported += stored
            if newest_id:
                source.last_post_id = newest_id
            source.last_scraped_at = utc_now_str()
            _save_source(store, ctx, source)
            logger.info("scraped handle=%s new_posts=%s picks=%s", source.handle, stored, picks)
        elif outcome.kind == OutcomeKind.NO_DATA:
            ctx.skipped += 1
            source.last_scraped_at = utc_now_str()
            _save_source(store, ctx, source)
            logger.info("no new posts handle=%s", source.handle)
        else:
            logger.warning("timeline fetch failed handle=%s error=%s", source.handle, outcome.error)
            ctx.record_error(f"@{source.handle}: {outcome.error or outcome.kind}")
    return ctx


def run_social_resolve(
    *,
    store: IdempotentStore,
    client: SocialClient,
    ctx: RunContext,
    batch_size: int = 5,
    delay_s: float = 5.0,
    sleep: Callable[[float], None] = time.sleep,
) -> RunContext:
    """Backfill missing account ids in small batches; stop at the first rate limit."""
    missing = [
        item
        for item in priority_order(store.tracked_sources(active_only=True))
        if not item.cached_external_id
    ]
    batch = missing[: max(0, batch_size)]
    logger.info("resolve batch=%s missing=%s", len(batch), len(missing))
    pacer = _Pacer(delay_s=delay_s, sleep=sleep)
    for source in batch:
        outcome = _metered_call(
            ctx,
            pacer,
            resume_point=f"@{source.handle}",
            call=client.lookup_user,
            handle=source.handle,
        )
        if outcome is None:
            break
        ctx.units_processed += 1
        user_id = lookup_user_id(outcome)
        if user_id is not None:
            source.cached_external_id = user_id
            _save_source(store, ctx, source)
            ctx.records_imported += 1
            logger.info("cached identity handle=%s id=%s", source.handle, user_id)
            continue
        if outcome.status_code == 429:
            ctx.stop("rate_limited", resume_point=f"@{source.handle}")
            logger.warning("rate limited; stopping batch at handle=%s", source.handle)
            break
        if outcome.kind == OutcomeKind.NO_DATA:
            logger.warning("no account found handle=%s", source.handle)
        ctx.record_error(f"@{source.handle}: identity lookup {outcome.error or outcome.kind}")
    return ctx


@dataclass(frozen=True)
class SearchHit:
    post: SocialPost
    author: str
    pick: ParsedPickCandidate | None


def run_social_search(
    *,
    client: SocialClient,
    ctx: RunContext,
    query: str,
    max_results: int = 100,
    alias_table: AliasTable = DEFAULT_ALIAS_TABLE,
) -> list[SearchHit]:
    """Search recent posts once and parse each hit; nothing is stored."""
    query = query.strip()
    if not query:
        raise ValueError("search query is empty")
    outcome = _metered_call(
        ctx,
        _Pacer(delay_s=0, sleep=time.sleep),
        resume_point=f"search:{query}",
        call=client.search_posts,
        query=query,
        max_results=max_results,
    )
    if outcome is None:
        return []
    ctx.units_processed += 1
    if outcome.kind == OutcomeKind.NO_DATA:
        ctx.skipped += 1
        logger.info("no posts matched query=%r", query)
        return []
    if outcome.kind != OutcomeKind.SUCCESS:
        logger.warning("search failed query=%r error=%s", query, outcome.error)
        ctx.record_error(f"search {query!r}: {outcome.error or outcome.kind}")
        return []

    posts, _ = parse_timeline(outcome.payload)
    authors = parse_authors(outcome.payload)
    hits = [
        SearchHit(
            post=post,
            author=authors.get(post.author_id, post.author_id),
            pick=extract_pick(post.text, alias_table, is_repost=post.is_repost),
        )
        for post in posts
    ]
    ctx.records_imported += len(hits)
    logger.info(
        "search query=%r posts=%s picks=%s",
        query,
        len(hits),
        sum(1 for hit in hits if hit.pick is not None),
    )
    return hits
