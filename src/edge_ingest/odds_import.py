"""Historical odds import run: sports -> sampling dates -> metered fetch -> store."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from datetime import date

from edge_ingest.aggregate import aggregate_event, payload_events, snapshot_timestamp
from edge_ingest.budget import RunContext
from edge_ingest.errors import PersistenceError, QuotaExhaustedError
from edge_ingest.metering import FetchOutcome, OutcomeKind, redact_secrets
from edge_ingest.models import ImportLogEntry
from edge_ingest.odds_client import ESTIMATED_CREDITS_PER_REQUEST, OddsHistoryClient
from edge_ingest.sports import sample_interval, season_windows, sport_key
from edge_ingest.store import IdempotentStore
from edge_ingest.time_utils import noon_utc
from edge_ingest.windows import sample_dates

logger = logging.getLogger(__name__)

NO_GAMES_MESSAGE = "No games found for this date"


def planned_dates(sport: str, *, from_day: date, to_day: date) -> list[date]:
    return sample_dates(
        season_windows(sport),
        from_day=from_day,
        to_day=to_day,
        interval_days=sample_interval(sport),
    )


def _write_log(store: IdempotentStore, ctx: RunContext, entry: ImportLogEntry) -> None:
    if ctx.dry_run:
        return
    try:
        store.upsert_log(entry)
    except PersistenceError as exc:
        logger.error(
            "import log write failed source=%s window=%s error=%s",
            entry.source_key,
            entry.window_key,
            exc,
        )
        ctx.record_error(str(exc))


def _credits_used(outcome: FetchOutcome, reserved: int) -> int:
    return outcome.units_consumed if outcome.units_reported else reserved


def _import_events(
    store: IdempotentStore,
    ctx: RunContext,
    *,
    sport: str,
    window_key: str,
    outcome: FetchOutcome,
    reserved: int,
) -> None:
    events = payload_events(outcome.payload)
    snapshot_time = snapshot_timestamp(outcome.payload)
    imported = 0
    write_failures = 0
    for event in events:
        event_id = str(event.get("id", "") or "?")
        try:
            record = aggregate_event(event, sport=sport, snapshot_time=snapshot_time)
        except ValueError as exc:
            logger.error("odds record skipped sport=%s event=%s error=%s", sport, event_id, exc)
            ctx.record_error(f"{sport}:{window_key}:{event_id}: {exc}")
            continue
        if ctx.dry_run:
            logger.info(
                "dry-run %s @ %s ml=%s/%s spread=%s total=%s books=%s",
                record.away_team,
                record.home_team,
                record.consensus_home_ml,
                record.consensus_away_ml,
                record.consensus_spread,
                record.consensus_total,
                record.source_count,
            )
            imported += 1
            continue
        try:
            store.upsert_odds_record(record)
        except PersistenceError as exc:
            logger.error("odds record write failed event=%s error=%s", record.event_id, exc)
            ctx.record_error(str(exc))
            write_failures += 1
            continue
        imported += 1

    ctx.records_imported += imported
    logger.info(
        "imported sport=%s day=%s events=%s imported=%s snapshot=%s",
        sport,
        window_key,
        len(events),
        imported,
        snapshot_time or "-",
    )
    # A day with lost records stays retryable; event upserts overwrite by id.
    _write_log(
        store,
        ctx,
        ImportLogEntry(
            source_key=sport,
            window_key=window_key,
            status="error" if write_failures else "success",
            snapshot_time=snapshot_time,
            units_found=len(events),
            units_imported=imported,
            credits_used=_credits_used(outcome, reserved),
            error_message=(
                f"{write_failures} of {len(events)} record writes failed"
                if write_failures
                else None
            ),
        ),
    )


def run_odds_import(
    *,
    store: IdempotentStore,
    client: OddsHistoryClient,
    ctx: RunContext,
    sports: Sequence[str],
    from_day: date,
    to_day: date,
    delay_s: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
    credits_per_request: int = ESTIMATED_CREDITS_PER_REQUEST,
) -> RunContext:
    """Import one snapshot per sampling date for each sport, in caller order.

    Stops early when the ledger cannot cover the next request, recording
    `sport:YYYY-MM-DD` of the first unprocessed date as the resume point.
    Raises `QuotaExhaustedError` when the upstream reports the account is
    out of credits; `UpstreamAuthError` propagates from the client.
    """
    fetched_any = False
    for sport in sports:
        try:
            upstream_key = sport_key(sport)
        except ValueError as exc:
            logger.error("%s", exc)
            ctx.record_error(str(exc))
            continue

        dates = planned_dates(sport, from_day=from_day, to_day=to_day)
        logger.info(
            "plan sport=%s dates=%s interval_days=%s estimated_max_credits=%s",
            sport,
            len(dates),
            sample_interval(sport),
            len(dates) * credits_per_request,
        )

        for index, day in enumerate(dates, start=1):
            window_key = day.isoformat()
            # Imported days cost nothing, so they never become the resume point.
            if store.has_succeeded(sport, window_key):
                logger.info("skip sport=%s day=%s already imported", sport, window_key)
                ctx.skipped += 1
                continue

            if not ctx.ledger.can_afford(credits_per_request):
                ctx.stop("budget_exhausted", resume_point=f"{sport}:{window_key}")
                logger.warning(
                    "credit limit reached consumed=%s max=%s; next unit %s:%s",
                    ctx.ledger.consumed_units,
                    ctx.ledger.max_units,
                    sport,
                    window_key,
                )
                return ctx

            if fetched_any and delay_s > 0:
                sleep(delay_s)
            ctx.ledger.reserve(credits_per_request)
            logger.info("[%s/%s] fetch sport=%s day=%s", index, len(dates), sport, window_key)
            outcome = client.historical_odds(
                sport_key=upstream_key,
                snapshot=noon_utc(day),
                ledger=ctx.ledger,
                reserved_units=credits_per_request,
            )
            fetched_any = True
            ctx.units_processed += 1

            if outcome.kind == OutcomeKind.SUCCESS:
                _import_events(
                    store,
                    ctx,
                    sport=sport,
                    window_key=window_key,
                    outcome=outcome,
                    reserved=credits_per_request,
                )
            elif outcome.kind == OutcomeKind.NO_DATA:
                logger.info("no data sport=%s day=%s", sport, window_key)
                ctx.skipped += 1
                _write_log(
                    store,
                    ctx,
                    ImportLogEntry(
                        source_key=sport,
                        window_key=window_key,
                        status="skipped",
                        credits_used=_credits_used(outcome, credits_per_request),
                        error_message=NO_GAMES_MESSAGE,
                    ),
                )
            elif outcome.kind == OutcomeKind.QUOTA_EXHAUSTED:
                ctx.stop("quota_exhausted", resume_point=f"{sport}:{window_key}")
                raise QuotaExhaustedError(outcome.error or "upstream quota exhausted")
            else:
                message = redact_secrets(outcome.error or str(outcome.kind))
                logger.warning("fetch failed sport=%s day=%s error=%s", sport, window_key, message)
                ctx.record_error(f"{sport}:{window_key}: {message}")
                _write_log(
                    store,
                    ctx,
                    ImportLogEntry(
                        source_key=sport,
                        window_key=window_key,
                        status="error",
                        credits_used=_credits_used(outcome, credits_per_request),
                        error_message=message,
                    ),
                )
    return ctx
