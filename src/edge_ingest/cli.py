"""CLI entrypoint for edge-ingest."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from collections import Counter
from datetime import date
from pathlib import Path
from typing import Any

from edge_ingest.budget import BudgetLedger, RunContext, current_month_utc, read_usage
from edge_ingest.cli_parser import build_parser
from edge_ingest.errors import (
    CLIError,
    PersistenceError,
    QuotaExhaustedError,
    StoreNotBootstrapped,
    UpstreamAuthError,
)
from edge_ingest.export import export_odds_records
from edge_ingest.models import TrackedSource, normalize_handle
from edge_ingest.odds_client import OddsHistoryClient
from edge_ingest.odds_import import run_odds_import
from edge_ingest.runtime_config import (
    DEFAULT_CONFIG_PATH,
    RuntimeConfig,
    current_runtime_config,
    default_runtime_config,
    load_runtime_config,
    set_current_runtime_config,
)
from edge_ingest.settings import Settings
from edge_ingest.social_client import UNITS_PER_CALL, SocialClient
from edge_ingest.social_ingest import (
    priority_order,
    run_social_ingest,
    run_social_resolve,
    run_social_search,
)
from edge_ingest.sports import parse_sports, sport_key
from edge_ingest.store import IdempotentStore
from edge_ingest.time_utils import parse_day, utc_today

logger = logging.getLogger("edge_ingest")

EXIT_OK = 0
EXIT_INCOMPLETE = 2
EXIT_FATAL = 3
EXIT_INTERRUPTED = 130

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _configure_logging(level_name: str) -> None:
    level = getattr(logging, level_name.upper(), logging.INFO)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    else:
        for handler in logger.handlers:
            if isinstance(handler, logging.StreamHandler):
                handler.setStream(sys.stderr)
    logger.setLevel(level)


def _store() -> IdempotentStore:
    return IdempotentStore(current_runtime_config().data_dir)


def _prepare_store(store: IdempotentStore, *, dry_run: bool, create_tables: bool) -> None:
    if dry_run:
        return
    if create_tables:
        store.bootstrap()
        return
    if not store.is_bootstrapped():
        raise StoreNotBootstrapped(
            f"store at {store.root} has no tables; rerun with --create-tables"
        )


def _print_summary(title: str, ctx: RunContext) -> None:
    summary = ctx.summary()
    print(f"{title} summary")
    for key in (
        "units_processed",
        "records_imported",
        "skipped",
        "units_consumed",
        "max_units",
        "errors",
        "dry_run",
    ):
        print(f"  {key}={summary[key]}")
    if ctx.stopped_early:
        print(f"  stopped={summary['stop_reason']} resume_point={summary['resume_point']}")
    for message in ctx.errors[:20]:
        print(f"  error: {message}")
    if len(ctx.errors) > 20:
        print(f"  ... {len(ctx.errors) - 20} more errors")


def _exit_code(ctx: RunContext) -> int:
    if ctx.stopped_early or ctx.errors:
        return EXIT_INCOMPLETE
    return EXIT_OK


def _resume_hints(
    sports: list[str], resume_point: str, *, from_day: date, to_day: date
) -> list[str]:
    """Commands that finish an interrupted import without dropping dates.

    Only the stopped sport starts at the resume day; later sports keep the
    original `--from`. Rerunning the original command also works, since
    imported days are skipped.
    """
    sport, _, day = resume_point.partition(":")
    if sport not in sports:
        return [f"resume with: --sports {','.join(sports)} --from {from_day} --to {to_day}"]
    hints = [f"resume with: --sports {sport} --from {day} --to {to_day}"]
    later = sports[sports.index(sport) + 1 :]
    if later:
        hints.append(f"then: --sports {','.join(later)} --from {from_day} --to {to_day}")
    return hints


def _cmd_odds_import(args: argparse.Namespace) -> int:
    sports = parse_sports(args.sports)
    for sport in sports:
        try:
            sport_key(sport)
        except ValueError as exc:
            raise CLIError(str(exc)) from exc
    try:
        from_day = parse_day(args.from_day)
        to_day = parse_day(args.to_day) if args.to_day else utc_today()
    except ValueError as exc:
        raise CLIError(str(exc)) from exc
    if from_day > to_day:
        raise CLIError(f"--from {from_day} is after --to {to_day}")

    store = _store()
    _prepare_store(store, dry_run=args.dry_run, create_tables=args.create_tables)
    settings = Settings.from_runtime()
    ctx = RunContext(ledger=BudgetLedger(args.max_credits), dry_run=args.dry_run)
    logger.info(
        "odds import sports=%s range=%s..%s max_credits=%s dry_run=%s",
        ",".join(sports),
        from_day,
        to_day,
        args.max_credits,
        args.dry_run,
    )
    usage_sink = None if args.dry_run else store.append_usage
    with OddsHistoryClient(settings, usage_sink=usage_sink) as client:
        try:
            run_odds_import(
                store=store,
                client=client,
                ctx=ctx,
                sports=sports,
                from_day=from_day,
                to_day=to_day,
                delay_s=args.delay,
                sleep=time.sleep,
            )
        finally:
            _print_summary("odds import", ctx)
    if ctx.stopped_early and ctx.resume_point:
        for line in _resume_hints(sports, ctx.resume_point, from_day=from_day, to_day=to_day):
            print(line)
    return _exit_code(ctx)


def _cmd_odds_status(args: argparse.Namespace) -> int:
    store = _store()
    entries = store.log_entries(args.sport or None)
    if args.status:
        entries = [entry for entry in entries if entry.status == args.status]
    entries.sort(key=lambda entry: (entry.source_key, entry.window_key))
    if args.json:
        print(json.dumps([entry.to_row() for entry in entries], sort_keys=True, indent=2))
        return 0
    counts: Counter[str] = Counter()
    for entry in entries:
        counts[f"{entry.source_key}:{entry.status}"] += 1
        line = (
            f"sport={entry.source_key} day={entry.window_key} status={entry.status} "
            f"found={entry.units_found} imported={entry.units_imported} "
            f"credits={entry.credits_used}"
        )
        if entry.error_message:
            line += f" error={entry.error_message}"
        print(line)
    for key, count in sorted(counts.items()):
        print(f"total {key}={count}")
    if not entries:
        print("no import log rows")
    return 0


def _cmd_odds_export(args: argparse.Namespace) -> int:
    store = _store()
    result = export_odds_records(
        store,
        out_path=Path(args.out).expanduser(),
        fmt=args.fmt,
        sport=args.sport or None,
    )
    print(f"rows={result['rows']} format={result['format']} path={result['path']}")
    return 0


def _cmd_social_sources_add(args: argparse.Namespace) -> int:
    if args.name and len(args.handles) > 1:
        raise CLIError("--name applies to a single handle")
    store = _store()
    store.bootstrap()
    for raw in args.handles:
        handle = normalize_handle(raw)
        if not handle:
            raise CLIError(f"invalid handle: {raw!r}")
        source = store.get_tracked_source(handle) or TrackedSource(handle=handle)
        if args.name:
            source.display_name = args.name
        if args.domain:
            source.domain = args.domain.lower()
        source.active = not args.inactive
        store.upsert_tracked_source(source)
        print(f"tracked handle={source.handle} active={source.active}")
    return 0


def _cmd_social_sources_ls(args: argparse.Namespace) -> int:
    store = _store()
    sources = priority_order(store.tracked_sources(active_only=not args.all))
    for source in sources:
        print(
            f"handle={source.handle} id={source.cached_external_id or '-'} "
            f"last_scraped={source.last_scraped_at or '-'} "
            f"last_post={source.last_post_id or '-'} active={source.active}"
        )
    cached = sum(1 for source in sources if source.cached_external_id)
    print(f"sources={len(sources)} cached_ids={cached}")
    return 0


def _cmd_social_resolve(args: argparse.Namespace) -> int:
    store = _store()
    _prepare_store(store, dry_run=args.dry_run, create_tables=False)
    settings = Settings.from_runtime()
    ctx = RunContext(ledger=BudgetLedger(args.batch), dry_run=args.dry_run)
    usage_sink = None if args.dry_run else store.append_usage
    # Resolution stops at the first rate limit instead of backing off.
    settings = settings.model_copy(update={"retry_max_attempts": 1})
    with SocialClient(settings, usage_sink=usage_sink) as client:
        try:
            run_social_resolve(
                store=store,
                client=client,
                ctx=ctx,
                batch_size=args.batch,
                delay_s=args.delay,
                sleep=time.sleep,
            )
        finally:
            _print_summary("social resolve", ctx)
    return _exit_code(ctx)


def _cmd_social_ingest(args: argparse.Namespace) -> int:
    store = _store()
    _prepare_store(store, dry_run=args.dry_run, create_tables=args.create_tables)
    settings = Settings.from_runtime()
    ctx = RunContext(ledger=BudgetLedger(args.max_calls), dry_run=args.dry_run)
    usage_sink = None if args.dry_run else store.append_usage
    with SocialClient(settings, usage_sink=usage_sink) as client:
        try:
            run_social_ingest(
                store=store,
                client=client,
                ctx=ctx,
                batch_size=args.batch,
                posts_per_source=args.posts_per_source,
                delay_s=args.delay,
                sleep=time.sleep,
                handle=args.handle or None,
            )
        finally:
            _print_summary("social ingest", ctx)
    return _exit_code(ctx)


def _cmd_social_search(args: argparse.Namespace) -> int:
    store = _store()
    settings = Settings.from_runtime()
    ctx = RunContext(ledger=BudgetLedger(UNITS_PER_CALL))
    with SocialClient(settings, usage_sink=store.append_usage) as client:
        try:
            hits = run_social_search(
                client=client,
                ctx=ctx,
                query=args.query,
                max_results=args.max_results,
            )
        except ValueError as exc:
            raise CLIError(str(exc)) from exc
    picks = 0
    for hit in hits:
        if hit.pick is None:
            if not args.picks_only:
                print(f"post={hit.post.post_id} author=@{hit.author or '-'} pick=-")
            continue
        picks += 1
        print(
            f"post={hit.post.post_id} author=@{hit.author or '-'} "
            f"subject={hit.pick.subject_entity} kind={hit.pick.pick_kind} "
            f"line={hit.pick.line} tier={hit.pick.confidence_tier}"
        )
    print(f"results={len(hits)} picks={picks}")
    for message in ctx.errors:
        print(f"  error: {message}")
    return _exit_code(ctx)


def _cmd_social_pending(args: argparse.Namespace) -> int:
    store = _store()
    posts = store.pending_picks()[: args.limit]
    if args.json:
        rows = [post.to_row() for post in posts]
        print(json.dumps(rows, sort_keys=True, indent=2, ensure_ascii=False))
        return 0
    for post in posts:
        pick = post.parsed_pick
        if pick is None:
            continue
        print(
            f"post={post.post_id} handle={post.source_handle} created={post.created_at or '-'} "
            f"subject={pick.subject_entity} kind={pick.pick_kind} line={pick.line} "
            f"side={pick.side or '-'} tier={pick.confidence_tier}"
        )
    print(f"pending={len(posts)}")
    return 0


def _cmd_credits_report(args: argparse.Namespace) -> int:
    runtime = current_runtime_config()
    month = args.month or current_month_utc()
    report = read_usage(runtime.data_dir, month)
    if not report["rows"]:
        print(f"no usage ledger for month={month}")
        return 0
    print(f"month={month} total_units={report['total_units']} calls={report['rows']}")
    for upstream, bucket in report["upstreams"].items():
        print(
            f"  upstream={upstream} calls={bucket['calls']} units={bucket['units']} "
            f"remaining={bucket['provider_remaining'] or '-'}"
        )
    return 0


def _global_options(raw_argv: list[str]) -> argparse.Namespace:
    pre = argparse.ArgumentParser(add_help=False)
    pre.add_argument("--config", default="")
    pre.add_argument("--data-dir", default="")
    pre.add_argument("--log-level", default="INFO")
    known, _ = pre.parse_known_args(raw_argv)
    return known


def _load_runtime(options: argparse.Namespace) -> RuntimeConfig:
    if options.config:
        runtime = load_runtime_config(Path(options.config).expanduser())
    else:
        use_default = not DEFAULT_CONFIG_PATH.exists()
        runtime = default_runtime_config() if use_default else load_runtime_config()
    data_dir = Path(options.data_dir) if options.data_dir else None
    return runtime.with_path_overrides(data_dir=data_dir)


def main(argv: list[str] | None = None) -> int:
    """Run the CLI."""
    raw_argv = list(argv) if isinstance(argv, list) else sys.argv[1:]
    options = _global_options(raw_argv)
    _configure_logging(options.log_level)
    try:
        runtime = _load_runtime(options)
    except RuntimeError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_INCOMPLETE
    try:
        set_current_runtime_config(runtime)
        parser = build_parser(handlers=sys.modules[__name__], runtime=runtime)
        args = parser.parse_args(raw_argv)
        func: Any = getattr(args, "func", None)
        if func is None:
            parser.print_help()
            return EXIT_OK
        try:
            return int(func(args))
        except (QuotaExhaustedError, UpstreamAuthError) as exc:
            print(f"aborted: {exc}", file=sys.stderr)
            return EXIT_FATAL
        except KeyboardInterrupt:
            print("interrupted", file=sys.stderr)
            return EXIT_INTERRUPTED
        except (
            CLIError,
            StoreNotBootstrapped,
            PersistenceError,
            FileNotFoundError,
            ValueError,
        ) as exc:
            print(str(exc), file=sys.stderr)
            return EXIT_INCOMPLETE
    finally:
        set_current_runtime_config(None)


if __name__ == "__main__":
    raise SystemExit(main())
