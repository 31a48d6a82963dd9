"""Parser construction for the edge-ingest CLI."""

from __future__ import annotations

import argparse
from typing import Any

from edge_ingest.export import EXPORT_FORMATS
from edge_ingest.runtime_config import RuntimeConfig
from edge_ingest.sports import EARLIEST_HISTORICAL_DAY


def _positive_int(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected an integer, got {raw!r}") from exc
    if value < 0:
        raise argparse.ArgumentTypeError(f"expected a non-negative integer, got {value}")
    return value


def _delay(raw: str) -> float:
    try:
        value = float(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected seconds, got {raw!r}") from exc
    if value < 0:
        raise argparse.ArgumentTypeError(f"delay must be >= 0, got {value}")
    return value


def build_parser(*, handlers: Any, runtime: RuntimeConfig) -> argparse.ArgumentParser:
    _cmd_odds_import = handlers._cmd_odds_import
    _cmd_odds_status = handlers._cmd_odds_status
    _cmd_odds_export = handlers._cmd_odds_export
    _cmd_social_sources_add = handlers._cmd_social_sources_add
    _cmd_social_sources_ls = handlers._cmd_social_sources_ls
    _cmd_social_resolve = handlers._cmd_social_resolve
    _cmd_social_ingest = handlers._cmd_social_ingest
    _cmd_social_search = handlers._cmd_social_search
    _cmd_social_pending = handlers._cmd_social_pending
    _cmd_credits_report = handlers._cmd_credits_report

    parser = argparse.ArgumentParser(prog="edge-ingest")
    parser.add_argument(
        "--config",
        default="",
        help="Path to runtime config TOML (default: config/runtime.toml).",
    )
    parser.add_argument(
        "--data-dir",
        default="",
        help="Override the store directory for this command invocation.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level for run output on stderr.",
    )
    subparsers = parser.add_subparsers(dest="command")

    odds = subparsers.add_parser("odds", help="Historical odds import")
    odds_sub = odds.add_subparsers(dest="odds_command")

    odds_import = odds_sub.add_parser("import", help="Import historical odds snapshots")
    odds_import.add_argument(
        "--sports",
        default=",".join(runtime.default_sports),
        help="Comma-separated sport codes, processed in the given order.",
    )
    odds_import.add_argument(
        "--from",
        dest="from_day",
        default=EARLIEST_HISTORICAL_DAY.isoformat(),
        help="First day to sample (YYYY-MM-DD).",
    )
    odds_import.add_argument(
        "--to",
        dest="to_day",
        default="",
        help="Last day to sample (YYYY-MM-DD, default: today UTC).",
    )
    odds_import.add_argument(
        "--max-credits",
        type=_positive_int,
        default=runtime.default_max_credits,
    )
    odds_import.add_argument("--dry-run", action="store_true", help="Fetch and log; write nothing.")
    odds_import.add_argument(
        "--create-tables",
        action="store_true",
        help="Bootstrap the store before importing.",
    )
    odds_import.add_argument("--delay", type=_delay, default=runtime.odds_delay_s)
    odds_import.set_defaults(func=_cmd_odds_import)

    odds_status = odds_sub.add_parser("status", help="Show import log rows")
    odds_status.add_argument("--sport", default="")
    odds_status.add_argument("--status", default="", choices=["", "success", "skipped", "error"])
    odds_status.add_argument("--json", action="store_true")
    odds_status.set_defaults(func=_cmd_odds_status)

    odds_export = odds_sub.add_parser("export", help="Export normalized odds records")
    odds_export.add_argument("--out", required=True, help="Output file path.")
    odds_export.add_argument(
        "--format", dest="fmt", default="parquet", choices=list(EXPORT_FORMATS)
    )
    odds_export.add_argument("--sport", default="")
    odds_export.set_defaults(func=_cmd_odds_export)

    social = subparsers.add_parser("social", help="Social post ingestion")
    social_sub = social.add_subparsers(dest="social_command")

    sources = social_sub.add_parser("sources", help="Tracked source registry")
    sources_sub = sources.add_subparsers(dest="sources_command")

    sources_add = sources_sub.add_parser("add", help="Track one or more handles")
    sources_add.add_argument("handles", nargs="+")
    sources_add.add_argument("--name", default="", help="Display name (single handle only).")
    sources_add.add_argument("--domain", default="")
    sources_add.add_argument("--inactive", action="store_true")
    sources_add.set_defaults(func=_cmd_social_sources_add)

    sources_ls = sources_sub.add_parser("ls", help="List tracked sources in priority order")
    sources_ls.add_argument("--all", action="store_true", help="Include inactive sources.")
    sources_ls.set_defaults(func=_cmd_social_sources_ls)

    resolve = social_sub.add_parser("resolve", help="Backfill missing account ids")
    resolve.add_argument("--batch", type=_positive_int, default=5)
    resolve.add_argument("--delay", type=_delay, default=5.0)
    resolve.add_argument("--dry-run", action="store_true")
    resolve.set_defaults(func=_cmd_social_resolve)

    ingest = social_sub.add_parser("ingest", help="Pull new posts and extract picks")
    ingest.add_argument("--handle", default="", help="Only this tracked handle.")
    ingest.add_argument("--batch", type=_positive_int, default=runtime.social_batch_size)
    ingest.add_argument("--max-calls", type=_positive_int, default=runtime.social_max_calls)
    ingest.add_argument("--posts-per-source", type=_positive_int, default=runtime.posts_per_source)
    ingest.add_argument("--delay", type=_delay, default=runtime.social_delay_s)
    ingest.add_argument("--dry-run", action="store_true")
    ingest.add_argument("--create-tables", action="store_true")
    ingest.set_defaults(func=_cmd_social_ingest)

    search = social_sub.add_parser("search", help="Search recent posts and parse picks")
    search.add_argument("query", help="Upstream search query.")
    search.add_argument("--max-results", type=_positive_int, default=100)
    search.add_argument("--picks-only", action="store_true", help="Only print parsed picks.")
    search.set_defaults(func=_cmd_social_search)

    pending = social_sub.add_parser("pending", help="List parsed picks not yet processed")
    pending.add_argument("--limit", type=_positive_int, default=50)
    pending.add_argument("--json", action="store_true")
    pending.set_defaults(func=_cmd_social_pending)

    credits = subparsers.add_parser("credits", help="Upstream usage ledger")
    credits_sub = credits.add_subparsers(dest="credits_command")
    credits_report = credits_sub.add_parser("report", help="Summarize usage for one month")
    credits_report.add_argument("--month", default="", help="YYYY-MM (default: current UTC month).")
    credits_report.set_defaults(func=_cmd_credits_report)

    return parser
