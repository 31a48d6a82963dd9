"""File-backed idempotent store: one JSON document per natural key."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from edge_ingest import __version__
from edge_ingest.aggregate import NormalizedOddsRecord
from edge_ingest.budget import current_month_utc
from edge_ingest.errors import PersistenceError
from edge_ingest.io_utils import append_jsonl, atomic_write_json, read_json, safe_file_key
from edge_ingest.models import ImportLogEntry, RawPost, TrackedSource, normalize_handle
from edge_ingest.time_utils import utc_now_str

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
TABLES: tuple[str, ...] = ("import_log", "odds_records", "tracked_sources", "raw_posts")


class IdempotentStore:
    """Upsert-by-natural-key persistence for run logs, odds records, sources and posts.

    Layout under `root`:

    - `import_log/{source_key}/{window_key}.json`
    - `odds_records/{event_id}.json`
    - `tracked_sources/{handle}.json`
    - `raw_posts/{post_id}.json`
    - `usage/usage-YYYY-MM.jsonl`
    - `store.json` (bootstrap marker)

    Single writer per directory; every document write is atomic.
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)
        self.usage_dir = self.root / "usage"

    def _table(self, name: str) -> Path:
        return self.root / name

    @property
    def _marker_path(self) -> Path:
        return self.root / "store.json"

    def is_bootstrapped(self) -> bool:
        if not self._marker_path.exists():
            return False
        return all(self._table(name).is_dir() for name in TABLES)

    def bootstrap(self) -> None:
        """Create the table directories and the schema marker; safe to repeat."""
        for name in TABLES:
            self._table(name).mkdir(parents=True, exist_ok=True)
        self.usage_dir.mkdir(parents=True, exist_ok=True)
        if not self._marker_path.exists():
            atomic_write_json(
                self._marker_path,
                {
                    "schema_version": SCHEMA_VERSION,
                    "created_at_utc": utc_now_str(),
                    "edge_ingest_version": __version__,
                    "tables": list(TABLES),
                },
            )
        logger.info("store ready root=%s", self.root)

    def _write(self, path: Path, payload: dict[str, Any], *, key: str) -> None:
        try:
            atomic_write_json(path, payload)
        except (OSError, TypeError, ValueError) as exc:
            raise PersistenceError(f"failed writing {key}: {exc}") from exc

    def _iter_docs(self, table: str, pattern: str = "*.json") -> Iterator[dict[str, Any]]:
        base = self._table(table)
        if not base.exists():
            return
        for path in sorted(base.glob(pattern)):
            if path.name.startswith(".tmp-"):
                continue
            try:
                payload = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as exc:
                logger.error("unreadable store document path=%s error=%s", path, exc)
                continue
            if isinstance(payload, dict):
                yield payload

    # import log

    def _log_path(self, source_key: str, window_key: str) -> Path:
        directory = self._table("import_log") / safe_file_key(source_key)
        return directory / f"{safe_file_key(window_key)}.json"

    def get_log(self, source_key: str, window_key: str) -> ImportLogEntry | None:
        payload = read_json(self._log_path(source_key, window_key))
        if not isinstance(payload, dict):
            return None
        return ImportLogEntry.from_row(payload)

    def has_succeeded(self, source_key: str, window_key: str) -> bool:
        entry = self.get_log(source_key, window_key)
        return entry is not None and entry.status == "success"

    def upsert_log(self, entry: ImportLogEntry) -> None:
        """Write the single row for `(source_key, window_key)`.

        A `success` row is final: a later non-success entry for the same key
        is ignored so the window stays skippable.
        """
        existing = self.get_log(entry.source_key, entry.window_key)
        if existing is not None and existing.status == "success" and entry.status != "success":
            logger.info(
                "import log keeps success source=%s window=%s",
                entry.source_key,
                entry.window_key,
            )
            return
        if not entry.updated_at:
            entry.updated_at = utc_now_str()
        self._write(
            self._log_path(entry.source_key, entry.window_key),
            entry.to_row(),
            key=f"import_log {entry.source_key}:{entry.window_key}",
        )

    def log_entries(self, source_key: str | None = None) -> list[ImportLogEntry]:
        pattern = f"{safe_file_key(source_key)}/*.json" if source_key else "*/*.json"
        return [ImportLogEntry.from_row(row) for row in self._iter_docs("import_log", pattern)]

    # odds records

    def _odds_path(self, event_id: str) -> Path:
        return self._table("odds_records") / f"{safe_file_key(event_id)}.json"

    def upsert_odds_record(self, record: NormalizedOddsRecord) -> None:
        """Overwrite the record for its event id; later snapshots win."""
        self._write(
            self._odds_path(record.event_id),
            record.to_row(),
            key=f"odds_record {record.event_id}",
        )

    def get_odds_record(self, event_id: str) -> NormalizedOddsRecord | None:
        payload = read_json(self._odds_path(event_id))
        if not isinstance(payload, dict):
            return None
        return NormalizedOddsRecord.from_row(payload)

    def odds_records(self, sport: str | None = None) -> list[dict[str, Any]]:
        rows = list(self._iter_docs("odds_records"))
        if sport:
            rows = [row for row in rows if row.get("sport") == sport]
        return rows

    # tracked sources

    def _source_path(self, handle: str) -> Path:
        return self._table("tracked_sources") / f"{safe_file_key(normalize_handle(handle))}.json"

    def upsert_tracked_source(self, source: TrackedSource) -> None:
        source.handle = normalize_handle(source.handle)
        if not source.handle:
            raise ValueError("tracked source handle is empty")
        self._write(
            self._source_path(source.handle),
            source.to_row(),
            key=f"tracked_source {source.handle}",
        )

    def get_tracked_source(self, handle: str) -> TrackedSource | None:
        payload = read_json(self._source_path(handle))
        if not isinstance(payload, dict):
            return None
        return TrackedSource.from_row(payload)

    def tracked_sources(self, *, active_only: bool = False) -> list[TrackedSource]:
        sources = [TrackedSource.from_row(row) for row in self._iter_docs("tracked_sources")]
        if active_only:
            sources = [item for item in sources if item.active]
        return sources

    # raw posts

    def _post_path(self, post_id: str) -> Path:
        return self._table("raw_posts") / f"{safe_file_key(post_id)}.json"

    def has_raw_post(self, post_id: str) -> bool:
        return self._post_path(post_id).exists()

    def upsert_raw_post(self, post: RawPost) -> bool:
        """Insert the post unless its id is already stored; returns whether it was written."""
        if self.has_raw_post(post.post_id):
            return False
        if not post.stored_at:
            post.stored_at = utc_now_str()
        self._write(self._post_path(post.post_id), post.to_row(), key=f"raw_post {post.post_id}")
        return True

    def get_raw_post(self, post_id: str) -> RawPost | None:
        payload = read_json(self._post_path(post_id))
        if not isinstance(payload, dict):
            return None
        return RawPost.from_row(payload)

    def raw_posts(self) -> list[RawPost]:
        return [RawPost.from_row(row) for row in self._iter_docs("raw_posts")]

    def pending_picks(self) -> list[RawPost]:
        """Posts carrying a parsed pick that no downstream step has consumed yet, newest first."""
        pending = [post for post in self.raw_posts() if post.is_pick and not post.processed]
        pending.sort(key=lambda post: (post.created_at, post.post_id), reverse=True)
        return pending

    # usage ledger

    def append_usage(
        self,
        *,
        upstream: str,
        endpoint: str,
        status_code: int,
        units: int,
        units_remaining: str = "",
        retry_count: int = 0,
        outcome: str = "",
    ) -> None:
        row = {
            "timestamp_utc": utc_now_str(),
            "upstream": upstream,
            "endpoint": endpoint,
            "status_code": status_code,
            "units": units,
            "units_remaining": units_remaining,
            "retry_count": retry_count,
            "outcome": outcome,
        }
        append_jsonl(self.usage_dir / f"usage-{current_month_utc()}.jsonl", row)
