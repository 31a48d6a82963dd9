"""Persisted row shapes: import log, tracked sources, raw posts, parsed picks."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

from edge_ingest.util.parsing import count, safe_float, safe_int

LogStatus = Literal["success", "skipped", "error"]
PickKind = Literal["spread", "total", "moneyline", "straight"]
ConfidenceTier = Literal["lock", "lean", "standard"]

LOG_STATUSES: tuple[str, ...] = ("success", "skipped", "error")


@dataclass
class ImportLogEntry:
    """Outcome of one `(source_key, window_key)` unit, e.g. `("nfl", "2023-09-10")`."""

    source_key: str
    window_key: str
    status: LogStatus
    snapshot_time: str = ""
    units_found: int = 0
    units_imported: int = 0
    credits_used: int = 0
    error_message: str | None = None
    updated_at: str = ""

    def __post_init__(self) -> None:
        if self.status not in LOG_STATUSES:
            raise ValueError(f"invalid import log status: {self.status}")

    def to_row(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> ImportLogEntry:
        error_message = row.get("error_message")
        return cls(
            source_key=str(row.get("source_key", "")),
            window_key=str(row.get("window_key", "")),
            status=str(row.get("status", "error")),  # type: ignore[arg-type]
            snapshot_time=str(row.get("snapshot_time", "") or ""),
            units_found=count(row.get("units_found")),
            units_imported=count(row.get("units_imported")),
            credits_used=count(row.get("credits_used")),
            error_message=str(error_message) if error_message else None,
            updated_at=str(row.get("updated_at", "") or ""),
        )


@dataclass
class TrackedSource:
    """A followed social account."""

    handle: str
    cached_external_id: str | None = None
    last_scraped_at: str | None = None
    last_post_id: str | None = None
    display_name: str | None = None
    domain: str | None = None
    active: bool = True

    def to_row(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> TrackedSource:
        def _opt(key: str) -> str | None:
            value = row.get(key)
            if value is None or str(value).strip() == "":
                return None
            return str(value)

        return cls(
            handle=normalize_handle(str(row.get("handle", ""))),
            cached_external_id=_opt("cached_external_id"),
            last_scraped_at=_opt("last_scraped_at"),
            last_post_id=_opt("last_post_id"),
            display_name=_opt("display_name"),
            domain=_opt("domain"),
            active=bool(row.get("active", True)),
        )


def normalize_handle(raw: str) -> str:
    """`@Handle ` -> `handle`."""
    return raw.strip().lstrip("@").lower()


@dataclass(frozen=True)
class ParsedPickCandidate:
    """Structured betting signal lifted from one post."""

    subject_entity: str
    domain: str
    pick_kind: PickKind
    confidence_tier: ConfidenceTier
    raw_text: str
    opponent_entity: str | None = None
    spread: float | None = None
    total: float | None = None
    price: int | None = None
    side: str | None = None

    @property
    def line(self) -> float | None:
        if self.pick_kind == "total":
            return self.total
        return self.spread

    def to_row(self) -> dict[str, Any]:
        row = asdict(self)
        row["line"] = self.line
        return row

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> ParsedPickCandidate:
        price = safe_int(row.get("price"))
        return cls(
            subject_entity=str(row.get("subject_entity", "")),
            domain=str(row.get("domain", "")),
            pick_kind=str(row.get("pick_kind", "straight")),  # type: ignore[arg-type]
            confidence_tier=str(row.get("confidence_tier", "standard")),  # type: ignore[arg-type]
            raw_text=str(row.get("raw_text", "")),
            opponent_entity=row.get("opponent_entity") or None,
            spread=safe_float(row.get("spread")),
            total=safe_float(row.get("total")),
            price=price,
            side=row.get("side") or None,
        )


@dataclass
class RawPost:
    """One observed post, keyed by upstream post id."""

    post_id: str
    source_handle: str
    text: str
    created_at: str = ""
    url: str = ""
    source_external_id: str | None = None
    engagement: dict[str, int] = field(default_factory=dict)
    parsed_pick: ParsedPickCandidate | None = None
    processed: bool = False
    stored_at: str = ""

    @property
    def is_pick(self) -> bool:
        return self.parsed_pick is not None

    def to_row(self) -> dict[str, Any]:
        return {
            "post_id": self.post_id,
            "source_handle": self.source_handle,
            "source_external_id": self.source_external_id,
            "text": self.text,
            "url": self.url,
            "created_at": self.created_at,
            "engagement": dict(self.engagement),
            "parsed_pick": self.parsed_pick.to_row() if self.parsed_pick else None,
            "is_pick": self.is_pick,
            "processed": self.processed,
            "stored_at": self.stored_at,
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> RawPost:
        parsed = row.get("parsed_pick")
        engagement = row.get("engagement", {})
        return cls(
            post_id=str(row.get("post_id", "")),
            source_handle=str(row.get("source_handle", "")),
            text=str(row.get("text", "")),
            created_at=str(row.get("created_at", "") or ""),
            url=str(row.get("url", "") or ""),
            source_external_id=row.get("source_external_id") or None,
            engagement={
                str(key): count(value)
                for key, value in (engagement.items() if isinstance(engagement, dict) else [])
            },
            parsed_pick=ParsedPickCandidate.from_row(parsed) if isinstance(parsed, dict) else None,
            processed=bool(row.get("processed", False)),
            stored_at=str(row.get("stored_at", "") or ""),
        )
