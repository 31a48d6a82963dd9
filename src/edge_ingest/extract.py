"""Heuristic extraction of structured pick candidates from free-text posts."""

from __future__ import annotations

import re
from functools import lru_cache

from edge_ingest.aliases import DEFAULT_ALIAS_TABLE, AliasEntry, AliasTable
from edge_ingest.models import ConfidenceTier, ParsedPickCandidate, PickKind

BETTING_KEYWORDS: tuple[str, ...] = (
    "pick",
    "bet",
    "lock",
    "play",
    "take",
    "hammer",
    "love",
    "spread",
    "over",
    "under",
    "ml",
    "moneyline",
    "ats",
    "-3",
    "-7",
    "+3",
    "+7",
    "-110",
    "+110",
    "units",
    "unit",
    "\U0001f512",  # lock
    "\U0001f4b0",  # money bag
    "\U0001f3af",  # direct hit
    "✅",  # check mark
)
LOCK_CUES: tuple[str, ...] = ("lock", "\U0001f512", "hammer")
LEAN_CUES: tuple[str, ...] = ("lean", "like")

# Abbreviations up to this length written in capitals only match as written,
# so "NO" or "MIN" do not fire on ordinary words.
CASE_SENSITIVE_MAX_LEN = 4
PRICE_THRESHOLD = 100

_SIGNED_NUMBER = re.compile(r"(?<![\d.])([+-]\d+(?:\.\d+)?)")
_TOTAL = re.compile(r"\b(over|under|o|u)\s*(\d+(?:\.\d+)?)", re.IGNORECASE)
_MONEYLINE = re.compile(r"\b(?:ml|moneyline)\b", re.IGNORECASE)


def is_repost_text(text: str) -> bool:
    lowered = text.strip().lower()
    return lowered.startswith("rt @") or "via @" in lowered


def has_betting_context(text: str) -> bool:
    lowered = text.lower()
    return any(keyword in lowered for keyword in BETTING_KEYWORDS)


@lru_cache(maxsize=4096)
def _alias_pattern(alias: str) -> re.Pattern[str]:
    flags = 0
    if not (alias.isupper() and len(alias) <= CASE_SENSITIVE_MAX_LEN):
        flags = re.IGNORECASE
    return re.compile(rf"(?<!\w){re.escape(alias)}(?!\w)", flags)


def _entry_matches(entry: AliasEntry, text: str) -> bool:
    return any(_alias_pattern(alias).search(text) for alias in entry.aliases)


def resolve_entities(
    text: str, alias_table: AliasTable
) -> tuple[AliasEntry | None, AliasEntry | None]:
    """First matched entry in table order, then the next distinct canonical one."""
    subject: AliasEntry | None = None
    opponent: AliasEntry | None = None
    for entry in alias_table:
        if not _entry_matches(entry, text):
            continue
        if subject is None:
            subject = entry
        elif entry.canonical != subject.canonical:
            opponent = entry
            break
    return subject, opponent


def confidence_tier(text: str) -> ConfidenceTier:
    lowered = text.lower()
    if any(cue in lowered for cue in LOCK_CUES):
        return "lock"
    if any(cue in lowered for cue in LEAN_CUES):
        return "lean"
    return "standard"


def _signed_numbers(text: str) -> tuple[float | None, int | None]:
    """First spread-sized signed number and first price-sized one."""
    spread: float | None = None
    price: int | None = None
    for match in _SIGNED_NUMBER.finditer(text):
        value = float(match.group(1))
        if abs(value) >= PRICE_THRESHOLD:
            if price is None:
                price = int(value)
        elif spread is None:
            spread = value
    return spread, price


def extract_pick(
    text: str,
    alias_table: AliasTable = DEFAULT_ALIAS_TABLE,
    *,
    is_repost: bool = False,
) -> ParsedPickCandidate | None:
    """Parse one post into a pick candidate, or None when it is not a pick.

    Gates run in order: reposts, betting vocabulary, then a known subject
    entity. A total (`o`/`u`/`over`/`under` + number) takes precedence over
    a signed spread in the same text; a moneyline token counts only when
    neither is present.
    """
    if not text or is_repost or is_repost_text(text):
        return None
    if not has_betting_context(text):
        return None
    subject, opponent = resolve_entities(text, alias_table)
    if subject is None:
        return None

    spread, price = _signed_numbers(text)
    total: float | None = None
    side: str | None = None
    kind: PickKind = "straight"
    if spread is not None:
        kind = "spread"
    total_match = _TOTAL.search(text)
    if total_match:
        total = float(total_match.group(2))
        side = "over" if total_match.group(1).lower().startswith("o") else "under"
        kind = "total"
    if kind == "straight" and _MONEYLINE.search(text):
        kind = "moneyline"

    return ParsedPickCandidate(
        subject_entity=subject.canonical,
        opponent_entity=opponent.canonical if opponent else None,
        domain=subject.domain,
        pick_kind=kind,
        spread=spread,
        total=total,
        price=price,
        side=side,
        confidence_tier=confidence_tier(text),
        raw_text=text,
    )
