"""
backend/matchpick/services/odds_snapshot.py

Purpose:
    Build the odds snapshot used as the analysis cache key, hash it, and
    look up quoted prices for a market + side.

Dependencies:
    - hashlib
    - matchpick.models.analysis
    - matchpick.services.line_parser
"""

from __future__ import annotations

import hashlib
import math
from typing import Any, Iterable

from matchpick.models.analysis import Market, OddsSnapshot
from matchpick.services.line_parser import (
    parse_spread_line,
    parse_totals_line,
    split_direction,
)

# (snapshot field, upstream key). Every other upstream key is ignored.
SNAPSHOT_FAMILIES: tuple[tuple[str, str], ...] = (
    ("win_lose", "domesticWinLoseOdds"),
    ("under_over", "domesticUnderOverOdds"),
    ("handicap", "domesticHandicapOdds"),
)

LINE_TOLERANCE = 0.001

_FULL_TIME_TYPES = {"HOME": ("WIN",), "DRAW": ("DRAW",), "AWAY": ("LOSS",)}
_HANDICAP_TYPES = {"HOME": ("WIN", "HOME"), "AWAY": ("LOSS", "AWAY")}


def build_snapshot(raw_odds: Any) -> OddsSnapshot:
    """Copy the three domestic odds families out of an upstream odds blob.

    Missing, empty and non-list families all normalize to absent, so a vendor
    answering ``[]`` instead of omitting the key does not change the hash.
    """
    if not isinstance(raw_odds, dict):
        return OddsSnapshot()
    families: dict[str, list[dict[str, Any]] | None] = {}
    for field, upstream_key in SNAPSHOT_FAMILIES:
        entries = raw_odds.get(upstream_key)
        if not isinstance(entries, list):
            families[field] = None
            continue
        kept = [dict(e) for e in entries if isinstance(e, dict)]
        families[field] = kept or None
    return OddsSnapshot(**families)


def odds_hash(snapshot: OddsSnapshot) -> str:
    return hashlib.sha256(snapshot.canonical_json().encode("utf-8")).hexdigest()


def find_price(snapshot: OddsSnapshot | None, market: Market | str, side: str) -> float | None:
    """Quoted decimal price for ``side`` in ``market``, or None when unknown.

    Entries flagged ``latestFlag`` or ``availableFlag`` win over unflagged
    history rows. Totals and handicap sides also have to match the entry's
    ``optionValue`` within LINE_TOLERANCE.
    """
    if snapshot is None or not isinstance(side, str) or not side.strip():
        return None
    try:
        market = Market(market)
    except ValueError:
        return None

    if market is Market.full_time_1x2:
        types = _FULL_TIME_TYPES.get(side.strip().upper())
        if types is None:
            return None
        return _first_price(_matching(snapshot.win_lose, types, None))

    if market is Market.over_under:
        parsed = parse_totals_line(side)
        if parsed is not None:
            return _first_price(_matching(snapshot.under_over, (parsed.pick,), parsed.line))
        direction = split_direction(side)
        if direction in ("OVER", "UNDER") and direction == side.strip().upper():
            # Bare "OVER"/"UNDER": any line will do.
            return _first_price(_matching(snapshot.under_over, (direction,), None))
        return None

    parsed = parse_spread_line(side)
    if parsed is None:
        return None
    return _first_price(_matching(snapshot.handicap, _HANDICAP_TYPES[parsed.pick], parsed.line))


def _matching(
    entries: list[dict[str, Any]] | None,
    types: Iterable[str],
    line: float | None,
) -> list[dict[str, Any]]:
    if not entries:
        return []
    wanted = set(types)
    hits: list[dict[str, Any]] = []
    for entry in entries:
        if str(entry.get("type") or "").upper() not in wanted:
            continue
        if line is not None:
            value = _to_float(entry.get("optionValue"))
            if value is None or abs(value - line) >= LINE_TOLERANCE:
                continue
        hits.append(entry)
    # Stable sort: flagged entries first, upstream order otherwise.
    return sorted(hits, key=lambda e: 0 if _is_current(e) else 1)


def _first_price(entries: list[dict[str, Any]]) -> float | None:
    for entry in entries:
        price = _to_float(entry.get("odds"))
        if price is not None:
            return price
    return None


def _is_current(entry: dict[str, Any]) -> bool:
    return entry.get("latestFlag") is True or entry.get("availableFlag") is True


def _to_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None
