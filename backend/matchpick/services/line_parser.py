"""
backend/matchpick/services/line_parser.py

Purpose:
    Parse line-bearing sides produced by the oracle, e.g. ``OVER_2_5`` or
    ``HOME_-0_5``, into a numeric line plus a direction.

    Wire format: ``<DIRECTION>_<line>``. Underscores inside the line stand
    for a decimal point (``2_5`` -> 2.5) and spread lines keep their leading
    sign (``+1_5`` -> 1.5, ``-0_5`` -> -0.5). The direction keyword is
    matched case-insensitively.

    Both parsers are total: anything that does not follow the format yields
    None, never an exception.
"""

from __future__ import annotations

import math
from typing import NamedTuple

TOTALS_DIRECTIONS = frozenset({"OVER", "UNDER"})
SPREAD_DIRECTIONS = frozenset({"HOME", "AWAY"})


class ParsedLine(NamedTuple):
    line: float
    pick: str


def parse_totals_line(encoded_side: object) -> ParsedLine | None:
    """``OVER_2_5`` -> ParsedLine(2.5, "OVER")."""
    return _parse(encoded_side, TOTALS_DIRECTIONS)


def parse_spread_line(encoded_side: object) -> ParsedLine | None:
    """``HOME_+1_5`` -> ParsedLine(1.5, "HOME")."""
    return _parse(encoded_side, SPREAD_DIRECTIONS)


def split_direction(encoded_side: object) -> str:
    """Upper-cased direction keyword of a side (``over_2_5`` -> ``OVER``)."""
    if not isinstance(encoded_side, str):
        return ""
    return encoded_side.strip().partition("_")[0].upper()


def _parse(encoded_side: object, directions: frozenset[str]) -> ParsedLine | None:
    if not isinstance(encoded_side, str):
        return None
    prefix, sep, remainder = encoded_side.strip().partition("_")
    direction = prefix.upper()
    if direction not in directions or not sep or not remainder:
        return None
    # float() accepts "2_5" as 25.0, so normalize before converting.
    normalized = remainder.replace("_", ".")
    try:
        line = float(normalized)
    except ValueError:
        return None
    if not math.isfinite(line):
        return None
    return ParsedLine(line=line, pick=direction)
