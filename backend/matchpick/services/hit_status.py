"""
backend/matchpick/services/hit_status.py

Purpose:
    Grade a stored primary pick against a score. Pure and deterministic: the
    same pick, score and status always grade the same, whether called right
    after the oracle answered or later on a cached record with a newer score.

Dependencies:
    - matchpick.models
    - matchpick.services.line_parser
"""

from __future__ import annotations

from typing import Any

from matchpick.models.analysis import HitStatus, Market, PrimaryPick
from matchpick.models.games import Score
from matchpick.services.line_parser import parse_spread_line, parse_totals_line

FINAL_STATUS = "FINAL"


def evaluate_hit_status(
    primary_pick: PrimaryPick | dict[str, Any] | None,
    score: Score | dict[str, Any] | None,
    game_status: str | None,
) -> HitStatus:
    """Return hit / miss, or neutral when the outcome is not decidable.

    Neutral covers: no pick, an unknown score side, a match that is not
    FINAL, an unparseable line, a push, and unknown markets.
    """
    pick = _pick_fields(primary_pick)
    if pick is None:
        return HitStatus.neutral
    home, away = _score_fields(score)
    if home is None or away is None:
        return HitStatus.neutral
    if not isinstance(game_status, str) or game_status.strip().upper() != FINAL_STATUS:
        return HitStatus.neutral

    market, side = pick

    if market == Market.full_time_1x2.value:
        if home > away:
            winner = "HOME"
        elif home < away:
            winner = "AWAY"
        else:
            winner = "DRAW"
        return HitStatus.hit if side == winner else HitStatus.miss

    if market == Market.over_under.value:
        parsed = parse_totals_line(side)
        if parsed is None:
            return HitStatus.neutral
        total = home + away
        if total == parsed.line:
            return HitStatus.neutral
        if parsed.pick == "OVER":
            return HitStatus.hit if total > parsed.line else HitStatus.miss
        return HitStatus.hit if total < parsed.line else HitStatus.miss

    if market == Market.handicap.value:
        parsed = parse_spread_line(side)
        if parsed is None:
            return HitStatus.neutral
        adjusted_home = home + parsed.line
        if adjusted_home == away:
            return HitStatus.neutral
        if parsed.pick == "HOME":
            return HitStatus.hit if adjusted_home > away else HitStatus.miss
        return HitStatus.hit if away > adjusted_home else HitStatus.miss

    return HitStatus.neutral


def _pick_fields(primary_pick: Any) -> tuple[str, str] | None:
    if isinstance(primary_pick, PrimaryPick):
        return primary_pick.market.value, primary_pick.side.strip().upper()
    if not isinstance(primary_pick, dict):
        return None
    market = primary_pick.get("market")
    if isinstance(market, Market):
        market = market.value
    side = primary_pick.get("side")
    return str(market or "").strip().upper(), str(side or "").strip().upper()


def _score_fields(score: Any) -> tuple[float | None, float | None]:
    if isinstance(score, Score):
        return score.home, score.away
    if isinstance(score, dict):
        return _number(score.get("home")), _number(score.get("away"))
    return None, None


def _number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
