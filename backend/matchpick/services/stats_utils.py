"""
backend/matchpick/services/stats_utils.py

Purpose:
    Recent-form aggregates and odds-implied probabilities that are fed to the
    oracle prompt alongside the raw records.

Dependencies:
    - matchpick.models
"""

from __future__ import annotations

import math
from typing import Any

from matchpick.models.analysis import OddsSnapshot
from matchpick.models.games import MatchContext

RECENT_WINDOW = 5
DEFAULT_TOTALS_LINE = 2.5
_IMPLIED_TOTALS_LINE = 2.5
_IMPLIED_LINE_TOLERANCE = 0.1


def _number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _nested(obj: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(obj, dict):
            return None
        obj = obj.get(key)
    return obj


def _sum_periods(periods: Any) -> float | None:
    if not isinstance(periods, list):
        return None
    total = 0.0
    for period in periods:
        value = _number(_nested(period, "score"))
        total += value if value is not None else 0.0
    return total


def extract_score(game: Any, is_home: bool) -> tuple[float, float] | None:
    """(goals for, goals against) of one recent game, from the team's view.

    Upstream records come in several shapes: ``home.score``, ``homeScore``,
    ``score.home``, ``home_score``, or only per-period ``periodData``.
    """
    if not isinstance(game, dict):
        return None

    home_score = next(
        (
            v for v in (
                _number(_nested(game, "home", "score")),
                _number(game.get("homeScore")),
                _number(_nested(game, "score", "home")),
                _number(game.get("home_score")),
            ) if v is not None
        ),
        None,
    )
    away_score = next(
        (
            v for v in (
                _number(_nested(game, "away", "score")),
                _number(game.get("awayScore")),
                _number(_nested(game, "score", "away")),
                _number(game.get("away_score")),
            ) if v is not None
        ),
        None,
    )

    if home_score is None or away_score is None:
        home_sum = _sum_periods(_nested(game, "home", "periodData"))
        away_sum = _sum_periods(_nested(game, "away", "periodData"))
        if home_sum is not None and away_sum is not None and (home_sum > 0 or away_sum > 0):
            return (home_sum, away_sum) if is_home else (away_sum, home_sum)
        return None

    return (home_score, away_score) if is_home else (away_score, home_score)


def calculate_recent_stats(
    recent_games: Any,
    is_home: bool,
    totals_line: float | None = DEFAULT_TOTALS_LINE,
) -> dict[str, float]:
    empty = {"avg_goals": 0.0, "avg_conceded": 0.0, "win_rate": 0.0, "over_rate": 0.0}
    if not isinstance(recent_games, list) or not recent_games:
        return empty

    scores = [
        s for s in (extract_score(g, is_home) for g in recent_games[:RECENT_WINDOW])
        if s is not None
    ]
    if not scores:
        return empty

    n = len(scores)
    wins = sum(1 for goals, conceded in scores if goals > conceded)
    overs = sum(1 for goals, conceded in scores if totals_line and goals + conceded > totals_line)
    return {
        "avg_goals": sum(goals for goals, _ in scores) / n,
        "avg_conceded": sum(conceded for _, conceded in scores) / n,
        "win_rate": wins / n,
        "over_rate": overs / n if totals_line else 0.0,
    }


def calculate_game_stats(context: MatchContext, odds_snapshot: OddsSnapshot | None = None) -> dict[str, float]:
    """Recent-form aggregates for both teams.

    The over rate is measured against the snapshot's first totals line,
    falling back to 2.5.
    """
    totals_line = DEFAULT_TOTALS_LINE
    if odds_snapshot is not None and odds_snapshot.under_over:
        first_line = _number(odds_snapshot.under_over[0].get("optionValue"))
        if first_line is not None:
            totals_line = first_line

    home = calculate_recent_stats(context.record.home_recent, True, totals_line)
    away = calculate_recent_stats(context.record.away_recent, False, totals_line)
    return {
        "totals_line": totals_line,
        "home_recent_avg_goals": home["avg_goals"],
        "home_recent_avg_conceded": home["avg_conceded"],
        "home_recent_win_rate": home["win_rate"],
        "home_recent_over_rate": home["over_rate"],
        "away_recent_avg_goals": away["avg_goals"],
        "away_recent_avg_conceded": away["avg_conceded"],
        "away_recent_win_rate": away["win_rate"],
        "away_recent_over_rate": away["over_rate"],
        "combined_avg_goals": home["avg_goals"] + away["avg_goals"],
        "combined_avg_conceded": home["avg_conceded"] + away["avg_conceded"],
    }


def extract_implied_probabilities(odds_snapshot: OddsSnapshot | None) -> dict[str, float]:
    """``1 / price`` for current 1X2 entries and the 2.5 totals line."""
    out: dict[str, float] = {}
    if odds_snapshot is None:
        return out

    for entry in odds_snapshot.win_lose or []:
        if not _is_current(entry):
            continue
        price = _number(entry.get("odds"))
        if price is None or price <= 0:
            continue
        kind = str(entry.get("type") or "").upper()
        if kind == "WIN":
            out["home_win"] = 1 / price
        elif kind == "DRAW":
            out["draw"] = 1 / price
        elif kind == "LOSS":
            out["away_win"] = 1 / price

    for entry in odds_snapshot.under_over or []:
        if not _is_current(entry):
            continue
        line = _number(entry.get("optionValue"))
        if line is None or abs(line - _IMPLIED_TOTALS_LINE) > _IMPLIED_LINE_TOLERANCE:
            continue
        price = _number(entry.get("odds"))
        if price is None or price <= 0:
            continue
        kind = str(entry.get("type") or "").upper()
        if kind == "OVER":
            out["over"] = 1 / price
        elif kind == "UNDER":
            out["under"] = 1 / price

    return out


def _is_current(entry: dict[str, Any]) -> bool:
    return entry.get("latestFlag") is True or entry.get("availableFlag") is True
