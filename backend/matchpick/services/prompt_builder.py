"""
backend/matchpick/services/prompt_builder.py

Purpose:
    Build the oracle prompt for one match: context, odds snapshot, records,
    recent-form aggregates, community posts, and the strict JSON output
    contract (including the side encoding the line parser expects).

Dependencies:
    - matchpick.models
    - matchpick.services.stats_utils
"""

from __future__ import annotations

import json
import re
from typing import Any

from matchpick.models.analysis import OddsSnapshot, RequestedMarkets
from matchpick.models.games import MatchContext
from matchpick.services.stats_utils import (
    calculate_game_stats,
    extract_implied_probabilities,
)

MAX_COMMUNITY_POSTS = 5

_CODE_BLOCK_RE = re.compile(r"```[\s\S]*?```")
_INLINE_CODE_RE = re.compile(r"`[^`]*`")
_HTML_TAG_RE = re.compile(r"<[^>]+>")
_MD_LINK_RE = re.compile(r"\[([^\]]+)\]\(([^)]+)\)")
_MD_SYMBOL_RE = re.compile(r"[*_~>#-]+")
_WHITESPACE_RE = re.compile(r"\s+")

_CHECKLIST = """[Checklist]
- Anchor totals to the sport: league scoring average and pace for basketball, set point distribution for volleyball, goals for/against for soccer. Be conservative when the line sits far from the average.
- Reflect the last 3-5 games, key injuries or absences, and schedule fatigue (away streaks, back-to-backs) directly in the probabilities; pivot to under/handicap when they weigh on a side.
- Lower the probability for an away side facing hostile weather, altitude, long travel or an unfamiliar surface.
- Never make a DRAW the primary pick. If the draw probability is 0.3 or more, move to over/under or handicap instead.
- When the win/loss conviction is low or the price is too short, pivot to under or handicap and say why in the summary.
- Soccer: stay within +/-0.1 of the implied probability (1/price); keep HOME/DRAW/AWAY internally consistent (summing to 1); avoid 0.72+ even for strong home sides and cap at 0.6 when a tight game is likely.
- Probabilities of 0.9 or more are almost always overconfident; adjust them down."""

_OUTPUT_CONTRACT = """Follow this JSON schema exactly:
{
  "full_time_1x2": {
    "recommended_side": "HOME" | "DRAW" | "AWAY",
    "probability": number,
    "summary": string
  },
  "over_under": {
    "recommended_side": string,
    "probability": number,
    "summary": string
  },
  "handicap": {
    "recommended_side": string,
    "probability": number,
    "summary": string
  }
}

Rules:
- probability is a number between 0 and 1.
- over_under.recommended_side is the direction and the line joined by "_", with "_" in place of the decimal point: "OVER_2_5", "UNDER_2_5".
- handicap.recommended_side is the side and the signed home-perspective line in the same encoding: "HOME_-0_5", "AWAY_+0_5".
- Only fill markets you were asked to consider; omit the others.
- Reply with the JSON object only. No prose, no Markdown."""


def sanitize_text(value: Any, max_len: int = 400) -> str:
    """Flatten community post text to plain, bounded prose."""
    if not value or not isinstance(value, str):
        return ""
    text = _CODE_BLOCK_RE.sub(" ", value)
    text = _INLINE_CODE_RE.sub(" ", text)
    text = _HTML_TAG_RE.sub(" ", text)
    text = _MD_LINK_RE.sub(r"\1", text)
    text = _MD_SYMBOL_RE.sub(" ", text)
    text = _WHITESPACE_RE.sub(" ", text).strip()
    if len(text) > max_len:
        return f"{text[:max_len]}..."
    return text


def _dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, default=str)


def build_prompt(
    context: MatchContext,
    markets: RequestedMarkets,
    odds_snapshot: OddsSnapshot | None = None,
) -> str:
    basic = context.basic
    parts: list[str] = [
        "You are a sports betting analyst.",
        "Analyse the match below for full-time result (1X2), over/under and handicap.",
        "If the 1X2 conviction is low or its price is too short, prefer the stronger over/under or handicap angle.",
        "",
        _CHECKLIST,
        "",
        "[Match]",
        f"League: {basic.league_name}, Match: {basic.home_team_name} vs {basic.away_team_name}, Start: {basic.start_time}",
        "",
        "[Odds (JSON)]",
        odds_snapshot.canonical_json() if odds_snapshot is not None else _dumps(context.odds),
        "",
        "[Records (JSON)]",
        _dumps({
            "head_to_head": context.record.head_to_head,
            "home_recent": context.record.home_recent,
            "away_recent": context.record.away_recent,
        }),
        "",
        "[Recent form aggregates (JSON)]",
        _dumps(calculate_game_stats(context, odds_snapshot)),
        "",
        "[Odds-implied probabilities (JSON)]",
        _dumps(extract_implied_probabilities(odds_snapshot)),
        "",
        "[Top community analysis posts (JSON)]",
        _dumps([
            {
                "title": sanitize_text(post.title),
                "content": sanitize_text(post.content),
                "likes": post.likes,
                "created_at": post.created_at,
            }
            for post in context.community_posts[:MAX_COMMUNITY_POSTS]
        ]),
        "",
        f"Markets to consider: {_dumps(markets.model_dump())}",
        "",
        _OUTPUT_CONTRACT,
    ]
    return "\n".join(parts)
