"""
backend/matchpick/services/primary_pick.py

Purpose:
    Turn the oracle's three per-market estimates into one primary pick.

    Each market with a usable estimate becomes a candidate. Candidates whose
    quoted price is known and below the minimum "good odds" floor are dropped
    (short-priced favourites carry no betting value). Among the rest, the
    highest expected value (probability * price - 1) wins, ties going to the
    higher probability; without any price data the most probable candidate
    wins. A primary pick sent by the oracle itself is never trusted.

Dependencies:
    - matchpick.models.analysis
    - matchpick.services.odds_snapshot
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Any

from matchpick.models.analysis import (
    MARKET_RESULT_KEYS,
    PRIMARY_PICK_KEY,
    FullTime1x2Estimate,
    HandicapEstimate,
    Market,
    MarketEstimate,
    OddsSnapshot,
    OverUnderEstimate,
    PrimaryPick,
)
from matchpick.services.odds_snapshot import find_price

MIN_GOOD_ODDS = 1.4

# Handicap prices are not looked up: handicap candidates never carry odds
# and never face the floor.
PRICED_MARKETS = frozenset({Market.full_time_1x2, Market.over_under})

_EV_TOLERANCE = 1e-9

_ESTIMATE_TYPES = {
    Market.full_time_1x2: FullTime1x2Estimate,
    Market.over_under: OverUnderEstimate,
    Market.handicap: HandicapEstimate,
}


@dataclass(frozen=True)
class Candidate:
    market: Market
    side: str
    probability: float
    reason: str
    odds: float | None = None
    expected_value: float | None = None

    def to_primary_pick(self) -> PrimaryPick:
        return PrimaryPick(
            market=self.market,
            side=self.side,
            probability=self.probability,
            reason=self.reason,
        )


def parse_market_estimate(market: Market, raw: Any) -> MarketEstimate | None:
    """Typed estimate for one market, or None when the entry is unusable.

    Unusable means: not an object, probability missing / non-numeric /
    outside [0, 1], or an empty recommended side.
    """
    if not isinstance(raw, dict):
        return None
    probability = _to_probability(raw.get("probability"))
    if probability is None:
        return None
    side = raw.get("recommended_side")
    side = side.strip() if isinstance(side, str) else ""
    if not side:
        return None
    summary = raw.get("summary")
    if not isinstance(summary, str) or not summary.strip():
        summary = f"No summary provided for the {market.value} market."
    return _ESTIMATE_TYPES[market](
        recommended_side=side,
        probability=probability,
        summary=summary,
    )


def build_candidates(
    result: dict[str, Any],
    odds_snapshot: OddsSnapshot | None,
    *,
    min_good_odds: float = MIN_GOOD_ODDS,
) -> list[Candidate]:
    candidates: list[Candidate] = []
    for market, key in MARKET_RESULT_KEYS.items():
        estimate = parse_market_estimate(market, result.get(key))
        if estimate is None:
            continue
        odds = None
        if market in PRICED_MARKETS:
            odds = find_price(odds_snapshot, market, estimate.recommended_side)
            if odds is not None and odds < min_good_odds:
                continue
        candidates.append(
            Candidate(
                market=market,
                side=estimate.recommended_side,
                probability=estimate.probability,
                reason=estimate.summary,
                odds=odds,
            )
        )
    return candidates


def choose_best(candidates: list[Candidate]) -> Candidate:
    """Highest EV among priced candidates, else highest probability."""
    priced = [
        replace(c, expected_value=c.probability * c.odds - 1)
        for c in candidates
        if c.odds is not None and c.odds > 0
    ]
    if priced:
        best = priced[0]
        for cur in priced[1:]:
            if math.isclose(cur.expected_value, best.expected_value, rel_tol=0.0, abs_tol=_EV_TOLERANCE):
                if cur.probability > best.probability:
                    best = cur
            elif cur.expected_value > best.expected_value:
                best = cur
        return best
    # max() keeps the first of equal probabilities.
    return max(candidates, key=lambda c: c.probability)


def select_primary_pick(
    raw_result: Any,
    odds_snapshot: OddsSnapshot | dict[str, Any] | None,
    *,
    min_good_odds: float = MIN_GOOD_ODDS,
) -> Any:
    """Attach ``primary_pick`` to an oracle result.

    Non-dict input is returned untouched. Per-market entries are preserved
    as given. When no candidate survives, the result comes back without a
    ``primary_pick`` key, which callers read as "recommendation withheld".
    """
    if not isinstance(raw_result, dict):
        return raw_result

    snapshot = odds_snapshot
    if isinstance(snapshot, dict):
        snapshot = OddsSnapshot.from_document(snapshot)

    result = {k: v for k, v in raw_result.items() if k != PRIMARY_PICK_KEY}
    candidates = build_candidates(result, snapshot, min_good_odds=min_good_odds)
    if not candidates:
        return result

    best = choose_best(candidates)
    result[PRIMARY_PICK_KEY] = best.to_primary_pick().model_dump(mode="json")
    return result


def _to_probability(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or number < 0.0 or number > 1.0:
        return None
    return number
