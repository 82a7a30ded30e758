"""
backend/tests/test_primary_pick.py

Purpose:
    Candidate building, the good-odds floor, EV ranking and the
    no-candidate passthrough of the primary-pick selector.

Dependencies:
    - matchpick.services.primary_pick
"""

from __future__ import annotations

import pytest

from matchpick.models.analysis import Market
from matchpick.services.odds_snapshot import build_snapshot
from matchpick.services.primary_pick import (
    Candidate,
    choose_best,
    parse_market_estimate,
    select_primary_pick,
)


def _estimate(side, probability, summary="because"):
    return {"recommended_side": side, "probability": probability, "summary": summary}


def _snapshot(home=1.1, draw=6.0, away=15.0, over=1.8, under=2.0):
    return build_snapshot({
        "domesticWinLoseOdds": [
            {"type": "WIN", "odds": home, "latestFlag": True},
            {"type": "DRAW", "odds": draw, "latestFlag": True},
            {"type": "LOSS", "odds": away, "latestFlag": True},
        ],
        "domesticUnderOverOdds": [
            {"type": "OVER", "odds": over, "optionValue": 2.5, "latestFlag": True},
            {"type": "UNDER", "odds": under, "optionValue": 2.5, "latestFlag": True},
        ],
    })


def test_short_priced_favourite_is_dropped_by_the_floor():
    result = {
        "full_time_1x2": _estimate("HOME", 0.85),
        "over_under": _estimate("UNDER_2_5", 0.55),
    }

    picked = select_primary_pick(result, _snapshot(home=1.1, under=2.0))

    assert picked["primary_pick"]["market"] == "OVER_UNDER"
    assert picked["primary_pick"]["side"] == "UNDER_2_5"
    assert picked["primary_pick"]["probability"] == 0.55


@pytest.mark.parametrize("home, kept", [(1.39, False), (1.4, True), (1.41, True)])
def test_floor_keeps_prices_at_or_above_minimum(home, kept):
    picked = select_primary_pick({"full_time_1x2": _estimate("HOME", 0.8)}, _snapshot(home=home))

    assert ("primary_pick" in picked) is kept


def test_highest_expected_value_wins():
    result = {
        "full_time_1x2": _estimate("HOME", 0.6),   # 0.6 * 2.0 - 1 = 0.2
        "over_under": _estimate("OVER_2_5", 0.5),  # 0.5 * 2.6 - 1 = 0.3
    }

    picked = select_primary_pick(result, _snapshot(home=2.0, over=2.6))

    assert picked["primary_pick"]["side"] == "OVER_2_5"


def test_expected_value_tie_goes_to_higher_probability():
    result = {
        "full_time_1x2": _estimate("HOME", 0.5),   # 0.5 * 2.0 - 1 = 0.0
        "over_under": _estimate("UNDER_2_5", 0.625),  # 0.625 * 1.6 - 1 = 0.0
    }

    picked = select_primary_pick(result, _snapshot(home=2.0, under=1.6))

    assert picked["primary_pick"]["market"] == "OVER_UNDER"


def test_without_prices_the_most_probable_candidate_wins():
    result = {
        "full_time_1x2": _estimate("HOME", 0.52),
        "over_under": _estimate("OVER_2_5", 0.61),
        "handicap": _estimate("AWAY_+0_5", 0.58),
    }

    picked = select_primary_pick(result, None)

    assert picked["primary_pick"]["side"] == "OVER_2_5"


def test_handicap_is_never_priced_or_floored():
    snapshot = build_snapshot({
        "domesticHandicapOdds": [{"type": "WIN", "odds": 1.05, "optionValue": -1.5, "latestFlag": True}],
    })
    result = {"handicap": _estimate("HOME_-1_5", 0.7)}

    picked = select_primary_pick(result, snapshot)

    assert picked["primary_pick"]["market"] == "HANDICAP"


def test_priced_candidates_beat_unpriced_ones():
    result = {
        "over_under": _estimate("OVER_2_5", 0.5),
        "handicap": _estimate("HOME_-0_5", 0.9),
    }

    picked = select_primary_pick(result, _snapshot(over=2.4))

    assert picked["primary_pick"]["market"] == "OVER_UNDER"


def test_no_candidates_returns_result_without_pick():
    result = {
        "full_time_1x2": _estimate("HOME", 1.4),
        "over_under": {"recommended_side": "", "probability": 0.6},
        "handicap": "not an object",
        "primary_pick": {"market": "FULL_TIME_1X2", "side": "HOME"},
    }

    picked = select_primary_pick(result, _snapshot())

    assert "primary_pick" not in picked
    assert picked["full_time_1x2"] == result["full_time_1x2"]
    assert picked["handicap"] == "not an object"


def test_oracle_supplied_pick_is_recomputed():
    result = {
        "over_under": _estimate("UNDER_2_5", 0.6),
        "primary_pick": {"market": "FULL_TIME_1X2", "side": "HOME", "probability": 0.99, "reason": "trust me"},
    }

    picked = select_primary_pick(result, _snapshot())

    assert picked["primary_pick"]["market"] == "OVER_UNDER"
    assert picked["primary_pick"]["reason"] == "because"


def test_non_dict_input_passes_through():
    assert select_primary_pick("garbage", None) == "garbage"
    assert select_primary_pick(None, None) is None


def test_dict_snapshot_is_accepted():
    snapshot = _snapshot(home=1.1)
    result = {"full_time_1x2": _estimate("HOME", 0.9)}

    picked = select_primary_pick(result, snapshot.to_document())

    assert "primary_pick" not in picked


@pytest.mark.parametrize("probability", [-0.1, 1.5, "abc", None, True, float("nan")])
def test_malformed_probabilities_are_excluded(probability):
    assert parse_market_estimate(Market.full_time_1x2, _estimate("HOME", probability)) is None


def test_numeric_string_probability_and_default_summary():
    estimate = parse_market_estimate(Market.over_under, {"recommended_side": " OVER_2_5 ", "probability": "0.64"})

    assert estimate.probability == 0.64
    assert estimate.recommended_side == "OVER_2_5"
    assert estimate.summary == "No summary provided for the OVER_UNDER market."


def test_choose_best_computes_expected_value():
    best = choose_best([
        Candidate(Market.full_time_1x2, "AWAY", 0.3, "r", odds=4.0),
        Candidate(Market.over_under, "OVER_2_5", 0.55, "r", odds=1.9),
    ])

    assert best.side == "AWAY"
    assert best.expected_value == pytest.approx(0.2)
