"""
backend/tests/test_analysis_service.py

Purpose:
    Recommendation cache/orchestrator behaviour: cache hits keyed by the odds
    hash, in-flight deduplication, versioning, oracle failure propagation and
    read-path normalization of raw oracle text.

Dependencies:
    - matchpick.services.analysis_service
    - conftest fakes (repository, context provider, oracle)
"""

from __future__ import annotations

import asyncio
import copy
import json

import pytest
from conftest import FakeContextProvider, FakeOracle, FakeRepository
from pymongo.errors import DuplicateKeyError

from matchpick.errors import OracleError
from matchpick.models.analysis import RequestedMarkets
from matchpick.models.games import ContextOverrides, Score
from matchpick.services.analysis_service import AnalysisService, primary_pick_of
from matchpick.services.inflight import InFlightRegistry
from matchpick.services.odds_snapshot import build_snapshot, odds_hash

ODDS = {
    "domesticWinLoseOdds": [
        {"type": "WIN", "odds": 1.2, "latestFlag": True},
        {"type": "DRAW", "odds": 5.5, "latestFlag": True},
        {"type": "LOSS", "odds": 9.0, "latestFlag": True},
    ],
    "domesticUnderOverOdds": [
        {"type": "OVER", "odds": 1.9, "optionValue": 2.5, "latestFlag": True},
        {"type": "UNDER", "odds": 1.85, "optionValue": 2.5, "latestFlag": True},
    ],
}

ORACLE_JSON = json.dumps({
    "full_time_1x2": {"recommended_side": "HOME", "probability": 0.8, "summary": "Home in form"},
    "over_under": {"recommended_side": "OVER_2_5", "probability": 0.62, "summary": "Both attack well"},
    "handicap": {"recommended_side": "HOME_-0_5", "probability": 0.7, "summary": "Home edge"},
})


def _service(provider=None, oracle=None, repo=None, **kwargs):
    kwargs.setdefault("inflight_wait_seconds", 0)
    return AnalysisService(
        repo or FakeRepository(),
        provider or FakeContextProvider(odds=copy.deepcopy(ODDS)),
        oracle or FakeOracle(ORACLE_JSON),
        **kwargs,
    )


class GatedOracle(FakeOracle):
    """Oracle that blocks until the test opens the gate."""

    def __init__(self, text):
        super().__init__(text)
        self.started = asyncio.Event()
        self.gate = asyncio.Event()

    async def complete(self, prompt):
        self.prompts.append(prompt)
        self.started.set()
        await self.gate.wait()
        return self.text


@pytest.mark.asyncio
async def test_fresh_evaluation_is_persisted_and_graded():
    repo = FakeRepository()
    service = _service(repo=repo)

    graded = await service.get_or_create(100)

    assert graded["version"] == 1
    assert graded["match_id"] == 100
    assert graded["hit_status"] == "neutral"
    assert primary_pick_of(graded)["side"] == "OVER_2_5"
    assert graded["odds_hash"] == odds_hash(build_snapshot(ODDS))
    assert graded["id"] == "oid-1"
    assert "_id" not in graded
    assert len(repo.records) == 1


@pytest.mark.asyncio
async def test_second_call_with_unchanged_odds_is_a_cache_hit():
    oracle = FakeOracle(ORACLE_JSON)
    service = _service(oracle=oracle)

    first = await service.get_or_create(100)
    second = await service.get_or_create(100)

    assert len(oracle.prompts) == 1
    assert second["version"] == first["version"] == 1
    assert second["result"] == first["result"]


@pytest.mark.asyncio
async def test_changed_odds_trigger_a_new_version():
    provider = FakeContextProvider(odds=copy.deepcopy(ODDS))
    oracle = FakeOracle(ORACLE_JSON)
    service = _service(provider=provider, oracle=oracle)

    first = await service.get_or_create(100)
    provider.odds["domesticUnderOverOdds"][0]["odds"] = 2.05
    second = await service.get_or_create(100)

    assert len(oracle.prompts) == 2
    assert second["version"] == first["version"] + 1
    assert second["odds_hash"] != first["odds_hash"]


@pytest.mark.asyncio
async def test_force_refresh_skips_the_cache():
    oracle = FakeOracle(ORACLE_JSON)
    service = _service(oracle=oracle)

    await service.get_or_create(100)
    refreshed = await service.get_or_create(100, force_refresh=True)

    assert len(oracle.prompts) == 2
    assert refreshed["version"] == 2


@pytest.mark.asyncio
async def test_cache_hit_is_graded_with_the_current_score():
    provider = FakeContextProvider(odds=copy.deepcopy(ODDS))
    service = _service(provider=provider)

    await service.get_or_create(100)
    provider.score = Score(home=3, away=1)
    provider.game_status = "FINAL"
    graded = await service.get_or_create(100)

    assert graded["hit_status"] == "hit"


@pytest.mark.asyncio
async def test_overrides_reach_the_grader():
    service = _service()

    graded = await service.get_or_create(
        100,
        overrides=ContextOverrides(score_home=0, score_away=1, game_status="FINAL"),
    )

    assert graded["hit_status"] == "miss"


@pytest.mark.asyncio
async def test_concurrent_request_is_withheld_while_in_flight():
    oracle = GatedOracle(ORACLE_JSON)
    registry = InFlightRegistry()
    service = _service(oracle=oracle, inflight=registry)

    first = asyncio.create_task(service.get_or_create(100))
    await oracle.started.wait()

    second = await service.get_or_create(100)

    assert second == {"match_id": 100, "result": None, "hit_status": "neutral"}
    oracle.gate.set()
    done = await first
    assert done["version"] == 1
    assert len(oracle.prompts) == 1
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_concurrent_request_recovers_once_the_first_one_lands():
    oracle = GatedOracle(ORACLE_JSON)
    service = _service(oracle=oracle, inflight_wait_seconds=0.05)

    first = asyncio.create_task(service.get_or_create(100))
    await oracle.started.wait()
    second = asyncio.create_task(service.get_or_create(100))
    await asyncio.sleep(0)

    oracle.gate.set()
    first_result = await first
    second_result = await second

    assert len(oracle.prompts) == 1
    assert second_result["version"] == first_result["version"]
    assert primary_pick_of(second_result) == primary_pick_of(first_result)


@pytest.mark.asyncio
async def test_oracle_failure_propagates_and_releases_the_slot():
    repo = FakeRepository()
    registry = InFlightRegistry()
    service = _service(repo=repo, oracle=FakeOracle(error=OracleError("quota")), inflight=registry)

    with pytest.raises(OracleError):
        await service.get_or_create(100)

    assert len(registry) == 0
    assert repo.records == []

    service._oracle = FakeOracle(ORACLE_JSON)
    graded = await service.get_or_create(100)
    assert graded["version"] == 1


@pytest.mark.asyncio
async def test_unparseable_oracle_text_is_stored_raw_and_reparsed_on_read():
    repo = FakeRepository()
    oracle = FakeOracle("Sorry, no JSON today.")
    service = _service(repo=repo, oracle=oracle)

    graded = await service.get_or_create(100)

    assert graded["result"] == {"raw_text": "Sorry, no JSON today."}
    assert primary_pick_of(graded) is None
    assert repo.records[0]["result"] == {"raw_text": "Sorry, no JSON today."}


@pytest.mark.asyncio
async def test_raw_record_is_normalized_on_cache_hit():
    repo = FakeRepository()
    service = _service(repo=repo)
    await service.get_or_create(100)
    repo.records[0]["result"] = {"raw_text": f"```json\n{ORACLE_JSON}\n```"}

    oracle = FakeOracle(ORACLE_JSON)
    service._oracle = oracle
    graded = await service.get_or_create(100)

    assert oracle.prompts == []
    assert primary_pick_of(graded)["side"] == "OVER_2_5"
    assert graded["version"] == 1


@pytest.mark.asyncio
async def test_no_surviving_candidate_withholds_the_pick():
    text = json.dumps({"full_time_1x2": {"recommended_side": "HOME", "probability": 0.9}})
    service = _service(oracle=FakeOracle(text))

    graded = await service.get_or_create(100, requested_markets=RequestedMarkets(over_under=False, handicap=False))

    assert "primary_pick" not in graded["result"]
    assert graded["hit_status"] == "neutral"
    assert graded["requested_markets"] == {"full_time_1x2": True, "over_under": False, "handicap": False}


@pytest.mark.asyncio
async def test_duplicate_version_is_retried_with_a_fresh_max():
    repo = FakeRepository()
    repo.fail_inserts = 1
    service = _service(repo=repo)

    graded = await service.get_or_create(100)

    assert repo.insert_calls == 2
    assert graded["version"] == 1


@pytest.mark.asyncio
async def test_duplicate_version_gives_up_after_three_attempts():
    repo = FakeRepository()
    repo.fail_inserts = 5
    registry = InFlightRegistry()
    service = _service(repo=repo, inflight=registry)

    with pytest.raises(DuplicateKeyError):
        await service.get_or_create(100)

    assert repo.insert_calls == 3
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_get_existing_without_record_is_withheld():
    service = _service()
    assert await service.get_existing(5) == {"match_id": 5, "result": None, "hit_status": "neutral"}


@pytest.mark.asyncio
async def test_get_existing_grades_latest_record_without_upstream_calls():
    provider = FakeContextProvider(odds=copy.deepcopy(ODDS))
    oracle = FakeOracle(ORACLE_JSON)
    service = _service(provider=provider, oracle=oracle)
    await service.get_or_create(100)
    provider.odds["domesticWinLoseOdds"][0]["odds"] = 1.3
    await service.get_or_create(100)

    existing = await service.get_existing(
        100,
        overrides=ContextOverrides(score_home=2, score_away=1, game_status="FINAL"),
    )

    assert provider.calls == 2
    assert len(oracle.prompts) == 2
    assert existing["version"] == 2
    assert existing["hit_status"] == "hit"


@pytest.mark.asyncio
async def test_get_existing_without_pick_is_withheld():
    text = json.dumps({"over_under": {"recommended_side": "OVER_2_5", "probability": 3}})
    service = _service(oracle=FakeOracle(text))
    await service.get_or_create(100)

    assert await service.get_existing(100) == {"match_id": 100, "result": None, "hit_status": "neutral"}


@pytest.mark.asyncio
async def test_abandoned_request_still_persists_the_evaluation():
    repo = FakeRepository()
    oracle = GatedOracle(ORACLE_JSON)
    registry = InFlightRegistry()
    service = _service(repo=repo, oracle=oracle, inflight=registry)

    caller = asyncio.create_task(service.get_or_create(100))
    await oracle.started.wait()
    caller.cancel()
    with pytest.raises(asyncio.CancelledError):
        await caller

    oracle.gate.set()
    await asyncio.gather(*list(service._pending))

    assert len(repo.records) == 1
    assert len(registry) == 0

    again = await service.get_or_create(100)
    assert len(oracle.prompts) == 1
    assert again["version"] == 1


@pytest.mark.asyncio
async def test_record_landing_before_acquire_is_reused():
    repo = FakeRepository()
    oracle = FakeOracle(ORACLE_JSON)
    service = _service(repo=repo, oracle=oracle)
    await service.get_or_create(100)

    # The next cache read misses, as if taken just before the insert above.
    repo.stale_reads = 1
    graded = await service.get_or_create(100)

    assert len(oracle.prompts) == 1
    assert len(repo.records) == 1
    assert graded["version"] == 1
