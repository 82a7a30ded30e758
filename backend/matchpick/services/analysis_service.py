"""
backend/matchpick/services/analysis_service.py

Purpose:
    Recommendation cache and orchestrator. For one match it fetches the
    current context, keys the cache on the odds snapshot hash, calls the
    oracle at most once per match at a time within this process, persists
    every fresh evaluation as a new version, and grades the primary pick
    against the caller's current score/status.

    Per match the flow is:
        cached record for (match_id, odds_hash)  -> normalize + grade
        match already in flight                  -> wait once, re-check,
                                                    else withheld result
        otherwise                                -> oracle, select, persist
                                                    in a task that outlives
                                                    a cancelled caller

Dependencies:
    - pymongo (DuplicateKeyError on concurrent version writes)
    - matchpick.services.*
    - matchpick.monitoring.analysis_metrics
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Protocol

from pymongo.errors import DuplicateKeyError

from matchpick.models.analysis import (
    PRIMARY_PICK_KEY,
    RAW_TEXT_KEY,
    AnalysisRecord,
    HitStatus,
    OddsSnapshot,
    RequestedMarkets,
)
from matchpick.models.games import ContextOverrides, MatchContext, Score
from matchpick.monitoring.analysis_metrics import (
    METRIC_CACHE_LOOKUPS,
    METRIC_INFLIGHT_WAITS,
    METRIC_ORACLE_CALLS,
    METRIC_ORACLE_LATENCY,
    METRIC_ORACLE_PARSE_FALLBACK,
    METRIC_PRIMARY_PICK,
    observe_latency,
)
from matchpick.services.analysis_repository import AnalysisRepository
from matchpick.services.hit_status import evaluate_hit_status
from matchpick.services.inflight import InFlightRegistry
from matchpick.services.odds_snapshot import build_snapshot, odds_hash
from matchpick.services.oracle_parser import is_raw_result, parse_oracle_text
from matchpick.services.primary_pick import MIN_GOOD_ODDS, select_primary_pick
from matchpick.services.prompt_builder import build_prompt
from matchpick.utils import utcnow

logger = logging.getLogger("matchpick.analysis_service")

_MAX_INSERT_ATTEMPTS = 3


class ContextProvider(Protocol):
    async def get_match_context(
        self,
        match_id: int,
        sports_type: Optional[str] = None,
        overrides: Optional[ContextOverrides] = None,
    ) -> MatchContext: ...


class Oracle(Protocol):
    async def complete(self, prompt: str) -> str: ...


def withheld(match_id: int) -> dict[str, Any]:
    """Graded shape for "no confident recommendation available"."""
    return {"match_id": match_id, "result": None, "hit_status": HitStatus.neutral.value}


def primary_pick_of(graded: dict[str, Any] | None) -> dict[str, Any] | None:
    if not graded:
        return None
    result = graded.get("result")
    if not isinstance(result, dict):
        return None
    pick = result.get(PRIMARY_PICK_KEY)
    return pick if isinstance(pick, dict) else None


class AnalysisService:
    def __init__(
        self,
        repository: AnalysisRepository,
        context_provider: ContextProvider,
        oracle: Oracle,
        inflight: InFlightRegistry | None = None,
        *,
        min_good_odds: float = MIN_GOOD_ODDS,
        inflight_wait_seconds: float = 1.0,
    ):
        self._repo = repository
        self._context_provider = context_provider
        self._oracle = oracle
        self._inflight = inflight or InFlightRegistry()
        self._min_good_odds = min_good_odds
        self._inflight_wait_seconds = inflight_wait_seconds
        self._pending: set[asyncio.Task] = set()

    async def get_or_create(
        self,
        match_id: int,
        requested_markets: RequestedMarkets | None = None,
        force_refresh: bool = False,
        sports_type: str | None = None,
        overrides: ContextOverrides | None = None,
    ) -> dict[str, Any]:
        """Return the graded recommendation for the match's current odds.

        Oracle and upstream failures propagate; a concurrent evaluation of the
        same match degrades to the withheld shape instead of a second call.
        """
        markets = requested_markets or RequestedMarkets()
        context = await self._context_provider.get_match_context(
            match_id, sports_type=sports_type, overrides=overrides,
        )
        snapshot = build_snapshot(context.odds)
        digest = odds_hash(snapshot)

        if force_refresh:
            METRIC_CACHE_LOOKUPS.labels(outcome="refresh").inc()
        else:
            cached = await self._cached(match_id, digest, context)
            if cached is not None:
                METRIC_CACHE_LOOKUPS.labels(outcome="hit").inc()
                return cached
            METRIC_CACHE_LOOKUPS.labels(outcome="miss").inc()

        if not await self._inflight.try_acquire(match_id):
            logger.info(
                "Analysis for match %s already in flight, waiting %.1fs",
                match_id, self._inflight_wait_seconds,
            )
            await asyncio.sleep(self._inflight_wait_seconds)
            cached = await self._cached(match_id, digest, context)
            if cached is not None:
                METRIC_INFLIGHT_WAITS.labels(outcome="recovered").inc()
                return cached
            METRIC_INFLIGHT_WAITS.labels(outcome="withheld").inc()
            logger.info("Analysis for match %s still in flight, withholding", match_id)
            return withheld(match_id)

        # The evaluation owns the in-flight slot and outlives a cancelled caller.
        task = asyncio.create_task(
            self._run_locked(match_id, markets, context, snapshot, digest, recheck=not force_refresh)
        )
        self._pending.add(task)
        task.add_done_callback(self._forget)
        return await asyncio.shield(task)

    async def get_existing(
        self,
        match_id: int,
        overrides: ContextOverrides | None = None,
    ) -> dict[str, Any]:
        """Latest stored recommendation regardless of odds hash. No I/O besides the store."""
        record = await self._repo.find_latest(match_id)
        if not record:
            return withheld(match_id)
        result = self._normalize(record)
        if not isinstance(result, dict) or not isinstance(result.get(PRIMARY_PICK_KEY), dict):
            return withheld(match_id)
        score = overrides.score() if overrides else None
        status = overrides.game_status if overrides else None
        return _present(record, result, evaluate_hit_status(result[PRIMARY_PICK_KEY], score, status))

    async def _cached(
        self,
        match_id: int,
        digest: str,
        context: MatchContext,
    ) -> dict[str, Any] | None:
        record = await self._repo.find_latest(match_id, digest)
        if not record:
            return None
        result = self._normalize(record)
        pick = result.get(PRIMARY_PICK_KEY) if isinstance(result, dict) else None
        return _present(record, result, self._grade(pick, context))

    def _normalize(self, record: dict[str, Any]) -> Any:
        """Stored result, re-parsed and re-selected when it was kept as raw text."""
        result = record.get("result")
        if not is_raw_result(result):
            return result
        parsed = parse_oracle_text(result.get(RAW_TEXT_KEY))
        return select_primary_pick(
            parsed,
            record.get("odds_snapshot"),
            min_good_odds=self._min_good_odds,
        )

    async def _run_locked(
        self,
        match_id: int,
        markets: RequestedMarkets,
        context: MatchContext,
        snapshot: OddsSnapshot,
        digest: str,
        *,
        recheck: bool,
    ) -> dict[str, Any]:
        """Evaluate while holding the match's in-flight slot; always releases it.

        The cache is read again first: a writer that finished between the
        caller's miss and the acquire has already stored this hash.
        """
        try:
            if recheck:
                cached = await self._cached(match_id, digest, context)
                if cached is not None:
                    logger.info("Analysis for match %s landed while acquiring, reusing it", match_id)
                    return cached
            return await self._evaluate(match_id, markets, context, snapshot, digest)
        finally:
            await self._inflight.release(match_id)

    def _forget(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        # Consume the error of an abandoned evaluation; _evaluate logged it.
        if not task.cancelled():
            task.exception()

    async def _evaluate(
        self,
        match_id: int,
        markets: RequestedMarkets,
        context: MatchContext,
        snapshot: OddsSnapshot,
        digest: str,
    ) -> dict[str, Any]:
        prompt = build_prompt(context, markets, snapshot)
        try:
            with observe_latency(METRIC_ORACLE_LATENCY):
                text = await self._oracle.complete(prompt)
        except Exception:
            METRIC_ORACLE_CALLS.labels(outcome="error").inc()
            logger.error("Oracle call failed for match %s", match_id, exc_info=True)
            raise
        METRIC_ORACLE_CALLS.labels(outcome="ok").inc()

        parsed = parse_oracle_text(text)
        if is_raw_result(parsed):
            METRIC_ORACLE_PARSE_FALLBACK.inc()
            logger.warning("Oracle output for match %s is not JSON, storing raw text", match_id)
        result = select_primary_pick(parsed, snapshot, min_good_odds=self._min_good_odds)

        pick = result.get(PRIMARY_PICK_KEY)
        METRIC_PRIMARY_PICK.labels(market=pick["market"] if pick else "withheld").inc()

        record = await self._persist(match_id, markets, snapshot, digest, result)
        logger.info(
            "Stored analysis v%d for match %s (hash %s, pick %s)",
            record["version"], match_id, digest[:12],
            f"{pick['market']}:{pick['side']}" if pick else "none",
        )
        return _present(record, result, self._grade(pick, context))

    async def _persist(
        self,
        match_id: int,
        markets: RequestedMarkets,
        snapshot: OddsSnapshot,
        digest: str,
        result: dict[str, Any],
    ) -> dict[str, Any]:
        attempt = 1
        while True:
            version = await self._repo.find_max_version(match_id) + 1
            record = AnalysisRecord(
                match_id=match_id,
                requested_markets=markets,
                odds_snapshot=snapshot.to_document(),
                odds_hash=digest,
                result=result,
                version=version,
                created_at=utcnow(),
            )
            try:
                return await self._repo.insert(record)
            except DuplicateKeyError:
                if attempt >= _MAX_INSERT_ATTEMPTS:
                    raise
                logger.warning(
                    "Version %d for match %s taken by a concurrent writer, retrying (%d/%d)",
                    version, match_id, attempt, _MAX_INSERT_ATTEMPTS,
                )
                attempt += 1

    @staticmethod
    def _grade(pick: Any, context: MatchContext) -> HitStatus:
        return evaluate_hit_status(pick, context.score or Score(), context.game_status)


def _present(record: dict[str, Any], result: Any, hit_status: HitStatus) -> dict[str, Any]:
    out = {k: v for k, v in record.items() if k != "_id"}
    if record.get("_id") is not None:
        out["id"] = str(record["_id"])
    out["result"] = result
    out["hit_status"] = hit_status.value
    return out


_service: AnalysisService | None = None


def get_analysis_service() -> AnalysisService:
    """Process-wide service wired to Mongo, the sports-data API and Gemini."""
    global _service
    if _service is None:
        from matchpick.config import settings
        from matchpick.providers.gemini import gemini_oracle
        from matchpick.providers.sports_data import sports_data_provider

        _service = AnalysisService(
            AnalysisRepository(),
            sports_data_provider,
            gemini_oracle,
            min_good_odds=settings.ANALYSIS_MIN_GOOD_ODDS,
            inflight_wait_seconds=settings.ANALYSIS_INFLIGHT_WAIT_SECONDS,
        )
    return _service
