"""
backend/matchpick/workers/analysis_scheduler.py

Purpose:
    Timer-driven analysis jobs: today's popular games, tomorrow's
    before-noon games, the pre-match window and the missing-pick sweep.
    Every job is safe to re-run: matches whose odds did not move are served
    from the analysis cache without an oracle call.

Dependencies:
    - matchpick.services.analysis_service
    - matchpick.providers.sports_data
    - matchpick.monitoring.analysis_metrics
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Iterable
from zoneinfo import ZoneInfo

from matchpick.config import settings
from matchpick.models.games import PopularGame
from matchpick.monitoring.analysis_metrics import METRIC_SWEEP_FAILURES, METRIC_SWEEP_RUNS
from matchpick.providers.sports_data import get_sports_data_provider
from matchpick.services.analysis_service import (
    AnalysisService,
    get_analysis_service,
    primary_pick_of,
)
from matchpick.utils import ensure_utc, local_today, parse_local, utcnow

logger = logging.getLogger("matchpick.analysis_scheduler")


def is_before_cutoff(
    start_time: str | datetime | None,
    tz: ZoneInfo | None = None,
    cutoff_hour: int | None = None,
) -> bool:
    """True when the match starts before ``cutoff_hour`` local time.

    Naive timestamps are read as local to ``tz``; aware ones are converted.
    """
    tz = tz or settings.analysis_tz
    if cutoff_hour is None:
        cutoff_hour = settings.ANALYSIS_MORNING_CUTOFF_HOUR
    start = parse_local(start_time, tz)
    return start is not None and start.hour < cutoff_hour


def _deps(service, provider):
    if service is None:
        service = get_analysis_service()
    if provider is None:
        provider = get_sports_data_provider()
    return service, provider


async def _list_games(provider, job: str, day: str, tomorrow: bool) -> list[PopularGame] | None:
    try:
        listing = await provider.fetch_popular_games(day, tomorrow=tomorrow)
    except Exception:
        logger.error("[%s] Could not fetch popular games for %s (tomorrow=%s)", job, day, tomorrow, exc_info=True)
        return None
    return listing.games


async def _analyse_games(
    service: AnalysisService,
    games: Iterable[PopularGame],
    job: str,
    trigger: str,
    *,
    skip_with_pick: bool = False,
) -> dict[str, int]:
    """Run get_or_create per game; one failing match never stops the rest."""
    counts = {"processed": 0, "skipped": 0, "failed": 0}
    for game in games:
        try:
            if skip_with_pick:
                existing = await service.get_existing(game.game_id)
                if primary_pick_of(existing) is not None:
                    counts["skipped"] += 1
                    continue
            await service.get_or_create(
                game.game_id,
                force_refresh=False,
                sports_type=game.sport,
            )
            counts["processed"] += 1
        except Exception as exc:
            counts["failed"] += 1
            METRIC_SWEEP_FAILURES.labels(job=job).inc()
            logger.warning(
                "[%s] Analysis failed for match %s (trigger=%s): %s",
                job, game.game_id, trigger, exc,
            )
    return counts


async def run_today(
    trigger: str = "manual",
    *,
    service: AnalysisService | None = None,
    provider=None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Analyse every popular game of the local calendar day."""
    job = "today"
    METRIC_SWEEP_RUNS.labels(job=job).inc()
    service, provider = _deps(service, provider)
    day = local_today(settings.analysis_tz, now).isoformat()

    games = await _list_games(provider, job, day, tomorrow=False)
    if games is None:
        return {"job": job, "trigger": trigger, "date": day, "listed": 0, "error": True}

    counts = await _analyse_games(service, games, job, trigger)
    logger.info("[%s] Done trigger=%s date=%s listed=%d %s", job, trigger, day, len(games), counts)
    return {"job": job, "trigger": trigger, "date": day, "listed": len(games), **counts}


async def run_tomorrow_morning(
    *,
    service: AnalysisService | None = None,
    provider=None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Pre-compute tomorrow's games that start before the local cutoff hour."""
    job = "tomorrow_morning"
    METRIC_SWEEP_RUNS.labels(job=job).inc()
    service, provider = _deps(service, provider)
    tz = settings.analysis_tz
    day = local_today(tz, now).isoformat()

    games = await _list_games(provider, job, day, tomorrow=True)
    if games is None:
        return {"job": job, "date": day, "listed": 0, "error": True}

    morning = [g for g in games if is_before_cutoff(g.start_time, tz)]
    counts = await _analyse_games(service, morning, job, "tomorrow_morning")
    logger.info("[%s] Done date=%s listed=%d morning=%d %s", job, day, len(games), len(morning), counts)
    return {"job": job, "date": day, "listed": len(games), "selected": len(morning), **counts}


async def run_prematch_window(
    as_of: datetime | None = None,
    *,
    service: AnalysisService | None = None,
    provider=None,
) -> dict[str, Any]:
    """Re-check today's games kicking off within the pre-match lead time.

    Odds move close to kick-off, so a changed snapshot gets a fresh
    evaluation while unchanged ones stay cache hits.
    """
    job = "prematch"
    METRIC_SWEEP_RUNS.labels(job=job).inc()
    service, provider = _deps(service, provider)
    tz = settings.analysis_tz
    now = ensure_utc(as_of or utcnow()).astimezone(tz)
    horizon = now + timedelta(minutes=settings.ANALYSIS_PREMATCH_LEAD_MINUTES)
    day = now.date().isoformat()

    games = await _list_games(provider, job, day, tomorrow=False)
    if games is None:
        return {"job": job, "date": day, "listed": 0, "error": True}

    upcoming = []
    for game in games:
        start = parse_local(game.start_time, tz)
        if start is not None and now < start <= horizon:
            upcoming.append(game)

    counts = await _analyse_games(service, upcoming, job, "prematch")
    if upcoming:
        logger.info("[%s] Done date=%s window=%d %s", job, day, len(upcoming), counts)
    return {"job": job, "date": day, "listed": len(games), "selected": len(upcoming), **counts}


async def sweep_missing_picks(
    as_of: datetime | None = None,
    *,
    service: AnalysisService | None = None,
    provider=None,
) -> dict[str, Any]:
    """Fill in matches whose latest record has no primary pick.

    Covers today and tomorrow's before-cutoff games. Matches that already
    carry a pick are skipped without touching the upstream APIs.
    """
    job = "sweep"
    METRIC_SWEEP_RUNS.labels(job=job).inc()
    service, provider = _deps(service, provider)
    tz = settings.analysis_tz
    day = local_today(tz, as_of).isoformat()

    targets: list[PopularGame] = []
    seen: set[int] = set()
    for tomorrow in (False, True):
        games = await _list_games(provider, job, day, tomorrow=tomorrow)
        if games is None:
            continue
        for game in games:
            if tomorrow and not is_before_cutoff(game.start_time, tz):
                continue
            if game.game_id in seen:
                continue
            seen.add(game.game_id)
            targets.append(game)

    counts = await _analyse_games(service, targets, job, "sweep", skip_with_pick=True)
    if counts["processed"] or counts["failed"]:
        logger.info("[%s] Done date=%s candidates=%d %s", job, day, len(targets), counts)
    else:
        logger.debug("[%s] Nothing missing for %s (%d candidates)", job, day, len(targets))
    return {"job": job, "date": day, "listed": len(targets), **counts}
