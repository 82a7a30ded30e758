"""Games API: popular-game listings and the per-match context."""

import asyncio
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query

from matchpick.config import settings
from matchpick.models.games import ContextOverrides, PopularGame
from matchpick.providers.sports_data import SportsDataProvider, get_sports_data_provider
from matchpick.services.analysis_service import (
    AnalysisService,
    get_analysis_service,
    primary_pick_of,
)
from matchpick.utils import local_today

logger = logging.getLogger("matchpick.games_router")
router = APIRouter(prefix="/api/games", tags=["games"])


def _resolve_date(date: Optional[str]) -> str:
    return date or local_today(settings.analysis_tz).isoformat()


@router.get("/popular")
async def popular_games(
    date: Optional[str] = Query(None, description="YYYY-MM-DD, defaults to today"),
    tomorrow: bool = Query(False, description="List the day after ``date``"),
    provider: SportsDataProvider = Depends(get_sports_data_provider),
):
    """Popular games that carry domestic odds, sorted by start time."""
    return await provider.fetch_popular_games(_resolve_date(date), tomorrow=tomorrow)


@router.get("/popular-with-pick")
async def popular_games_with_pick(
    date: Optional[str] = Query(None, description="YYYY-MM-DD, defaults to today"),
    tomorrow: bool = Query(False),
    provider: SportsDataProvider = Depends(get_sports_data_provider),
    service: AnalysisService = Depends(get_analysis_service),
):
    """Popular games enriched with their primary pick; games without one are left out."""
    listing = await provider.fetch_popular_games(_resolve_date(date), tomorrow=tomorrow)

    async def _enrich(game: PopularGame) -> dict[str, Any]:
        out = game.model_dump()
        try:
            graded = await service.get_or_create(
                game.game_id,
                force_refresh=False,
                sports_type=game.sport,
                overrides=game.overrides(),
            )
        except Exception as exc:
            logger.warning("No pick for popular game %s: %s", game.game_id, exc)
            out.update(primary_pick=None, hit_status="neutral")
            return out
        out.update(primary_pick=primary_pick_of(graded), hit_status=graded.get("hit_status", "neutral"))
        return out

    enriched = await asyncio.gather(*(_enrich(g) for g in listing.games))
    logger.info(
        "popular-with-pick %s: %d of %d games with a pick",
        listing.date, sum(1 for g in enriched if g["primary_pick"]), len(enriched),
    )
    return {
        "date": listing.date,
        "games": [g for g in enriched if g["primary_pick"] is not None],
    }


@router.get("/{match_id}")
async def match_context(
    match_id: int,
    sports_type: Optional[str] = Query(None),
    score_home: Optional[float] = Query(None),
    score_away: Optional[float] = Query(None),
    game_status: Optional[str] = Query(None),
    result: Optional[str] = Query(None),
    provider: SportsDataProvider = Depends(get_sports_data_provider),
):
    """Aggregated match context: basics, records, odds and community posts."""
    overrides = ContextOverrides(
        score_home=score_home,
        score_away=score_away,
        game_status=game_status,
        result=result,
    )
    return await provider.get_match_context(match_id, sports_type=sports_type, overrides=overrides)
