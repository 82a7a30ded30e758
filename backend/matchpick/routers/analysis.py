"""Analysis API: create-or-reuse and read-only lookup of a match's primary pick."""

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel, Field

from matchpick.models.analysis import RequestedMarkets
from matchpick.models.games import ContextOverrides
from matchpick.services.analysis_service import AnalysisService, get_analysis_service

logger = logging.getLogger("matchpick.analysis_router")
router = APIRouter(prefix="/api/games", tags=["analysis"])


class AnalysisRequest(BaseModel):
    markets: RequestedMarkets = Field(default_factory=RequestedMarkets)


@router.post("/{match_id}/analysis")
async def create_analysis(
    match_id: int,
    body: Optional[AnalysisRequest] = Body(None),
    refresh: bool = Query(False, description="Ignore the cache and ask the oracle again"),
    sports_type: Optional[str] = Query(None),
    score_home: Optional[float] = Query(None),
    score_away: Optional[float] = Query(None),
    game_status: Optional[str] = Query(None),
    service: AnalysisService = Depends(get_analysis_service),
):
    """Return the graded recommendation for the match's current odds."""
    overrides = ContextOverrides(
        score_home=score_home,
        score_away=score_away,
        game_status=game_status,
    )
    return await service.get_or_create(
        match_id,
        requested_markets=(body or AnalysisRequest()).markets,
        force_refresh=refresh,
        sports_type=sports_type,
        overrides=overrides,
    )


@router.get("/{match_id}/analysis")
async def get_analysis(
    match_id: int,
    score_home: Optional[float] = Query(None),
    score_away: Optional[float] = Query(None),
    game_status: Optional[str] = Query(None),
    service: AnalysisService = Depends(get_analysis_service),
):
    """Latest stored recommendation; never calls upstream APIs or the oracle."""
    overrides = ContextOverrides(
        score_home=score_home,
        score_away=score_away,
        game_status=game_status,
    )
    return await service.get_existing(match_id, overrides=overrides)
