"""
backend/matchpick/providers/sports_data.py

Purpose:
    Upstream sports-data adapter: match record (head-to-head, recent form,
    bundled odds), community analysis board, sport-specific extras (rank,
    season stats) and the popular-games listing.

Dependencies:
    - httpx (via matchpick.providers.http_client)
    - matchpick.config
    - matchpick.models.games
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date as date_type, datetime, timedelta
from typing import Any, Optional

import httpx

from matchpick.config import settings
from matchpick.errors import UpstreamError
from matchpick.models.games import (
    CommunityPost,
    ContextOverrides,
    MatchBasic,
    MatchContext,
    MatchRecord,
    PopularGame,
    PopularGames,
    Score,
)
from matchpick.providers.http_client import ResilientClient
from matchpick.utils import parse_local

logger = logging.getLogger("matchpick.sports_data")

USER_AGENT = "matchpick-backend/1.0"
COMMUNITY_BOARD_TYPE = "sports_analysis"


class SportsDataProvider:
    """Read-only client for the sports-data and community APIs."""

    def __init__(
        self,
        client: ResilientClient | None = None,
        *,
        sports_api_base: str | None = None,
        challenger_api_base: str | None = None,
        batch_size: int | None = None,
    ):
        self._client = client or ResilientClient(
            "sports_data",
            timeout=settings.SPORTS_API_TIMEOUT_SECONDS,
            max_retries=settings.SPORTS_API_MAX_RETRIES,
            base_delay=settings.SPORTS_API_RETRY_DELAY_SECONDS,
            headers={"User-Agent": USER_AGENT},
        )
        self._sports_base = (sports_api_base or settings.SPORTS_API_BASE).rstrip("/")
        self._challenger_base = (challenger_api_base or settings.CHALLENGER_API_BASE).rstrip("/")
        self._batch_size = max(1, batch_size or settings.POPULAR_GAMES_BATCH_SIZE)

    async def aclose(self) -> None:
        await self._client.aclose()

    # ---------- transport ----------

    async def _get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        try:
            resp = await self._client.get(url, params=params)
            resp.raise_for_status()
            return resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise UpstreamError(f"GET {url} failed: {exc}") from exc

    async def _get_optional(self, url: str, label: str, game_id: int) -> Any:
        """Best-effort fetch; failures are logged and read as missing data."""
        try:
            return await self._get_json(url)
        except UpstreamError as exc:
            logger.warning("%s fetch failed for game %s: %s", label, game_id, exc)
            return None

    # ---------- match context ----------

    async def fetch_game_record(self, game_id: int) -> dict[str, Any]:
        data = await self._get_json(f"{self._sports_base}/sports/soccer/games/{game_id}/record")
        return data if isinstance(data, dict) else {}

    async def fetch_community_board(self, game_id: int) -> dict[str, Any]:
        data = await self._get_json(
            f"{self._challenger_base}/board",
            params={"board_type": COMMUNITY_BOARD_TYPE, "page": 1, "game_id": game_id},
        )
        return data if isinstance(data, dict) else {}

    async def fetch_rank(self, game_id: int) -> Any:
        return await self._get_optional(
            f"{self._sports_base}/sports/soccer/games/{game_id}/rank", "rank", game_id,
        )

    async def fetch_season_stat(self, game_id: int) -> Any:
        return await self._get_optional(
            f"{self._sports_base}/sports/basketball/games/{game_id}/team/season-stat",
            "season-stat", game_id,
        )

    async def fetch_player_season_stat(self, game_id: int) -> Any:
        return await self._get_optional(
            f"{self._sports_base}/sports/basketball/games/{game_id}/player/season-stat",
            "player-season-stat", game_id,
        )

    async def get_match_context(
        self,
        match_id: int,
        sports_type: Optional[str] = None,
        overrides: Optional[ContextOverrides] = None,
    ) -> MatchContext:
        record, board = await asyncio.gather(
            self.fetch_game_record(match_id),
            self.fetch_community_board(match_id),
        )

        head_to_head = _as_list(record.get("vsRecord"))
        first_vs = head_to_head[0] if head_to_head and isinstance(head_to_head[0], dict) else {}
        posts = _as_list(board.get("list"))
        first_post = posts[0] if posts and isinstance(posts[0], dict) else {}

        basic = MatchBasic(
            league_name=_text(first_vs.get("leagueName")),
            start_time=_text(first_post.get("start_datetime") or first_vs.get("startDateTime")),
            home_team_name=_text(first_post.get("home_team") or _name(first_vs.get("home"))),
            away_team_name=_text(first_post.get("away_team") or _name(first_vs.get("away"))),
        )
        odds = first_vs.get("odds")

        rank = season_stat = player_season_stat = None
        kind = (sports_type or "").lower()
        if kind == "soccer":
            rank = await self.fetch_rank(match_id)
        elif kind == "basketball":
            season_stat, player_season_stat = await asyncio.gather(
                self.fetch_season_stat(match_id),
                self.fetch_player_season_stat(match_id),
            )

        return MatchContext(
            match_id=match_id,
            sports_type=sports_type,
            basic=basic,
            record=MatchRecord(
                head_to_head=head_to_head,
                home_recent=_as_list(record.get("recentHomeRecord")),
                away_recent=_as_list(record.get("recentAwayRecord")),
                rank=rank,
                season_stat=season_stat,
                player_season_stat=player_season_stat,
            ),
            odds=odds if isinstance(odds, dict) else {},
            community_posts=[_community_post(p) for p in posts if isinstance(p, dict)],
            score=overrides.score() if overrides else None,
            game_status=overrides.game_status if overrides else None,
            result=overrides.result if overrides else None,
        )

    # ---------- popular games ----------

    async def has_domestic_odds(self, game_id: int) -> bool:
        try:
            data = await self._get_json(f"{self._sports_base}/sports/games/{game_id}/odds/sitesV2")
        except UpstreamError as exc:
            logger.warning("Odds check failed for game %s: %s", game_id, exc)
            return False
        domestic = data.get("domestic") if isinstance(data, dict) else None
        return isinstance(domestic, list) and len(domestic) > 0

    async def fetch_popular_games(self, date: str, tomorrow: bool = False) -> PopularGames:
        """Popular games for ``date`` (or the day after) that carry domestic odds."""
        data = await self._get_json(
            f"{self._sports_base}/popular-games",
            params={"date": date, "tomorrow-game-flag": tomorrow},
        )
        flat: list[dict[str, Any]] = []
        if isinstance(data, dict):
            for bucket in data.values():
                flat.extend(g for g in _as_list(bucket) if isinstance(g, dict))
        flat.sort(key=_start_sort_key)

        games: list[PopularGame] = []
        for i in range(0, len(flat), self._batch_size):
            batch = flat[i:i + self._batch_size]
            checks = await asyncio.gather(
                *(self._keep_if_priced(item) for item in batch),
                return_exceptions=True,
            )
            for item, outcome in zip(batch, checks):
                if isinstance(outcome, BaseException):
                    logger.warning("Dropping popular game %s: %s", item.get("id"), outcome)
                elif outcome is not None:
                    games.append(outcome)

        logger.info(
            "Popular games for %s (tomorrow=%s): %d of %d with domestic odds",
            date, tomorrow, len(games), len(flat),
        )
        return PopularGames(date=_display_date(date, tomorrow), games=games)

    async def _keep_if_priced(self, item: dict[str, Any]) -> PopularGame | None:
        game = _popular_game(item)
        if not await self.has_domestic_odds(game.game_id):
            return None
        return game


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _name(team: Any) -> str | None:
    return team.get("name") if isinstance(team, dict) else None


def _int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _community_post(item: dict[str, Any]) -> CommunityPost:
    return CommunityPost(
        post_id=_int(item.get("wr_id")),
        game_id=_int(item.get("game_id")),
        title=_text(item.get("wr_subject")),
        content=_text(item.get("wr_content")),
        likes=_int(item.get("wr_good")),
        created_at=_text(item.get("wr_datetime")),
    )


def _sum_periods(team: Any) -> float | None:
    periods = team.get("periodData") if isinstance(team, dict) else None
    if not isinstance(periods, list):
        return None
    total = 0.0
    for period in periods:
        value = period.get("score") if isinstance(period, dict) else None
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            total += value
    return total


def _popular_game(item: dict[str, Any]) -> PopularGame:
    teams = item.get("teams") if isinstance(item.get("teams"), dict) else {}
    home, away = teams.get("home"), teams.get("away")
    home_score, away_score = _sum_periods(home), _sum_periods(away)
    score = None
    if home_score is not None or away_score is not None:
        score = Score(home=home_score, away=away_score)
    league = item.get("league")
    return PopularGame(
        game_id=_int(item.get("id")),
        sport=item.get("sportsType"),
        league_name=league.get("name") if isinstance(league, dict) else None,
        start_time=item.get("startDatetime"),
        home_team_name=_name(home),
        away_team_name=_name(away),
        game_status=item.get("gameStatus"),
        result=item.get("result"),
        score=score,
    )


def _start_sort_key(item: dict[str, Any]) -> tuple[int, datetime | None]:
    start = parse_local(item.get("startDatetime"), settings.analysis_tz)
    return (0, start) if start is not None else (1, None)


def _display_date(date: str, tomorrow: bool) -> str:
    if not tomorrow or not date:
        return date
    try:
        return (date_type.fromisoformat(date) + timedelta(days=1)).isoformat()
    except ValueError:
        return date


# Singleton provider instance
sports_data_provider = SportsDataProvider()


def get_sports_data_provider() -> SportsDataProvider:
    return sports_data_provider
