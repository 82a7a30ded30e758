"""Match context models returned by the upstream sports-data adapter."""

from typing import Any, Optional

from pydantic import BaseModel, Field


class Score(BaseModel):
    home: Optional[float] = None
    away: Optional[float] = None


class ContextOverrides(BaseModel):
    """Live view of a match supplied by the caller (score board, list page)."""
    score_home: Optional[float] = None
    score_away: Optional[float] = None
    game_status: Optional[str] = None
    result: Optional[str] = None

    def score(self) -> Optional[Score]:
        if self.score_home is None and self.score_away is None:
            return None
        return Score(home=self.score_home, away=self.score_away)


class MatchBasic(BaseModel):
    league_name: str = ""
    start_time: str = ""
    home_team_name: str = ""
    away_team_name: str = ""


class MatchRecord(BaseModel):
    head_to_head: list[Any] = Field(default_factory=list)
    home_recent: list[Any] = Field(default_factory=list)
    away_recent: list[Any] = Field(default_factory=list)
    rank: Any = None
    season_stat: Any = None
    player_season_stat: Any = None


class CommunityPost(BaseModel):
    post_id: int = 0
    game_id: int = 0
    title: str = ""
    content: str = ""
    likes: int = 0
    created_at: str = ""


class MatchContext(BaseModel):
    """Everything the oracle prompt and the grader need for one match."""
    match_id: int
    sports_type: Optional[str] = None
    basic: MatchBasic = Field(default_factory=MatchBasic)
    record: MatchRecord = Field(default_factory=MatchRecord)
    odds: dict[str, Any] = Field(default_factory=dict)
    community_posts: list[CommunityPost] = Field(default_factory=list)
    score: Optional[Score] = None
    game_status: Optional[str] = None
    result: Optional[str] = None


class PopularGame(BaseModel):
    game_id: int
    sport: Optional[str] = None
    league_name: Optional[str] = None
    start_time: Optional[str] = None
    home_team_name: Optional[str] = None
    away_team_name: Optional[str] = None
    game_status: Optional[str] = None
    result: Optional[str] = None
    score: Optional[Score] = None

    def overrides(self) -> ContextOverrides:
        score = self.score or Score()
        return ContextOverrides(
            score_home=score.home,
            score_away=score.away,
            game_status=self.game_status,
            result=self.result,
        )


class PopularGames(BaseModel):
    date: str
    games: list[PopularGame] = Field(default_factory=list)
