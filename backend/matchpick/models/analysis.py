"""Analysis models: markets, oracle estimates, odds snapshots, persisted records."""

import json
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# ---------- Markets & verdicts ----------

class Market(str, Enum):
    full_time_1x2 = "FULL_TIME_1X2"
    over_under = "OVER_UNDER"
    handicap = "HANDICAP"


class HitStatus(str, Enum):
    hit = "hit"
    miss = "miss"
    neutral = "neutral"


# Oracle result key per market, in candidate evaluation order.
MARKET_RESULT_KEYS: dict[Market, str] = {
    Market.full_time_1x2: "full_time_1x2",
    Market.over_under: "over_under",
    Market.handicap: "handicap",
}

PRIMARY_PICK_KEY = "primary_pick"
RAW_TEXT_KEY = "raw_text"


class RequestedMarkets(BaseModel):
    """Markets the caller wants analysed. Every market defaults to on."""
    full_time_1x2: bool = True
    over_under: bool = True
    handicap: bool = True


# ---------- Oracle estimates (one variant per market) ----------

class _EstimateBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    recommended_side: str
    probability: float = Field(ge=0.0, le=1.0)
    summary: str = ""


class FullTime1x2Estimate(_EstimateBase):
    market: Literal[Market.full_time_1x2] = Market.full_time_1x2


class OverUnderEstimate(_EstimateBase):
    market: Literal[Market.over_under] = Market.over_under


class HandicapEstimate(_EstimateBase):
    market: Literal[Market.handicap] = Market.handicap


MarketEstimate = Annotated[
    Union[FullTime1x2Estimate, OverUnderEstimate, HandicapEstimate],
    Field(discriminator="market"),
]


class PrimaryPick(BaseModel):
    """The single market + side recommended for a match."""
    model_config = ConfigDict(frozen=True)

    market: Market
    side: str
    probability: float
    reason: str


# ---------- Odds snapshot ----------

class OddsSnapshot(BaseModel):
    """Domestic odds families relevant to selection and grading.

    Each family is the upstream list of entries, kept verbatim (entries carry
    ``type``, ``odds``, optional ``optionValue`` and the ``latestFlag`` /
    ``availableFlag`` markers). A family is either a non-empty list or None.
    Field order is the canonical serialization order.
    """
    model_config = ConfigDict(frozen=True)

    win_lose: Optional[list[dict[str, Any]]] = None
    under_over: Optional[list[dict[str, Any]]] = None
    handicap: Optional[list[dict[str, Any]]] = None

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)

    def canonical_json(self) -> str:
        """Byte-stable JSON: families in declaration order, entry keys sorted."""
        parts = []
        for name in type(self).model_fields:
            entries = getattr(self, name)
            if entries is None:
                continue
            body = json.dumps(
                entries,
                sort_keys=True,
                separators=(",", ":"),
                ensure_ascii=False,
                default=str,
            )
            parts.append(f"{json.dumps(name)}:{body}")
        return "{" + ",".join(parts) + "}"

    @classmethod
    def from_document(cls, doc: Any) -> "OddsSnapshot":
        if not isinstance(doc, dict):
            return cls()
        return cls(
            win_lose=doc.get("win_lose") or None,
            under_over=doc.get("under_over") or None,
            handicap=doc.get("handicap") or None,
        )


# ---------- Persisted record ----------

class AnalysisRecord(BaseModel):
    """Append-only analysis document (collection ``game_analyses``).

    ``version`` increases per match across all odds hashes.
    """
    match_id: int
    requested_markets: RequestedMarkets
    odds_snapshot: dict[str, Any]
    odds_hash: str
    result: dict[str, Any]
    version: int = Field(ge=1)
    created_at: datetime
