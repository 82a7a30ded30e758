"""
backend/matchpick/services/analysis_repository.py

Purpose:
    Persistence access layer for append-only analysis records
    (collection ``game_analyses``). Lookups are always "latest version first".

Dependencies:
    - matchpick.database
    - matchpick.models.analysis
"""

from __future__ import annotations

from typing import Any

from pymongo import DESCENDING

import matchpick.database as _db
from matchpick.models.analysis import AnalysisRecord


class AnalysisRepository:
    async def find_latest(self, match_id: int, odds_hash: str | None = None) -> dict[str, Any] | None:
        """Newest record for the match, optionally restricted to one odds hash."""
        query: dict[str, Any] = {"match_id": match_id}
        if odds_hash is not None:
            query["odds_hash"] = odds_hash
        return await _db.db.game_analyses.find_one(query, sort=[("version", DESCENDING)])

    async def find_max_version(self, match_id: int) -> int:
        doc = await _db.db.game_analyses.find_one(
            {"match_id": match_id},
            {"version": 1},
            sort=[("version", DESCENDING)],
        )
        if not doc:
            return 0
        return int(doc.get("version") or 0)

    async def insert(self, record: AnalysisRecord) -> dict[str, Any]:
        doc = record.model_dump(mode="python")
        result = await _db.db.game_analyses.insert_one(doc)
        doc["_id"] = result.inserted_id
        return doc
