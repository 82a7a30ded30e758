"""
backend/tests/conftest.py

Purpose:
    Shared pytest bootstrap for import paths used by backend and root-level
    tool module tests, plus in-memory stand-ins for the analysis store and
    the upstream collaborators.
"""

from __future__ import annotations

import copy
import itertools
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

_THIS_FILE = Path(__file__).resolve()
_BACKEND_DIR = _THIS_FILE.parents[1]
_REPO_ROOT = _THIS_FILE.parents[2]

for candidate in (str(_BACKEND_DIR), str(_REPO_ROOT)):
    if candidate not in sys.path:
        sys.path.insert(0, candidate)

from pymongo.errors import DuplicateKeyError  # noqa: E402

from matchpick.models.games import MatchBasic, MatchContext  # noqa: E402


class FakeAnalysesCollection:
    """Just enough of a motor collection for ``game_analyses``.

    Enforces the unique (match_id, version) index.
    """

    def __init__(self):
        self.docs: list[dict] = []
        self._ids = itertools.count(1)

    async def find_one(self, query, projection=None, sort=None):
        hits = [d for d in self.docs if all(d.get(k) == v for k, v in query.items())]
        for field, direction in reversed(sort or []):
            hits.sort(key=lambda d: d.get(field), reverse=direction < 0)
        return copy.deepcopy(hits[0]) if hits else None

    async def insert_one(self, doc):
        for existing in self.docs:
            if existing["match_id"] == doc["match_id"] and existing["version"] == doc["version"]:
                raise DuplicateKeyError("E11000 duplicate key error collection: game_analyses")
        stored = copy.deepcopy(doc)
        stored["_id"] = f"oid-{next(self._ids)}"
        self.docs.append(stored)
        return SimpleNamespace(inserted_id=stored["_id"])


class FakeRepository:
    """AnalysisRepository stand-in keeping records in a list."""

    def __init__(self):
        self.records: list[dict] = []
        self.insert_calls = 0
        self.fail_inserts = 0
        self.stale_reads = 0

    async def find_latest(self, match_id, odds_hash=None):
        if self.stale_reads:
            self.stale_reads -= 1
            return None
        hits = [
            r for r in self.records
            if r["match_id"] == match_id and (odds_hash is None or r["odds_hash"] == odds_hash)
        ]
        if not hits:
            return None
        return copy.deepcopy(max(hits, key=lambda r: r["version"]))

    async def find_max_version(self, match_id):
        versions = [r["version"] for r in self.records if r["match_id"] == match_id]
        return max(versions, default=0)

    async def insert(self, record):
        self.insert_calls += 1
        if self.fail_inserts:
            self.fail_inserts -= 1
            raise DuplicateKeyError("E11000 duplicate key error")
        doc = record.model_dump(mode="python")
        doc["_id"] = f"oid-{len(self.records) + 1}"
        self.records.append(copy.deepcopy(doc))
        return doc


class FakeContextProvider:
    def __init__(self, odds=None, score=None, game_status=None):
        self.odds = odds if odds is not None else {}
        self.score = score
        self.game_status = game_status
        self.calls = 0

    async def get_match_context(self, match_id, sports_type=None, overrides=None):
        self.calls += 1
        return MatchContext(
            match_id=match_id,
            sports_type=sports_type,
            basic=MatchBasic(
                league_name="K League 1",
                start_time="2025-05-01T19:00:00",
                home_team_name="Ulsan",
                away_team_name="Jeonbuk",
            ),
            odds=copy.deepcopy(self.odds),
            score=overrides.score() if overrides and overrides.score() else self.score,
            game_status=(overrides.game_status if overrides and overrides.game_status else self.game_status),
        )


class FakeOracle:
    def __init__(self, text="{}", error=None):
        self.text = text
        self.error = error
        self.prompts: list[str] = []

    async def complete(self, prompt):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.text


@pytest.fixture
def fake_analyses(monkeypatch):
    import matchpick.database as _db

    collection = FakeAnalysesCollection()
    monkeypatch.setattr(_db, "db", SimpleNamespace(game_analyses=collection), raising=False)
    return collection
