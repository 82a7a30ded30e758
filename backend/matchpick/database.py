"""
backend/matchpick/database.py

Purpose:
    MongoDB connection bootstrap and index management for the analysis
    store.

Dependencies:
    - motor.motor_asyncio
    - pymongo
    - matchpick.config
"""

import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError, OperationFailure

from matchpick.config import settings

client: AsyncIOMotorClient = None
db: AsyncIOMotorDatabase = None

logger = logging.getLogger("matchpick.database")


async def connect_db() -> None:
    global client, db
    client = AsyncIOMotorClient(
        settings.MONGO_URI,
        maxPoolSize=25,
        minPoolSize=5,
    )
    db = client[settings.MONGO_DB]
    await _ensure_indexes()


async def close_db() -> None:
    global client
    if client:
        client.close()


async def _ensure_indexes() -> None:
    """Create indexes on startup. Idempotent, safe to run repeatedly."""

    # ---- Game analyses (append-only, versioned per match) ----

    # Cache lookup: latest version for (match, odds hash)
    await db.game_analyses.create_index(
        [("match_id", 1), ("odds_hash", 1), ("version", -1)]
    )
    # Version chain is global per match across all hashes
    try:
        await db.game_analyses.create_index(
            [("match_id", 1), ("version", -1)],
            unique=True,
        )
    except (DuplicateKeyError, OperationFailure) as exc:
        logger.warning(
            "Skipped unique (match_id, version) index due to duplicate data: %s",
            exc,
        )
        await db.game_analyses.create_index(
            [("match_id", 1), ("version", -1)],
            name="match_version_lookup",
            unique=False,
        )
    await db.game_analyses.create_index([("created_at", -1)])
