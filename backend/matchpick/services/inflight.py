"""Per-process registry of match ids with an oracle call in progress."""

import asyncio


class InFlightRegistry:
    """Set of match ids guarded by an asyncio lock.

    ``try_acquire`` is the only way in; it fails when the id is already held,
    so at most one caller per match proceeds to the oracle at a time.
    """

    def __init__(self) -> None:
        self._ids: set[int] = set()
        self._lock = asyncio.Lock()

    async def try_acquire(self, match_id: int) -> bool:
        async with self._lock:
            if match_id in self._ids:
                return False
            self._ids.add(match_id)
            return True

    async def release(self, match_id: int) -> None:
        async with self._lock:
            self._ids.discard(match_id)

    def __len__(self) -> int:
        return len(self._ids)
