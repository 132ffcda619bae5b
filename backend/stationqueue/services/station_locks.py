import asyncio
import uuid
from collections import defaultdict


class StationLockRegistry:
    """One asyncio.Lock per station id, shared by every scheduler in the process."""

    def __init__(self):
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def get(self, station_id: uuid.UUID | str) -> asyncio.Lock:
        return self._locks[str(station_id)]

    def __len__(self) -> int:
        return len(self._locks)


station_locks = StationLockRegistry()
