"""
Queue engine: background task that keeps every AutoDJ station's queue moving.
Each pass prunes old history and, when auto-dispatch is on, hands the next
entry to AutoDJ for any station with nothing in flight.
"""
import asyncio
import logging
import uuid
from collections.abc import Callable
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from stationqueue.config import settings
from stationqueue.core.exceptions import ContentionError
from stationqueue.db.engine import async_session_factory
from stationqueue.services.notifier import ExternalNotifier, get_notifier
from stationqueue.services.queue_scheduler import QueueScheduler
from stationqueue.services.station_locks import StationLockRegistry, station_locks
from stationqueue.services.station_service import list_autodj_stations

logger = logging.getLogger(__name__)


class QueueEngine:
    def __init__(
        self,
        check_interval: int | None = None,
        session_factory: Callable[[], AsyncSession] | None = None,
        notifier: ExternalNotifier | None = None,
        locks: StationLockRegistry | None = None,
        auto_dispatch: bool | None = None,
    ):
        self.check_interval = check_interval or settings.QUEUE_ENGINE_INTERVAL
        self.session_factory = session_factory or async_session_factory
        self.notifier = notifier or get_notifier()
        self.locks = locks if locks is not None else station_locks
        self.auto_dispatch = settings.QUEUE_ENGINE_AUTO_DISPATCH if auto_dispatch is None else auto_dispatch
        self.running = False
        self._task: Optional[asyncio.Task] = None

    async def start(self):
        """Start the engine loop."""
        if self.running:
            logger.warning("Queue engine already running")
            return

        self.running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Queue engine started (interval %ss, auto-dispatch %s)", self.check_interval, self.auto_dispatch)

    async def stop(self):
        """Stop the engine loop."""
        self.running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Queue engine stopped")

    async def _run_loop(self):
        while self.running:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Queue engine error: {e}", exc_info=True)

            await asyncio.sleep(self.check_interval)

    async def run_once(self) -> dict[str, int]:
        """One pass over all AutoDJ stations. Returns counts for logging/tests."""
        stats = {"stations": 0, "purged": 0, "dispatched": 0, "failed": 0}
        async with self.session_factory() as db:
            # A rollback expires loaded stations, keep plain values
            stations = [(station.id, station.name) for station in await list_autodj_stations(db)]
            await db.commit()

            for station_id, name in stations:
                stats["stations"] += 1
                try:
                    purged, dispatched = await self._check_station(db, station_id)
                    stats["purged"] += purged
                    stats["dispatched"] += int(dispatched)
                except ContentionError as e:
                    logger.info("Station %s: %s", name, e)
                except Exception as e:
                    stats["failed"] += 1
                    logger.error(f"Error checking station {name} ({station_id}): {e}", exc_info=True)
        return stats

    async def _check_station(self, db: AsyncSession, station_id: uuid.UUID) -> tuple[int, bool]:
        scheduler = QueueScheduler(db, notifier=self.notifier, locks=self.locks)
        purged = await scheduler.prune_history(station_id)
        if not self.auto_dispatch:
            return purged, False
        entry = await scheduler.dispatch_next(station_id)
        return purged, entry is not None


# Global engine instance
_engine: QueueEngine | None = None


def get_engine() -> QueueEngine:
    """Get or create the global queue engine."""
    global _engine
    if _engine is None:
        _engine = QueueEngine()
    return _engine


async def start_engine():
    """Start the global queue engine."""
    await get_engine().start()


async def stop_engine():
    """Stop the global queue engine."""
    await get_engine().stop()
