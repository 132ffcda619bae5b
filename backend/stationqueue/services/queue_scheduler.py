"""
Queue scheduler: the single authority deciding what a station hands to AutoDJ next.

Every public operation runs in its own transaction on the scheduler's session:
commit on success, rollback on any error. Dispatch is serialized per station
with an in-process lock, and across processes by the station row lock the
store takes before its conditional UPDATE: dispatch and dispatch_next never
put a second entry of a station in flight. on_dispatched only records what
AutoDJ reports, so it logs a second in-flight entry instead of refusing it.
"""
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from stationqueue.config import settings
from stationqueue.core.exceptions import ContentionError, InvalidTransitionError, NotFoundError
from stationqueue.db.base import utcnow
from stationqueue.models.queue_entry import QueueEntry
from stationqueue.models.station import Station
from stationqueue.schemas.queue import QueueEntryCreate
from stationqueue.services.notifier import ExternalNotifier, get_notifier
from stationqueue.services.queue_store import QueueStore
from stationqueue.services.station_locks import StationLockRegistry, station_locks

logger = logging.getLogger(__name__)


class QueueScheduler:
    def __init__(
        self,
        db: AsyncSession,
        notifier: ExternalNotifier | None = None,
        store: QueueStore | None = None,
        locks: StationLockRegistry | None = None,
        max_retries: int | None = None,
    ):
        self.db = db
        self.store = store or QueueStore(db)
        self.notifier = notifier or get_notifier()
        self.locks = locks if locks is not None else station_locks
        self.max_retries = max_retries or settings.QUEUE_DISPATCH_MAX_RETRIES

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[None]:
        try:
            yield
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

    async def _get(self, entry_id: int) -> QueueEntry:
        entry = await self.store.get(entry_id)
        if entry is None:
            raise NotFoundError(f"Queue entry {entry_id} not found")
        return entry

    # -- producers --------------------------------------------------------

    async def cue(self, data: QueueEntryCreate) -> QueueEntry:
        async with self._transaction():
            entry_id = await self.store.insert(data)
        return await self._get(entry_id)

    async def remove(self, entry_id: int) -> None:
        entry = await self._get(entry_id)
        async with self.locks.get(entry.station_id):
            async with self._transaction():
                await self.store.remove(entry_id)
        logger.info("Removed queue entry #%d from station %s", entry_id, entry.station_id)

    async def clear_upcoming(self, station_id: uuid.UUID) -> int:
        async with self.locks.get(station_id):
            async with self._transaction():
                count = await self.store.clear_upcoming(station_id)
        logger.info("Cleared %d upcoming queue entries for station %s", count, station_id)
        return count

    # -- dispatch ---------------------------------------------------------

    async def next_for_station(self, station_id: uuid.UUID) -> QueueEntry | None:
        """Earliest upcoming entry not yet sent to AutoDJ."""
        return await self.store.first_unsent(station_id)

    async def on_dispatched(self, entry_id: int) -> QueueEntry:
        """Record that AutoDJ took the entry. Repeated calls change nothing and notify nobody."""
        entry = await self._get(entry_id)
        async with self.locks.get(entry.station_id):
            in_flight = await self.store.find_in_flight(entry.station_id)
            async with self._transaction():
                entry, changed = await self.store.mark_sent_to_autodj(entry_id)
        if not changed:
            logger.debug("Queue entry #%d already sent to AutoDJ", entry_id)
            return entry
        if in_flight is not None and in_flight.id != entry_id:
            logger.warning(
                "AutoDJ took queue entry #%d while #%d is still in flight on station %s",
                entry_id, in_flight.id, entry.station_id,
            )
        await self._notify(entry)
        return entry

    async def dispatch(self, entry_id: int) -> QueueEntry:
        """Claim a specific entry for AutoDJ. The loser of a race gets ContentionError."""
        entry = await self._get(entry_id)
        async with self.locks.get(entry.station_id):
            async with self._transaction():
                entry = await self.store.claim_for_dispatch(entry_id)
        await self._notify(entry)
        return entry

    async def dispatch_next(self, station_id: uuid.UUID) -> QueueEntry | None:
        """Claim and hand over the next entry, unless one is already in flight.

        Returns None when the queue is empty or AutoDJ still holds an
        unconfirmed entry. Contention is retried up to max_retries times.
        """
        async with self.locks.get(station_id):
            for attempt in range(1, self.max_retries + 1):
                in_flight = await self.store.find_in_flight(station_id)
                if in_flight is not None:
                    logger.debug(
                        "Station %s: queue entry #%d still in flight, not dispatching",
                        station_id, in_flight.id,
                    )
                    return None

                entry = await self.next_for_station(station_id)
                if entry is None:
                    return None

                try:
                    async with self._transaction():
                        entry = await self.store.claim_for_dispatch(entry.id)
                except (ContentionError, NotFoundError) as e:
                    logger.info(
                        "Station %s: dispatch attempt %d/%d lost a race: %s",
                        station_id, attempt, self.max_retries, e,
                    )
                    continue
                break
            else:
                raise ContentionError(
                    f"Station {station_id}: dispatch still contended after {self.max_retries} attempts"
                )

        await self._notify(entry)
        return entry

    async def _notify(self, entry: QueueEntry) -> None:
        try:
            audio_uri = await self.store.media.resolve_audio_uri(entry)
            station = await self.db.get(Station, entry.station_id)
            await self.notifier.notify_dispatched(entry.station_id, entry.id, audio_uri, entry, station=station)
        except Exception as e:
            # Dispatch is already committed
            logger.error("Notifying AutoDJ about queue entry #%d failed: %s", entry.id, e, exc_info=True)

    # -- playback callbacks -----------------------------------------------

    async def on_playback_confirmed(self, entry_id: int, played_at: datetime | None = None) -> QueueEntry:
        """AutoDJ reports the entry went to air.

        Never fails for an entry that exists: audio already played, so a
        duplicate confirmation is a logged no-op and a confirmation for an
        entry that was never dispatched is logged as an anomaly and applied.
        """
        played_at = played_at or utcnow()
        entry = await self._get(entry_id)

        if entry.is_played:
            logger.warning(
                "Duplicate playback confirmation for queue entry #%d ignored (played at %s)",
                entry_id, entry.timestamp_played,
            )
            return entry

        if not entry.sent_to_autodj:
            logger.warning(
                "Out-of-band playback confirmation for queue entry #%d (station %s): never dispatched",
                entry_id, entry.station_id,
            )

        try:
            async with self._transaction():
                entry = await self.store.mark_played(entry_id, played_at)
        except InvalidTransitionError:
            logger.warning("Queue entry #%d was confirmed concurrently, keeping first confirmation", entry_id)
            return await self._get(entry_id)

        logger.info("Queue entry #%d played on station %s: %s", entry.id, entry.station_id, entry)
        return entry

    async def on_playlist_reassigned(self, entry_id: int, new_playlist_id: uuid.UUID | None) -> QueueEntry:
        async with self._transaction():
            await self.store.set_playlist(entry_id, new_playlist_id)
            entry = await self.store.recompute_visibility(entry_id)
        return entry

    # -- history ----------------------------------------------------------

    async def prune_history(self, station_id: uuid.UUID, now: datetime | None = None) -> int:
        """Purge entries played longer ago than QUEUE_HISTORY_DAYS."""
        cutoff = (now or utcnow()) - timedelta(days=settings.QUEUE_HISTORY_DAYS)
        async with self._transaction():
            count = await self.store.purge_older_than(station_id, cutoff)
        if count:
            logger.info("Purged %d played queue entries older than %s for station %s", count, cutoff, station_id)
        return count
