"""
Durable per-station broadcast queue.

The store stages and flushes changes on the session it was given; committing
is the caller's job (QueueScheduler owns the transaction). Lifecycle flags are
only ever flipped with conditional UPDATE statements, so a write that lost a
race shows up as rowcount == 0 instead of silently overwriting.
"""
import logging
import uuid
from collections.abc import AsyncIterator
from datetime import datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from stationqueue.core.exceptions import (
    ContentionError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from stationqueue.db.base import utcnow
from stationqueue.models.media import Media
from stationqueue.models.queue_entry import QueueEntry, QueueSourceKind
from stationqueue.models.song_request import SongRequest
from stationqueue.models.station import Station
from stationqueue.schemas.queue import (
    CustomUriSource,
    MediaSource,
    PlaylistSource,
    QueueEntryCreate,
    RequestSource,
)
from stationqueue.services.resolvers import MediaResolver, PlaylistClassifier

logger = logging.getLogger(__name__)

MAX_CUSTOM_URI_LENGTH = 255


class QueueStore:
    def __init__(
        self,
        db: AsyncSession,
        media_resolver: MediaResolver | None = None,
        playlist_classifier: PlaylistClassifier | None = None,
    ):
        self.db = db
        self.media = media_resolver or MediaResolver(db)
        self.playlists = playlist_classifier or PlaylistClassifier(db)

    # -- creation ---------------------------------------------------------

    async def insert(self, data: QueueEntryCreate) -> int:
        """Cue a new entry at the end of the station's queue. Returns its id."""
        source = data.source
        if source is None:
            raise ValidationError("Queue entry needs a playlist, media, request or custom URI")

        station = await self.db.get(Station, data.station_id)
        if station is None:
            raise NotFoundError(f"Station {data.station_id} not found")

        entry = QueueEntry(station_id=station.id, source=source.kind, timestamp_cued=utcnow())
        media_id: uuid.UUID | None = None

        if isinstance(source, PlaylistSource):
            await self._require_playlist(source.playlist_id, station.id)
            entry.playlist_id = source.playlist_id
            media_id = source.media_id
        elif isinstance(source, MediaSource):
            media_id = source.media_id
        elif isinstance(source, RequestSource):
            request = await self.db.get(SongRequest, source.request_id)
            if request is None or request.station_id != station.id:
                raise NotFoundError(f"Request {source.request_id} not found for station {station.id}")
            entry.request_id = request.id
            media_id = request.media_id
        elif isinstance(source, CustomUriSource):
            uri = source.uri.strip()
            if not uri:
                raise ValidationError("Custom URI must not be blank")
            if len(uri) > MAX_CUSTOM_URI_LENGTH:
                raise ValidationError(f"Custom URI longer than {MAX_CUSTOM_URI_LENGTH} characters")
            entry.autodj_custom_uri = uri
            if source.playlist_id is not None:
                await self._require_playlist(source.playlist_id, station.id)
                entry.playlist_id = source.playlist_id

        if media_id is not None:
            media = await self.media.get(media_id)
            if media is None or media.station_id != station.id:
                raise NotFoundError(f"Media {media_id} not found for station {station.id}")
            self._attach_media(entry, media)
            entry.duration = await self.media.calculated_length(media.id)

        entry.is_visible = await self._visibility_for(entry.playlist_id)

        self.db.add(entry)
        await self.db.flush()
        logger.info(
            "Cued queue entry #%d (%s) for station %s: %s",
            entry.id, entry.source, station.id, entry,
        )
        return entry.id

    @staticmethod
    def _attach_media(entry: QueueEntry, media: Media) -> None:
        entry.media_id = media.id
        entry.title = media.title
        entry.artist = media.artist
        entry.text = media.text

    # -- lookups ----------------------------------------------------------

    async def get(self, entry_id: int) -> QueueEntry | None:
        return await self.db.get(QueueEntry, entry_id, populate_existing=True)

    async def _require(self, entry_id: int, for_update: bool = False) -> QueueEntry:
        stmt = select(QueueEntry).where(QueueEntry.id == entry_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt.execution_options(populate_existing=True))
        entry = result.scalar_one_or_none()
        if entry is None:
            raise NotFoundError(f"Queue entry {entry_id} not found")
        return entry

    async def _lock_station(self, station_id: uuid.UUID) -> None:
        """SELECT ... FOR UPDATE on the station row. A no-op on SQLite."""
        await self.db.execute(select(Station.id).where(Station.id == station_id).with_for_update())

    async def list_upcoming(self, station_id: uuid.UUID, limit: int | None = None) -> AsyncIterator[QueueEntry]:
        """Unplayed entries, oldest cue first. The query runs when iteration starts."""
        stmt = (
            select(QueueEntry)
            .where(QueueEntry.station_id == station_id, QueueEntry.is_played.is_(False))
            .order_by(QueueEntry.timestamp_cued, QueueEntry.id)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.db.execute(stmt.execution_options(populate_existing=True))
        for entry in result.scalars():
            yield entry

    async def list_history(self, station_id: uuid.UUID, limit: int | None = None) -> AsyncIterator[QueueEntry]:
        """Played entries, most recent first."""
        stmt = (
            select(QueueEntry)
            .where(QueueEntry.station_id == station_id, QueueEntry.is_played.is_(True))
            .order_by(QueueEntry.timestamp_played.desc(), QueueEntry.id.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.db.execute(stmt.execution_options(populate_existing=True))
        for entry in result.scalars():
            yield entry

    async def first_unsent(self, station_id: uuid.UUID) -> QueueEntry | None:
        result = await self.db.execute(
            select(QueueEntry)
            .where(
                QueueEntry.station_id == station_id,
                QueueEntry.is_played.is_(False),
                QueueEntry.sent_to_autodj.is_(False),
            )
            .order_by(QueueEntry.timestamp_cued, QueueEntry.id)
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_in_flight(self, station_id: uuid.UUID) -> QueueEntry | None:
        """The entry handed to AutoDJ and not yet confirmed played, if any."""
        result = await self.db.execute(
            select(QueueEntry)
            .where(
                QueueEntry.station_id == station_id,
                QueueEntry.sent_to_autodj.is_(True),
                QueueEntry.is_played.is_(False),
            )
            .order_by(QueueEntry.timestamp_cued, QueueEntry.id)
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def count_upcoming(self, station_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(func.count(QueueEntry.id)).where(
                QueueEntry.station_id == station_id,
                QueueEntry.is_played.is_(False),
            )
        )
        return result.scalar() or 0

    # -- lifecycle --------------------------------------------------------

    async def mark_sent_to_autodj(self, entry_id: int) -> tuple[QueueEntry, bool]:
        """Idempotent: an entry already sent is left alone.

        Returns the entry and whether this call flipped the flag.
        """
        entry = await self._require(entry_id)
        if entry.sent_to_autodj:
            return entry, False
        result = await self.db.execute(
            update(QueueEntry)
            .where(QueueEntry.id == entry_id, QueueEntry.sent_to_autodj.is_(False))
            .values(sent_to_autodj=True)
            .execution_options(synchronize_session=False)
        )
        return await self._require(entry_id), result.rowcount == 1

    async def claim_for_dispatch(self, entry_id: int) -> QueueEntry:
        """Compare-and-set sent_to_autodj from false to true.

        Fails with ContentionError when the entry was already sent, or when
        another entry of the same station is still in flight. The station row
        is locked first, so claims for one station are serialized across
        processes and the in-flight check sees the previous claim once it commits.
        """
        entry = await self._require(entry_id)
        await self._lock_station(entry.station_id)
        entry = await self._require(entry_id, for_update=True)
        in_flight = aliased(QueueEntry)
        station_busy = (
            select(in_flight.id)
            .where(
                in_flight.station_id == entry.station_id,
                in_flight.sent_to_autodj.is_(True),
                in_flight.is_played.is_(False),
                in_flight.id != entry_id,
            )
            .exists()
        )
        result = await self.db.execute(
            update(QueueEntry)
            .where(
                QueueEntry.id == entry_id,
                QueueEntry.sent_to_autodj.is_(False),
                QueueEntry.is_played.is_(False),
                ~station_busy,
            )
            .values(sent_to_autodj=True)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ContentionError(f"Queue entry {entry_id} was dispatched concurrently")
        return await self._require(entry_id)

    async def mark_played(self, entry_id: int, played_at: datetime) -> QueueEntry:
        """Strict transition to played. Raises InvalidTransitionError if already played."""
        entry = await self._require(entry_id)
        if entry.is_played:
            raise InvalidTransitionError(f"Queue entry {entry_id} was already played")

        result = await self.db.execute(
            update(QueueEntry)
            .where(QueueEntry.id == entry_id, QueueEntry.is_played.is_(False))
            .values(is_played=True, sent_to_autodj=True, timestamp_played=played_at)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidTransitionError(f"Queue entry {entry_id} was already played")

        if entry.request_id is not None:
            await self.db.execute(
                update(SongRequest)
                .where(SongRequest.id == entry.request_id, SongRequest.played_at.is_(None))
                .values(played_at=played_at)
                .execution_options(synchronize_session=False)
            )
        return await self._require(entry_id)

    async def set_playlist(self, entry_id: int, playlist_id: uuid.UUID | None) -> QueueEntry:
        """Point the entry at another playlist (or none). Visibility is not touched here."""
        entry = await self._require(entry_id)
        if playlist_id is not None:
            await self._require_playlist(playlist_id, entry.station_id)

        entry.playlist_id = playlist_id
        if playlist_id is None and entry.source == QueueSourceKind.PLAYLIST.value:
            entry.source = QueueSourceKind.MEDIA.value
        elif playlist_id is not None and entry.source == QueueSourceKind.MEDIA.value:
            entry.source = QueueSourceKind.PLAYLIST.value
        await self.db.flush()
        return entry

    async def recompute_visibility(self, entry_id: int) -> QueueEntry:
        entry = await self._require(entry_id)
        entry.is_visible = await self._visibility_for(entry.playlist_id)
        await self.db.flush()
        return entry

    async def _visibility_for(self, playlist_id: uuid.UUID | None) -> bool:
        if playlist_id is None:
            return True
        return not await self.playlists.is_jingle(playlist_id)

    async def _require_playlist(self, playlist_id: uuid.UUID, station_id: uuid.UUID) -> None:
        playlist = await self.playlists.get(playlist_id)
        if playlist is None or playlist.station_id != station_id:
            raise NotFoundError(f"Playlist {playlist_id} not found for station {station_id}")

    # -- removal ----------------------------------------------------------

    async def purge_older_than(self, station_id: uuid.UUID, cutoff: datetime) -> int:
        """Delete played entries with timestamp_played strictly before cutoff."""
        result = await self.db.execute(
            delete(QueueEntry)
            .where(
                QueueEntry.station_id == station_id,
                QueueEntry.is_played.is_(True),
                QueueEntry.timestamp_played < cutoff,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def remove(self, entry_id: int) -> None:
        """Drop an entry that AutoDJ has not received yet."""
        entry = await self._require(entry_id)
        if entry.sent_to_autodj:
            raise InvalidTransitionError(f"Queue entry {entry_id} was already sent to AutoDJ")
        result = await self.db.execute(
            delete(QueueEntry)
            .where(QueueEntry.id == entry_id, QueueEntry.sent_to_autodj.is_(False))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ContentionError(f"Queue entry {entry_id} was dispatched concurrently")
        self.db.expunge(entry)

    async def clear_upcoming(self, station_id: uuid.UUID) -> int:
        """Delete every entry not yet handed to AutoDJ. In-flight and played entries stay."""
        result = await self.db.execute(
            delete(QueueEntry)
            .where(
                QueueEntry.station_id == station_id,
                QueueEntry.sent_to_autodj.is_(False),
                QueueEntry.is_played.is_(False),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
