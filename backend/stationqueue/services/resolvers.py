"""DB-backed lookups the queue store consumes: media lengths and jingle playlists."""
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stationqueue.models.media import Media
from stationqueue.models.playlist import Playlist
from stationqueue.models.queue_entry import QueueEntry


class MediaResolver:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, media_id: uuid.UUID) -> Media | None:
        return await self.db.get(Media, media_id)

    async def calculated_length(self, media_id: uuid.UUID) -> float | None:
        """Length in seconds, None for unknown media or media not analysed yet."""
        media = await self.get(media_id)
        return media.length if media is not None else None

    async def resolve_audio_uri(self, entry: QueueEntry) -> str:
        """Custom URI wins; otherwise the media file path."""
        if entry.autodj_custom_uri:
            return entry.autodj_custom_uri
        if entry.media_id is not None:
            result = await self.db.execute(select(Media.path).where(Media.id == entry.media_id))
            path = result.scalar_one_or_none()
            if path:
                return path
        return f"queue://{entry.id}"


class PlaylistClassifier:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, playlist_id: uuid.UUID) -> Playlist | None:
        return await self.db.get(Playlist, playlist_id)

    async def is_jingle(self, playlist_id: uuid.UUID) -> bool:
        result = await self.db.execute(select(Playlist.is_jingle).where(Playlist.id == playlist_id))
        return bool(result.scalar_one_or_none())
