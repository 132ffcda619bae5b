import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, Float, ForeignKey, Index, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, validates

from stationqueue.core.exceptions import InvalidTransitionError
from stationqueue.db.base import Base, UTCDateTime, utcnow


class QueueSourceKind(str, enum.Enum):
    PLAYLIST = "playlist"
    MEDIA = "media"
    REQUEST = "request"
    CUSTOM_URI = "custom_uri"


class QueueEntry(Base):
    __tablename__ = "queue_entries"
    __table_args__ = (
        Index("idx_queue_station_is_played", "station_id", "is_played"),
        Index("idx_queue_station_timestamp_played", "station_id", "timestamp_played"),
        Index("idx_queue_station_sent_to_autodj", "station_id", "sent_to_autodj"),
        Index("idx_queue_station_timestamp_cued", "station_id", "timestamp_cued"),
    )

    # Auto-increment so that insertion order breaks timestamp ties
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    station_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("stations.id", ondelete="CASCADE"), nullable=False
    )
    source: Mapped[str] = mapped_column(String(20), nullable=False)
    playlist_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("playlists.id", ondelete="CASCADE"), nullable=True
    )
    media_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("media.id", ondelete="CASCADE"), nullable=True
    )
    request_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("song_requests.id", ondelete="CASCADE"), nullable=True
    )
    autodj_custom_uri: Mapped[str | None] = mapped_column(String(255), nullable=True)

    sent_to_autodj: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_played: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_visible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    timestamp_cued: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)
    timestamp_played: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    duration: Mapped[float | None] = mapped_column(Float, nullable=True)

    title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    artist: Mapped[str | None] = mapped_column(String(255), nullable=True)
    text: Mapped[str | None] = mapped_column(String(800), nullable=True)

    @validates("sent_to_autodj", "is_played")
    def _validate_monotonic(self, key: str, value: bool) -> bool:
        if getattr(self, key, None) and not value:
            raise InvalidTransitionError(f"Queue entry {self.id}: {key} cannot go back to false")
        return value

    @validates("station_id")
    def _validate_station(self, key: str, value: uuid.UUID) -> uuid.UUID:
        current = getattr(self, key, None)
        if current is not None and current != value:
            raise InvalidTransitionError(f"Queue entry {self.id} cannot move to another station")
        return value

    @property
    def is_in_flight(self) -> bool:
        return self.sent_to_autodj and not self.is_played

    def __str__(self) -> str:
        return self.text or self.autodj_custom_uri or f"Queue entry #{self.id}"
