import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from stationqueue.db.base import Base, TimestampMixin, UTCDateTime, UUIDPrimaryKeyMixin


class SongRequest(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "song_requests"

    station_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("stations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    media_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("media.id", ondelete="CASCADE"), nullable=False
    )
    requester_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    played_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
