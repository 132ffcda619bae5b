import uuid
from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class PlaylistSource(BaseModel):
    """Cued by playlist rotation."""

    kind: Literal["playlist"] = "playlist"
    playlist_id: uuid.UUID
    media_id: uuid.UUID


class MediaSource(BaseModel):
    """Media assigned directly, outside any playlist."""

    kind: Literal["media"] = "media"
    media_id: uuid.UUID


class RequestSource(BaseModel):
    """Listener request; the media comes from the request itself."""

    kind: Literal["request"] = "request"
    request_id: uuid.UUID


class CustomUriSource(BaseModel):
    """Ad-hoc URI handed straight to AutoDJ (remote stream, generated file...)."""

    kind: Literal["custom_uri"] = "custom_uri"
    uri: str
    playlist_id: uuid.UUID | None = None


QueueSource = Annotated[
    Union[PlaylistSource, MediaSource, RequestSource, CustomUriSource],
    Field(discriminator="kind"),
]


class QueueEntryCreate(BaseModel):
    station_id: uuid.UUID
    source: QueueSource | None = None


class QueueEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    station_id: uuid.UUID
    source: str
    playlist_id: uuid.UUID | None = None
    media_id: uuid.UUID | None = None
    request_id: uuid.UUID | None = None
    autodj_custom_uri: str | None = None
    sent_to_autodj: bool
    is_played: bool
    is_visible: bool
    timestamp_cued: datetime
    timestamp_played: datetime | None = None
    duration: float | None = None
    title: str | None = None
    artist: str | None = None
    text: str | None = None


class DispatchNotification(BaseModel):
    station_id: uuid.UUID
    entry_id: int
    audio_uri: str
    entry: QueueEntryOut | None = None
