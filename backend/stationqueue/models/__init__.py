from stationqueue.models.station import Station, FrontendAdapter, BackendAdapter
from stationqueue.models.playlist import Playlist
from stationqueue.models.media import Media
from stationqueue.models.song_request import SongRequest
from stationqueue.models.queue_entry import QueueEntry, QueueSourceKind

__all__ = [
    "Station", "FrontendAdapter", "BackendAdapter",
    "Playlist",
    "Media",
    "SongRequest",
    "QueueEntry", "QueueSourceKind",
]
