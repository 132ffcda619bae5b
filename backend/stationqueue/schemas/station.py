from pydantic import BaseModel

from stationqueue.models.station import BackendAdapter, FrontendAdapter


class StationCreate(BaseModel):
    name: str
    short_name: str | None = None
    is_enabled: bool = True
    frontend_type: FrontendAdapter = FrontendAdapter.ICECAST
    backend_type: BackendAdapter = BackendAdapter.LIQUIDSOAP
    frontend_config: dict | None = None
    backend_config: dict | None = None
    url: str | None = None
    enable_streamers: bool = False
    max_bitrate: int = 0
    max_mounts: int = 0
    max_hls_streams: int = 0
    fallback_path: str | None = None


class StationUpdate(BaseModel):
    name: str | None = None
    short_name: str | None = None
    is_enabled: bool | None = None
    frontend_type: FrontendAdapter | None = None
    backend_type: BackendAdapter | None = None
    frontend_config: dict | None = None
    backend_config: dict | None = None
    url: str | None = None
    enable_streamers: bool | None = None
    max_bitrate: int | None = None
    max_mounts: int | None = None
    max_hls_streams: int | None = None
    fallback_path: str | None = None
