import enum

from sqlalchemy import Boolean, Integer, String, Text, and_, or_
from sqlalchemy.dialects.postgresql import ENUM, JSONB
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import Mapped, mapped_column

from stationqueue.db.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class FrontendAdapter(str, enum.Enum):
    ICECAST = "icecast"
    SHOUTCAST = "shoutcast"
    RSAS = "rsas"
    REMOTE = "remote"

    @property
    def is_enabled(self) -> bool:
        # Remote frontends run somewhere else, nothing to manage locally
        return self is not FrontendAdapter.REMOTE


class BackendAdapter(str, enum.Enum):
    LIQUIDSOAP = "liquidsoap"
    NONE = "none"

    @property
    def is_enabled(self) -> bool:
        return self is not BackendAdapter.NONE


class Station(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "stations"

    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    short_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    frontend_type: Mapped[FrontendAdapter] = mapped_column(
        ENUM(FrontendAdapter, name="frontend_adapter", create_type=True),
        default=FrontendAdapter.ICECAST,
        nullable=False,
    )
    backend_type: Mapped[BackendAdapter] = mapped_column(
        ENUM(BackendAdapter, name="backend_adapter", create_type=True),
        default=BackendAdapter.LIQUIDSOAP,
        nullable=False,
    )
    frontend_config: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    backend_config: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    url: Mapped[str | None] = mapped_column(Text, nullable=True)
    enable_streamers: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    max_bitrate: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_mounts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_hls_streams: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    fallback_path: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Only written through RestartFlagTracker
    needs_restart: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    has_started: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    @hybrid_property
    def has_local_services(self) -> bool:
        """Enabled, with at least one adapter this host has to run."""
        return bool(self.is_enabled) and (
            self.frontend_type.is_enabled or self.backend_type.is_enabled
        )

    @has_local_services.inplace.expression
    @classmethod
    def _has_local_services_expression(cls):
        return and_(
            cls.is_enabled.is_(True),
            or_(
                cls.frontend_type != FrontendAdapter.REMOTE,
                cls.backend_type != BackendAdapter.NONE,
            ),
        )

    @property
    def use_manual_autodj(self) -> bool:
        return bool((self.backend_config or {}).get("use_manual_autodj", False))

    @property
    def supports_autodj_queue(self) -> bool:
        return (
            self.is_enabled
            and not self.use_manual_autodj
            and self.backend_type is not BackendAdapter.NONE
        )

    def __str__(self) -> str:
        return self.name or f"Station {self.id}"
