"""
Sticky "needs restart" bookkeeping for a station's broadcast processes.

needs_restart has two states, clean and dirty. A configuration change moves an
eligible station (local services, already started) to dirty; only the process
supervisor's clear_restart brings it back. Stations that aren't eligible stay
clean. Every write is one conditional UPDATE on the station row, so concurrent
requests can't lose each other.
"""
import logging
from typing import Any

from sqlalchemy import and_, case, update
from sqlalchemy.ext.asyncio import AsyncSession

from stationqueue.models.station import Station

logger = logging.getLogger(__name__)

# Station settings that only take effect after the broadcast processes restart
RESTART_FIELDS = frozenset({
    "short_name",
    "url",
    "frontend_config",
    "backend_config",
    "enable_streamers",
    "max_bitrate",
    "max_mounts",
    "max_hls_streams",
    "fallback_path",
})


class RestartFlagTracker:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _update(self, station: Station, **values: Any) -> None:
        await self.db.execute(
            update(Station)
            .where(Station.id == station.id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.db.refresh(station)

    async def request_restart(self, station: Station) -> bool:
        """Mark the station dirty if it has a running process to restart."""
        eligible = and_(Station.has_local_services, Station.has_started.is_(True))
        await self._update(station, needs_restart=case((eligible, True), else_=False))
        if station.needs_restart:
            logger.info("Station %s needs a restart", station)
        else:
            logger.debug("Restart request for station %s ignored, no running services", station)
        return station.needs_restart

    async def clear_restart(self, station: Station) -> None:
        await self._update(station, needs_restart=False)
        logger.info("Restart flag cleared for station %s", station)

    async def set_started(self, station: Station, started: bool) -> bool:
        """Stations without local services always count as started."""
        await self._update(
            station,
            has_started=case((Station.has_local_services, started), else_=True),
        )
        return station.has_started

    async def mark_started(self, station: Station) -> bool:
        return await self.set_started(station, True)

    async def apply_config_changes(self, station: Station, changes: dict[str, Any]) -> bool:
        """Apply station field changes, requesting a restart if a restart field changed."""
        changed = sorted(
            field for field, value in changes.items()
            if field in RESTART_FIELDS and getattr(station, field) != value
        )
        for field, value in changes.items():
            setattr(station, field, value)
        await self.db.flush()

        if not changed:
            return False
        logger.info("Station %s: %s changed", station, ", ".join(changed))
        return await self.request_restart(station)
