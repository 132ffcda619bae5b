import logging
import re
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stationqueue.core.exceptions import ConflictError, NotFoundError, ValidationError
from stationqueue.models.station import BackendAdapter, Station
from stationqueue.schemas.station import StationCreate, StationUpdate
from stationqueue.services.restart_tracker import RestartFlagTracker

logger = logging.getLogger(__name__)


def generate_short_name(name: str) -> str:
    """Lowercase, underscores for anything that isn't a letter or digit."""
    short_name = re.sub(r"[^a-z0-9]+", "_", name.lower()).strip("_")
    return short_name[:100] or "station"


async def create_station(db: AsyncSession, data: StationCreate) -> Station:
    existing = await db.execute(select(Station).where(Station.name == data.name))
    if existing.scalar_one_or_none():
        raise ConflictError(f"Station '{data.name}' already exists")

    values = data.model_dump()
    values["short_name"] = generate_short_name(data.short_name or data.name)
    station = Station(**values)
    db.add(station)
    await db.flush()
    await db.refresh(station)
    logger.info("Created station %s (%s)", station.name, station.id)
    return station


async def get_station(db: AsyncSession, station_id: uuid.UUID) -> Station:
    station = await db.get(Station, station_id)
    if not station:
        raise NotFoundError(f"Station {station_id} not found")
    return station


async def update_station(db: AsyncSession, station_id: uuid.UUID, data: StationUpdate) -> Station:
    station = await get_station(db, station_id)
    update_data = data.model_dump(exclude_unset=True)

    not_nullable = sorted(
        field for field, value in update_data.items()
        if value is None and not Station.__table__.c[field].nullable
    )
    if not_nullable:
        raise ValidationError(f"Cannot clear {', '.join(not_nullable)}")
    if "name" in update_data and update_data["name"] != station.name:
        existing = await db.execute(select(Station).where(Station.name == update_data["name"]))
        if existing.scalar_one_or_none():
            raise ConflictError(f"Station '{update_data['name']}' already exists")
    if update_data.get("short_name") is not None:
        update_data["short_name"] = generate_short_name(update_data["short_name"])

    await RestartFlagTracker(db).apply_config_changes(station, update_data)
    return station


async def list_autodj_stations(db: AsyncSession) -> list[Station]:
    """Enabled stations whose queue this service drives."""
    result = await db.execute(
        select(Station)
        .where(Station.is_enabled.is_(True), Station.backend_type != BackendAdapter.NONE)
        .order_by(Station.name)
    )
    return [station for station in result.scalars().all() if station.supports_autodj_queue]
