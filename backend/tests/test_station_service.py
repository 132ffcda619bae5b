import uuid

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from stationqueue.core.exceptions import ConflictError, NotFoundError, ValidationError
from stationqueue.models.station import BackendAdapter, Station
from stationqueue.schemas.station import StationCreate, StationUpdate
from stationqueue.services.station_service import (
    create_station,
    generate_short_name,
    get_station,
    list_autodj_stations,
    update_station,
)


def test_generate_short_name():
    assert generate_short_name("Jazz Radio 24/7") == "jazz_radio_24_7"
    assert generate_short_name("  Radio!  ") == "radio"
    assert generate_short_name("!!!") == "station"
    assert len(generate_short_name("x" * 300)) == 100


@pytest.mark.asyncio
async def test_create_station(db_session: AsyncSession):
    station = await create_station(db_session, StationCreate(name="Jazz Radio"))
    await db_session.commit()

    assert station.short_name == "jazz_radio"
    assert station.needs_restart is False
    assert station.has_started is False
    assert station.backend_type == BackendAdapter.LIQUIDSOAP


@pytest.mark.asyncio
async def test_create_duplicate_station(db_session: AsyncSession, station: Station):
    with pytest.raises(ConflictError):
        await create_station(db_session, StationCreate(name="Test FM"))


@pytest.mark.asyncio
async def test_get_unknown_station(db_session: AsyncSession):
    with pytest.raises(NotFoundError):
        await get_station(db_session, uuid.uuid4())


@pytest.mark.asyncio
async def test_update_station_restart_field(db_session: AsyncSession, station: Station):
    updated = await update_station(db_session, station.id, StationUpdate(max_mounts=3))
    await db_session.commit()

    assert updated.max_mounts == 3
    assert updated.needs_restart is True


@pytest.mark.asyncio
async def test_update_station_rename_only(db_session: AsyncSession, station: Station):
    updated = await update_station(db_session, station.id, StationUpdate(name="Test FM 2"))

    assert updated.name == "Test FM 2"
    assert updated.needs_restart is False


@pytest.mark.asyncio
async def test_update_station_normalizes_short_name(db_session: AsyncSession, station: Station):
    updated = await update_station(db_session, station.id, StationUpdate(short_name="Morning Show"))

    assert updated.short_name == "morning_show"
    assert updated.needs_restart is True


@pytest.mark.asyncio
async def test_update_station_duplicate_name(db_session: AsyncSession, station: Station):
    other = await create_station(db_session, StationCreate(name="Other FM"))
    await db_session.commit()

    with pytest.raises(ConflictError):
        await update_station(db_session, other.id, StationUpdate(name="Test FM"))


@pytest.mark.asyncio
async def test_list_autodj_stations(db_session: AsyncSession, station: Station):
    await create_station(db_session, StationCreate(name="Disabled FM", is_enabled=False))
    await create_station(db_session, StationCreate(name="Relay FM", backend_type=BackendAdapter.NONE))
    await create_station(
        db_session, StationCreate(name="Manual FM", backend_config={"use_manual_autodj": True})
    )
    await create_station(db_session, StationCreate(name="Another FM"))
    await db_session.commit()

    stations = await list_autodj_stations(db_session)

    assert [s.name for s in stations] == ["Another FM", "Test FM"]


@pytest.mark.asyncio
async def test_update_station_cannot_clear_required_fields(db_session: AsyncSession, station: Station):
    station_id = station.id

    with pytest.raises(ValidationError):
        await update_station(db_session, station_id, StationUpdate(name=None))
    with pytest.raises(ValidationError):
        await update_station(db_session, station_id, StationUpdate(is_enabled=None, max_bitrate=None))

    assert station.name == "Test FM"
    assert station.is_enabled is True


@pytest.mark.asyncio
async def test_update_station_clears_optional_fields(db_session: AsyncSession, station: Station):
    await update_station(db_session, station.id, StationUpdate(url="http://radio.test"))
    await db_session.commit()

    updated = await update_station(db_session, station.id, StationUpdate(url=None, fallback_path=None))

    assert updated.url is None
    assert updated.fallback_path is None
