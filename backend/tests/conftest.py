import uuid
from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from stationqueue.db.base import Base
from stationqueue.models.media import Media
from stationqueue.models.playlist import Playlist
from stationqueue.models.station import Station
from stationqueue.services.queue_scheduler import QueueScheduler
from stationqueue.services.queue_store import QueueStore
from stationqueue.services.station_locks import StationLockRegistry

# Use SQLite for testing (no PostgreSQL needed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"

# NullPool: no connection outlives the event loop of the test that opened it
engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)
TestSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

# SQLite compatibility: compile PostgreSQL types to SQLite equivalents
from sqlalchemy.dialects.postgresql import UUID as PG_UUID, JSONB, ENUM as PG_ENUM


@event.listens_for(engine.sync_engine, "connect")
def _set_sqlite_pragma(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _register_sqlite_compilers():
    """Register SQLite-compatible compilers for PG types."""
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_UUID, "sqlite")
    def compile_uuid(type_, compiler, **kw):
        return "VARCHAR(36)"

    @compiles(JSONB, "sqlite")
    def compile_jsonb(type_, compiler, **kw):
        return "TEXT"

    @compiles(PG_ENUM, "sqlite")
    def compile_enum(type_, compiler, **kw):
        return "VARCHAR(50)"


_register_sqlite_compilers()


class RecordingNotifier:
    """Collects dispatch notifications instead of talking to AutoDJ."""

    def __init__(self):
        self.calls: list[tuple[uuid.UUID, int, str]] = []

    async def notify_dispatched(self, station_id, entry_id, audio_uri, entry=None, station=None) -> None:
        self.calls.append((station_id, entry_id, audio_uri))


@pytest_asyncio.fixture
async def db_session() -> AsyncIterator[AsyncSession]:
    # Import all models
    import stationqueue.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def session_factory() -> async_sessionmaker[AsyncSession]:
    return TestSessionLocal


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def locks() -> StationLockRegistry:
    return StationLockRegistry()


@pytest.fixture
def store(db_session: AsyncSession) -> QueueStore:
    return QueueStore(db_session)


@pytest.fixture
def scheduler(db_session: AsyncSession, notifier: RecordingNotifier, locks: StationLockRegistry) -> QueueScheduler:
    return QueueScheduler(db_session, notifier=notifier, locks=locks)


@pytest_asyncio.fixture
async def station(db_session: AsyncSession) -> Station:
    station = Station(id=uuid.uuid4(), name="Test FM", short_name="test_fm", has_started=True)
    db_session.add(station)
    await db_session.commit()
    await db_session.refresh(station)
    return station


@pytest_asyncio.fixture
async def media(db_session: AsyncSession, station: Station) -> Media:
    media = Media(
        id=uuid.uuid4(),
        station_id=station.id,
        path="/music/test_artist-test_song.mp3",
        title="Test Song",
        artist="Test Artist",
        length=180.5,
    )
    db_session.add(media)
    await db_session.commit()
    return media


@pytest_asyncio.fixture
async def playlist(db_session: AsyncSession, station: Station) -> Playlist:
    playlist = Playlist(id=uuid.uuid4(), station_id=station.id, name="Default Rotation")
    db_session.add(playlist)
    await db_session.commit()
    return playlist


@pytest_asyncio.fixture
async def jingle_playlist(db_session: AsyncSession, station: Station) -> Playlist:
    playlist = Playlist(id=uuid.uuid4(), station_id=station.id, name="Station IDs", is_jingle=True)
    db_session.add(playlist)
    await db_session.commit()
    return playlist
