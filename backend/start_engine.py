"""Run the queue engine: create tables, then keep every AutoDJ queue moving until interrupted."""
import asyncio
import logging

from stationqueue.config import settings
from stationqueue.core.logging import setup_logging
from stationqueue.db.engine import ensure_tables
from stationqueue.services import liquidsoap_client
from stationqueue.services.queue_engine import start_engine, stop_engine

logger = logging.getLogger("stationqueue")


async def main() -> None:
    logger.info("Starting queue engine (%s)", settings.APP_ENV)
    await ensure_tables()

    if settings.liquidsoap_enabled and not await liquidsoap_client.is_alive():
        logger.warning("Liquidsoap is not responding at %s, pushes will fail until it is", settings.LIQUIDSOAP_SOCKET_PATH)

    await start_engine()
    try:
        await asyncio.Event().wait()
    finally:
        await stop_engine()


if __name__ == "__main__":
    setup_logging()
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
