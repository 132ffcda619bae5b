import logging
import sys

from stationqueue.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def setup_logging(level: str | None = None) -> None:
    """Configure the root logger from LOG_LEVEL (or an explicit level name)."""
    level_name = (level or settings.LOG_LEVEL).upper()
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level_name, logging.INFO))

    root_logger.handlers.clear()
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(handler)

    # SQL echo is controlled by APP_DEBUG, keep the engine logger quiet otherwise
    if not settings.APP_DEBUG:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
