"""Process-wide logging setup."""

import logging

from bankcore.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


def configure_logging(level: str = None) -> None:
    """Configure the root logger once; later calls only adjust the level."""
    global _configured
    level_name = (level or settings.LOG_LEVEL).upper()
    if not _configured:
        logging.basicConfig(level=level_name, format=LOG_FORMAT)
        # SQL echo is controlled by DATABASE_ECHO, keep the engine logger quiet otherwise
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
        logging.getLogger("apscheduler").setLevel(logging.WARNING)
        _configured = True
    logging.getLogger().setLevel(level_name)
