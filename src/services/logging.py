"""Logging configuration for the ledger API server.

Everything goes to stdout and to the configured log file. Level, file and SQL
echo come from Settings (``LOG_LEVEL``, ``LOG_FILE``, ``DATABASE_ECHO``).
Distribution steps log at INFO, so the file doubles as a run trail.
"""

import logging
import sys
from pathlib import Path

from src.services.config import Settings, get_settings

LOG_FORMAT = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_server_logging(log_file: str | None = None, settings: Settings | None = None) -> None:
    """Attach stdout and file handlers to the root logger.

    Args:
        log_file: Overrides ``settings.log_file``
        settings: Defaults to ``get_settings()``

    Calling it again replaces the handlers instead of adding more.
    """
    settings = settings or get_settings()
    level = logging.getLevelName(settings.log_level)
    log_path = Path(log_file or settings.log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers = [logging.StreamHandler(sys.stdout), logging.FileHandler(log_path)]

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()
    root_logger.setLevel(level)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.database_echo else logging.WARNING
    )
