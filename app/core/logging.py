import logging
import sys
from loguru import logger

from app.core.config import settings

LOG_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
    "{name}:{function}:{line} | {message}"
)

# Stdlib loggers that install their own handlers
FORWARDED_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "alembic")


class InterceptHandler(logging.Handler):
    """Forwards stdlib logging records (uvicorn, sqlalchemy, alembic) to loguru."""

    def emit(self, record):
        # Get corresponding Loguru level
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller to get correct stack depth
        frame, depth = logging.currentframe(), 2
        while frame.f_back and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def _is_history_record(record) -> bool:
    return record["name"].startswith("app.services.material_history")


def setup_logging():
    level = "DEBUG" if settings.debug else "INFO"

    # Intercept standard logging
    logging.root.handlers = [InterceptHandler()]
    logging.root.setLevel(logging.DEBUG if settings.debug else logging.INFO)
    for name in FORWARDED_LOGGERS:
        logging.getLogger(name).handlers = []
        logging.getLogger(name).propagate = True

    logger.remove()
    logger.add(sys.stderr, level=level, format=LOG_FORMAT)
    logger.add(
        settings.log_file,
        rotation="500 MB",
        compression="zip",
        level=level,
        format=LOG_FORMAT,
        backtrace=True,
        diagnose=settings.debug,
    )
    # Snapshot build problems also get a file of their own.
    logger.add(
        settings.history_log_file,
        rotation="50 MB",
        compression="zip",
        level="WARNING",
        format=LOG_FORMAT,
        filter=_is_history_record,
    )
