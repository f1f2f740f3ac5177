"""
Logging Configuration
Loguru sinks tagged with the engine component that emitted each line
(permissions, grants, share_links, encryption, ...)
"""

import logging
import sys
from typing import Any, Optional

from loguru import logger as loguru_logger

from docvault.core.config import settings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<magenta>{extra[component]: <13}</magenta> | "
    "<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
PLAIN_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[component]} | {function}:{line} - {message}"

# Records from third-party stdlib loggers carry no component
_EXTERNAL = "external"


def component_for(name: str) -> str:
    """
    Short component label for a module name

    docvault.services.share_links.service -> share_links
    docvault.core.permissions -> permissions
    docvault.storage.client -> storage
    """
    parts = name.split(".")
    if parts[0] != "docvault" or len(parts) == 1:
        return _EXTERNAL
    if parts[1] == "services" and len(parts) > 2:
        return parts[2]
    if parts[1] in ("core", "models") and len(parts) > 2:
        return parts[2]
    return parts[1]


class InterceptHandler(logging.Handler):
    """Intercept standard logging and redirect to loguru"""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = loguru_logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk out of the logging module to the real caller
        frame, depth = logging.currentframe(), 2
        while frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        loguru_logger.bind(component=component_for(record.name)).opt(
            depth=depth, exception=record.exc_info
        ).log(level, record.getMessage())


def setup_logging(log_level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """Setup application logging"""
    level = (log_level or settings.LOG_LEVEL).upper()
    log_file = log_file or settings.LOG_FILE

    loguru_logger.remove()
    loguru_logger.configure(extra={"component": _EXTERNAL})

    if settings.DEBUG:
        loguru_logger.add(sys.stdout, format=CONSOLE_FORMAT, level="DEBUG", colorize=True)
    else:
        # JSON lines; the component lands under record.extra
        loguru_logger.add(sys.stdout, format=PLAIN_FORMAT, level=level, serialize=True)

    if log_file:
        loguru_logger.add(
            log_file,
            format=PLAIN_FORMAT,
            rotation="100 MB",
            retention="7 days",
            compression="zip",
            level=level,
            serialize=True,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for noisy in ("sqlalchemy", "aiosqlite", "asyncpg", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> Any:
    """Get a logger bound to its module name and engine component"""
    return loguru_logger.bind(name=name, component=component_for(name))
