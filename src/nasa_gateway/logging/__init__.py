from __future__ import annotations

import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from nasa_gateway.config.models import FileLoggingSettings, LoggingSettings

_FORMAT = "[%(asctime)s][%(levelname)s][%(name)s] %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _resolve_level(name: str) -> int:
    level = logging.getLevelNamesMapping().get(name.strip().upper())
    if level is None:
        raise ValueError(f"Invalid logging level: {name}")
    return level


def _file_handler(settings: FileLoggingSettings, formatter: logging.Formatter) -> TimedRotatingFileHandler:
    path = Path(settings.path.strip())
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = TimedRotatingFileHandler(
        filename=str(path),
        when="midnight",
        interval=1,
        backupCount=settings.rotation.backup_count,
        encoding="utf-8",
    )
    handler.suffix = "%Y-%m-%d"
    handler.setFormatter(formatter)
    return handler


def init_logging(settings: LoggingSettings) -> None:
    """
    Initialize application logging.

    The root level applies to everything; ``settings.levels`` then tunes single
    subsystems (``nasa_gateway.upstream``, ``nasa_gateway.sync``, ``aiohttp.access``...).
    Handlers do not filter on their own, so a subsystem set to DEBUG is emitted
    even when the root is at INFO.
    """

    # Resolve every level first so a bad name leaves logging intact.
    root_level = _resolve_level(settings.level)
    overrides = {name: _resolve_level(level) for name, level in settings.levels.items()}

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(fmt=_FORMAT, datefmt=_DATE_FORMAT)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    root_logger.addHandler(stream_handler)

    for name, level in overrides.items():
        logging.getLogger(name).setLevel(level)

    if not settings.file.path.strip():
        return

    try:
        root_logger.addHandler(_file_handler(settings.file, formatter))
    except OSError:
        root_logger.error(
            "File logging handler failed to initialize path=%s",
            settings.file.path,
            exc_info=True,
        )


__all__ = ["init_logging"]
