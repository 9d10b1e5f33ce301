"""Logging setup for the ntfy2clip service."""

import logging
import json
import sys
import time
from typing import Optional
from datetime import datetime, timezone

from ..config.settings import LoggingConfig


LEVEL_COLORS = {
    logging.DEBUG: '36',
    logging.INFO: '32',
    logging.WARNING: '33',
    logging.ERROR: '31',
    logging.CRITICAL: '35',
}


class JSONFormatter(logging.Formatter):
    """One JSON object per record, timestamps in UTC."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry = {
            'timestamp': created.isoformat(timespec='milliseconds').replace('+00:00', 'Z'),
            'level': record.levelname,
            'service': getattr(record, 'service', None),
            'logger': record.name,
            'message': record.getMessage(),
        }
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """``timestamp [LEVEL] logger: message``; the level is coloured when ``colored``."""

    converter = time.gmtime

    def __init__(self, colored: bool = False):
        super().__init__(datefmt='%Y-%m-%d %H:%M:%S')
        self.colored = colored

    def format(self, record: logging.LogRecord) -> str:
        level = record.levelname
        if self.colored and record.levelno in LEVEL_COLORS:
            level = f"\033[{LEVEL_COLORS[record.levelno]}m{level}\033[0m"

        line = f"{self.formatTime(record, self.datefmt)} [{level}] {record.name}: {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class ServiceContextFilter(logging.Filter):
    """Stamps every record with the service name."""

    def __init__(self, service_name: str):
        super().__init__()
        self.service_name = service_name

    def filter(self, record):
        record.service = self.service_name
        return True


def setup_logging(
    config: LoggingConfig,
    service_name: str = "ntfy2clip",
    level: Optional[str] = None,
) -> None:
    """
    Setup logging configuration for the service.

    Args:
        config: Logging configuration
        service_name: Name of the service for log context
        level: Overrides ``config.level`` (used by DEV mode)
    """
    output = config.output.lower()
    if output in ('stdout', 'stderr'):
        stream = sys.stdout if output == 'stdout' else sys.stderr
        handler = logging.StreamHandler(stream)
        on_terminal = stream.isatty()
    else:
        handler = logging.FileHandler(config.output)
        on_terminal = False

    if config.format == 'json':
        formatter = JSONFormatter()
    else:
        formatter = TextFormatter(colored=on_terminal)

    handler.setFormatter(formatter)
    handler.addFilter(ServiceContextFilter(service_name))

    effective_level = (level or config.level).upper()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, effective_level, logging.INFO))
    for old_handler in list(root_logger.handlers):
        root_logger.removeHandler(old_handler)
        old_handler.close()
    root_logger.addHandler(handler)

    # Reduce noise from libraries
    logging.getLogger('aiohttp').setLevel(logging.WARNING)
    logging.getLogger('asyncio').setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.debug(
        f"Logging configured: level={effective_level}, format={config.format}, "
        f"output={config.output}, service={service_name}"
    )
