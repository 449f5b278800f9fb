"""
Structured logging utilities for the failover controller.
"""

import json
import logging
import sys
from datetime import datetime, timezone

CONTEXT_FIELDS = ('node', 'family', 'cycle')


class StructuredFormatter(logging.Formatter):
    """
    Custom formatter that outputs structured JSON logs.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON."""
        log_data = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        for name in CONTEXT_FIELDS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)

        return json.dumps(log_data)


class SimpleFormatter(logging.Formatter):
    """
    Simple human-readable formatter for development.
    """

    def __init__(self):
        super().__init__(
            fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )


def setup_logging(level: str = 'INFO', structured: bool = False) -> None:
    """
    Configure logging for the controller.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        structured: Use structured JSON logging if True, simple format if False
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(StructuredFormatter() if structured else SimpleFormatter())
    root_logger.addHandler(console_handler)

    # quiet third-party transports
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('aiohttp.access').setLevel(logging.WARNING)


class CycleLoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that tags records with the current watch cycle.
    """

    def process(self, msg, kwargs):
        extra = dict(kwargs.get('extra') or {})
        for name in CONTEXT_FIELDS:
            if name in self.extra:
                extra.setdefault(name, self.extra[name])
        kwargs['extra'] = extra
        return msg, kwargs
