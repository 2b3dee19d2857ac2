"""
Logging configuration.

Every module logs through `logging.getLogger(__name__)`; this module wires
the root logger once, either human-readable or as JSON lines for log
shippers.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Optional

from pythonjsonlogger import jsonlogger

NOISY_LOGGERS = ("httpx", "httpcore", "openai", "urllib3")

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class SanitizingFilter(logging.Filter):
    """Flattens newlines so user-supplied text cannot forge log lines."""

    _LINE_BREAKS = re.compile(r"[\r\n]+")

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = self._LINE_BREAKS.sub(" ", record.msg)
        if record.args and isinstance(record.args, tuple):
            record.args = tuple(
                self._LINE_BREAKS.sub(" ", arg) if isinstance(arg, str) else arg
                for arg in record.args
            )
        return True


class FunnelJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter adding timestamp, level and logger name to every entry."""

    def add_fields(self, log_record: dict, record: logging.LogRecord, message_dict: dict) -> None:
        super().add_fields(log_record, record, message_dict)
        if not log_record.get("timestamp"):
            log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["module"] = record.module


def setup_logging(level: Optional[str] = "INFO", json_format: bool = False) -> logging.Logger:
    """Configure the root logger.

    Args:
        level: Log level name, case-insensitive
        json_format: Emit JSON lines instead of plain text

    Returns:
        The configured root logger
    """
    log_level = getattr(logging, (level or "INFO").upper(), logging.INFO)

    if json_format:
        formatter = FunnelJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
    else:
        formatter = logging.Formatter(TEXT_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler()
    handler.setLevel(log_level)
    handler.setFormatter(formatter)
    handler.addFilter(SanitizingFilter())
    root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger
