"""
Structured Logging Module
Logging setup for the email service, with an optional JSON formatter for
log aggregation tools
"""

import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional, TextIO

from .config import SystemConfig


TEXT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class JSONFormatter(logging.Formatter):
    """
    Custom formatter that outputs log records as JSON.

    Context such as the account name or email id can be attached with
    ``logger.info("msg", extra={"extra_fields": {"account": "info"}})``.
    Keys that look like credentials are replaced by "[REDACTED]".
    """

    SENSITIVE_FIELDS = {
        'password', 'token', 'secret', 'credential', 'smtp_password', 'auth'
    }

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_fields"):
            filtered_extra = {
                k: self._sanitize_value(k, v)
                for k, v in record.extra_fields.items()
            }
            log_data.update(filtered_extra)

        return json.dumps(log_data, default=str)

    def _sanitize_value(self, key: str, value: Any) -> Any:
        key_lower = key.lower()
        if any(sensitive in key_lower for sensitive in self.SENSITIVE_FIELDS):
            return "[REDACTED]"
        return value


def setup_logging(system: SystemConfig, stream: Optional[TextIO] = None) -> None:
    """
    Configure root logging from the system settings

    Args:
        system: SystemConfig with log level, optional log file and format
            ("text" or "json")
        stream: Console stream, stdout by default
    """
    level_name = str(system.log_level).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    handlers: List[logging.Handler] = [logging.StreamHandler(stream or sys.stdout)]
    if system.log_file:
        log_path = Path(system.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))

    formatter = JSONFormatter() if system.log_format == "json" else logging.Formatter(TEXT_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=handlers, force=True)

    if not isinstance(logging.getLevelName(level_name), int):
        logging.getLogger("EmailService").warning(
            "Invalid log level '%s'; defaulting to INFO", system.log_level
        )
