"""
Logging configuration for the expression engine
Every record is stamped with the current request ID and scrubbed of
token-like strings before a JSON or plain-text formatter sees it
"""

import os
import re
import sys
import json
import uuid
import logging
from typing import Any, Dict, Optional
from contextvars import ContextVar
from logging.handlers import RotatingFileHandler

from exprengine.config import Settings, get_settings

# Context variable for request ID (per request task)
request_id_context: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

HUMAN_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] - %(message)s"
HUMAN_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Attributes every LogRecord carries; anything else came in through extra={...}
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "request_id"}

_SECRET_LIKE_RE = re.compile(r"[a-zA-Z0-9_-]{20,}")
_REQUEST_ID_RE = re.compile(r"[A-Za-z0-9._-]{1,64}")


def _redact(value: str) -> str:
    return _SECRET_LIKE_RE.sub("[REDACTED]", value)


class RequestContextFilter(logging.Filter):
    """
    Stamp request_id on the record and redact extra string fields

    Long token-like runs in extra fields become [REDACTED]. The message
    itself is left alone.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_context.get() or "-"
        for key, value in list(record.__dict__.items()):
            if key not in _RESERVED_ATTRS and isinstance(value, str):
                setattr(record, key, _redact(value))
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line, extra fields included"""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = getattr(record, "request_id", None) or request_id_context.get()
        if request_id and request_id != "-":
            log_data["request_id"] = request_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, default=str)


def _build_handler(handler: logging.Handler, json_format: bool) -> logging.Handler:
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(HUMAN_FORMAT, datefmt=HUMAN_DATEFMT))
    handler.addFilter(RequestContextFilter())
    return handler


def setup_logging(settings: Optional[Settings] = None) -> None:
    """
    Configure the root logger from settings

    Logs go to stdout and, when settings.log_file is set, to a rotating file.

    Args:
        settings: Settings to read (the global settings when omitted)
    """
    if settings is None:
        settings = get_settings()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level.upper()))
    root_logger.handlers.clear()
    root_logger.addHandler(
        _build_handler(logging.StreamHandler(sys.stdout), settings.log_format_json)
    )

    if settings.log_file:
        log_dir = os.path.dirname(settings.log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            settings.log_file,
            maxBytes=settings.log_max_bytes,
            backupCount=settings.log_backup_count,
        )
        root_logger.addHandler(_build_handler(file_handler, settings.log_format_json))

    # Set level for third-party loggers
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("fastapi").setLevel(logging.WARNING)


def set_request_id(request_id: Optional[str] = None) -> str:
    """
    Set request ID in context

    A client-supplied ID is kept only if it is a short run of letters,
    digits, '.', '_' or '-'; anything else is replaced by a new UUID.

    Returns:
        The request ID now in effect
    """
    if request_id is None or not _REQUEST_ID_RE.fullmatch(request_id):
        request_id = str(uuid.uuid4())
    request_id_context.set(request_id)
    return request_id


def get_logger(name: str) -> logging.Logger:
    """Get logger instance (typically for __name__)"""
    return logging.getLogger(name)
