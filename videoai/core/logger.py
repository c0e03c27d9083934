"""
Core Logging System

Structured logging for the media pipeline:
- JSON lines in production, colourised console output in development
- Each upload flow gets a flow id; once its record exists the video id
  is attached to every log line emitted inside the flow
- ``log_exception`` picks the level from the application exception

All loggers live under the ``videoai`` namespace. The handler is attached
once to that namespace and module loggers propagate to it.
"""

import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Optional

from videoai.core.config import settings

ROOT_LOGGER_NAME = "videoai"

# =============================================================================
# Flow context
# =============================================================================

flow_id_var: ContextVar[Optional[str]] = ContextVar("flow_id", default=None)
video_id_var: ContextVar[Optional[str]] = ContextVar("video_id", default=None)


def start_flow() -> str:
    """Begin a new upload flow in the current context and return its id."""
    flow_id = uuid.uuid4().hex
    flow_id_var.set(flow_id)
    video_id_var.set(None)
    return flow_id


def bind_video(video_id: Optional[str]) -> None:
    video_id_var.set(video_id)


def end_flow() -> None:
    flow_id_var.set(None)
    video_id_var.set(None)


def _flow_fields() -> dict[str, str]:
    fields = {}
    flow_id = flow_id_var.get()
    if flow_id:
        fields["flow_id"] = flow_id
    video_id = video_id_var.get()
    if video_id:
        fields["video_id"] = video_id
    return fields


# =============================================================================
# Formatters
# =============================================================================

class JSONFormatter(logging.Formatter):
    """
    One JSON object per line, e.g.
    {"timestamp": "...", "level": "INFO", "module": "videoai.services.pipeline",
     "message": "...", "flow_id": "...", "video_id": "..."}
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "module": record.name,
            "message": record.getMessage(),
            **_flow_fields(),
        }

        if record.exc_info and record.exc_info[0] is not None:
            payload["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "stacktrace": self.formatException(record.exc_info),
            }

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            payload["data"] = extra_data

        return json.dumps(payload, default=str)


class PrettyFormatter(logging.Formatter):
    """Colourised console output for development."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        when = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]

        line = (
            f"{self.DIM}{when}{self.RESET} "
            f"{color}{self.BOLD}{record.levelname:8}{self.RESET} "
            f"{self.DIM}[{record.name.removeprefix(ROOT_LOGGER_NAME + '.')}]{self.RESET}"
        )

        fields = _flow_fields()
        if fields:
            tag = fields.get("video_id") or fields["flow_id"][:8]
            line += f" {self.DIM}<{tag}>{self.RESET}"

        line += f" {record.getMessage()}"

        if record.exc_info:
            line += f"\n{color}{self.formatException(record.exc_info)}{self.RESET}"

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            line += f"\n{self.DIM}  └─ {extra_data}{self.RESET}"

        return line


# =============================================================================
# Logger Factory
# =============================================================================

def _configure_root() -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER_NAME)
    if root.handlers:
        return root

    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if settings.LOG_FORMAT.lower() == "json" else PrettyFormatter())

    root.setLevel(level)
    root.addHandler(handler)
    # Uvicorn configures the process root logger too
    root.propagate = False
    return root


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Logger under the ``videoai`` namespace.

    Example:
        logger = get_logger(__name__)
        logger.info("Upload finished", extra={"extra_data": {"bytes": 1024}})
    """
    root = _configure_root()
    if not name or name == ROOT_LOGGER_NAME:
        return root
    if not name.startswith(f"{ROOT_LOGGER_NAME}."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


# =============================================================================
# Exception helpers
# =============================================================================

def log_exception(
    logger: logging.Logger,
    exception: Exception,
    extra_context: Optional[dict[str, Any]] = None,
) -> None:
    """
    Log an exception with its structured details.

    Application exceptions below 500 and the non-fatal pipeline errors
    (thumbnail tiers, realtime channel) go out as warnings without a
    traceback. Other application exceptions and anything unexpected are
    errors with a traceback.
    """
    from videoai.core.exceptions import (
        BaseAppException,
        ReconciliationChannelError,
        ThumbnailTierError,
    )

    if not isinstance(exception, BaseAppException):
        data: dict[str, Any] = {"exception_type": type(exception).__name__}
        if extra_context:
            data["context"] = extra_context
        logger.error(f"Unexpected error: {exception}", exc_info=exception, extra={"extra_data": data})
        return

    data = exception.to_dict(include_debug=True)
    data["exception_type"] = type(exception).__name__
    data["http_status_code"] = exception.http_status_code
    if extra_context:
        data["context"] = extra_context

    message = f"{type(exception).__name__}: {exception.message}"
    non_fatal = isinstance(exception, (ThumbnailTierError, ReconciliationChannelError))
    if exception.http_status_code >= 500 and not non_fatal:
        logger.error(message, exc_info=exception, extra={"extra_data": data})
    else:
        logger.warning(message, extra={"extra_data": data})


def log_business_error(
    logger: logging.Logger,
    error_code: str,
    message: str,
    metadata: Optional[dict[str, Any]] = None,
) -> None:
    """
    Warn about a handled failure that is reported but not raised,
    such as blob cleanup or a CDN delete after the record is gone.
    """
    data: dict[str, Any] = {"error_code": error_code, "message": message}
    if metadata:
        data["metadata"] = metadata
    logger.warning(f"Business error [{error_code}]: {message}", extra={"extra_data": data})


__all__ = [
    "get_logger",
    "log_exception",
    "log_business_error",
    "start_flow",
    "bind_video",
    "end_flow",
]
