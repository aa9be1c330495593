"""authcore logging: readable or JSON output with per-request context.

Records emitted while an HTTP request is being served carry its request id
(taken from the X-Request-ID header or generated), and, once a bearer token
or password has been accepted, the authenticated subject.

Structured output is what gets shipped off the host, so bearer values that
slip into a message (session JWTs, ``token=`` query parameters) are masked
there.
"""

import json
import logging
import re
import sys
import uuid
from contextvars import ContextVar
from typing import Literal

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"
_MAX_REQUEST_ID_LENGTH = 64

DEV_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(context)s%(message)s"
DEV_DATEFMT = "%Y-%m-%d %H:%M:%S"

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
subject_var: ContextVar[str | None] = ContextVar("subject", default=None)

REDACTED = "[REDACTED]"
_TOKEN_QUERY_RE = re.compile(r"(token=)[^&\s\"']+")
# header.payload.signature, base64url; JWT headers always start with '{"' -> eyJ
_JWT_RE = re.compile(r"eyJ[\w-]*\.[\w-]+\.[\w-]+")


def redact_tokens(message: str) -> str:
    """Mask session JWTs and token query parameters in a log message."""
    message = _TOKEN_QUERY_RE.sub(rf"\1{REDACTED}", message)
    return _JWT_RE.sub(REDACTED, message)


def bind_subject(subject: str | None) -> None:
    """Attach the authenticated subject to log records for the current request."""
    subject_var.set(subject)


def current_context() -> dict[str, str]:
    context = {}
    if request_id := request_id_var.get():
        context["request_id"] = request_id
    if subject := subject_var.get():
        context["subject"] = subject
    return context


class JSONFormatter(logging.Formatter):
    """One JSON object per line, with request context and masked tokens."""

    def __init__(self):
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": redact_tokens(record.getMessage()),
            **current_context(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = redact_tokens(self.formatException(record.exc_info))
        return json.dumps(log_entry, default=str)


class DevFormatter(logging.Formatter):
    """Readable single-line format with a short context prefix."""

    def __init__(self):
        super().__init__(fmt=DEV_FORMAT, datefmt=DEV_DATEFMT)

    def format(self, record: logging.LogRecord) -> str:
        parts = [f"{key}={value}" for key, value in current_context().items()]
        record.context = f"[{' '.join(parts)}] " if parts else ""
        return super().format(record)


def setup_logging(
    level: str = "INFO",
    format_type: Literal["structured", "dev"] = "dev",
) -> None:
    """
    Configure application logging on the root logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: 'structured' for JSON lines, 'dev' for readable output
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if format_type == "structured" else DevFormatter())
    logging.root.handlers = [handler]
    logging.root.setLevel(getattr(logging, level.upper()))

    # uvicorn.access would print /api/verify?token=... query strings
    for logger_name in ["uvicorn.access", "httpx", "httpcore"]:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.DEBUG if level.upper() == "DEBUG" else logging.WARNING
    )

    get_logger("logging").info(f"Logging configured: level={level}, format={format_type}")


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the authcore prefix."""
    return logging.getLogger(f"authcore.{name}")


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind a request id for the duration of each request and echo it back."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = (request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex)[
            :_MAX_REQUEST_ID_LENGTH
        ]
        request_id_token = request_id_var.set(request_id)
        subject_token = subject_var.set(None)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(request_id_token)
            subject_var.reset(subject_token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
