from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator

request_id_ctx_var: ContextVar[str] = ContextVar("request_id", default="-")
session_id_ctx_var: ContextVar[str] = ContextVar("session_id", default="-")


def get_request_id() -> str:
    """Return request ID stored in the context var."""

    return request_id_ctx_var.get()


@contextmanager
def bind_session_id(session_id: str) -> Iterator[None]:
    """Tag log records emitted inside the block with an editing session id.

    Tasks spawned inside the block inherit the binding because asyncio copies
    the current context when a task is created.
    """

    token = session_id_ctx_var.set(session_id)
    try:
        yield
    finally:
        session_id_ctx_var.reset(token)


class ContextFilter(logging.Filter):
    """Attach request and session IDs from contextvars to every log record."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401
        record.request_id = get_request_id()
        record.session_id = session_id_ctx_var.get()
        return True


class JsonFormatter(logging.Formatter):
    """Render logs as single-line JSON for easier parsing."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat()
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "request_id": getattr(record, "request_id", "-"),
            "session_id": getattr(record, "session_id", "-"),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(level: int | str = logging.INFO) -> None:
    """Configure application-wide structured logging."""

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    handler.addFilter(ContextFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
