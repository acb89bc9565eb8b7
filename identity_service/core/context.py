"""Per-request correlation id, readable from any layer below the HTTP handler."""
from __future__ import annotations

import uuid
from contextvars import ContextVar

_request_id: ContextVar[str | None] = ContextVar("request_id", default=None)


def get_request_id() -> str | None:
    return _request_id.get()


def set_request_id(request_id: str | None = None) -> str:
    value = request_id or uuid.uuid4().hex
    _request_id.set(value)
    return value
