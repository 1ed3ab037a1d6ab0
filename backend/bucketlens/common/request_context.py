from __future__ import annotations

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

_request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

MAX_REQUEST_ID_LENGTH = 128


def normalize_request_id(value: str | None) -> str:
    """Reuse a client supplied id when it looks sane, otherwise mint one."""
    candidate = (value or "").strip()
    if not candidate or len(candidate) > MAX_REQUEST_ID_LENGTH or not candidate.isprintable():
        return uuid.uuid4().hex
    return candidate


@contextmanager
def request_id_scope(request_id: str | None) -> Iterator[str | None]:
    token = _request_id_var.set(request_id)
    try:
        yield request_id
    finally:
        _request_id_var.reset(token)


def get_request_id() -> str | None:
    return _request_id_var.get()
