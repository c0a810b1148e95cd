"""Correlation id bound while one inbound message is dispatched."""

from __future__ import annotations

import contextlib
import uuid
from contextvars import ContextVar
from typing import Iterator, Optional

_message_trace: ContextVar[Optional[str]] = ContextVar("message_trace", default=None)
_message_type: ContextVar[Optional[str]] = ContextVar("message_type", default=None)


def current_trace() -> Optional[str]:
    return _message_trace.get()


def current_message_type() -> Optional[str]:
    return _message_type.get()


@contextlib.contextmanager
def message_trace(msg_type: Optional[str] = None) -> Iterator[str]:
    """Tag every log record emitted inside the block with a fresh id."""
    trace_id = uuid.uuid4().hex[:12]
    trace_token = _message_trace.set(trace_id)
    type_token = _message_type.set(msg_type)
    try:
        yield trace_id
    finally:
        _message_type.reset(type_token)
        _message_trace.reset(trace_token)
