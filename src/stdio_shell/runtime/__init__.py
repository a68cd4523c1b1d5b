"""Runtime module for interpreter sessions.

This module provides the stdio message channel: line framing, message
codecs, event channels, the termination arbiter and the session that ties
them to a subprocess.
"""

from __future__ import annotations

from .arbiter import TerminationArbiter
from .codec import resolve_formatter, resolve_parser
from .events import EventChannel, EventHub
from .framing import LineFramer
from .session import EndCallback, ProcessSession, SessionOptions
from .types import (
    InvocationContext,
    Message,
    Mode,
    OutcomeKind,
    SessionEvent,
    SessionState,
    TerminationOutcome,
)

__all__ = [
    "EndCallback",
    "EventChannel",
    "EventHub",
    "InvocationContext",
    "LineFramer",
    "Message",
    "Mode",
    "OutcomeKind",
    "ProcessSession",
    "SessionEvent",
    "SessionOptions",
    "SessionState",
    "TerminationArbiter",
    "TerminationOutcome",
    "resolve_formatter",
    "resolve_parser",
]
