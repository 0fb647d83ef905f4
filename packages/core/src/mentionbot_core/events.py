"""Agent session event types.

The agent server streams many kinds of events; adapters translate the ones
the session state machine cares about into these five types and drop the
rest. Every event carries the session id because one event stream may be
shared by several sessions of the same server.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union


@dataclass(frozen=True)
class TextDelta:
    session_id: str
    text: str


@dataclass(frozen=True)
class ToolCompleted:
    session_id: str
    call_id: str
    tool: str
    arguments: dict[str, Any] = field(default_factory=dict)
    output: str = ""


@dataclass(frozen=True)
class ToolErrored:
    session_id: str
    call_id: str
    tool: str
    error: str = ""


@dataclass(frozen=True)
class SessionIdle:
    session_id: str


@dataclass(frozen=True)
class SessionFailed:
    session_id: str
    error: str = ""


AgentEvent = Union[TextDelta, ToolCompleted, ToolErrored, SessionIdle, SessionFailed]
