"""Exception taxonomy for the mention pipeline.

Classification mismatches are deliberately absent: an unmatched intent
resolves to the platform default and is never an error.
"""

from __future__ import annotations


class MentionBotError(Exception):
    """Base class for every error the pipeline raises on purpose."""


class TransportError(MentionBotError):
    """A platform or agent API call failed. Not retried by the pipeline."""


class ConfigurationError(MentionBotError):
    """The request cannot be served with the current configuration (e.g. no linked project)."""


class SessionError(MentionBotError):
    """The agent session ended in its terminal error state."""

    def __init__(self, session_id: str, detail: str):
        super().__init__(f"Session error: {detail}")
        self.session_id = session_id
        self.detail = detail


class SessionTimeoutError(SessionError):
    """The agent session did not reach a terminal event before its deadline."""

    def __init__(self, session_id: str, timeout: float):
        super().__init__(session_id, f"no terminal event within {timeout:g}s")
        self.timeout = timeout


class SessionOrderingError(RuntimeError):
    """A prompt was sent before the event stream was subscribed.

    This is a programming error, not a runtime condition: events emitted
    before subscription would be lost silently.
    """


class ToolArgumentValidationError(MentionBotError):
    """A tool call carried arguments that do not match the tool's schema."""

    def __init__(self, tool: str, errors: list[str]):
        super().__init__(f"Invalid arguments for {tool}: {'; '.join(errors)}")
        self.tool = tool
        self.errors = errors


class WorkspaceError(MentionBotError):
    """The repository could not be cloned into a working directory."""
