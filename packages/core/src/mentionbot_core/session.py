"""Agent session orchestration.

One Session drives one agent conversation bound to one cloned workspace:

    CREATED ──send()──▶ STREAMING ──session-idle──▶ IDLE
                                   └─session-error─▶ ERRORED

The event stream is consumed as an explicit state machine (``_apply``):
every event is applied at most once, events for other sessions are ignored,
and nothing is applied once a terminal state is reached. The stream must be
subscribed before the prompt is sent; otherwise text or tool calls emitted
between the two would be lost, so ``send()`` refuses to run unsubscribed.

Tools are executed by the MCP tool server the agent calls, not by the
session. The session only observes their completion on the event stream and
records each call id once, so a re-published event is never counted twice.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import AsyncIterator, Protocol

from mentionbot_core.errors import (
    MentionBotError,
    SessionError,
    SessionOrderingError,
    SessionTimeoutError,
)
from mentionbot_core.events import AgentEvent, SessionFailed, SessionIdle, TextDelta, ToolCompleted, ToolErrored
from mentionbot_core.models import SessionResult, SessionStatus
from mentionbot_core.tools import ToolObserver

logger = logging.getLogger(__name__)


class AgentSessionHandle(Protocol):
    """The agent-side half of a session, implemented by platform adapters."""

    session_id: str

    async def subscribe(self) -> AsyncIterator[AgentEvent]:
        """Open the event stream. Events emitted after this returns are delivered."""

    async def prompt(self, text: str) -> None:
        """Submit the prompt without waiting for the agent to finish."""

    async def abort(self) -> None:
        """Ask the agent to stop working on this session."""


class AgentClient(Protocol):
    async def create_session(self, workdir: str) -> AgentSessionHandle: ...


class Session:
    def __init__(
        self,
        handle: AgentSessionHandle,
        resource_id: str,
        workdir: str,
        tool_observers: dict[str, ToolObserver] | None = None,
    ):
        self._handle = handle
        self.session_id = handle.session_id
        self.resource_id = resource_id
        self.workdir = workdir
        self.status = SessionStatus.CREATED
        self.processed_call_ids: set[str] = set()
        self._tool_observers = tool_observers or {}
        self._text: list[str] = []
        self._stream: AsyncIterator[AgentEvent] | None = None
        self._error: str | None = None
        self._result = SessionResult(session_id=self.session_id, status=self.status)

    @property
    def response_text(self) -> str:
        return "".join(self._text)

    @property
    def subscribed(self) -> bool:
        return self._stream is not None

    async def subscribe(self) -> None:
        if self._stream is None:
            self._stream = await self._handle.subscribe()
            logger.debug("Session %s subscribed to events", self.session_id)

    async def send(self, prompt: str) -> None:
        if not self.subscribed:
            raise SessionOrderingError(f"Session {self.session_id}: prompt sent before subscribing to events")
        if self.status is not SessionStatus.CREATED:
            raise SessionOrderingError(f"Session {self.session_id}: prompt already sent ({self.status.value})")
        self.status = SessionStatus.STREAMING
        logger.debug("Session %s: sending prompt (%d chars)", self.session_id, len(prompt))
        await self._handle.prompt(prompt)

    async def consume(self) -> None:
        """Apply events until a terminal one arrives."""
        async for event in self._stream:
            await self._apply(event)
            if self.status.is_terminal:
                return
        if not self.status.is_terminal:
            self._fail("event stream closed before the session finished")

    async def run(self, prompt: str, timeout: float | None = None) -> SessionResult:
        """Subscribe, send, and wait for the terminal event.

        Raises SessionError when the agent reports an error, SessionTimeoutError
        when ``timeout`` seconds pass without a terminal event, and lets
        transport failures from the prompt call propagate.
        """
        await self.subscribe()
        try:
            if timeout:
                await asyncio.wait_for(self._drive(prompt), timeout)
            else:
                await self._drive(prompt)
        except asyncio.TimeoutError:
            self._fail(f"timed out after {timeout:g}s")
            logger.error("Session %s timed out after %gs; aborting", self.session_id, timeout)
            with contextlib.suppress(MentionBotError):
                await self._handle.abort()
            raise SessionTimeoutError(self.session_id, timeout)
        except BaseException:
            if not self.status.is_terminal:
                self._fail("session aborted")
            raise

        if self.status is SessionStatus.ERRORED:
            raise SessionError(self.session_id, self._error or "unknown error")

        self._result.status = self.status
        self._result.response_text = self.response_text
        logger.info(
            "Session %s completed: %d finding(s) posted, %d chars of response",
            self.session_id,
            self._result.findings_posted,
            len(self._result.response_text),
        )
        return self._result

    async def _drive(self, prompt: str) -> None:
        consumer = asyncio.create_task(self.consume())
        try:
            await self.send(prompt)
            await consumer
        finally:
            if not consumer.done():
                consumer.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await consumer
            aclose = getattr(self._stream, "aclose", None)
            if aclose is not None:
                await aclose()

    async def _apply(self, event: AgentEvent) -> None:
        if self.status.is_terminal:
            logger.debug("Session %s is %s; dropping %s", self.session_id, self.status.value, type(event).__name__)
            return
        if event.session_id != self.session_id:
            return

        if isinstance(event, TextDelta):
            self._text.append(event.text)
        elif isinstance(event, ToolCompleted):
            self._on_tool_completed(event)
        elif isinstance(event, ToolErrored):
            self._on_tool_errored(event)
        elif isinstance(event, SessionIdle):
            self.status = SessionStatus.IDLE
        elif isinstance(event, SessionFailed):
            logger.error("Session %s reported an error: %s", self.session_id, event.error)
            self._fail(event.error)
        else:
            raise TypeError(f"Unhandled agent event: {event!r}")

    def _first_seen(self, call_id: str) -> bool:
        if call_id in self.processed_call_ids:
            return False
        self.processed_call_ids.add(call_id)
        return True

    def _on_tool_completed(self, event: ToolCompleted) -> None:
        if not self._first_seen(event.call_id):
            logger.debug("Ignoring repeated completion of %s call %s", event.tool, event.call_id)
            return

        observer = self._observer_for(event.tool)
        if observer is None:
            logger.debug("Tool %s completed: %s", event.tool, event.output[:200])
            return

        result = observer(event)
        if result.is_error:
            self._result.tool_failures.append(result.text)
            return
        self._result.tool_outputs.append(result.text)
        if result.posted:
            self._result.findings_posted += 1
        if result.finding is not None and result.finding.is_policy_violation:
            self._result.policy_violations += 1

    def _on_tool_errored(self, event: ToolErrored) -> None:
        if not self._first_seen(event.call_id):
            return
        if self._observer_for(event.tool) is None:
            logger.error("Tool %s failed in session %s: %s", event.tool, self.session_id, event.error)
            return
        # The agent received the same error as the tool result and may retry.
        logger.warning("Tool %s rejected in session %s: %s", event.tool, self.session_id, event.error)
        self._result.tool_failures.append(event.error)

    def _observer_for(self, tool: str) -> ToolObserver | None:
        # MCP tools are reported as "<server>_<tool>".
        if tool in self._tool_observers:
            return self._tool_observers[tool]
        for name, observer in self._tool_observers.items():
            if tool.endswith(f"_{name}"):
                return observer
        return None

    def _fail(self, detail: str) -> None:
        self.status = SessionStatus.ERRORED
        self._error = detail
        self._result.status = self.status


class SessionOrchestrator:
    """Creates sessions against one agent server and runs them under a deadline."""

    def __init__(self, client: AgentClient, timeout: float | None = None):
        self._client = client
        self.timeout = timeout

    async def create(
        self,
        workdir: str,
        resource_id: str,
        tool_observers: dict[str, ToolObserver] | None = None,
    ) -> Session:
        handle = await self._client.create_session(workdir)
        logger.debug("Created session %s for %s in %s", handle.session_id, resource_id, workdir)
        return Session(handle, resource_id, workdir, tool_observers)

    async def run(
        self,
        workdir: str,
        resource_id: str,
        prompt: str,
        tool_observers: dict[str, ToolObserver] | None = None,
    ) -> SessionResult:
        session = await self.create(workdir, resource_id, tool_observers)
        return await session.run(prompt, timeout=self.timeout)

    async def ask(self, workdir: str, resource_id: str, prompt: str) -> str:
        """Run a tool-less session and return its response text."""
        result = await self.run(workdir, resource_id, prompt)
        return result.response_text
