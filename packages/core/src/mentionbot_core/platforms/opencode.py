"""OpenCode server adapter: REST session API plus the server-sent event stream.

The server publishes one event stream per working directory. Each session
opens its own subscription; events for other sessions on the same stream are
filtered out by the session state machine.
"""

from __future__ import annotations

import contextlib
import json
import logging
from typing import Any

import httpx

from mentionbot_core.errors import TransportError
from mentionbot_core.events import AgentEvent, SessionFailed, SessionIdle, TextDelta, ToolCompleted, ToolErrored

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 30.0


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value)


def parse_event(raw: dict) -> AgentEvent | None:
    """Translate one OpenCode event into an AgentEvent, or None if irrelevant.

    Text parts are only emitted once complete (``time.end`` set); OpenCode
    re-publishes a part on every update and the partial copies would
    otherwise be appended repeatedly.
    """
    kind = raw.get("type")
    props = raw.get("properties") or {}

    if kind == "message.part.updated":
        part = props.get("part") or {}
        session_id = part.get("sessionID", "")
        if part.get("type") == "text":
            if (part.get("time") or {}).get("end") and part.get("text"):
                return TextDelta(session_id=session_id, text=part["text"])
            return None
        if part.get("type") == "tool":
            state = part.get("state") or {}
            status = state.get("status")
            if status == "completed":
                return ToolCompleted(
                    session_id=session_id,
                    call_id=part.get("callID") or part.get("id", ""),
                    tool=part.get("tool", ""),
                    arguments=state.get("input") or {},
                    output=_stringify(state.get("output")),
                )
            if status == "error":
                return ToolErrored(
                    session_id=session_id,
                    call_id=part.get("callID") or part.get("id", ""),
                    tool=part.get("tool", ""),
                    error=_stringify(state.get("error")),
                )
        return None

    if kind == "session.idle":
        return SessionIdle(session_id=props.get("sessionID", ""))

    if kind == "session.error":
        error = props.get("error")
        if isinstance(error, dict):
            detail = (error.get("data") or {}).get("message") or error.get("name") or json.dumps(error)
        else:
            detail = _stringify(error) or "unknown error"
        return SessionFailed(session_id=props.get("sessionID", ""), error=detail)

    return None


class _EventStream:
    """Async iterator over parsed events of one open SSE response."""

    def __init__(self, lines, stack: contextlib.AsyncExitStack):
        self._lines = lines
        self._stack = stack

    def __aiter__(self):
        return self

    async def __anext__(self) -> AgentEvent:
        while True:
            try:
                line = await self._lines.__anext__()
            except httpx.HTTPError as e:
                raise TransportError(f"OpenCode event stream failed: {e}") from e
            if not line.startswith("data:"):
                continue
            payload = line[len("data:"):].strip()
            if not payload:
                continue
            try:
                raw = json.loads(payload)
            except json.JSONDecodeError:
                logger.debug("Skipping malformed event payload: %s", payload[:200])
                continue
            event = parse_event(raw)
            if event is not None:
                return event

    async def aclose(self) -> None:
        await self._stack.aclose()


class OpenCodeSession:
    def __init__(self, client: OpenCodeClient, session_id: str, directory: str):
        self._client = client
        self.session_id = session_id
        self.directory = directory

    async def subscribe(self) -> _EventStream:
        return await self._client.open_event_stream(self.directory)

    async def prompt(self, text: str) -> None:
        await self._client.prompt(self.session_id, self.directory, text)

    async def abort(self) -> None:
        await self._client.abort(self.session_id, self.directory)


class OpenCodeClient:
    def __init__(
        self,
        base_url: str,
        provider_id: str,
        model_id: str,
        mcp_servers: dict[str, dict] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = {"providerID": provider_id, "modelID": model_id}
        self.mcp_servers = dict(mcp_servers or {})
        self._client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    async def _json(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TransportError(
                f"OpenCode {method} {path} failed: {e.response.status_code} {e.response.text[:500]}"
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(f"OpenCode {method} {path} failed: {e}") from e
        return response.json() if response.content else None

    async def register_mcp_server(self, name: str, config: dict, directory: str) -> None:
        """Add an MCP server to the agent instance serving directory."""
        await self._json("POST", "/mcp", params={"directory": directory}, json={"name": name, "config": config})
        logger.debug("Registered MCP server %s for %s", name, directory)

    async def create_session(self, workdir: str) -> OpenCodeSession:
        """Create a session in workdir with every configured MCP server available to it.

        The server keeps one instance per directory, and each clone is a new
        directory, so the tool servers are registered for every session.
        """
        for name, config in self.mcp_servers.items():
            await self.register_mcp_server(name, config, workdir)
        data = await self._json("POST", "/session", params={"directory": workdir}, json={})
        session_id = (data or {}).get("id")
        if not session_id:
            raise TransportError("Failed to create OpenCode session: response has no id")
        return OpenCodeSession(self, session_id, workdir)

    async def open_event_stream(self, directory: str) -> _EventStream:
        """Open the SSE stream and return once the server has accepted it."""
        stack = contextlib.AsyncExitStack()
        try:
            response = await stack.enter_async_context(
                self._client.stream("GET", "/event", params={"directory": directory}, timeout=None)
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            await stack.aclose()
            raise TransportError(f"Failed to subscribe to OpenCode events: {e}") from e
        return _EventStream(response.aiter_lines(), stack)

    async def prompt(self, session_id: str, directory: str, text: str) -> None:
        await self._json(
            "POST",
            f"/session/{session_id}/prompt_async",
            params={"directory": directory},
            json={"parts": [{"type": "text", "text": text}], "model": self.model},
        )

    async def abort(self, session_id: str, directory: str) -> None:
        await self._json("POST", f"/session/{session_id}/abort", params={"directory": directory})

    async def close(self) -> None:
        await self._client.aclose()
