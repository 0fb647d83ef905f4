"""Tests for the OpenCode adapter: event translation, the SSE stream and the REST calls."""

import asyncio
import json

import httpx
import pytest

from mentionbot_core.errors import TransportError
from mentionbot_core.events import SessionFailed, SessionIdle, TextDelta, ToolCompleted, ToolErrored
from mentionbot_core.mcp_server import local_server_config
from mentionbot_core.models import SessionStatus
from mentionbot_core.platforms.opencode import OpenCodeClient, parse_event
from mentionbot_core.session import Session


def _tool_part(status, **state):
    return {
        "type": "message.part.updated",
        "properties": {
            "part": {
                "type": "tool",
                "sessionID": "ses-1",
                "callID": "call-1",
                "tool": "post_review_comment",
                "state": {"status": status, **state},
            }
        },
    }


class TestParseEvent:
    def test_completed_text_part(self):
        raw = {
            "type": "message.part.updated",
            "properties": {"part": {"type": "text", "sessionID": "ses-1", "text": "Done", "time": {"end": 1}}},
        }
        assert parse_event(raw) == TextDelta("ses-1", "Done")

    def test_streaming_text_part_is_ignored(self):
        raw = {
            "type": "message.part.updated",
            "properties": {"part": {"type": "text", "sessionID": "ses-1", "text": "Do", "time": {"start": 1}}},
        }
        assert parse_event(raw) is None

    def test_completed_tool(self):
        event = parse_event(_tool_part("completed", input={"severity": "praise"}, output={"ok": True}))
        assert event == ToolCompleted("ses-1", "call-1", "post_review_comment", {"severity": "praise"}, '{"ok": true}')

    def test_running_tool_is_ignored(self):
        assert parse_event(_tool_part("running", input={})) is None

    def test_errored_tool(self):
        assert parse_event(_tool_part("error", error="bad input")) == ToolErrored(
            "ses-1", "call-1", "post_review_comment", "bad input"
        )

    def test_session_idle(self):
        assert parse_event({"type": "session.idle", "properties": {"sessionID": "ses-1"}}) == SessionIdle("ses-1")

    @pytest.mark.parametrize(
        "error,detail",
        [
            ({"name": "ProviderAuthError", "data": {"message": "invalid key"}}, "invalid key"),
            ({"name": "MessageAbortedError"}, "MessageAbortedError"),
            (None, "unknown error"),
        ],
    )
    def test_session_error(self, error, detail):
        raw = {"type": "session.error", "properties": {"sessionID": "ses-1", "error": error}}
        assert parse_event(raw) == SessionFailed("ses-1", detail)

    def test_unrelated_event(self):
        assert parse_event({"type": "file.edited", "properties": {}}) is None


def _sse(*events):
    body = "".join(f"data: {json.dumps(e)}\n\n" for e in events)
    return body.encode()


class _Server:
    """Minimal OpenCode server: one session, scripted SSE payload."""

    def __init__(self, stream_body=b"", prompt_status=204, mcp_status=200):
        self.stream_body = stream_body
        self.prompt_status = prompt_status
        self.mcp_status = mcp_status
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if request.method == "POST" and path == "/session":
            return httpx.Response(200, json={"id": "ses-1"})
        if request.method == "POST" and path == "/mcp":
            return httpx.Response(self.mcp_status, json={})
        if request.method == "GET" and path == "/event":
            return httpx.Response(200, content=self.stream_body, headers={"content-type": "text/event-stream"})
        if path == "/session/ses-1/prompt_async":
            return httpx.Response(self.prompt_status)
        if path == "/session/ses-1/abort":
            return httpx.Response(200, json=True)
        return httpx.Response(404)


def _client(server, mcp_servers=None):
    return OpenCodeClient(
        "http://127.0.0.1:4096/",
        "anthropic",
        "claude-sonnet",
        mcp_servers=mcp_servers,
        transport=httpx.MockTransport(server),
    )


class TestOpenCodeClient:
    def test_create_session_scopes_directory(self):
        server = _Server()
        session = asyncio.run(_client(server).create_session("/work/clone-1"))

        assert session.session_id == "ses-1"
        assert server.requests[0].url.params["directory"] == "/work/clone-1"

    def test_create_session_registers_tool_server_first(self):
        server = _Server()
        tools = local_server_config("glpat", "https://gitlab.example.com/api/v4")

        asyncio.run(_client(server, {"mentionbot": tools}).create_session("/work/clone-1"))

        register, create = server.requests
        assert (register.url.path, create.url.path) == ("/mcp", "/session")
        assert register.url.params["directory"] == "/work/clone-1"
        assert json.loads(register.content) == {
            "name": "mentionbot",
            "config": {
                "type": "local",
                "command": ["mentionbot", "mcp-server"],
                "environment": {"GITLAB_TOKEN": "glpat", "GITLAB_API_URL": "https://gitlab.example.com/api/v4"},
                "enabled": True,
            },
        }

    def test_tool_server_registration_failure_is_transport_error(self):
        server = _Server(mcp_status=500)
        tools = local_server_config("glpat", "https://gitlab.example.com/api/v4")

        with pytest.raises(TransportError, match="500"):
            asyncio.run(_client(server, {"mentionbot": tools}).create_session("/w"))
        assert [r.url.path for r in server.requests] == ["/mcp"]

    def test_prompt_body(self):
        server = _Server()

        async def scenario():
            session = await _client(server).create_session("/w")
            await session.prompt("Review this")

        asyncio.run(scenario())
        body = json.loads(server.requests[-1].content)
        assert body == {
            "parts": [{"type": "text", "text": "Review this"}],
            "model": {"providerID": "anthropic", "modelID": "claude-sonnet"},
        }

    def test_prompt_failure_is_transport_error(self):
        server = _Server(prompt_status=500)

        async def scenario():
            session = await _client(server).create_session("/w")
            await session.prompt("x")

        with pytest.raises(TransportError, match="500"):
            asyncio.run(scenario())

    def test_event_stream_skips_noise(self):
        body = (
            b": keep-alive\n\n"
            b"data: not json\n\n"
            + _sse(
                {"type": "server.connected", "properties": {}},
                {"type": "session.idle", "properties": {"sessionID": "ses-1"}},
            )
        )
        server = _Server(stream_body=body)

        async def scenario():
            stream = await _client(server).open_event_stream("/w")
            events = [event async for event in stream]
            await stream.aclose()
            return events

        assert asyncio.run(scenario()) == [SessionIdle("ses-1")]

    def test_full_session_over_sse(self):
        body = _sse(
            {
                "type": "message.part.updated",
                "properties": {"part": {"type": "text", "sessionID": "ses-1", "text": "All good", "time": {"end": 2}}},
            },
            {"type": "session.idle", "properties": {"sessionID": "ses-1"}},
        )
        server = _Server(stream_body=body)

        async def scenario():
            handle = await _client(server).create_session("/w")
            return await Session(handle, "mr:1", "/w").run("Review this")

        result = asyncio.run(scenario())
        assert result.status is SessionStatus.IDLE
        assert result.response_text == "All good"
        paths = [r.url.path for r in server.requests]
        assert paths.index("/event") < paths.index("/session/ses-1/prompt_async")
