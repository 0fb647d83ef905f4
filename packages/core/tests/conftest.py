"""Shared fakes for the core tests: an agent server, its sessions and GitLab."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from mentionbot_core.models import Platform, WorkItem


class FakeHandle:
    """Agent session that only delivers events to streams opened before prompt().

    Scripted events are published when the prompt arrives, which is exactly
    when a real agent starts producing output.
    """

    def __init__(self, session_id: str = "ses-1", events=()):
        self.session_id = session_id
        self.scripted = list(events)
        self.prompts: list[str] = []
        self.aborted = False
        self._queues: list[asyncio.Queue] = []

    async def subscribe(self):
        queue: asyncio.Queue = asyncio.Queue()
        self._queues.append(queue)
        return self._stream(queue)

    async def _stream(self, queue: asyncio.Queue):
        while True:
            event = await queue.get()
            if event is None:
                return
            yield event

    async def prompt(self, text: str) -> None:
        self.prompts.append(text)
        for event in self.scripted:
            self.publish(event)

    def publish(self, event) -> None:
        for queue in self._queues:
            queue.put_nowait(event)

    async def abort(self) -> None:
        self.aborted = True


class FakeAgentClient:
    def __init__(self, events=()):
        self.events = list(events)
        self.handles: list[FakeHandle] = []
        self.workdirs: list[str] = []

    async def create_session(self, workdir: str) -> FakeHandle:
        handle = FakeHandle("ses-1", self.events)
        self.handles.append(handle)
        self.workdirs.append(workdir)
        return handle


class FakeGitLab:
    """In-memory stand-in for GitLabClient that records every write."""

    def __init__(self):
        self.user = {"id": 99, "username": "mentionbot", "name": "Mention Bot"}
        self.todos: list[dict] = []
        self.discussions: list[dict] = []
        self.versions = [
            {"base_commit_sha": "b" * 40, "start_commit_sha": "s" * 40, "head_commit_sha": "h" * 40},
            {"base_commit_sha": "0" * 40, "start_commit_sha": "1" * 40, "head_commit_sha": "2" * 40},
        ]
        self.version_calls = 0
        self.created: list[dict] = []
        self.replies: list[dict] = []
        self.done_todos: list[int] = []
        self.merge_requests: list[dict] = []
        self.fail_on_create = None

    async def current_user(self, force_refresh: bool = False) -> dict:
        return self.user

    async def get_todos(self, action="directly_addressed", state="pending") -> list[dict]:
        return self.todos

    async def mark_todo_done(self, todo_id: int) -> None:
        self.done_todos.append(todo_id)

    async def get_project(self, project_id) -> dict:
        return {
            "id": 42,
            "http_url_to_repo": "https://gitlab.example.com/group/repo.git",
            "path_with_namespace": "group/repo",
            "default_branch": "main",
        }

    async def get_discussions(self, project_id, iid) -> list[dict]:
        return self.discussions

    async def create_discussion(self, project_id, iid, body, position=None) -> dict:
        if self.fail_on_create is not None:
            raise self.fail_on_create
        self.created.append({"project_id": project_id, "iid": iid, "body": body, "position": position})
        return {"id": f"d-{len(self.created)}"}

    async def reply_to_discussion(self, project_id, iid, discussion_id, body) -> dict:
        self.replies.append({"discussion_id": discussion_id, "body": body})
        return {"id": len(self.replies)}

    async def get_merge_request_versions(self, project_id, iid) -> list[dict]:
        self.version_calls += 1
        return self.versions

    async def create_merge_request(self, project_id, **kwargs) -> dict:
        self.merge_requests.append({"project_id": project_id, **kwargs})
        return {
            "iid": 7,
            "title": kwargs["title"],
            "web_url": "https://gitlab.example.com/group/repo/-/merge_requests/7",
        }


class FakeJira:
    def __init__(self):
        self.comments: list[tuple[str, str]] = []

    async def get_issue(self, issue_key: str) -> dict:
        return {"key": issue_key, "fields": {"summary": "Export crashes", "status": {"name": "Open"}}}

    async def add_comment(self, issue_key: str, text: str) -> dict:
        self.comments.append((issue_key, text))
        return {"id": str(len(self.comments))}


def make_gitlab_item(**overrides) -> WorkItem:
    fields = dict(
        platform=Platform.GITLAB,
        resource_id="mr:500",
        message_id="todo:1",
        author_id="7",
        body="@mentionbot please review",
        created_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
        project_id=42,
        iid=3,
        title="Add export endpoint",
        ref="feature/export",
        target_ref="main",
        url="https://gitlab.example.com/group/repo/-/merge_requests/3#note_1001",
        author_name="Dana",
    )
    fields.update(overrides)
    return WorkItem(**fields)


def make_jira_item(**overrides) -> WorkItem:
    fields = dict(
        platform=Platform.JIRA,
        resource_id="jira:PROJ-12",
        message_id="10001",
        author_id="acc-7",
        body="@bot what is causing this?",
        created_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
        issue_key="PROJ-12",
        title="Export crashes",
        url="https://example.atlassian.net/browse/PROJ-12",
    )
    fields.update(overrides)
    return WorkItem(**fields)


@pytest.fixture
def fake_gitlab() -> FakeGitLab:
    return FakeGitLab()


@pytest.fixture
def fake_jira() -> FakeJira:
    return FakeJira()


@pytest.fixture
def gitlab_item():
    return make_gitlab_item


@pytest.fixture
def jira_item():
    return make_jira_item


@pytest.fixture
def agent_client():
    return FakeAgentClient


@pytest.fixture
def handle():
    return FakeHandle
