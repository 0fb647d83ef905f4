"""Thin async GitLab REST client covering what the mention workflows need."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from mentionbot_core.errors import TransportError
from mentionbot_core.models import WorkItem

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 30.0
_DISCUSSIONS_PER_PAGE = 20


def _encode(project_id: int | str) -> str:
    # Project paths like "group/repo" must be URL-encoded as a single segment.
    return quote(str(project_id), safe="")


class GitLabClient:
    def __init__(
        self,
        token: str,
        api_url: str = "https://gitlab.com/api/v4",
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
    ):
        self.api_url = api_url.rstrip("/")
        self.token = token
        self._client = httpx.AsyncClient(
            base_url=self.api_url,
            headers={"PRIVATE-TOKEN": token},
            timeout=timeout,
            transport=transport,
        )
        self._current_user: dict | None = None

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 401:
                raise TransportError("Invalid GitLab token: 401 Unauthorized") from e
            raise TransportError(f"GitLab {method} {path} failed: {status} {e.response.text[:500]}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"GitLab {method} {path} failed: {e}") from e
        return response

    async def _json(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._request(method, path, **kwargs)
        if not response.content:
            return None
        return response.json()

    async def current_user(self, force_refresh: bool = False) -> dict:
        if self._current_user is None or force_refresh:
            self._current_user = await self._json("GET", "/user")
        return self._current_user

    async def get_todos(self, action: str = "directly_addressed", state: str = "pending") -> list[dict]:
        return await self._json("GET", "/todos", params={"action": action, "state": state})

    async def mark_todo_done(self, todo_id: int) -> None:
        await self._request("POST", f"/todos/{todo_id}/mark_as_done")
        logger.debug("Marked todo %s as done", todo_id)

    async def get_project(self, project_id: int | str) -> dict:
        return await self._json("GET", f"/projects/{_encode(project_id)}")

    async def get_discussions(self, project_id: int | str, iid: int) -> list[dict]:
        """Return every discussion of a merge request, following pagination."""
        discussions: list[dict] = []
        page: str | None = "1"
        while page:
            response = await self._request(
                "GET",
                f"/projects/{_encode(project_id)}/merge_requests/{iid}/discussions",
                params={"page": page, "per_page": _DISCUSSIONS_PER_PAGE},
            )
            discussions.extend(response.json())
            page = response.headers.get("X-Next-Page") or None
        return discussions

    async def create_discussion(
        self,
        project_id: int | str,
        iid: int,
        body: str,
        position: dict | None = None,
    ) -> dict:
        payload: dict[str, Any] = {"body": body}
        if position is not None:
            payload["position"] = position
        discussion = await self._json(
            "POST", f"/projects/{_encode(project_id)}/merge_requests/{iid}/discussions", json=payload
        )
        logger.debug("Created discussion %s on %s!%s", discussion.get("id"), project_id, iid)
        return discussion

    async def reply_to_discussion(self, project_id: int | str, iid: int, discussion_id: str, body: str) -> dict:
        return await self._json(
            "POST",
            f"/projects/{_encode(project_id)}/merge_requests/{iid}/discussions/{discussion_id}/notes",
            json={"body": body},
        )

    async def get_merge_request_versions(self, project_id: int | str, iid: int) -> list[dict]:
        return await self._json("GET", f"/projects/{_encode(project_id)}/merge_requests/{iid}/versions")

    async def create_merge_request(
        self,
        project_id: int | str,
        source_branch: str,
        target_branch: str,
        title: str,
        description: str | None = None,
        labels: list[str] | None = None,
        remove_source_branch: bool = False,
    ) -> dict:
        payload: dict[str, Any] = {
            "source_branch": source_branch,
            "target_branch": target_branch,
            "title": title,
            "remove_source_branch": remove_source_branch,
        }
        if description:
            payload["description"] = description
        if labels:
            payload["labels"] = ",".join(labels)
        return await self._json("POST", f"/projects/{_encode(project_id)}/merge_requests", json=payload)

    async def close(self) -> None:
        await self._client.aclose()


def note_id_from_url(url: str) -> int | None:
    """Extract the note id from a todo target URL ending in ``#note_<id>``."""
    if "#note_" not in url:
        return None
    try:
        return int(url.split("#note_")[1])
    except ValueError:
        return None


def find_thread_for_message(item: WorkItem, discussions: list[dict]) -> dict | None:
    """Find the discussion that contains the mention.

    A discussion matches when it has a note by the mention's author, a note
    with exactly the mention's body and the note the todo URL points at.
    Returns None when nothing matches; callers fall back to a new discussion.
    """
    note_id = note_id_from_url(item.url)
    for discussion in discussions:
        notes = discussion.get("notes", [])
        if (
            any(str(n.get("author", {}).get("id")) == item.author_id for n in notes)
            and any(n.get("body") == item.body for n in notes)
            and any(n.get("id") == note_id for n in notes)
        ):
            return discussion
    logger.warning("No discussion found for %s on %s", item.message_id, item.resource_id)
    return None
