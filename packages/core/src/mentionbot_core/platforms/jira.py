"""Thin async Jira Cloud REST (v3) client plus ADF helpers."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from mentionbot_core.errors import TransportError

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 30.0
_SEARCH_PAGE_SIZE = 50


def adf_to_text(body: str | dict | None) -> str:
    """Plain text of an Atlassian Document Format body.

    Only top-level paragraphs are read; their text nodes are joined with a
    single space. Plain string bodies are returned unchanged.
    """
    if body is None:
        return ""
    if isinstance(body, str):
        return body
    parts = []
    for node in body.get("content") or []:
        if node.get("type") != "paragraph":
            continue
        for child in node.get("content") or []:
            if child.get("type") == "text" and child.get("text"):
                parts.append(child["text"])
    return " ".join(parts).strip()


def text_to_adf(text: str) -> dict:
    return {
        "type": "doc",
        "version": 1,
        "content": [{"type": "paragraph", "content": [{"type": "text", "text": text}]}],
    }


def mentions_jql(project_keys: list[str] | None = None, window_minutes: int | None = None) -> str:
    jql = "comment ~ currentUser()"
    if project_keys:
        jql = f"project IN ({','.join(project_keys)}) AND {jql}"
    if window_minutes:
        jql = f"{jql} AND updated >= -{window_minutes}m"
    return f"{jql} ORDER BY updated DESC"


class JiraClient:
    def __init__(
        self,
        api_url: str,
        email: str,
        api_token: str,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
    ):
        self.api_url = api_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=f"{self.api_url}/rest/api/3",
            auth=(email, api_token),
            headers={"Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )
        self._myself: dict | None = None

    async def _json(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TransportError(
                f"Jira {method} {path} failed: {e.response.status_code} {e.response.text[:500]}"
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(f"Jira {method} {path} failed: {e}") from e
        return response.json() if response.content else None

    async def myself(self, force_refresh: bool = False) -> dict:
        if self._myself is None or force_refresh:
            self._myself = await self._json("GET", "/myself")
        return self._myself

    async def search(self, jql: str, max_results: int = _SEARCH_PAGE_SIZE) -> list[dict]:
        logger.debug("Searching Jira: %s", jql)
        data = await self._json(
            "GET",
            "/search/jql",
            params={"jql": jql, "maxResults": max_results, "fields": "summary,status,project"},
        )
        return data.get("issues", [])

    async def search_mentions(
        self, project_keys: list[str] | None = None, window_minutes: int | None = None
    ) -> list[dict]:
        return await self.search(mentions_jql(project_keys, window_minutes))

    async def get_issue(self, issue_key: str) -> dict:
        return await self._json("GET", f"/issue/{quote(issue_key)}")

    async def get_comments(self, issue_key: str) -> list[dict]:
        data = await self._json("GET", f"/issue/{quote(issue_key)}/comment")
        return data.get("comments", [])

    async def add_comment(self, issue_key: str, text: str) -> dict:
        comment = await self._json("POST", f"/issue/{quote(issue_key)}/comment", json={"body": text_to_adf(text)})
        logger.info("Added comment %s to %s", comment.get("id"), issue_key)
        return comment

    async def close(self) -> None:
        await self._client.aclose()
