"""Mention detection across platforms.

Each MentionSource turns "addressed to the bot" items of one platform into
WorkItems. The scanner only detects; filtering already-processed and busy
items is the dispatcher's job. The one exception is the Jira source, which
must consult the tracker to pick *which* comment of an issue to report.
"""

from __future__ import annotations

import json
import logging
import math
from datetime import datetime, timezone
from typing import Callable, Protocol

from mentionbot_core.errors import TransportError
from mentionbot_core.models import Platform, WorkItem
from mentionbot_core.platforms.gitlab import GitLabClient
from mentionbot_core.platforms.jira import JiraClient, adf_to_text

logger = logging.getLogger(__name__)

_TIME_FORMATS = ("%Y-%m-%dT%H:%M:%S.%f%z", "%Y-%m-%dT%H:%M:%S%z")


def parse_timestamp(value: str | None) -> datetime:
    """Parse GitLab ("...Z") and Jira ("...+0000") timestamps; unknown -> epoch."""
    if value:
        for fmt in _TIME_FORMATS:
            try:
                return datetime.strptime(value, fmt)
            except ValueError:
                continue
        logger.debug("Unparseable timestamp %r", value)
    return datetime.fromtimestamp(0, tz=timezone.utc)


def jira_window_minutes(poll_interval_seconds: float) -> int:
    """Search window for one Jira poll: the interval rounded up plus a 3 minute buffer."""
    return math.ceil(poll_interval_seconds / 60) + 3


class MentionSource(Protocol):
    platform: Platform

    async def fetch_mentions(self, window: int | None = None) -> list[WorkItem]: ...


class GitLabMentionSource:
    platform = Platform.GITLAB

    def __init__(self, client: GitLabClient):
        self._client = client

    async def fetch_mentions(self, window: int | None = None) -> list[WorkItem]:
        # Pending todos are the window: GitLab keeps them until marked done.
        me = await self._client.current_user()
        todos = await self._client.get_todos(action="directly_addressed", state="pending")
        items = []
        for todo in todos:
            if todo.get("action_name", "directly_addressed") != "directly_addressed":
                continue
            if todo.get("target_type") != "MergeRequest":
                logger.debug("Skipping todo %s on %s", todo.get("id"), todo.get("target_type"))
                continue
            author = todo.get("author") or {}
            if author.get("id") == me.get("id"):
                continue
            items.append(todo_to_work_item(todo))
        return items


def todo_to_work_item(todo: dict) -> WorkItem:
    target = todo.get("target") or {}
    author = todo.get("author") or {}
    project = todo.get("project") or {}
    return WorkItem(
        platform=Platform.GITLAB,
        resource_id=f"mr:{target.get('id')}",
        message_id=f"todo:{todo['id']}",
        author_id=str(author.get("id", "")),
        body=todo.get("body", ""),
        created_at=parse_timestamp(todo.get("created_at")),
        project_id=project.get("id") or target.get("project_id"),
        iid=target.get("iid"),
        title=target.get("title", ""),
        ref=target.get("source_branch"),
        target_ref=target.get("target_branch"),
        url=todo.get("target_url", ""),
        author_name=author.get("name") or author.get("username", ""),
    )


def find_mention_comment(
    comments: list[dict],
    account_id: str,
    is_processed: Callable[[str], bool],
) -> dict | None:
    """Return the newest comment that mentions account_id.

    Comments written by the bot and comments already processed are skipped.
    A mention is the account id appearing in the raw ADF document (where
    Jira stores ``mention`` nodes) or in the extracted plain text.
    """
    newest_first = sorted(comments, key=lambda c: parse_timestamp(c.get("created")), reverse=True)
    for comment in newest_first:
        if (comment.get("author") or {}).get("accountId") == account_id:
            continue
        if is_processed(str(comment.get("id"))):
            continue
        body = comment.get("body")
        if isinstance(body, dict) and account_id in json.dumps(body.get("content") or []):
            return comment
        if account_id in adf_to_text(body):
            return comment
    return None


class JiraMentionSource:
    platform = Platform.JIRA

    def __init__(
        self,
        client: JiraClient,
        is_processed: Callable[[str], bool],
        project_keys: list[str] | None = None,
        poll_interval_seconds: float = 60,
    ):
        self._client = client
        self._is_processed = is_processed
        self._project_keys = project_keys or []
        self._default_window = jira_window_minutes(poll_interval_seconds)

    async def fetch_mentions(self, window: int | None = None) -> list[WorkItem]:
        me = await self._client.myself()
        account_id = me["accountId"]
        issues = await self._client.search_mentions(self._project_keys, window or self._default_window)
        if issues:
            logger.debug("Jira returned %d issue(s) mentioning %s", len(issues), me.get("displayName"))

        items = []
        for issue in issues:
            key = issue["key"]
            comments = await self._client.get_comments(key)
            comment = find_mention_comment(comments, account_id, self._is_processed)
            if comment is None:
                logger.debug("No unprocessed mention comment on %s", key)
                continue
            author = comment.get("author") or {}
            items.append(
                WorkItem(
                    platform=Platform.JIRA,
                    resource_id=f"jira:{key}",
                    message_id=str(comment["id"]),
                    author_id=author.get("accountId", ""),
                    body=adf_to_text(comment.get("body")),
                    created_at=parse_timestamp(comment.get("created")),
                    issue_key=key,
                    title=(issue.get("fields") or {}).get("summary", ""),
                    url=f"{self._client.api_url}/browse/{key}",
                    author_name=author.get("displayName", ""),
                )
            )
        return items


class MentionScanner:
    def __init__(self, sources: list[MentionSource]):
        self.sources = sources

    async def scan(self, window: int | None = None) -> list[WorkItem]:
        """Collect mentions from every source.

        A transport failure only skips the failing source for this tick.
        """
        items: list[WorkItem] = []
        for source in self.sources:
            try:
                found = await source.fetch_mentions(window)
            except TransportError as e:
                logger.error("Failed to fetch %s mentions: %s", source.platform.value, e)
                continue
            if found:
                logger.info("Found %d %s mention(s)", len(found), source.platform.value)
            items.extend(found)
        return items
