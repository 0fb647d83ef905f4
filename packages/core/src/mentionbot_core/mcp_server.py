"""MCP tool server that gives the agent its GitLab write tools.

The agent server launches this as a local stdio MCP server (``mentionbot
mcp-server``) for every session it is registered with. Tool calls are
validated and executed here; a rejected or failed call is raised as a
ToolError, so the agent receives the message as an error result and can
correct its arguments and call again.

``projectId`` and ``mrIid`` are tool parameters rather than server settings:
one server process may serve calls for any merge request the token can see.
"""

import logging
from typing import Annotated, Optional

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from pydantic import Field

from mentionbot_core.diff import DiffPositionResolver
from mentionbot_core.tools import (
    CREATE_MERGE_REQUEST,
    POST_REVIEW_COMMENT,
    ToolResult,
    make_create_merge_request_handler,
    make_post_finding_handler,
)

logger = logging.getLogger(__name__)

SERVER_NAME = "mentionbot"
DEFAULT_COMMAND = ["mentionbot", "mcp-server"]

_INSTRUCTIONS = (
    "Tools for posting merge request review comments and opening merge requests on GitLab. "
    "Every call is validated; on an error result, fix the arguments named in the message and call again."
)


def local_server_config(gitlab_token: str, gitlab_api_url: str, command: list[str] | None = None) -> dict:
    """Agent-server config entry that launches this server over stdio."""
    return {
        "type": "local",
        "command": list(command or DEFAULT_COMMAND),
        "environment": {"GITLAB_TOKEN": gitlab_token, "GITLAB_API_URL": gitlab_api_url},
        "enabled": True,
    }


def _present(**arguments) -> dict:
    # Omitted optional parameters arrive as None; "" is a real value (delete suggestion).
    return {key: value for key, value in arguments.items() if value is not None}


def _require(tool: str, arguments: dict, *names: str) -> None:
    missing = [name for name in names if arguments.get(name) is None]
    if missing:
        raise ToolError(f"Invalid arguments for {tool}: {', '.join(missing)} required")


def _deliver(result: ToolResult) -> str:
    if result.is_error:
        raise ToolError(result.text)
    return result.text


class ReviewTools:
    """The tool implementations, bound to one GitLab client."""

    def __init__(self, gitlab):
        self._gitlab = gitlab
        self._resolver = DiffPositionResolver(gitlab)

    async def post_review_comment(self, arguments: dict) -> str:
        _require(POST_REVIEW_COMMENT, arguments, "projectId", "mrIid")
        handler = make_post_finding_handler(
            self._gitlab, self._resolver, arguments.get("projectId"), arguments.get("mrIid")
        )
        return _deliver(await handler(arguments))

    async def create_merge_request(self, arguments: dict) -> str:
        _require(CREATE_MERGE_REQUEST, arguments, "projectId")
        handler = make_create_merge_request_handler(self._gitlab, arguments.get("projectId"))
        return _deliver(await handler(arguments))


def build_review_server(gitlab) -> FastMCP:
    tools = ReviewTools(gitlab)
    mcp = FastMCP(name=SERVER_NAME, instructions=_INSTRUCTIONS)

    # Parameter names are the wire schema the prompts document.
    @mcp.tool(
        name=POST_REVIEW_COMMENT,
        description=(
            "Post one review comment on a merge request. With file and line the comment is anchored "
            "to that line of the new version; suggestedCode adds GitLab's one-click suggestion "
            '("" deletes the targeted lines).'
        ),
    )
    async def post_review_comment(
        severity: Annotated[str, Field(description='"critical", "warning", "suggestion" or "praise"')],
        comment: Annotated[str, Field(description="The explanation shown to the author")],
        projectId: Annotated[int, Field(description="GitLab project id")],
        mrIid: Annotated[int, Field(description="Merge request IID")],
        file: Annotated[Optional[str], Field(description="Path of the file in the new version")] = None,
        line: Annotated[Optional[int], Field(description="Line number in the new version")] = None,
        suggestedCode: Annotated[Optional[str], Field(description='Replacement code, or "" to delete')] = None,
        suggestionLinesAbove: Annotated[Optional[int], Field(description="Lines above to replace, 0-100")] = None,
        suggestionLinesBelow: Annotated[Optional[int], Field(description="Lines below to replace, 0-100")] = None,
    ) -> str:
        return await tools.post_review_comment(
            _present(
                severity=severity,
                comment=comment,
                projectId=projectId,
                mrIid=mrIid,
                file=file,
                line=line,
                suggestedCode=suggestedCode,
                suggestionLinesAbove=suggestionLinesAbove,
                suggestionLinesBelow=suggestionLinesBelow,
            )
        )

    @mcp.tool(
        name=CREATE_MERGE_REQUEST,
        description="Open a merge request from an already pushed branch.",
    )
    async def create_merge_request(
        projectId: Annotated[int, Field(description="GitLab project id")],
        sourceBranch: Annotated[str, Field(description="The pushed branch with the fix")],
        targetBranch: Annotated[str, Field(description="The branch to merge into")],
        title: str,
        description: Optional[str] = None,
        labels: Optional[list[str]] = None,
        removeSourceBranch: Optional[bool] = None,
    ) -> str:
        return await tools.create_merge_request(
            _present(
                projectId=projectId,
                sourceBranch=sourceBranch,
                targetBranch=targetBranch,
                title=title,
                description=description,
                labels=labels,
                removeSourceBranch=removeSourceBranch,
            )
        )

    logger.debug("Review tool server ready: %s, %s", POST_REVIEW_COMMENT, CREATE_MERGE_REQUEST)
    return mcp
