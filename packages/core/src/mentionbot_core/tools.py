"""Tool-call boundary between the agent and the platforms.

Tool arguments are AI-generated JSON and are validated against a strict
schema before anything is posted. The ``make_*_handler`` factories execute a
call and turn every failure (invalid arguments, GitLab errors) into a
ToolResult with ``is_error=True``; the MCP tool server hands that result back
to the agent, which may retry the call. The ``record_*`` observers run on the
session side: they account for calls the tool server already executed, as
seen on the agent event stream, and never post anything themselves.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from mentionbot_core.diff import DiffPositionResolver
from mentionbot_core.errors import ToolArgumentValidationError, TransportError
from mentionbot_core.events import ToolCompleted
from mentionbot_core.models import Finding

logger = logging.getLogger(__name__)

POST_REVIEW_COMMENT = "post_review_comment"
CREATE_MERGE_REQUEST = "create_merge_request"


@dataclass
class ToolResult:
    is_error: bool
    text: str
    finding: Finding | None = None
    posted: bool = False


ToolHandler = Callable[[dict], Awaitable[ToolResult]]
ToolObserver = Callable[[ToolCompleted], ToolResult]


class ReviewCommentArgs(Finding):
    """post_review_comment arguments: a Finding plus the merge request it targets."""

    project_id: int | None = Field(default=None, alias="projectId")
    mr_iid: int | None = Field(default=None, alias="mrIid")


class CreateMergeRequestArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    project_id: int | None = Field(default=None, alias="projectId")
    source_branch: str = Field(min_length=1, alias="sourceBranch")
    target_branch: str = Field(min_length=1, alias="targetBranch")
    title: str = Field(min_length=1)
    description: str | None = None
    labels: list[str] = Field(default_factory=list)
    remove_source_branch: bool = Field(default=False, alias="removeSourceBranch")


def _validate(tool: str, model: type[BaseModel], arguments: Any) -> Any:
    if not isinstance(arguments, dict):
        raise ToolArgumentValidationError(tool, [f"expected an object, got {type(arguments).__name__}"])
    try:
        return model.model_validate(arguments)
    except ValidationError as e:
        errors = [f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}" for err in e.errors()]
        raise ToolArgumentValidationError(tool, errors) from e


def parse_finding(arguments: Any) -> ReviewCommentArgs:
    """Validate post_review_comment arguments; raises ToolArgumentValidationError."""
    return _validate(POST_REVIEW_COMMENT, ReviewCommentArgs, arguments)


def parse_merge_request(arguments: Any) -> CreateMergeRequestArgs:
    return _validate(CREATE_MERGE_REQUEST, CreateMergeRequestArgs, arguments)


def _describe(finding: Finding) -> str:
    lines = ["Review comment posted successfully!", f"- Severity: {finding.severity}"]
    if finding.file:
        location = finding.file if finding.line is None else f"{finding.file}:{finding.line}"
        lines.append(f"- File: {location}")
    if finding.suggested_code == "":
        lines.append("- Code deletion suggestion included")
    elif finding.suggested_code is not None:
        lines.append("- Code replacement suggestion included")
    return "\n".join(lines)


def make_post_finding_handler(gitlab, resolver: DiffPositionResolver, project_id: int, iid: int) -> ToolHandler:
    """Bind post_review_comment to one merge request.

    Calls that name a different project or merge request are rejected rather
    than posted elsewhere.
    """

    async def handle(arguments: dict) -> ToolResult:
        try:
            args = parse_finding(arguments)
            if args.project_id not in (None, project_id) or args.mr_iid not in (None, iid):
                raise ToolArgumentValidationError(
                    POST_REVIEW_COMMENT,
                    [f"call targets {args.project_id}!{args.mr_iid}, session is bound to {project_id}!{iid}"],
                )
        except ToolArgumentValidationError as e:
            logger.warning("Rejected %s call: %s", POST_REVIEW_COMMENT, e)
            return ToolResult(is_error=True, text=str(e))

        finding = Finding.model_validate(args.model_dump(exclude={"project_id", "mr_iid"}))
        if finding.is_policy_violation:
            logger.warning(
                "%s finding on %s:%s has no suggestedCode; posting without a suggestion",
                finding.severity,
                finding.file,
                finding.line,
            )

        try:
            descriptor = await resolver.build_comment(finding, project_id, iid)
            await gitlab.create_discussion(project_id, iid, descriptor.body, position=descriptor.position)
        except TransportError as e:
            logger.error("Failed to post comment for %s:%s: %s", finding.file, finding.line, e)
            return ToolResult(is_error=True, text=f"Failed to post comment: {e}", finding=finding)

        logger.info(
            "Posted %s comment (%s)",
            finding.severity,
            f"{finding.file}:{finding.line}" if descriptor.coordinate else finding.file or "general",
        )
        return ToolResult(is_error=False, text=_describe(finding), finding=finding, posted=True)

    return handle


def make_create_merge_request_handler(gitlab, project_id: int) -> ToolHandler:
    async def handle(arguments: dict) -> ToolResult:
        try:
            args = parse_merge_request(arguments)
        except ToolArgumentValidationError as e:
            logger.warning("Rejected %s call: %s", CREATE_MERGE_REQUEST, e)
            return ToolResult(is_error=True, text=str(e))

        try:
            mr = await gitlab.create_merge_request(
                args.project_id or project_id,
                source_branch=args.source_branch,
                target_branch=args.target_branch,
                title=args.title,
                description=args.description,
                labels=args.labels,
                remove_source_branch=args.remove_source_branch,
            )
        except TransportError as e:
            logger.error("Failed to create merge request from %s: %s", args.source_branch, e)
            return ToolResult(is_error=True, text=f"Failed to create merge request: {e}")

        logger.info("Created merge request !%s", mr.get("iid"))
        return ToolResult(
            is_error=False,
            text=(
                f"Merge request created: **!{mr.get('iid')}** {mr.get('title', args.title)}\n"
                f"{mr.get('web_url', '')}\n"
                f"{args.source_branch} → {args.target_branch}"
            ),
        )

    return handle


def record_review_comment(event: ToolCompleted) -> ToolResult:
    """Account for a post_review_comment call the tool server completed."""
    try:
        finding = parse_finding(event.arguments)
    except ToolArgumentValidationError:
        finding = None
    return ToolResult(is_error=False, text=event.output, finding=finding, posted=True)


def record_merge_request(event: ToolCompleted) -> ToolResult:
    return ToolResult(is_error=False, text=event.output)
