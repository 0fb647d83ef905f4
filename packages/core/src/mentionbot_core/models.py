"""Shared types for the mention pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class Platform(str, Enum):
    GITLAB = "gitlab"
    JIRA = "jira"


class Intent(str, Enum):
    """Closed set of things a mention can ask for. The value doubles as the match keyword."""

    REVIEW = "review"
    WRITE_TESTS = "write-tests"
    ANALYZE_BUG = "analyze-bug"
    FIX_AND_PROPOSE = "fix-and-propose"
    GENERAL_QUESTION = "general-question"


@dataclass(frozen=True)
class IntentSet:
    """Ordered intents for one platform. Declaration order is the tie-break."""

    platform: Platform
    intents: tuple[Intent, ...]
    default: Intent
    examples: tuple[tuple[str, Intent], ...] = ()


GITLAB_INTENTS = IntentSet(
    platform=Platform.GITLAB,
    intents=(Intent.REVIEW, Intent.WRITE_TESTS, Intent.GENERAL_QUESTION),
    default=Intent.GENERAL_QUESTION,
    examples=(
        ("@bot can you take a look at this MR?", Intent.REVIEW),
        ("@bot please add unit tests for the parser changes", Intent.WRITE_TESTS),
        ("@bot why does this function return None here?", Intent.GENERAL_QUESTION),
    ),
)

JIRA_INTENTS = IntentSet(
    platform=Platform.JIRA,
    intents=(Intent.ANALYZE_BUG, Intent.FIX_AND_PROPOSE, Intent.GENERAL_QUESTION),
    default=Intent.GENERAL_QUESTION,
    examples=(
        ("@bot what could be causing this crash?", Intent.ANALYZE_BUG),
        ("@bot can you fix this and open a merge request?", Intent.FIX_AND_PROPOSE),
        ("@bot which service owns the billing export?", Intent.GENERAL_QUESTION),
    ),
)

INTENT_SETS = {Platform.GITLAB: GITLAB_INTENTS, Platform.JIRA: JIRA_INTENTS}


@dataclass(frozen=True)
class WorkItem:
    """A detected mention that may require processing. Read-only after the scan."""

    platform: Platform
    resource_id: str
    message_id: str
    author_id: str
    body: str
    created_at: datetime
    # Platform coordinates; only the ones relevant to ``platform`` are set.
    project_id: int | None = None
    iid: int | None = None
    issue_key: str | None = None
    title: str = ""
    ref: str | None = None
    target_ref: str | None = None
    url: str = ""
    author_name: str = ""


class SessionStatus(str, Enum):
    CREATED = "created"
    STREAMING = "streaming"
    IDLE = "idle"
    ERRORED = "errored"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.IDLE, SessionStatus.ERRORED)


Severity = Literal["critical", "warning", "suggestion", "praise"]


class Finding(BaseModel):
    """One reviewer observation, as emitted by the agent's post_review_comment tool.

    ``suggested_code`` distinguishes None (no suggestion) from "" (delete the
    targeted lines). Both are meaningful and must survive validation.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    severity: Severity
    file: str | None = None
    line: int | None = Field(default=None, ge=1)
    comment: str = Field(min_length=1)
    suggested_code: str | None = Field(default=None, alias="suggestedCode")
    lines_above: int | None = Field(default=None, ge=0, le=100, alias="suggestionLinesAbove")
    lines_below: int | None = Field(default=None, ge=0, le=100, alias="suggestionLinesBelow")

    @property
    def is_positioned(self) -> bool:
        return bool(self.file) and self.line is not None

    @property
    def is_policy_violation(self) -> bool:
        """Issues (anything but praise) are expected to carry a one-click fix."""
        return self.severity != "praise" and self.suggested_code is None


@dataclass(frozen=True)
class DiffVersion:
    base_sha: str
    start_sha: str
    head_sha: str


@dataclass(frozen=True)
class DiffCoordinate:
    """The anchor of an inline comment on one specific diff version."""

    base_sha: str
    start_sha: str
    head_sha: str
    path: str
    line: int

    def to_position(self) -> dict:
        return {
            "base_sha": self.base_sha,
            "start_sha": self.start_sha,
            "head_sha": self.head_sha,
            "old_path": self.path,
            "new_path": self.path,
            "position_type": "text",
            "new_line": self.line,
        }


@dataclass(frozen=True)
class CommentDescriptor:
    body: str
    coordinate: DiffCoordinate | None = None

    @property
    def position(self) -> dict | None:
        return self.coordinate.to_position() if self.coordinate else None


@dataclass
class SessionResult:
    """What one agent session produced, returned once it reaches IDLE."""

    session_id: str
    status: SessionStatus
    response_text: str = ""
    findings_posted: int = 0
    policy_violations: int = 0
    tool_failures: list[str] = field(default_factory=list)
    tool_outputs: list[str] = field(default_factory=list)
