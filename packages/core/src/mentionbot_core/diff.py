"""Diff coordinate resolution and comment rendering for merge request findings.

GitLab anchors an inline discussion with three commit SHAs (base, start,
head) plus a path and new-file line. The SHAs identify one *diff version* of
the merge request. A review pass resolves the version once and reuses it for
every finding, so all comments of one review point at the same diff even if
the source branch moves while the agent is still working.
"""

from __future__ import annotations

import logging

from mentionbot_core.errors import TransportError
from mentionbot_core.models import CommentDescriptor, DiffCoordinate, DiffVersion, Finding

logger = logging.getLogger(__name__)

SEVERITY_LABELS = {
    "critical": "🔴 **CRITICAL**",
    "warning": "🟡 **Warning**",
    "suggestion": "💡 **Suggestion**",
    "praise": "✅ **Good**",
}


def suggestion_block(code: str, lines_above: int | None = None, lines_below: int | None = None) -> str:
    """Render a GitLab "Apply suggestion" fence.

    The header must be exactly ``suggestion:-N+M``; any other spelling is
    rendered as a plain code block and the apply button silently disappears.
    An empty ``code`` produces an empty payload, which GitLab applies as a
    deletion of the covered lines.
    """
    above = lines_above or 0
    below = lines_below or 0
    return f"```suggestion:-{above}+{below}\n{code}\n```"


def build_comment(finding: Finding, version: DiffVersion | None = None) -> CommentDescriptor:
    """Turn a Finding into a comment body plus, when possible, a diff anchor.

    Positioned (inline) comments need both file and line *and* a resolved
    version; everything else becomes a thread-level comment. A file without a
    line is named in the body so the reader still knows where to look.
    """
    body = SEVERITY_LABELS[finding.severity]
    if finding.file and finding.line is None:
        body += f" in `{finding.file}`"
    body += f"\n\n{finding.comment}"

    if finding.suggested_code is not None:
        body += "\n\n" + suggestion_block(finding.suggested_code, finding.lines_above, finding.lines_below)

    coordinate = None
    if finding.is_positioned and version is not None:
        coordinate = DiffCoordinate(
            base_sha=version.base_sha,
            start_sha=version.start_sha,
            head_sha=version.head_sha,
            path=finding.file,
            line=finding.line,
        )
    return CommentDescriptor(body=body, coordinate=coordinate)


class DiffPositionResolver:
    """Resolves and caches the diff version of each merge request for one review pass.

    Create one resolver per pass (the tool server holds one per process); the
    cache is never invalidated during it.
    """

    def __init__(self, gitlab):
        self._gitlab = gitlab
        self._versions: dict[str, DiffVersion] = {}

    async def resolve_version(self, project_id: int, iid: int) -> DiffVersion:
        cache_key = f"{project_id}-{iid}"
        cached = self._versions.get(cache_key)
        if cached is not None:
            logger.debug("Using cached diff version for %s", cache_key)
            return cached

        versions = await self._gitlab.get_merge_request_versions(project_id, iid)
        if not versions:
            raise TransportError(f"No diff versions found for merge request {project_id}!{iid}")

        # GitLab lists the newest version first.
        latest = versions[0]
        version = DiffVersion(
            base_sha=latest["base_commit_sha"],
            start_sha=latest["start_commit_sha"],
            head_sha=latest["head_commit_sha"],
        )
        self._versions[cache_key] = version
        logger.info(
            "Pinned diff version for %s: %s..%s",
            cache_key,
            version.base_sha[:8],
            version.head_sha[:8],
        )
        return version

    async def build_comment(self, finding: Finding, project_id: int, iid: int) -> CommentDescriptor:
        """Resolve the version only when the finding can actually be anchored."""
        version = await self.resolve_version(project_id, iid) if finding.is_positioned else None
        return build_comment(finding, version)
