"""Intent handlers: what the bot does once a mention has been classified.

Each handler provisions a workspace, runs one agent session in it and posts
the outcome where the mention was made. ``process_work_item`` is the single
entry point used by the watcher; it owns classification, routing and the
"exactly one error comment per failed item" rule.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from mentionbot_core.classifier import IntentClassifier
from mentionbot_core.config import linked_project
from mentionbot_core.errors import ConfigurationError, TransportError
from mentionbot_core.models import INTENT_SETS, Intent, Platform, WorkItem
from mentionbot_core.platforms.gitlab import GitLabClient, find_thread_for_message, note_id_from_url
from mentionbot_core.platforms.jira import JiraClient
from mentionbot_core.prompts import (
    analyze_bug_prompt,
    build_conversation_history,
    fix_and_propose_prompt,
    jira_question_prompt,
    question_prompt,
    review_prompt,
    write_tests_prompt,
)
from mentionbot_core.session import SessionOrchestrator
from mentionbot_core.tools import (
    CREATE_MERGE_REQUEST,
    POST_REVIEW_COMMENT,
    record_merge_request,
    record_review_comment,
)
from mentionbot_core.workspace import provision_workspace

logger = logging.getLogger(__name__)

REVIEW_STARTED = "Meow 🐈, I'll start reviewing this merge request..."
REVIEW_COMPLETED = "Review completed! 🐾 {summary}"
ERROR_COMMENT = "❌ Error processing your request: {error}"
UNLINKED_QUESTION = (
    "ℹ️ To answer questions with code context, please link this Jira project to a GitLab project in config"
)


@dataclass
class WorkflowContext:
    gitlab: GitLabClient
    orchestrator: SessionOrchestrator
    classifier: IntentClassifier
    config: dict = field(default_factory=dict)
    jira: JiraClient | None = None

    def workspace(self, project: dict, ref: str | None = None):
        return provision_workspace(
            project["http_url_to_repo"],
            ref=ref,
            token=self.config.get("gitlab_token"),
            shallow=bool(self.config.get("shallow_clone")),
            base_dir=self.config.get("workspace_dir", ".temp"),
        )


Workflow = Callable[[WorkItem, WorkflowContext], Awaitable[None]]


# --- GitLab ---


async def _find_thread(item: WorkItem, ctx: WorkflowContext) -> dict | None:
    discussions = await ctx.gitlab.get_discussions(item.project_id, item.iid)
    return find_thread_for_message(item, discussions)


async def _reply(item: WorkItem, ctx: WorkflowContext, body: str, thread: dict | None) -> None:
    """Answer in the mention's thread, or start a new discussion when it was not found."""
    if thread is not None:
        await ctx.gitlab.reply_to_discussion(item.project_id, item.iid, thread["id"], body)
    else:
        await ctx.gitlab.create_discussion(item.project_id, item.iid, body)


async def review_merge_request(item: WorkItem, ctx: WorkflowContext) -> None:
    logger.info("Reviewing %s!%s: %s", item.project_id, item.iid, item.title)
    thread = await _find_thread(item, ctx)
    await _reply(item, ctx, REVIEW_STARTED, thread)

    project = await ctx.gitlab.get_project(item.project_id)
    observers = {POST_REVIEW_COMMENT: record_review_comment}

    async with ctx.workspace(project, item.ref) as workdir:
        result = await ctx.orchestrator.run(workdir, item.resource_id, review_prompt(item), observers)

    logger.info(
        "Review of %s posted %d finding(s), %d rejected call(s)",
        item.resource_id,
        result.findings_posted,
        len(result.tool_failures),
    )

    if result.policy_violations:
        logger.warning(
            "Review of %s posted %d finding(s) without a suggestion",
            item.resource_id,
            result.policy_violations,
        )
    await _reply(item, ctx, REVIEW_COMPLETED.format(summary=result.response_text), thread)


async def _answer_in_thread(item: WorkItem, ctx: WorkflowContext, build_prompt) -> None:
    thread = await _find_thread(item, ctx)
    me = await ctx.gitlab.current_user()
    history = build_conversation_history(thread, me.get("id"), note_id_from_url(item.url), item.body)
    project = await ctx.gitlab.get_project(item.project_id)

    async with ctx.workspace(project, item.ref) as workdir:
        answer = await ctx.orchestrator.ask(workdir, item.resource_id, build_prompt(item, history))

    await _reply(item, ctx, answer, thread)


async def write_tests(item: WorkItem, ctx: WorkflowContext) -> None:
    logger.info("Writing tests for %s!%s", item.project_id, item.iid)
    await _answer_in_thread(item, ctx, write_tests_prompt)


async def answer_merge_request_question(item: WorkItem, ctx: WorkflowContext) -> None:
    logger.info("Answering question on %s!%s", item.project_id, item.iid)
    await _answer_in_thread(item, ctx, question_prompt)


# --- Jira ---


async def _linked_project(item: WorkItem, ctx: WorkflowContext) -> dict:
    link = linked_project(ctx.config, item.issue_key)
    return await ctx.gitlab.get_project(link)


async def analyze_bug(item: WorkItem, ctx: WorkflowContext) -> None:
    project = await _linked_project(item, ctx)
    issue = await ctx.jira.get_issue(item.issue_key)
    logger.info("Analyzing %s against %s", item.issue_key, project["path_with_namespace"])

    async with ctx.workspace(project) as workdir:
        analysis = await ctx.orchestrator.ask(
            workdir, item.resource_id, analyze_bug_prompt(item, project["path_with_namespace"], issue)
        )

    await ctx.jira.add_comment(item.issue_key, analysis)


async def fix_and_propose(item: WorkItem, ctx: WorkflowContext) -> None:
    project = await _linked_project(item, ctx)
    logger.info("Fixing %s in %s", item.issue_key, project["path_with_namespace"])
    observers = {CREATE_MERGE_REQUEST: record_merge_request}
    prompt = fix_and_propose_prompt(item, project["id"], project.get("default_branch") or "main")

    async with ctx.workspace(project) as workdir:
        result = await ctx.orchestrator.run(workdir, item.resource_id, prompt, observers)

    summary = "\n\n".join(part for part in (result.response_text, *result.tool_outputs) if part)
    if not result.tool_outputs:
        logger.warning("Fix session for %s finished without creating a merge request", item.issue_key)
    await ctx.jira.add_comment(item.issue_key, summary)


async def answer_issue_question(item: WorkItem, ctx: WorkflowContext) -> None:
    project = await _linked_project(item, ctx)
    logger.info("Answering question on %s", item.issue_key)

    async with ctx.workspace(project) as workdir:
        answer = await ctx.orchestrator.ask(
            workdir, item.resource_id, jira_question_prompt(item, project["path_with_namespace"])
        )

    await ctx.jira.add_comment(item.issue_key, answer)


WORKFLOWS: dict[tuple[Platform, Intent], Workflow] = {
    (Platform.GITLAB, Intent.REVIEW): review_merge_request,
    (Platform.GITLAB, Intent.WRITE_TESTS): write_tests,
    (Platform.GITLAB, Intent.GENERAL_QUESTION): answer_merge_request_question,
    (Platform.JIRA, Intent.ANALYZE_BUG): analyze_bug,
    (Platform.JIRA, Intent.FIX_AND_PROPOSE): fix_and_propose,
    (Platform.JIRA, Intent.GENERAL_QUESTION): answer_issue_question,
}


# --- Entry point ---


async def _post(item: WorkItem, ctx: WorkflowContext, body: str) -> None:
    """Post body where the mention was made."""
    if item.platform is Platform.JIRA:
        await ctx.jira.add_comment(item.issue_key, body)
        return
    try:
        thread = await _find_thread(item, ctx)
    except TransportError as e:
        logger.warning("Could not look up the thread of %s: %s", item.message_id, e)
        thread = None
    await _reply(item, ctx, body, thread)


async def _mark_todo_done(item: WorkItem, ctx: WorkflowContext) -> None:
    todo_id = item.message_id.removeprefix("todo:")
    try:
        await ctx.gitlab.mark_todo_done(int(todo_id))
    except (TransportError, ValueError) as e:
        logger.warning("Failed to mark todo %s as done: %s", todo_id, e)


async def process_work_item(item: WorkItem, ctx: WorkflowContext) -> Intent | None:
    """Classify item, run the matching workflow and report failures on the thread.

    Returns the intent that was handled, or None when the workflow failed.
    Failures never propagate: one error comment is posted (best-effort) and
    the caller moves on.
    """
    intent = None
    try:
        intent = await ctx.classifier.classify(item.body, INTENT_SETS[item.platform])
        logger.info("Handling %s on %s as %s", item.message_id, item.resource_id, intent.value)
        await WORKFLOWS[(item.platform, intent)](item, ctx)
        return intent
    except ConfigurationError as e:
        logger.info("Cannot serve %s: %s", item.resource_id, e)
        message = UNLINKED_QUESTION if intent is Intent.GENERAL_QUESTION else f"ℹ️ {e}"
        await _post_safely(item, ctx, message)
    except Exception as e:
        logger.exception("Failed to process %s on %s", item.message_id, item.resource_id)
        await _post_safely(item, ctx, ERROR_COMMENT.format(error=e))
    finally:
        if item.platform is Platform.GITLAB:
            await _mark_todo_done(item, ctx)
    return None


async def _post_safely(item: WorkItem, ctx: WorkflowContext, body: str) -> None:
    try:
        await _post(item, ctx, body)
    except Exception as e:
        logger.error("Failed to post reply on %s: %s", item.resource_id, e)
