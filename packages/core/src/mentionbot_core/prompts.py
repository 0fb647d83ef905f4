"""Prompt builders for the agent sessions, one per intent."""

from __future__ import annotations

from mentionbot_core.models import WorkItem
from mentionbot_core.scanner import parse_timestamp
from mentionbot_core.tools import CREATE_MERGE_REQUEST, POST_REVIEW_COMMENT

MAX_HISTORY_MESSAGES = 10

_FORMATTING_RULES = """IMPORTANT - FORMATTING YOUR ANSWER:
Your answer is posted directly as a comment and must be plain markdown.
- Do NOT wrap the whole response in triple backticks.
- Use triple backticks with a language name for code snippets only.
Do not describe what you are doing; just provide the answer."""


def build_conversation_history(
    discussion: dict | None,
    bot_user_id: int | None,
    current_note_id: int | None = None,
    current_body: str | None = None,
    max_messages: int = MAX_HISTORY_MESSAGES,
) -> str:
    """Render the earlier notes of a discussion as a transcript.

    System notes and the current message are dropped. When more than
    max_messages notes remain, the first note is kept (it usually frames the
    thread) followed by the most recent max_messages - 1, with a marker
    saying how many were left out. Returns "" when there is no history.
    """
    if not discussion:
        return ""
    notes = [
        n
        for n in discussion.get("notes", [])
        if not n.get("system")
        and n.get("id") != current_note_id
        and not (current_body is not None and (n.get("body") or "").strip() == current_body.strip())
    ]
    notes.sort(key=lambda n: parse_timestamp(n.get("created_at")))
    if not notes:
        return ""

    omitted = 0
    if len(notes) > max_messages:
        omitted = len(notes) - max_messages
        notes = [notes[0], *notes[-(max_messages - 1):]]

    lines = []
    for index, note in enumerate(notes):
        author = note.get("author") or {}
        name = "Bot" if author.get("id") == bot_user_id else author.get("name") or author.get("username", "User")
        timestamp = parse_timestamp(note.get("created_at")).strftime("%b %d, %H:%M")
        entry = f"[{timestamp}] {name}: {note.get('body', '')}"
        if index == 0 and omitted:
            entry += f"\n\n[... {omitted} message{'s' if omitted > 1 else ''} omitted ...]"
        lines.append(entry)
    return "\n\n".join(lines)


def _mr_context(item: WorkItem) -> str:
    return f"""Context:
- Merge request: "{item.title}"
- Source branch: {item.ref or "unknown"}
- Target branch: {item.target_ref or "unknown"}"""


def _history_section(history: str) -> str:
    if not history:
        return ""
    return f"\n\nPrevious conversation in this discussion:\n{history}\n"


def review_prompt(item: WorkItem) -> str:
    return f"""You are a code reviewer. Review the merge request "{item.title}".

The projectId is {item.project_id} and the merge request IID is {item.iid}.

Your task:
1. Compare the source branch with the target branch ({item.target_ref or "the default branch"}) using git diff.
2. Read any files that need closer inspection.
3. For EACH issue or suggestion you find, call the {POST_REVIEW_COMMENT} tool.

Only tool calls are posted; review comments written as plain text are ignored.

ALWAYS PROVIDE suggestedCode for every issue (critical, warning, suggestion). It
creates GitLab's "Apply suggestion" button:
- To replace the commented line: suggestedCode is the new code.
- To delete it: suggestedCode is "" (an empty string).
- To cover several lines, add suggestionLinesAbove / suggestionLinesBelow.
Only "praise" comments may omit suggestedCode.

Tool parameters:
- severity: "critical" | "warning" | "suggestion" | "praise"
- file: the file path, e.g. "src/auth.py"
- line: line number in the NEW version of the file
- comment: your explanation
- suggestedCode: the replacement code, or "" to delete
- suggestionLinesAbove / suggestionLinesBelow: optional, 0-100
- projectId: {item.project_id}
- mrIid: {item.iid}

Example (replacing lines 10-12, commenting on line 11):
{{
  "severity": "critical",
  "file": "src/auth.py",
  "line": 11,
  "comment": "Do not return the password hash to the client",
  "suggestedCode": "return {{\\"id\\": user.id, \\"email\\": user.email}}",
  "suggestionLinesAbove": 1,
  "suggestionLinesBelow": 1,
  "projectId": {item.project_id},
  "mrIid": {item.iid}
}}

Your final response must be a brief summary of the review. Do NOT repeat the
comments you posted through the tool."""


def write_tests_prompt(item: WorkItem, history: str = "") -> str:
    return f"""The user asked for tests via this message in a GitLab merge request discussion:

"{item.body}"

{_mr_context(item)}{_history_section(history)}

You have the repository checked out on the source branch. Look at the changes
of this merge request (git diff against the target branch), find the test
framework the project already uses and write tests that cover the changed
behaviour. Follow the existing test layout and naming conventions.

Reply with the tests you propose, each in a fenced code block preceded by the
path it belongs to, and a short explanation of what they cover.

{_FORMATTING_RULES}"""


def question_prompt(item: WorkItem, history: str = "") -> str:
    return f"""The user asked a question via this message in a GitLab merge request discussion:

"{item.body}"

{_mr_context(item)}{_history_section(history)}

You have access to the repository code on the source branch. You can read
files, use git commands to see diffs or history and search the codebase.

{_FORMATTING_RULES}"""


def _issue_context(item: WorkItem, issue: dict | None) -> str:
    fields = (issue or {}).get("fields") or {}
    lines = [f"Issue: {item.issue_key}", f"Summary: {item.title or fields.get('summary', '')}"]
    status = (fields.get("status") or {}).get("name")
    if status:
        lines.append(f"Status: {status}")
    return "\n".join(lines)


def analyze_bug_prompt(item: WorkItem, project: str, issue: dict | None = None) -> str:
    return f"""You are analyzing a bug reported in Jira issue {item.issue_key}.

{_issue_context(item, issue)}

The reporter wrote:
"{item.body}"

Please analyze this bug by:
1. Understanding what the bug is about
2. Searching through the codebase to find relevant files
3. Identifying potential root causes
4. Suggesting areas to investigate further

Project: {project}

{_FORMATTING_RULES}"""


def fix_and_propose_prompt(item: WorkItem, project_id: int | str, default_branch: str) -> str:
    branch = f"fix/{(item.issue_key or 'issue').lower()}"
    return f"""You are fixing the bug reported in Jira issue {item.issue_key}: "{item.title}".

The request was:
"{item.body}"

Steps:
1. Find the root cause in the repository.
2. Create the branch `{branch}`, implement a minimal fix and commit it with a
   message that references {item.issue_key}.
3. Push the branch to origin.
4. Call the {CREATE_MERGE_REQUEST} tool with projectId {project_id},
   sourceBranch "{branch}", targetBranch "{default_branch}" and a title that
   starts with "{item.issue_key}:".

Your final response must summarize the root cause and the fix in a few sentences."""


def jira_question_prompt(item: WorkItem, project: str) -> str:
    return f"""The user asked a question in Jira issue {item.issue_key} ("{item.title}"):

"{item.body}"

You have the code of the linked GitLab project {project} checked out; use it to ground your answer.

Reply in plain text without markdown headings; Jira renders the answer as a plain comment."""
