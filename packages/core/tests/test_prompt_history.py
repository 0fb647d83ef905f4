"""Tests for conversation history rendering and the per-intent prompts."""

from mentionbot_core.prompts import (
    build_conversation_history,
    fix_and_propose_prompt,
    jira_question_prompt,
    review_prompt,
    write_tests_prompt,
)


def _note(note_id, minute, body, author_id=7, name="Dana", system=False):
    return {
        "id": note_id,
        "body": body,
        "author": {"id": author_id, "name": name},
        "created_at": f"2025-03-04T10:{minute:02d}:00.000Z",
        "system": system,
    }


class TestConversationHistory:
    def test_no_discussion(self):
        assert build_conversation_history(None, 99) == ""

    def test_only_current_message(self):
        discussion = {"notes": [_note(1001, 0, "@bot why?")]}
        assert build_conversation_history(discussion, 99, current_note_id=1001) == ""

    def test_transcript_format_and_bot_name(self):
        discussion = {
            "notes": [
                _note(2, 5, "It returns None", author_id=99, name="Mention Bot"),
                _note(1, 0, "@bot what does this return?"),
                _note(3, 9, "@bot and why?"),
            ]
        }
        history = build_conversation_history(discussion, 99, current_note_id=3)
        assert history == (
            "[Mar 04, 10:00] Dana: @bot what does this return?\n\n[Mar 04, 10:05] Bot: It returns None"
        )

    def test_system_notes_dropped(self):
        discussion = {"notes": [_note(1, 0, "added 1 commit", system=True), _note(2, 1, "hello")]}
        assert build_conversation_history(discussion, 99) == "[Mar 04, 10:01] Dana: hello"

    def test_current_message_matched_by_body(self):
        discussion = {"notes": [_note(1, 0, "earlier"), _note(2, 1, "  @bot now  ")]}
        assert build_conversation_history(discussion, 99, current_body="@bot now") == "[Mar 04, 10:00] Dana: earlier"

    def test_long_thread_keeps_first_and_latest(self):
        discussion = {"notes": [_note(i, i, f"message {i}") for i in range(15)]}
        lines = build_conversation_history(discussion, 99).split("\n\n")

        assert lines[0] == "[Mar 04, 10:00] Dana: message 0"
        assert lines[1] == "[... 5 messages omitted ...]"
        assert lines[2] == "[Mar 04, 10:06] Dana: message 6"
        assert lines[-1] == "[Mar 04, 10:14] Dana: message 14"
        assert len(lines) == 11

    def test_single_omitted_message_is_singular(self):
        discussion = {"notes": [_note(i, i, f"m{i}") for i in range(11)]}
        assert "[... 1 message omitted ...]" in build_conversation_history(discussion, 99)


class TestPrompts:
    def test_review_prompt_binds_merge_request(self, gitlab_item):
        prompt = review_prompt(gitlab_item())
        assert "post_review_comment" in prompt
        assert '"projectId": 42' in prompt
        assert '"mrIid": 3' in prompt
        assert "suggestedCode" in prompt

    def test_write_tests_prompt_includes_history(self, gitlab_item):
        prompt = write_tests_prompt(gitlab_item(), "[Mar 04, 10:00] Dana: earlier")
        assert "Previous conversation in this discussion" in prompt
        assert "Source branch: feature/export" in prompt

    def test_history_section_omitted_when_empty(self, gitlab_item):
        assert "Previous conversation" not in write_tests_prompt(gitlab_item())

    def test_fix_prompt_names_branch_and_tool(self, jira_item):
        prompt = fix_and_propose_prompt(jira_item(), 42, "develop")
        assert "fix/proj-12" in prompt
        assert "create_merge_request" in prompt
        assert 'targetBranch "develop"' in prompt

    def test_jira_question_prompt(self, jira_item):
        prompt = jira_question_prompt(jira_item(), "group/repo")
        assert "PROJ-12" in prompt
        assert "group/repo" in prompt
