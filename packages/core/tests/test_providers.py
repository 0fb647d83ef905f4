"""Tests for completion provider implementations.

Shared behaviour (_call_with_retry) lives in BaseCompletionProvider and is
tested once via a lightweight stub. Provider-specific tests cover only what
differs between implementations: the SDK client setup and constants.
"""

from unittest.mock import patch

from mentionbot_core.providers.anthropic import AnthropicProvider
from mentionbot_core.providers.base import BaseCompletionProvider
from mentionbot_core.providers.openai import OpenAIProvider


class _StubProvider(BaseCompletionProvider):
    def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        return "review"


# ---------------------------------------------------------------------------
# Shared behaviour
# ---------------------------------------------------------------------------


class TestBaseCompletionProvider:
    def test_complete_returns_text(self):
        assert _StubProvider().complete("system", "user") == "review"

    def test_returns_none_after_max_retries(self):
        class _AlwaysFail(BaseCompletionProvider):
            def _call_api(self, system_prompt: str, user_prompt: str) -> str:
                raise RuntimeError("network error")

        # Patch time.sleep so the test doesn't actually wait.
        with patch("mentionbot_core.providers.base.time.sleep") as sleep:
            assert _AlwaysFail().complete("s", "u") is None
        assert [c.args[0] for c in sleep.call_args_list] == [1, 2]

    def test_retries_on_transient_failure(self):
        call_count = 0

        class _FailOnceThenSucceed(BaseCompletionProvider):
            def _call_api(self, system_prompt: str, user_prompt: str) -> str:
                nonlocal call_count
                call_count += 1
                if call_count == 1:
                    raise RuntimeError("transient")
                return "write-tests"

        with patch("mentionbot_core.providers.base.time.sleep"):
            assert _FailOnceThenSucceed().complete("s", "u") == "write-tests"
        assert call_count == 2


# ---------------------------------------------------------------------------
# Provider-specific
# ---------------------------------------------------------------------------


class TestAnthropicProvider:
    def test_raises_import_error_without_sdk(self):
        with patch.dict("sys.modules", {"anthropic": None}):
            try:
                AnthropicProvider(api_key="key")
                assert False, "Expected ImportError"
            except ImportError:
                pass

    def test_model_is_claude(self):
        assert "claude" in AnthropicProvider.MODEL

    def test_classification_is_deterministic(self):
        assert AnthropicProvider.TEMPERATURE == 0.0

    def test_model_override(self):
        assert AnthropicProvider(api_key="key", model="claude-x").model == "claude-x"


class TestOpenAIProvider:
    def test_raises_import_error_without_sdk(self):
        import mentionbot_core.providers.openai as openai_mod

        real_openai = openai_mod._OpenAI
        openai_mod._OpenAI = None
        try:
            OpenAIProvider(api_key="key")
            assert False, "Expected ImportError"
        except ImportError:
            pass
        finally:
            openai_mod._OpenAI = real_openai

    def test_model_is_gpt(self):
        assert "gpt" in OpenAIProvider.MODEL

    def test_classification_is_deterministic(self):
        assert OpenAIProvider.TEMPERATURE == 0.0

    def test_call_api_passes_prompts(self, mocker):
        provider = OpenAIProvider(api_key="key")
        create = mocker.patch.object(provider.client.chat.completions, "create")
        create.return_value.choices = [mocker.Mock(message=mocker.Mock(content="analyze-bug"))]

        assert provider.complete("sys", "usr") == "analyze-bug"
        messages = create.call_args.kwargs["messages"]
        assert messages[0] == {"role": "system", "content": "sys"}
        assert create.call_args.kwargs["max_tokens"] == OpenAIProvider.MAX_TOKENS
