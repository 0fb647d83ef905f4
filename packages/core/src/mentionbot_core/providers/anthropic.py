from __future__ import annotations

from mentionbot_core.providers.base import BaseCompletionProvider


class AnthropicProvider(BaseCompletionProvider):
    MODEL = "claude-sonnet-4-20250514"
    # Routing must be repeatable: the same mention should land on the same intent.
    TEMPERATURE = 0.0

    def __init__(self, api_key: str, model: str | None = None):
        try:
            from anthropic import Anthropic
        except ImportError:
            raise ImportError(
                "The 'anthropic' package is required for this provider. "
                "Install it with: pip install anthropic"
            )
        self.client = Anthropic(api_key=api_key)
        self.model = model or self.MODEL

    def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        # Imported lazily like the client; __init__ already validated the SDK is installed.
        from anthropic.types import TextBlock

        response = self.client.messages.create(
            model=self.model,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
            temperature=self.TEMPERATURE,
            max_tokens=self.MAX_TOKENS,
        )
        text_blocks = [block.text for block in response.content if isinstance(block, TextBlock)]
        return "".join(text_blocks).strip()
