"""Intent classification for inbound mentions."""

from __future__ import annotations

import asyncio
import logging

from mentionbot_core.models import Intent, IntentSet
from mentionbot_core.providers.anthropic import AnthropicProvider
from mentionbot_core.providers.base import BaseCompletionProvider
from mentionbot_core.providers.openai import OpenAIProvider

logger = logging.getLogger(__name__)


def get_provider(config: dict) -> BaseCompletionProvider:
    model = config["classifier_model"]
    if model == "anthropic":
        return AnthropicProvider(api_key=config["anthropic_api_key"], model=config.get("classifier_model_name"))
    if model == "openai":
        return OpenAIProvider(api_key=config["openai_api_key"], model=config.get("classifier_model_name"))
    raise ValueError(f"Unknown model provider: {model!r}. Choose 'anthropic' or 'openai'.")


def match_intent(response: str | None, intent_set: IntentSet) -> Intent:
    """Map a free-form model answer onto the closed intent set.

    The first declared intent whose keyword occurs anywhere in the lowercased
    answer wins, so "review, or maybe write-tests" resolves to review on
    GitLab. Anything unmatched (including no answer at all) is the default.
    """
    lowered = (response or "").lower()
    for intent in intent_set.intents:
        if intent.value in lowered:
            return intent
    return intent_set.default


def build_classification_prompt(text: str, intent_set: IntentSet) -> tuple[str, str]:
    categories = ", ".join(i.value for i in intent_set.intents)
    examples = "\n".join(f'Message: "{msg}"\nCategory: {intent.value}' for msg, intent in intent_set.examples)
    system = (
        "You classify messages sent to a code assistant bot into exactly one of these "
        f"categories: {categories}.\n"
        f"If none fits, answer {intent_set.default.value}.\n"
        "Respond with only the category name."
    )
    user = f"{examples}\n\nMessage: \"{text}\"\nCategory:"
    return system, user


class IntentClassifier:
    def __init__(self, provider: BaseCompletionProvider):
        self._provider = provider

    async def classify(self, text: str, intent_set: IntentSet) -> Intent:
        system, user = build_classification_prompt(text, intent_set)
        # SDK clients are blocking; keep the event loop free for other workflows.
        response = await asyncio.to_thread(self._provider.complete, system, user)
        intent = match_intent(response, intent_set)
        logger.debug("Classified %r as %s (raw: %r)", text[:100], intent.value, (response or "")[:100])
        return intent
