"""classify command: show which workflow a message would trigger."""

from __future__ import annotations

import asyncio

import click
from rich.console import Console

from mentionbot_core.classifier import IntentClassifier, get_provider
from mentionbot_core.models import INTENT_SETS, Platform

console = Console()


@click.command("classify")
@click.argument("text")
@click.option(
    "--platform",
    type=click.Choice([p.value for p in Platform]),
    default=Platform.GITLAB.value,
    show_default=True,
    help="Platform whose intent set is used.",
)
@click.option(
    "--model",
    type=click.Choice(["anthropic", "openai"]),
    default=None,
    help="Classifier provider. Overrides config file.",
)
@click.pass_context
def classify_cmd(ctx, text: str, platform: str, model: str | None):
    """Classify TEXT the way the watcher would."""
    config = ctx.obj["config"]
    if model:
        config["classifier_model"] = model
    key = f"{config['classifier_model'].upper()}_API_KEY"
    if not config.get(f"{config['classifier_model']}_api_key"):
        raise click.UsageError(f"{key} environment variable is not set.")

    classifier = IntentClassifier(get_provider(config))
    intent = asyncio.run(classifier.classify(text, INTENT_SETS[Platform(platform)]))
    console.print(f"[bold]{intent.value}[/bold]")
