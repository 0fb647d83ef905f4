"""CLI entry point for mentionbot.

Commands:
  watch      poll GitLab (and Jira) for mentions and act on them
  state      inspect or prune the processed-message store
  classify   print the intent a message would be routed to
  mcp-server serve the review tools to the agent (launched by the agent server)
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from mentionbot_cli.commands.classify import classify_cmd
from mentionbot_cli.commands.mcp_server import mcp_server_cmd
from mentionbot_cli.commands.state import state_group
from mentionbot_cli.commands.watch import watch_cmd

console = Console()


def _build_store(config: dict):
    """Instantiate the configured processed-message store from .mentionbot.yml.

    Store selection:
      store: json   → JsonFileStore (store_path, default .state/processed-comments.json)
      store: sqlite → SQLiteStore (store_path or .state/processed.db)
      store: memory → MemoryStore (nothing survives a restart)

    This factory lives in cli.py so neither mentionbot_core nor
    mentionbot_store know about the config format.
    """
    store_type = config.get("store", "json")

    if store_type == "memory":
        from mentionbot_store.memory import MemoryStore

        return MemoryStore()

    if store_type == "sqlite":
        from mentionbot_store.sqlite import SQLiteStore

        path = config.get("store_path") or ".state/processed.db"
        if path.endswith(".json"):
            path = ".state/processed.db"
        return SQLiteStore(db_path=path)

    if store_type != "json":
        console.print(f"[yellow]Unknown store {store_type!r}; using the JSON file store.[/yellow]")

    from mentionbot_store.json_file import DEFAULT_STATE_PATH, JsonFileStore

    return JsonFileStore(path=config.get("store_path") or DEFAULT_STATE_PATH)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # Request-level chatter from the HTTP client drowns out the bot's own log.
    logging.getLogger("httpx").setLevel(logging.WARNING)


@click.group()
@click.version_option(
    version=importlib.metadata.version("mentionbot"),
    prog_name="mentionbot",
)
@click.option(
    "--config",
    "config_path",
    default=".mentionbot.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="MENTIONBOT_CONFIG",
)
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default="info",
    show_default=True,
    envvar="LOG_LEVEL",
    help="Logging verbosity.",
)
@click.pass_context
def main(ctx: click.Context, config_path: str, log_level: str):
    """Turn GitLab and Jira mentions into AI-driven reviews, answers and fixes."""
    from mentionbot_core.config import load_config

    _configure_logging(log_level)
    ctx.ensure_object(dict)

    config = load_config(config_path)
    store = _build_store(config)
    ctx.obj["store"] = store
    ctx.obj["config"] = config
    ctx.call_on_close(store.close)


main.add_command(watch_cmd)
main.add_command(state_group)
main.add_command(classify_cmd)
main.add_command(mcp_server_cmd)
