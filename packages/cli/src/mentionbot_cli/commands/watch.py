"""watch command: run the mention watchers until interrupted."""

from __future__ import annotations

import asyncio

import click
from rich.console import Console

from mentionbot_core.classifier import IntentClassifier, get_provider
from mentionbot_core.config import missing_credentials
from mentionbot_core.guard import ResourceGuard
from mentionbot_core.mcp_server import SERVER_NAME, local_server_config
from mentionbot_core.platforms.gitlab import GitLabClient
from mentionbot_core.platforms.jira import JiraClient
from mentionbot_core.platforms.opencode import OpenCodeClient
from mentionbot_core.scanner import GitLabMentionSource, JiraMentionSource, MentionScanner
from mentionbot_core.session import SessionOrchestrator
from mentionbot_core.watcher import WatchContext, Watcher, run_watchers
from mentionbot_core.workflows import WorkflowContext, process_work_item

console = Console()


async def _watch(config: dict, store) -> None:
    gitlab = GitLabClient(token=config["gitlab_token"], api_url=config["gitlab_api_url"])
    opencode = OpenCodeClient(
        base_url=config["opencode_url"],
        provider_id=config["opencode_provider"],
        model_id=config["opencode_model"],
        mcp_servers={
            SERVER_NAME: local_server_config(
                config["gitlab_token"], config["gitlab_api_url"], command=config.get("mcp_command")
            )
        },
    )
    jira = None
    if config.get("enable_jira"):
        jira = JiraClient(
            api_url=config["jira_api_url"],
            email=config["jira_email"],
            api_token=config["jira_api_token"],
        )

    timeout = config.get("session_timeout_seconds") or None
    workflow_ctx = WorkflowContext(
        gitlab=gitlab,
        orchestrator=SessionOrchestrator(opencode, timeout=timeout),
        classifier=IntentClassifier(get_provider(config)),
        config=config,
        jira=jira,
    )
    watch_ctx = WatchContext(tracker=store, guard=ResourceGuard())

    async def handle(item):
        return await process_work_item(item, workflow_ctx)

    watchers = [
        Watcher(
            "GitLab",
            MentionScanner([GitLabMentionSource(gitlab)]),
            watch_ctx,
            handle,
            interval=config["poll_interval_seconds"],
        )
    ]
    if jira is not None:
        interval = config["jira_poll_interval_seconds"]
        source = JiraMentionSource(
            jira,
            is_processed=store.is_processed,
            project_keys=config.get("jira_project_keys"),
            poll_interval_seconds=interval,
        )
        watchers.append(Watcher("Jira", MentionScanner([source]), watch_ctx, handle, interval=interval))

    try:
        me = await gitlab.current_user()
        console.print(f"[green]Watching GitLab mentions of @{me.get('username')}[/green]")
        if jira is not None:
            jira_me = await jira.myself()
            console.print(f"[green]Watching Jira mentions of {jira_me.get('displayName')}[/green]")
        await run_watchers(watchers)
    finally:
        await gitlab.close()
        await opencode.close()
        if jira is not None:
            await jira.close()


@click.command("watch")
@click.option("--interval", type=float, default=None, help="GitLab poll interval in seconds. Overrides config file.")
@click.option("--jira/--no-jira", "enable_jira", default=None, help="Also watch Jira. Overrides config file.")
@click.option(
    "--timeout",
    "session_timeout",
    type=float,
    default=None,
    help="Agent session deadline in seconds (0 disables it). Overrides config file.",
)
@click.pass_context
def watch_cmd(ctx, interval: float | None, enable_jira: bool | None, session_timeout: float | None):
    """Watch for mentions of the bot and act on them.

    \b
    Required environment variables:
      GITLAB_TOKEN                     GitLab personal access token of the bot account
      OPENCODE_PROVIDER, OPENCODE_MODEL  Model the agent sessions run on
      ANTHROPIC_API_KEY                Required when classifier_model is anthropic
      OPENAI_API_KEY                   Required when classifier_model is openai
      JIRA_API_URL, JIRA_EMAIL, JIRA_API_TOKEN  Required when Jira is enabled
    """
    config = ctx.obj["config"]
    for key, value in (
        ("poll_interval_seconds", interval),
        ("enable_jira", enable_jira),
        ("session_timeout_seconds", session_timeout),
    ):
        if value is not None:
            config[key] = value

    missing = missing_credentials(config)
    if missing:
        raise click.UsageError(f"Missing required environment variables: {', '.join(missing)}")

    try:
        asyncio.run(_watch(config, ctx.obj["store"]))
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped.[/yellow]")
