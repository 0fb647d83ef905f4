"""mcp-server command: serve the GitLab review tools over stdio.

Launched by the agent server, not by hand; stdout carries the MCP protocol,
so everything else goes to stderr.
"""

from __future__ import annotations

import click

from mentionbot_core.mcp_server import build_review_server
from mentionbot_core.platforms.gitlab import GitLabClient


@click.command("mcp-server")
@click.pass_context
def mcp_server_cmd(ctx):
    """Serve post_review_comment and create_merge_request to the agent."""
    config = ctx.obj["config"]
    if not config.get("gitlab_token"):
        raise click.UsageError("GITLAB_TOKEN environment variable is not set.")

    gitlab = GitLabClient(token=config["gitlab_token"], api_url=config["gitlab_api_url"])
    build_review_server(gitlab).run()
