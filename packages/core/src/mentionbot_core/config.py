import os
from pathlib import Path
from typing import Optional

import yaml

from mentionbot_core.errors import ConfigurationError

DEFAULT_CONFIG: dict = {
    "poll_interval_seconds": 5,
    "jira_poll_interval_seconds": 60,
    "classifier_model": "anthropic",
    "classifier_model_name": None,  # provider default when unset
    "session_timeout_seconds": 1800,  # 0 disables the deadline
    "store": "json",  # json | sqlite | memory
    "store_path": ".state/processed-comments.json",
    "workspace_dir": ".temp",
    "shallow_clone": False,
    "enable_jira": False,
    "jira_project_keys": [],
    "project_links": {},  # Jira project key -> GitLab project id or path
    "allow_unlinked_projects": True,
    "mcp_command": None,  # launches the review tool server; default "mentionbot mcp-server"
}

DEFAULT_GITLAB_API_URL = "https://gitlab.com/api/v4"
DEFAULT_OPENCODE_URL = "http://127.0.0.1:4096"


def load_config(config_path: str = ".mentionbot.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .mentionbot.yml in the current directory
      3. CLI argument overrides
    """
    config = {
        **DEFAULT_CONFIG,
        "jira_project_keys": list(DEFAULT_CONFIG["jira_project_keys"]),
        "project_links": dict(DEFAULT_CONFIG["project_links"]),
    }

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    # Resolve credentials and endpoints from environment variables
    config["gitlab_token"] = os.environ.get("GITLAB_TOKEN")
    config["gitlab_api_url"] = os.environ.get("GITLAB_API_URL", DEFAULT_GITLAB_API_URL)
    config["jira_api_url"] = os.environ.get("JIRA_API_URL")
    config["jira_email"] = os.environ.get("JIRA_EMAIL")
    config["jira_api_token"] = os.environ.get("JIRA_API_TOKEN")
    config["opencode_url"] = os.environ.get("OPENCODE_URL", DEFAULT_OPENCODE_URL)
    config["opencode_provider"] = os.environ.get("OPENCODE_PROVIDER")
    config["opencode_model"] = os.environ.get("OPENCODE_MODEL")
    config["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")
    config["openai_api_key"] = os.environ.get("OPENAI_API_KEY")

    if os.environ.get("ENABLE_JIRA", "").lower() == "true":
        config["enable_jira"] = True
    keys = os.environ.get("JIRA_PROJECT_KEYS")
    if keys:
        config["jira_project_keys"] = [k.strip() for k in keys.split(",") if k.strip()]

    return config


def missing_credentials(config: dict) -> list[str]:
    """Return the environment variables that must be set before the bot can start.

    Jira variables are only required once any of them is set (or Jira is enabled).
    """
    missing = []
    for key, env in (
        ("gitlab_token", "GITLAB_TOKEN"),
        ("opencode_provider", "OPENCODE_PROVIDER"),
        ("opencode_model", "OPENCODE_MODEL"),
    ):
        if not config.get(key):
            missing.append(env)

    model = config.get("classifier_model")
    if model == "anthropic" and not config.get("anthropic_api_key"):
        missing.append("ANTHROPIC_API_KEY")
    if model == "openai" and not config.get("openai_api_key"):
        missing.append("OPENAI_API_KEY")

    jira = {"jira_api_url": "JIRA_API_URL", "jira_email": "JIRA_EMAIL", "jira_api_token": "JIRA_API_TOKEN"}
    if config.get("enable_jira") or any(config.get(k) for k in jira):
        missing.extend(env for key, env in jira.items() if not config.get(key))
    return missing


def extract_project_key(issue_key: str) -> str:
    """"PROJ-123" -> "PROJ"."""
    return issue_key.split("-")[0] if issue_key else issue_key


def linked_project(config: dict, issue_key: str) -> str:
    """Return the GitLab project linked to the Jira project of issue_key.

    Raises ConfigurationError when the Jira project has no link; the message
    is user-facing and is posted back to the issue. Unlinked projects are
    never served: ``allow_unlinked_projects: false`` only changes the wording
    of that message, it does not enable any fallback.
    """
    jira_project = extract_project_key(issue_key)
    link = (config.get("project_links") or {}).get(jira_project)
    if link:
        return str(link)
    if not config.get("allow_unlinked_projects", True):
        raise ConfigurationError(
            f"Jira project {jira_project} is not linked to a GitLab project and unlinked projects are disabled."
        )
    raise ConfigurationError(
        f"Jira project {jira_project} is not linked to a GitLab project. "
        "Add it under `project_links` in .mentionbot.yml to let me work with its code."
    )
