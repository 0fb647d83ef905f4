"""Tests for configuration loading."""

import pytest

from mentionbot_core.config import extract_project_key, linked_project, load_config, missing_credentials
from mentionbot_core.errors import ConfigurationError

ENV_VARS = [
    "GITLAB_TOKEN",
    "GITLAB_API_URL",
    "JIRA_API_URL",
    "JIRA_EMAIL",
    "JIRA_API_TOKEN",
    "OPENCODE_URL",
    "OPENCODE_PROVIDER",
    "OPENCODE_MODEL",
    "ANTHROPIC_API_KEY",
    "OPENAI_API_KEY",
    "ENABLE_JIRA",
    "JIRA_PROJECT_KEYS",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults_applied_when_no_config_file(tmp_path):
    config = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    assert config["poll_interval_seconds"] == 5
    assert config["jira_poll_interval_seconds"] == 60
    assert config["classifier_model"] == "anthropic"
    assert config["classifier_model_name"] is None
    assert config["session_timeout_seconds"] == 1800
    assert config["store"] == "json"
    assert config["enable_jira"] is False
    assert config["project_links"] == {}
    assert config["gitlab_api_url"] == "https://gitlab.com/api/v4"
    assert config["opencode_url"] == "http://127.0.0.1:4096"


def test_config_file_overrides_defaults(tmp_path):
    cfg = tmp_path / ".mentionbot.yml"
    cfg.write_text("poll_interval_seconds: 10\nproject_links:\n  PROJ: group/repo\n")
    config = load_config(config_path=str(cfg))
    assert config["poll_interval_seconds"] == 10
    assert config["project_links"] == {"PROJ": "group/repo"}


def test_empty_config_file_keeps_defaults(tmp_path):
    cfg = tmp_path / ".mentionbot.yml"
    cfg.write_text("")
    assert load_config(config_path=str(cfg))["store"] == "json"


def test_cli_overrides_config_file(tmp_path):
    cfg = tmp_path / ".mentionbot.yml"
    cfg.write_text("classifier_model: openai\n")
    config = load_config(config_path=str(cfg), cli_overrides={"classifier_model": "anthropic"})
    assert config["classifier_model"] == "anthropic"


def test_none_cli_overrides_ignored(tmp_path):
    cfg = tmp_path / ".mentionbot.yml"
    cfg.write_text("poll_interval_seconds: 30\n")
    config = load_config(config_path=str(cfg), cli_overrides={"poll_interval_seconds": None})
    assert config["poll_interval_seconds"] == 30


def test_defaults_not_shared_between_loads(tmp_path):
    first = load_config(config_path=str(tmp_path / "none.yml"))
    first["project_links"]["X"] = "1"
    assert load_config(config_path=str(tmp_path / "none.yml"))["project_links"] == {}


def test_credentials_read_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("GITLAB_TOKEN", "glpat-1")
    monkeypatch.setenv("GITLAB_API_URL", "https://git.internal/api/v4")
    monkeypatch.setenv("OPENCODE_MODEL", "claude-sonnet")
    config = load_config(config_path=str(tmp_path / "none.yml"))
    assert config["gitlab_token"] == "glpat-1"
    assert config["gitlab_api_url"] == "https://git.internal/api/v4"
    assert config["opencode_model"] == "claude-sonnet"


def test_jira_enabled_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("ENABLE_JIRA", "TRUE")
    monkeypatch.setenv("JIRA_PROJECT_KEYS", "PROJ, OPS,,")
    config = load_config(config_path=str(tmp_path / "none.yml"))
    assert config["enable_jira"] is True
    assert config["jira_project_keys"] == ["PROJ", "OPS"]


class TestMissingCredentials:
    def _complete(self, **overrides):
        config = {
            "gitlab_token": "t",
            "opencode_provider": "anthropic",
            "opencode_model": "claude",
            "classifier_model": "anthropic",
            "anthropic_api_key": "k",
        }
        config.update(overrides)
        return config

    def test_nothing_missing(self):
        assert missing_credentials(self._complete()) == []

    def test_reports_env_var_names(self):
        assert missing_credentials(self._complete(gitlab_token=None, opencode_model="")) == [
            "GITLAB_TOKEN",
            "OPENCODE_MODEL",
        ]

    def test_classifier_key_follows_model(self):
        config = self._complete(classifier_model="openai")
        assert missing_credentials(config) == ["OPENAI_API_KEY"]

    def test_jira_required_once_enabled(self):
        config = self._complete(enable_jira=True, jira_api_url="https://x.atlassian.net")
        assert missing_credentials(config) == ["JIRA_EMAIL", "JIRA_API_TOKEN"]

    def test_partial_jira_setup_is_reported(self):
        assert missing_credentials(self._complete(jira_email="bot@example.com")) == [
            "JIRA_API_URL",
            "JIRA_API_TOKEN",
        ]


def test_extract_project_key():
    assert extract_project_key("PROJ-123") == "PROJ"
    assert extract_project_key("") == ""


class TestLinkedProject:
    def test_returns_link(self):
        assert linked_project({"project_links": {"PROJ": 42}}, "PROJ-7") == "42"

    def test_unlinked_project_raises(self):
        with pytest.raises(ConfigurationError, match="not linked"):
            linked_project({"project_links": {"OTHER": 1}}, "PROJ-7")

    def test_unlinked_disabled_message(self):
        with pytest.raises(ConfigurationError, match="unlinked projects are disabled"):
            linked_project({"allow_unlinked_projects": False}, "PROJ-7")

    def test_allowing_unlinked_projects_is_not_a_fallback(self):
        for allow in (True, False):
            with pytest.raises(ConfigurationError, match="Jira project PROJ is not linked"):
                linked_project({"allow_unlinked_projects": allow}, "PROJ-7")
