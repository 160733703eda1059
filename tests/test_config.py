"""
Tests for configuration system.
"""

import pytest

from git_backup.clients.gitea_client import GiteaSource
from git_backup.clients.github_client import GitHubSource
from git_backup.clients.gitlab_client import GitLabSource
from git_backup.config.config import (
    ConfigManager,
    GitHubSourceConfig,
    GitLabSourceConfig,
    GiteaSourceConfig,
    LogConfig,
    NotificationConfig,
    ProxyConfig,
    load_config,
)
from git_backup.errors import ConfigError


@pytest.fixture
def config_file(tmp_path):
    """Create a temporary source file for testing."""
    path = tmp_path / "git-backup.yml"
    path.write_text("""
github:
  - job_name: github.com
    access_token: ${GITHUB_TOKEN}
    owned: true
    collaborator: false
    exclude:
      - me/huge-repo
gitlab:
  - access_token: glpat-123
    url: https://gitlab.example.com/
gitea:
  - job_name: home
    access_token: gitea-token
    url: https://gitea.example.com
    starred: true
""")
    return path


def test_github_source_config_defaults():
    """Test GitHub source defaults."""
    config = GitHubSourceConfig(access_token="ghp_123")
    assert config.url == "https://api.github.com"
    assert config.owned and config.collaborator and config.org_member
    assert config.starred is False
    assert config.exclude == []
    assert config.get_name() == "api.github.com"


def test_source_config_empty_token():
    """Test source configuration rejects empty token."""
    with pytest.raises(ValueError):
        GitHubSourceConfig(access_token="   ")


def test_source_config_strips_trailing_slash():
    config = GitLabSourceConfig(access_token="t", url="https://gitlab.example.com/")
    assert config.url == "https://gitlab.example.com"
    assert config.get_name() == "gitlab.example.com"


def test_gitea_source_config_requires_url():
    with pytest.raises(ValueError):
        GiteaSourceConfig(access_token="t")


def test_source_config_job_name():
    config = GiteaSourceConfig(job_name=" home ", access_token="t", url="https://gitea.example.com")
    assert config.get_name() == "home"


def test_log_config_level_validation():
    assert LogConfig(level="debug").level == "DEBUG"
    with pytest.raises(ValueError):
        LogConfig(level="verbose")


def test_notification_config_blank_webhook():
    assert NotificationConfig(webhook_url="  ").webhook_url is None


def test_proxy_effective_url():
    assert ProxyConfig(enabled=False, url="http://proxy:3128").effective_url() is None
    assert ProxyConfig(enabled=True, url="http://proxy:3128").effective_url() == "http://proxy:3128"
    proxy = ProxyConfig(enabled=True, url="http://proxy:3128", username="u", password="p")
    assert proxy.effective_url() == "http://u:p@proxy:3128"


def test_config_manager_load(config_file, monkeypatch):
    """Test config manager loading configuration."""
    monkeypatch.setenv("GITHUB_TOKEN", "ghp_from_env")

    manager = ConfigManager(config_file=str(config_file), env_file=str(config_file.parent / "missing.env"))
    config = manager.load()

    assert len(config.github) == 1
    assert config.github[0].access_token == "ghp_from_env"
    assert config.github[0].collaborator is False
    assert config.github[0].exclude == ["me/huge-repo"]
    assert config.gitlab[0].get_name() == "gitlab.example.com"
    assert config.gitea[0].starred is True
    assert config.backup.backup_path == "backup"
    assert config.backup.fail_at_end is False
    assert config.notification.webhook_url is None
    assert manager.get() is config


def test_config_manager_env_file(config_file, tmp_path):
    """Test values from .env are used."""
    env_file = tmp_path / ".env"
    env_file.write_text("GITHUB_TOKEN=ghp_dotenv\nSLACK_WEBHOOK_URL=https://hooks.slack.com/services/T/B/X\n")

    config = ConfigManager(config_file=str(config_file), env_file=str(env_file)).load()

    assert config.github[0].access_token == "ghp_dotenv"
    assert config.notification.webhook_url == "https://hooks.slack.com/services/T/B/X"


def test_config_manager_overrides(config_file, monkeypatch):
    """Test command line values win over the environment."""
    monkeypatch.setenv("GITHUB_TOKEN", "ghp")
    monkeypatch.setenv("SLACK_WEBHOOK_URL", "https://env.example.com/hook")
    monkeypatch.setenv("BACKUP_MEMORY_STATS", "false")

    config = load_config(
        str(config_file),
        env_file=str(config_file.parent / "missing.env"),
        backup={"backup_path": "/srv/backup", "fail_at_end": True, "bare_clone": True, "insecure": True},
        webhook_url="https://cli.example.com/hook",
    )

    assert config.backup.backup_path == "/srv/backup"
    assert config.backup.fail_at_end is True
    assert config.backup.bare_clone is True
    assert config.backup.insecure is True
    assert config.backup.memory_stats is False
    assert config.notification.webhook_url == "https://cli.example.com/hook"


def test_config_manager_missing_file(tmp_path):
    """Test a missing source file is a ConfigError."""
    manager = ConfigManager(config_file=str(tmp_path / "nope.yml"))
    with pytest.raises(ConfigError, match="No config file found"):
        manager.load()


def test_config_manager_unset_variable(config_file):
    """Test a ${VAR} with no value in the environment is a ConfigError."""
    manager = ConfigManager(config_file=str(config_file), env_file=str(config_file.parent / "missing.env"))
    with pytest.raises(ConfigError, match="Unresolved environment variables.*GITHUB_TOKEN"):
        manager.load()


def test_config_manager_invalid_yaml(tmp_path):
    path = tmp_path / "git-backup.yml"
    path.write_text("github: [unclosed\n")
    with pytest.raises(ConfigError):
        ConfigManager(config_file=str(path)).load()


def test_config_manager_invalid_values(tmp_path):
    """Test a source without token is a ConfigError."""
    path = tmp_path / "git-backup.yml"
    path.write_text("github:\n  - job_name: github.com\n")
    with pytest.raises(ConfigError, match="Invalid configuration"):
        ConfigManager(config_file=str(path)).load()


def test_config_manager_not_a_mapping(tmp_path):
    path = tmp_path / "git-backup.yml"
    path.write_text("- just\n- a list\n")
    with pytest.raises(ConfigError, match="mapping"):
        ConfigManager(config_file=str(path)).load()


def test_config_manager_empty_file(tmp_path):
    """Test an empty file loads with no sources."""
    path = tmp_path / "git-backup.yml"
    path.write_text("")
    config = ConfigManager(config_file=str(path)).load()
    assert config.build_sources() == []


def test_config_manager_get_before_load():
    with pytest.raises(RuntimeError):
        ConfigManager().get()


def test_build_sources_order(config_file, monkeypatch):
    """Test sources are created in file order: GitHub, GitLab, Gitea."""
    monkeypatch.setenv("GITHUB_TOKEN", "ghp")
    config = ConfigManager(config_file=str(config_file), env_file=str(config_file.parent / "missing.env")).load()

    sources = config.build_sources()
    try:
        assert [type(s) for s in sources] == [GitHubSource, GitLabSource, GiteaSource]
        assert [s.name() for s in sources] == ["github.com", "gitlab.example.com", "home"]
    finally:
        for source in sources:
            source.close()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
