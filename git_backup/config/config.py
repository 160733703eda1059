"""
Configuration management system for git-backup.

Handles loading and validating configuration from the YAML source file,
.env and process environment variables.
"""

import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from ..errors import ConfigError

UNRESOLVED_VAR = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def _unresolved_vars(value: Any):
    """Yield names of ${VAR} references left in string values after expansion."""
    if isinstance(value, str):
        yield from UNRESOLVED_VAR.findall(value)
    elif isinstance(value, dict):
        for item in value.values():
            yield from _unresolved_vars(item)
    elif isinstance(value, list):
        for item in value:
            yield from _unresolved_vars(item)


def _not_blank(value: Optional[str], what: str) -> str:
    if value is None or not value.strip():
        raise ValueError(f"{what} cannot be empty")
    return value.strip()


class SourceConfig(BaseModel):
    """Settings shared by every hosting source."""
    job_name: Optional[str] = Field(default=None, description="Name of the source, used as backup subdirectory")
    access_token: str = Field(..., description="API token, also used as git password")
    url: str = Field(..., description="Base URL of the provider API")
    starred: bool = Field(default=False, description="Include starred repositories")
    exclude: List[str] = Field(default_factory=list, description="Full names of repositories to skip")

    @field_validator("access_token")
    @classmethod
    def token_not_empty(cls, v: str) -> str:
        return _not_blank(v, "Access token")

    @field_validator("url")
    @classmethod
    def url_not_empty(cls, v: str) -> str:
        return _not_blank(v, "Source URL").rstrip("/")

    @field_validator("exclude", mode="before")
    @classmethod
    def exclude_list(cls, v: Any) -> Any:
        # `exclude:` with no entries parses to None in YAML
        return v or []

    def get_name(self) -> str:
        """Return job_name, falling back to the host of the configured URL."""
        if self.job_name and self.job_name.strip():
            return self.job_name.strip()
        return urlparse(self.url).hostname or self.url


class GitHubSourceConfig(SourceConfig):
    """GitHub API source."""
    url: str = Field(default="https://api.github.com", description="GitHub API URL")
    owned: bool = Field(default=True, description="Include repositories owned by the user")
    collaborator: bool = Field(default=True, description="Include repositories the user collaborates on")
    org_member: bool = Field(default=True, description="Include repositories of the user's organisations")


class GitLabSourceConfig(SourceConfig):
    """GitLab source (API under /api/v4)."""
    url: str = Field(default="https://gitlab.com", description="GitLab instance URL")
    owned: bool = Field(default=True, description="Include projects owned by the user")
    member: bool = Field(default=True, description="Include projects the user is a member of")


class GiteaSourceConfig(SourceConfig):
    """Gitea source (API under /api/v1)."""
    url: str = Field(..., description="Gitea server URL")


class BackupConfig(BaseModel):
    """Backup run configuration."""
    backup_path: str = Field(default="backup", description="Root folder of the local mirrors")
    fail_at_end: bool = Field(default=False, description="Keep going after a repository fails")
    bare_clone: bool = Field(default=False, description="Make bare clones without a working tree")
    insecure: bool = Field(default=False, description="Disable TLS certificate verification")
    memory_stats: bool = Field(default=True, description="Log memory usage around clone/fetch")

    @field_validator("backup_path")
    @classmethod
    def path_not_empty(cls, v: str) -> str:
        return _not_blank(v, "Backup path")


class ProxyConfig(BaseModel):
    """Proxy configuration for network requests."""
    enabled: bool = Field(default=False, description="Enable proxy")
    url: Optional[str] = Field(default=None, description="Proxy URL (e.g., http://127.0.0.1:7890)")
    username: Optional[str] = Field(default=None, description="Proxy username")
    password: Optional[str] = Field(default=None, description="Proxy password")

    def effective_url(self) -> Optional[str]:
        """Proxy URL with credentials, or None when the proxy is off."""
        if not (self.enabled and self.url):
            return None
        if self.username and self.password:
            return self.url.replace("://", f"://{self.username}:{self.password}@", 1)
        return self.url


class LogConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")
    file_path: Optional[str] = Field(default=None, description="Log file path, console only when unset")
    max_file_size: int = Field(default=100, description="Max log file size in MB")
    backup_count: int = Field(default=10, description="Number of backup log files to keep")

    @field_validator("level")
    @classmethod
    def level_valid(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()


class NotificationConfig(BaseModel):
    """Notification configuration."""
    webhook_url: Optional[str] = Field(default=None, description="Slack webhook URL for notifications")

    @field_validator("webhook_url")
    @classmethod
    def blank_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v.strip() == "":
            return None
        return v


class SystemConfig(BaseModel):
    """System-wide configuration."""
    github: List[GitHubSourceConfig] = Field(default_factory=list)
    gitlab: List[GitLabSourceConfig] = Field(default_factory=list)
    gitea: List[GiteaSourceConfig] = Field(default_factory=list)
    backup: BackupConfig = Field(default_factory=BackupConfig)
    proxy: ProxyConfig = Field(default_factory=ProxyConfig)
    log: LogConfig = Field(default_factory=LogConfig)
    notification: NotificationConfig = Field(default_factory=NotificationConfig)

    def build_sources(self) -> list:
        """Create one source adapter per configured entry, in file order."""
        from ..clients.gitea_client import GiteaSource
        from ..clients.github_client import GitHubSource
        from ..clients.gitlab_client import GitLabSource

        options = {"insecure": self.backup.insecure, "log_config": self.log, "proxy_config": self.proxy}
        sources: list = []
        sources.extend(GitHubSource(c, **options) for c in self.github)
        sources.extend(GitLabSource(c, **options) for c in self.gitlab)
        sources.extend(GiteaSource(c, **options) for c in self.gitea)
        return sources


class ConfigManager:
    """Manages application configuration from the YAML file, .env and the environment."""

    def __init__(self, config_file: str = "git-backup.yml", env_file: str = ".env"):
        """Initialize configuration manager.

        Args:
            config_file: Path to the YAML file listing the sources
            env_file: Path to .env configuration file
        """
        self.config_file = Path(config_file)
        self.env_file = Path(env_file)
        self.config: Optional[SystemConfig] = None

    def load(self, **overrides: Any) -> SystemConfig:
        """Load and validate configuration.

        Values are resolved in this order:
        1. .env file (if exists), without overriding the real environment
        2. System environment variables
        3. ``overrides`` (command line), for the ``backup`` and
           ``notification`` sections

        Args:
            **overrides: ``backup`` / ``webhook_url`` values from the CLI

        Returns:
            Parsed SystemConfig object

        Raises:
            ConfigError: If the source file is missing or invalid
        """
        if self.env_file.exists():
            load_dotenv(self.env_file)

        sources = self._load_sources()

        backup_values: Dict[str, Any] = {
            "memory_stats": self._get_env("BACKUP_MEMORY_STATS", default="true").lower() == "true",
        }
        backup_values.update(overrides.get("backup") or {})

        webhook_url = overrides.get("webhook_url") or self._get_env("SLACK_WEBHOOK_URL")

        try:
            self.config = SystemConfig(
                github=sources.get("github") or [],
                gitlab=sources.get("gitlab") or [],
                gitea=sources.get("gitea") or [],
                backup=BackupConfig(**backup_values),
                proxy=ProxyConfig(
                    enabled=self._get_env("USE_PROXY", default="false").lower() == "true",
                    url=self._get_env("PROXY_URL") or None,
                    username=self._get_env("PROXY_USERNAME") or None,
                    password=self._get_env("PROXY_PASSWORD") or None,
                ),
                log=LogConfig(
                    level=self._get_env("LOG_LEVEL", default="INFO"),
                    file_path=self._get_env("LOG_FILE") or None,
                    max_file_size=int(self._get_env("LOG_MAX_SIZE", default="100")),
                    backup_count=int(self._get_env("LOG_BACKUP_COUNT", default="10")),
                ),
                notification=NotificationConfig(webhook_url=webhook_url or None),
            )
        except (ValidationError, ValueError) as e:
            raise ConfigError(f"Invalid configuration in {self.config_file}: {e}") from e

        return self.config

    def _load_sources(self) -> Dict[str, Any]:
        """Read the YAML source file, expanding ${VAR} references."""
        if not self.config_file.exists():
            raise ConfigError(f"No config file found at {self.config_file}")

        try:
            raw = self.config_file.read_text(encoding="utf-8")
            data = yaml.safe_load(os.path.expandvars(raw))
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Invalid configuration file {self.config_file}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"Invalid configuration file {self.config_file}: expected a mapping at top level")

        missing = sorted(set(_unresolved_vars(data)))
        if missing:
            raise ConfigError(
                f"Unresolved environment variables in {self.config_file}: {', '.join(missing)}"
            )
        return data

    def get(self) -> SystemConfig:
        """Get current configuration.

        Raises:
            RuntimeError: If configuration not loaded
        """
        if not self.config:
            raise RuntimeError("Configuration not loaded. Call load() first.")
        return self.config

    @staticmethod
    def _get_env(key: str, default: Optional[str] = None) -> str:
        """Get environment variable with optional default."""
        return os.getenv(key, default) or ""


def load_config(config_file: str = "git-backup.yml", env_file: str = ".env", **overrides: Any) -> SystemConfig:
    """Load configuration from the YAML file and environment.

    Args:
        config_file: Path to the YAML source file
        env_file: Path to .env configuration file
        **overrides: CLI values, see ConfigManager.load

    Returns:
        Parsed SystemConfig object
    """
    return ConfigManager(config_file=config_file, env_file=env_file).load(**overrides)
