"""
Shared fixtures.
"""

import pytest

ENV_KEYS = [
    "SLACK_WEBHOOK_URL", "LOG_LEVEL", "LOG_FILE", "LOG_MAX_SIZE", "LOG_BACKUP_COUNT",
    "USE_PROXY", "PROXY_URL", "PROXY_USERNAME", "PROXY_PASSWORD",
    "BACKUP_MEMORY_STATS", "GITHUB_TOKEN", "GITLAB_TOKEN", "GITEA_TOKEN",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the host environment out of the tests.

    Setting before deleting makes monkeypatch restore the original state,
    which also removes anything load_dotenv() added during the test.
    """
    for key in ENV_KEYS:
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
