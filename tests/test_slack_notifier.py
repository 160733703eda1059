"""
Tests for Slack notification.
"""

from datetime import timedelta
from unittest.mock import MagicMock, patch

import httpx
import pytest

from git_backup.config.config import ProxyConfig
from git_backup.errors import DeliveryError
from git_backup.models import OutcomeKind, RunSummary
from git_backup.notify.slack_notifier import SlackNotifier, create_slack_message

WEBHOOK = "https://hooks.slack.com/services/T000/B000/XXXX"


@pytest.fixture
def successful_run():
    summary = RunSummary()
    summary.record_success("me/a", OutcomeKind.CLONED)
    summary.record_success("me/b", OutcomeKind.ALREADY_CURRENT)
    summary.finalize(0)
    summary.end_time = summary.start_time + timedelta(seconds=65)
    return summary


@pytest.fixture
def failed_run():
    summary = RunSummary()
    summary.record_success("me/a", OutcomeKind.CLONED)
    summary.record_success("me/c", OutcomeKind.UPDATED)
    summary.attempted = 3
    summary.record_failure("me/b (Clone failed: fatal: repository not found)", full_name="me/b")
    summary.finalize(100)
    return summary


def _fields(message):
    return {f["title"]: f["value"] for f in message["attachments"][0]["fields"]}


def test_success_message(successful_run):
    message = create_slack_message(successful_run)
    attachment = message["attachments"][0]

    assert message["text"] == ":white_check_mark: Git Backup Completed Successfully"
    assert message["username"] == "Git Backup Bot"
    assert message["icon_emoji"] == ":robot_face:"
    assert attachment["color"] == "good"
    assert attachment["text"] == "All 2 repositories backed up successfully!"
    assert attachment["footer"] == "Git Backup Service"
    assert attachment["ts"] == int(successful_run.end_time.timestamp())

    fields = _fields(message)
    assert fields["Total Repositories"] == "2"
    assert fields["Errors"] == "0"
    assert fields["Duration"] == "1m5s"
    assert fields["Started"].startswith(successful_run.start_time.strftime("%Y-%m-%d %H:%M:%S"))
    assert "Failed Repositories" not in fields


def test_failure_message(failed_run):
    message = create_slack_message(failed_run)
    attachment = message["attachments"][0]

    assert message["text"] == ":x: Git Backup Failed"
    assert attachment["color"] == "danger"
    assert attachment["text"] == "Backup completed with 1 errors out of 3 repositories"

    fields = _fields(message)
    assert fields["Total Repositories"] == "2"
    assert fields["Errors"] == "1"
    assert fields["Failed Repositories"] == "• me/b (Clone failed: fatal: repository not found)\n"


def _mock_client(mock_client_cls, response=None, error=None):
    client = MagicMock()
    mock_client_cls.return_value.__enter__.return_value = client
    if error is not None:
        client.post.side_effect = error
    else:
        client.post.return_value = response
    return client


def test_notify_posts_once(successful_run):
    with patch('httpx.Client') as mock_client_cls:
        client = _mock_client(mock_client_cls, response=httpx.Response(200, text="ok"))

        SlackNotifier(proxy_config=ProxyConfig(enabled=True, url="http://proxy:3128")).notify(WEBHOOK, successful_run)

    client.post.assert_called_once()
    assert client.post.call_args[0][0] == WEBHOOK
    assert client.post.call_args[1]["json"] == create_slack_message(successful_run)
    assert mock_client_cls.call_args[1]["proxy"] == "http://proxy:3128"
    assert mock_client_cls.call_args[1]["verify"] is True


def test_notify_non_2xx_raises(failed_run):
    with patch('httpx.Client') as mock_client_cls:
        client = _mock_client(mock_client_cls, response=httpx.Response(404, text="no_service"))

        with pytest.raises(DeliveryError) as excinfo:
            SlackNotifier().notify(WEBHOOK, failed_run)

    assert excinfo.value.status_code == 404
    client.post.assert_called_once()


def test_notify_transport_error_raises(failed_run):
    with patch('httpx.Client') as mock_client_cls:
        _mock_client(mock_client_cls, error=httpx.ConnectTimeout("timed out"))

        with pytest.raises(DeliveryError, match="timed out"):
            SlackNotifier(insecure=True).notify(WEBHOOK, failed_run)

    assert mock_client_cls.call_args[1]["verify"] is False


def test_notify_without_endpoint(successful_run):
    with patch('httpx.Client') as mock_client_cls:
        with pytest.raises(DeliveryError):
            SlackNotifier().notify("", successful_run)

    mock_client_cls.assert_not_called()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
