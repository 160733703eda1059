"""
Slack webhook notification for the end of a backup run.
"""

from typing import Any, Dict, Optional

import httpx

from ..config.config import ProxyConfig
from ..errors import DeliveryError
from ..logger.logger import get_logger
from ..models import RunSummary, format_duration


def create_slack_message(summary: RunSummary) -> Dict[str, Any]:
    """Build the Slack incoming-webhook payload for ``summary``."""
    if summary.success:
        color = "good"
        emoji = ":white_check_mark:"
        title = "Git Backup Completed Successfully"
        main_text = f"All {summary.repo_count} repositories backed up successfully!"
    else:
        color = "danger"
        emoji = ":x:"
        title = "Git Backup Failed"
        main_text = (
            f"Backup completed with {summary.error_count} errors "
            f"out of {summary.attempted} repositories"
        )

    fields = [
        {"title": "Total Repositories", "value": str(summary.repo_count), "short": True},
        {"title": "Errors", "value": str(summary.error_count), "short": True},
        {"title": "Duration", "value": format_duration(summary.duration), "short": True},
        {"title": "Started", "value": summary.start_time.strftime("%Y-%m-%d %H:%M:%S %Z").strip(), "short": True},
    ]

    if summary.error_count > 0:
        fields.append({
            "title": "Failed Repositories",
            "value": "".join(f"• {repo}\n" for repo in summary.failed_repos),
            "short": False,
        })

    end_time = summary.end_time or summary.start_time
    attachment = {
        "color": color,
        "title": title,
        "text": main_text,
        "fields": fields,
        "footer": "Git Backup Service",
        "ts": int(end_time.timestamp()),
    }

    return {
        "text": f"{emoji} {title}",
        "username": "Git Backup Bot",
        "icon_emoji": ":robot_face:",
        "attachments": [attachment],
    }


class SlackNotifier:
    """Sends run summaries to a Slack incoming webhook."""

    def __init__(self, log_config=None, proxy_config: Optional[ProxyConfig] = None, insecure: bool = False):
        self.logger = get_logger("slack_notifier", log_config)
        self.proxy_config = proxy_config
        self.insecure = insecure

    def notify(self, endpoint: str, summary: RunSummary) -> None:
        """POST the summary to ``endpoint`` once.

        Raises:
            DeliveryError: If the request fails or the status is not 2xx
        """
        if not endpoint:
            raise DeliveryError("Slack webhook URL is not configured")

        message = create_slack_message(summary)

        client_kwargs: Dict[str, Any] = {"timeout": 30.0, "verify": not self.insecure}
        proxy_url = self.proxy_config.effective_url() if self.proxy_config else None
        if proxy_url:
            client_kwargs["proxy"] = proxy_url

        try:
            with httpx.Client(**client_kwargs) as client:
                response = client.post(endpoint, json=message)
        except httpx.HTTPError as e:
            raise DeliveryError(f"Failed to send Slack notification: {e}") from e

        if not response.is_success:
            raise DeliveryError(
                f"Slack API returned status code: {response.status_code}",
                status_code=response.status_code,
            )

        self.logger.info("Slack notification sent successfully")
