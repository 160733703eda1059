"""
GitLab API client used as a backup source.
"""

from typing import Any, Dict, List, Optional

import httpx

from ..config.config import GitLabSourceConfig, ProxyConfig
from ..errors import CommunicationError, ConnectivityError
from ..logger.logger import get_logger
from ..models import RemoteTarget
from .base import build_session, embed_credentials, filter_targets


class GitLabSource:
    """Backup source for gitlab.com or a self-hosted GitLab."""

    def __init__(
        self,
        config: GitLabSourceConfig,
        log_config=None,
        proxy_config: Optional[ProxyConfig] = None,
        insecure: bool = False,
    ):
        self.config = config
        self.logger = get_logger("gitlab_client", log_config)

        self.session = build_session(
            f"{config.url}/api/v4",
            {
                "PRIVATE-TOKEN": config.access_token,
                "Accept": "application/json",
            },
            insecure=insecure,
            proxy_config=proxy_config,
        )

    def name(self) -> str:
        return self.config.get_name()

    def test(self) -> None:
        """Check that the API is reachable and the token is accepted.

        Raises:
            ConnectivityError: If the user endpoint cannot be read
        """
        try:
            response = self.session.get("/user")
            response.raise_for_status()
            user = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ConnectivityError(self.name(), f"GitLab API at {self.config.url} not usable: {e}") from e

        self.logger.info(f"Authenticated to {self.name()} as {user.get('username')}")

    def get_projects(self, filters: Dict[str, str], per_page: int = 100, page: int = 1) -> List[Dict[str, Any]]:
        """Get one page of projects matching ``filters`` (e.g. ``{"owned": "true"}``)."""
        response = self.session.get(
            "/projects",
            params={**filters, "per_page": per_page, "page": page, "simple": "true"}
        )
        response.raise_for_status()
        projects = response.json()
        self.logger.debug(f"Retrieved {len(projects)} projects from page {page} ({filters})")
        return projects

    def get_all_projects(self, filters: Dict[str, str]) -> List[Dict[str, Any]]:
        all_projects: List[Dict[str, Any]] = []
        page = 1

        while True:
            projects = self.get_projects(filters, page=page)
            if not projects:
                break

            all_projects.extend(projects)
            page += 1

        return all_projects

    def list_repositories(self) -> List[RemoteTarget]:
        """List owned, member and starred projects according to the configuration.

        Raises:
            CommunicationError: If any listing call fails
        """
        selections = []
        if self.config.owned:
            selections.append({"owned": "true"})
        if self.config.member:
            selections.append({"membership": "true"})
        if self.config.starred:
            selections.append({"starred": "true"})

        raw: List[Dict[str, Any]] = []
        try:
            for filters in selections:
                raw.extend(self.get_all_projects(filters))
        except (httpx.HTTPError, ValueError) as e:
            raise CommunicationError(self.name(), f"Listing projects on {self.name()} failed: {e}") from e

        targets = [
            RemoteTarget(
                url=embed_credentials(project["http_url_to_repo"], "oauth2", self.config.access_token),
                full_name=project["path_with_namespace"],
            )
            for project in raw
            if project.get("http_url_to_repo") and project.get("path_with_namespace")
        ]

        targets = filter_targets(targets, self.config.exclude)
        self.logger.info(f"Found {len(targets)} repositories on {self.name()}")
        return targets

    def close(self) -> None:
        self.session.close()
