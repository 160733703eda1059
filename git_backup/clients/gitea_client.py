"""
Gitea API client used as a backup source.

Provides methods for listing the repositories of the token owner on a
Gitea server.
"""

from typing import Any, Dict, List, Optional

import httpx

from ..config.config import GiteaSourceConfig, ProxyConfig
from ..errors import CommunicationError, ConnectivityError
from ..logger.logger import get_logger
from ..models import RemoteTarget
from .base import build_session, embed_credentials, filter_targets


class GiteaSource:
    """Backup source for a Gitea (or Forgejo) server."""

    def __init__(
        self,
        config: GiteaSourceConfig,
        log_config=None,
        proxy_config: Optional[ProxyConfig] = None,
        insecure: bool = False,
    ):
        """Initialize Gitea source.

        Args:
            config: GiteaSourceConfig instance
            log_config: Optional LogConfig for logging
            proxy_config: Optional ProxyConfig for proxy settings
            insecure: Disable TLS certificate verification
        """
        self.config = config
        self.logger = get_logger("gitea_client", log_config)
        self._login: Optional[str] = None

        self.session = build_session(
            config.url,
            {
                "Authorization": f"token {config.access_token}",
                "Accept": "application/json",
            },
            insecure=insecure,
            proxy_config=proxy_config,
        )

    def name(self) -> str:
        return self.config.get_name()

    def get_user(self) -> Dict[str, Any]:
        """Get authenticated user information.

        Raises:
            httpx.HTTPError: If API call fails
            ValueError: If the response body is not JSON
        """
        try:
            response = self.session.get("/api/v1/user")
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            self.logger.error(f"Failed to get user information: {e}")
            raise

    def test(self) -> None:
        """Check that the server is reachable and the token is accepted.

        Raises:
            ConnectivityError: If the user endpoint cannot be read
        """
        try:
            user = self.get_user()
        except (httpx.HTTPError, ValueError) as e:
            raise ConnectivityError(self.name(), f"Gitea server at {self.config.url} not usable: {e}") from e

        self._login = user.get("login")
        self.logger.info(f"Authenticated to {self.name()} as {self._login}")

    def get_repositories(self, path: str, page: int = 1, limit: int = 50) -> List[Dict[str, Any]]:
        """Get one page of repositories from ``path``.

        Args:
            path: ``/api/v1/user/repos`` or ``/api/v1/user/starred``
            page: Page number (1-indexed)
            limit: Number of repositories per page
        """
        response = self.session.get(path, params={"page": page, "limit": limit})
        response.raise_for_status()
        repos = response.json()
        self.logger.debug(f"Retrieved {len(repos)} repositories from {path} page {page}")
        return repos

    def get_all_repositories(self, path: str) -> List[Dict[str, Any]]:
        all_repos: List[Dict[str, Any]] = []
        page = 1

        while True:
            repos = self.get_repositories(path, page=page)
            if not repos:
                break

            all_repos.extend(repos)
            page += 1

        return all_repos

    def list_repositories(self) -> List[RemoteTarget]:
        """List the user's repositories, plus starred ones when enabled.

        Raises:
            CommunicationError: If any listing call fails
        """
        try:
            if self._login is None:
                self._login = self.get_user().get("login")

            raw = self.get_all_repositories("/api/v1/user/repos")
            if self.config.starred:
                raw.extend(self.get_all_repositories("/api/v1/user/starred"))
        except (httpx.HTTPError, ValueError) as e:
            raise CommunicationError(self.name(), f"Listing repositories on {self.name()} failed: {e}") from e

        targets = [
            RemoteTarget(
                url=embed_credentials(repo["clone_url"], self._login or "git", self.config.access_token),
                full_name=repo["full_name"],
            )
            for repo in raw
            if repo.get("clone_url") and repo.get("full_name")
        ]

        targets = filter_targets(targets, self.config.exclude)
        self.logger.info(f"Found {len(targets)} repositories on {self.name()}")
        return targets

    def close(self) -> None:
        """Close the HTTP session."""
        self.session.close()
