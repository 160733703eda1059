"""
GitHub API client used as a backup source.

Lists the repositories visible to the token owner and turns them into
clone targets carrying the token as credentials.
"""

from typing import Any, Dict, List, Optional

import httpx

from ..config.config import GitHubSourceConfig, ProxyConfig
from ..errors import CommunicationError, ConnectivityError
from ..logger.logger import get_logger
from ..models import RemoteTarget
from .base import build_session, embed_credentials, filter_targets


class GitHubSource:
    """Backup source for GitHub (github.com or GitHub Enterprise)."""

    def __init__(
        self,
        config: GitHubSourceConfig,
        log_config=None,
        proxy_config: Optional[ProxyConfig] = None,
        insecure: bool = False,
    ):
        """Initialize GitHub source.

        Args:
            config: GitHubSourceConfig instance
            log_config: Optional LogConfig for logging
            proxy_config: Optional ProxyConfig for proxy settings
            insecure: Disable TLS certificate verification
        """
        self.config = config
        self.logger = get_logger("github_client", log_config)
        self._login: Optional[str] = None

        self.session = build_session(
            config.url,
            {
                "Authorization": f"token {config.access_token}",
                "Accept": "application/vnd.github.v3+json",
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
            response = self.session.get("/user")
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            self.logger.error(f"Failed to get user information: {e}")
            raise

    def test(self) -> None:
        """Check that the API is reachable and the token is accepted.

        Raises:
            ConnectivityError: If the user endpoint cannot be read
        """
        try:
            user = self.get_user()
        except (httpx.HTTPError, ValueError) as e:
            raise ConnectivityError(self.name(), f"GitHub API at {self.config.url} not usable: {e}") from e

        self._login = user.get("login")
        self.logger.info(f"Authenticated to {self.name()} as {self._login}")

    def _affiliation(self) -> str:
        parts = []
        if self.config.owned:
            parts.append("owner")
        if self.config.collaborator:
            parts.append("collaborator")
        if self.config.org_member:
            parts.append("organization_member")
        return ",".join(parts)

    def get_user_repositories(self, affiliation: str, per_page: int = 100, page: int = 1) -> List[Dict[str, Any]]:
        """Get one page of repositories for the authenticated user.

        Args:
            affiliation: Comma separated GitHub affiliation filter
            per_page: Number of repositories per page (max 100)
            page: Page number (1-indexed)

        Returns:
            List of repository dictionaries
        """
        per_page = min(per_page, 100)  # GitHub max is 100

        response = self.session.get(
            "/user/repos",
            params={"per_page": per_page, "page": page, "affiliation": affiliation}
        )
        response.raise_for_status()
        repos = response.json()
        self.logger.debug(f"Retrieved {len(repos)} repositories from page {page}")
        return repos

    def get_starred_repositories(self, per_page: int = 100, page: int = 1) -> List[Dict[str, Any]]:
        """Get one page of repositories starred by the authenticated user."""
        response = self.session.get(
            "/user/starred",
            params={"per_page": min(per_page, 100), "page": page}
        )
        response.raise_for_status()
        return response.json()

    def _paginate(self, fetch_page) -> List[Dict[str, Any]]:
        all_repos: List[Dict[str, Any]] = []
        page = 1

        while True:
            repos = fetch_page(page)
            if not repos:
                break

            all_repos.extend(repos)
            page += 1

        return all_repos

    def list_repositories(self) -> List[RemoteTarget]:
        """List every repository selected by the configuration.

        Raises:
            CommunicationError: If any listing call fails
        """
        try:
            if self._login is None:
                self._login = self.get_user().get("login")

            raw: List[Dict[str, Any]] = []
            affiliation = self._affiliation()
            if affiliation:
                raw.extend(self._paginate(lambda page: self.get_user_repositories(affiliation, page=page)))
            if self.config.starred:
                raw.extend(self._paginate(lambda page: self.get_starred_repositories(page=page)))
        except (httpx.HTTPError, ValueError) as e:
            raise CommunicationError(self.name(), f"Listing repositories on {self.name()} failed: {e}") from e

        targets = []
        for repo in raw:
            clone_url = repo.get("clone_url")
            full_name = repo.get("full_name")
            if not clone_url or not full_name:
                self.logger.warning(f"Skipping repository without clone URL: {repo.get('full_name') or repo.get('id')}")
                continue
            targets.append(RemoteTarget(
                url=embed_credentials(clone_url, self._login or "git", self.config.access_token),
                full_name=full_name,
            ))

        targets = filter_targets(targets, self.config.exclude)
        self.logger.info(f"Found {len(targets)} repositories on {self.name()}")
        return targets

    def close(self) -> None:
        """Close the HTTP session."""
        self.session.close()
