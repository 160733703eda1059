"""
Source adapter contract and helpers shared by the provider clients.
"""

from typing import Dict, Iterable, List, Optional, Protocol, runtime_checkable
from urllib.parse import quote, urlsplit, urlunsplit

import httpx

from ..config.config import ProxyConfig
from ..models import RemoteTarget

USER_AGENT = "git-backup/1.0"


@runtime_checkable
class RepositorySource(Protocol):
    """A hosting provider the runner can back up.

    ``test`` raises ConnectivityError, ``list_repositories`` raises
    CommunicationError.
    """

    def name(self) -> str: ...

    def test(self) -> None: ...

    def list_repositories(self) -> List[RemoteTarget]: ...


def build_session(
    base_url: str,
    headers: Dict[str, str],
    insecure: bool = False,
    proxy_config: Optional[ProxyConfig] = None,
) -> httpx.Client:
    """Build the httpx client used by a source adapter.

    Args:
        base_url: API root of the provider
        headers: Provider specific headers (auth, accept)
        insecure: Disable TLS certificate verification
        proxy_config: Optional ProxyConfig for proxy settings

    Returns:
        Configured httpx.Client
    """
    client_kwargs = {
        "base_url": base_url,
        "headers": {"User-Agent": USER_AGENT, **headers},
        "timeout": 30.0,
        "verify": not insecure,
    }

    proxy_url = proxy_config.effective_url() if proxy_config else None
    if proxy_url:
        client_kwargs["proxy"] = proxy_url

    return httpx.Client(**client_kwargs)


def embed_credentials(url: str, username: str, password: str) -> str:
    """Return ``url`` with ``username:password`` as user-info."""
    parts = urlsplit(url)
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    netloc = f"{quote(username, safe='')}:{quote(password, safe='')}@{host}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


def filter_targets(targets: Iterable[RemoteTarget], exclude: Iterable[str]) -> List[RemoteTarget]:
    """Drop excluded and duplicate repositories, keeping first-seen order."""
    excluded = {name.lower() for name in exclude}
    seen = set()
    result = []
    for target in targets:
        key = target.full_name.lower()
        if key in excluded or key in seen:
            continue
        seen.add(key)
        result.append(target)
    return result
