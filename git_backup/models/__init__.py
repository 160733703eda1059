"""
Data models for git-backup.

Defines the repository targets discovered on a source, the outcome of
syncing one repository and the summary of a whole run.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional
from urllib.parse import urlsplit, urlunsplit

from pydantic import BaseModel, ConfigDict, Field


class RemoteTarget(BaseModel):
    """A repository discovered on a source.

    ``url`` may embed credentials as user-info; ``safe_url`` and ``str()``
    never show them.
    """

    model_config = ConfigDict(frozen=True)

    url: str
    full_name: str

    @property
    def safe_url(self) -> str:
        """URL with the user-info part removed."""
        parts = urlsplit(self.url)
        if parts.username is None and parts.password is None:
            return self.url
        host = parts.hostname or ""
        if parts.port:
            host = f"{host}:{parts.port}"
        return urlunsplit((parts.scheme, host, parts.path, parts.query, parts.fragment))

    def __str__(self) -> str:
        return f"{self.full_name} ({self.safe_url})"

    def __repr__(self) -> str:
        return f"RemoteTarget(full_name={self.full_name!r}, url={self.safe_url!r})"


class OutcomeKind(str, Enum):
    """Result of syncing one repository."""

    CLONED = "cloned"
    UPDATED = "updated"
    ALREADY_CURRENT = "already-current"
    SKIPPED_EMPTY = "skipped-empty"
    FAILED = "failed"

    @property
    def is_success(self) -> bool:
        return self is not OutcomeKind.FAILED


class SyncOutcome(BaseModel):
    """Outcome of one repository in one run."""

    model_config = ConfigDict(frozen=True)

    full_name: str
    kind: OutcomeKind
    reason: Optional[str] = None


class RunSummary(BaseModel):
    """Aggregate result of a backup run.

    Built incrementally by the runner and finalized exactly once.
    ``error_count`` is derived from ``failed_repos`` so the two can never
    disagree.
    """

    start_time: datetime = Field(default_factory=lambda: datetime.now().astimezone())
    end_time: Optional[datetime] = None
    attempted: int = 0
    repo_count: int = 0
    failed_repos: List[str] = Field(default_factory=list)
    outcomes: List[SyncOutcome] = Field(default_factory=list)
    exit_code: int = 0

    @property
    def error_count(self) -> int:
        return len(self.failed_repos)

    @property
    def finalized(self) -> bool:
        return self.end_time is not None

    @property
    def success(self) -> bool:
        return self.error_count == 0

    @property
    def duration(self) -> float:
        """Elapsed seconds (up to now while the run is still going)."""
        end = self.end_time or datetime.now().astimezone()
        return (end - self.start_time).total_seconds()

    def record_success(self, full_name: str, kind: OutcomeKind) -> None:
        self.repo_count += 1
        self.outcomes.append(SyncOutcome(full_name=full_name, kind=kind))

    def record_failure(self, description: str, full_name: Optional[str] = None, reason: Optional[str] = None) -> None:
        """Record a failure description; repository failures also get an outcome."""
        self.failed_repos.append(description)
        if full_name is not None:
            self.outcomes.append(SyncOutcome(full_name=full_name, kind=OutcomeKind.FAILED, reason=reason))

    def finalize(self, exit_code: int) -> "RunSummary":
        """Stamp end time and exit code.

        Raises:
            RuntimeError: If the summary was already finalized
        """
        if self.finalized:
            raise RuntimeError("Run summary already finalized")
        self.end_time = datetime.now().astimezone()
        self.exit_code = exit_code
        return self


def format_duration(seconds: float) -> str:
    """Format seconds as e.g. ``1h2m3s``, ``4m5.5s`` or ``0.25s``."""
    seconds = max(seconds, 0.0)
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)

    text = f"{secs:.2f}".rstrip("0").rstrip(".") + "s"
    if hours:
        return f"{int(hours)}h{int(minutes)}m{text}"
    if minutes:
        return f"{int(minutes)}m{text}"
    return text
