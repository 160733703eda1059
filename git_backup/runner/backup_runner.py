"""
Backup runner: walks every source and mirrors each of its repositories.

Sources and repositories are processed one at a time, in listing order,
so at most one clone/fetch holds memory at any moment.
"""

from pathlib import Path
from typing import Iterable

from ..config.config import BackupConfig
from ..errors import CommunicationError, ConnectivityError, DirectoryError, SyncError
from ..logger.logger import get_logger
from ..models import RemoteTarget, RunSummary
from ..sync.sync_engine import SyncEngine

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_REPOSITORY_FAILED = 100
EXIT_SOURCE_FAILED = 110
EXIT_NO_SOURCES = 111


class RunAborted(Exception):
    """Internal signal used to stop the loops once the summary is final."""


class BackupRunner:
    """Runs one backup over a list of sources."""

    def __init__(self, backup_config: BackupConfig, sync_engine: SyncEngine, log_config=None):
        """Initialize backup runner.

        Args:
            backup_config: Backup path and fail/bare policies
            sync_engine: Engine used to materialize each repository
            log_config: Optional logging configuration
        """
        self.backup_config = backup_config
        self.sync_engine = sync_engine
        self.backup_root = Path(backup_config.backup_path)
        self.logger = get_logger("backup_runner", log_config)

    def target_path(self, source_name: str, remote: RemoteTarget) -> Path:
        """``<backup root>/<source name>/<repository full name>``."""
        return self.backup_root / source_name / remote.full_name

    def ensure_directory(self, path: Path) -> None:
        """Create ``path`` and its parents, reusing existing directories.

        Raises:
            DirectoryError: If the directory cannot be created
        """
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DirectoryError(str(path), f"Failed to create directory {path}: {e}") from e

    def run(self, sources: Iterable) -> RunSummary:
        """Back up every repository of every source.

        Returns:
            The finalized RunSummary; ``exit_code`` tells how the run ended
        """
        summary = RunSummary()

        try:
            for source in sources:
                self._run_source(source, summary)
        except RunAborted:
            return summary

        summary.finalize(EXIT_OK if summary.success else EXIT_REPOSITORY_FAILED)
        self.logger.info(
            f"Backed up {summary.repo_count} repositories in {summary.duration:.1f}s, "
            f"encountered {summary.error_count} errors"
        )
        return summary

    def _run_source(self, source, summary: RunSummary) -> None:
        source_name = source.name()
        self.logger.info(f"=== {source_name} ===")

        try:
            source.test()
        except ConnectivityError as e:
            self.logger.error(f"Failed to verify connection to job [{source_name}]: {e}")
            summary.record_failure(f"Connection failed to {source_name}: {e}")
            self._abort(summary, EXIT_SOURCE_FAILED)

        try:
            repos = source.list_repositories()
        except CommunicationError as e:
            self.logger.error(f"Communication error with [{source_name}]: {e}")
            summary.record_failure(f"Communication error with {source_name}: {e}")
            self._abort(summary, EXIT_SOURCE_FAILED)

        for remote in repos:
            self._run_repository(source_name, remote, summary)

    def _run_repository(self, source_name: str, remote: RemoteTarget, summary: RunSummary) -> None:
        self.logger.info(f"Discovered {remote.full_name}")
        summary.attempted += 1
        path = self.target_path(source_name, remote)

        try:
            self.ensure_directory(path)
        except DirectoryError as e:
            self.logger.error(f"[{source_name}] {e}")
            self._repository_failed(summary, remote, f"{remote.full_name} (directory creation failed)", str(e))
            return

        try:
            outcome = self.sync_engine.materialize(remote, path, bare=self.backup_config.bare_clone)
        except SyncError as e:
            self.logger.error(f"[{source_name}] Failed to clone {remote.full_name}: {e}")
            self._repository_failed(summary, remote, f"{remote.full_name} ({e})", str(e))
            return

        self.logger.info(f"[{source_name}] {remote.full_name}: {outcome.value}")
        summary.record_success(remote.full_name, outcome)

    def _repository_failed(self, summary: RunSummary, remote: RemoteTarget, description: str, reason: str) -> None:
        summary.record_failure(description, full_name=remote.full_name, reason=reason)
        if not self.backup_config.fail_at_end:
            self._abort(summary, EXIT_REPOSITORY_FAILED)

    def _abort(self, summary: RunSummary, exit_code: int) -> None:
        summary.finalize(exit_code)
        self.logger.error(
            f"Stopping backup after {summary.repo_count} repositories, "
            f"{summary.error_count} errors (exit code {exit_code})"
        )
        raise RunAborted()

