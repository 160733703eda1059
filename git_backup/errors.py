"""
Error taxonomy for git-backup.

Source-level errors (connectivity, communication) always stop a run.
Repository-level errors (directory, sync) stop it only in fail-fast mode.
Delivery errors are logged and never change the outcome of a run.
"""

from typing import Optional


class GitBackupError(Exception):
    """Base class for all git-backup errors."""


class ConfigError(GitBackupError):
    """Configuration file is missing or invalid."""


class ConnectivityError(GitBackupError):
    """A source could not be reached or did not accept the credentials."""

    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(message)


class CommunicationError(GitBackupError):
    """A source was reachable but listing its repositories failed."""

    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(message)


class DirectoryError(GitBackupError):
    """The local directory for a repository could not be created."""

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(message)


class SyncError(GitBackupError):
    """Cloning or fetching a repository failed.

    The underlying GitPython/OS error is kept in ``cause`` (and chained as
    ``__cause__`` when raised with ``from``).
    """

    def __init__(self, full_name: str, message: str, cause: Optional[BaseException] = None):
        self.full_name = full_name
        self.cause = cause
        super().__init__(message)


class DeliveryError(GitBackupError):
    """The webhook notification could not be delivered."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)
