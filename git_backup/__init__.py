"""
git-backup
Discovers repositories on GitHub, GitLab and Gitea and mirrors them to local disk.
"""

__version__ = "1.0.0"

import logging

# parent of every component logger (git_backup.<component>)
logger = logging.getLogger(__name__)

__all__ = [
    "logger",
    "__version__",
]
