"""
Memory accounting around clone and fetch operations.

Everything here is advisory: it logs numbers and asks the collector to
run, and never changes what the sync engine does.
"""

import gc
import logging
import sys
from typing import Dict

from ..logger.logger import get_logger

try:
    import resource
except ImportError:  # not available on Windows
    resource = None


def memory_usage() -> Dict[str, int]:
    """Snapshot of process memory counters.

    ``max_rss_kb`` is the peak resident set size (0 when the platform does
    not expose it), ``objects`` the number of objects tracked by the
    collector and ``collections`` the number of collections run so far.
    """
    max_rss_kb = 0
    if resource is not None:
        max_rss = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
        # bytes on macOS, kilobytes elsewhere
        max_rss_kb = max_rss // 1024 if sys.platform == "darwin" else max_rss

    return {
        "max_rss_kb": max_rss_kb,
        "objects": len(gc.get_objects()),
        "collections": sum(stat["collections"] for stat in gc.get_stats()),
    }


class MemoryMonitor:
    """Logs memory usage and requests reclamation between heavy git calls."""

    def __init__(self, enabled: bool = True, log_config=None):
        self.enabled = enabled
        self.logger = get_logger("memory", log_config)

    def log_usage(self, operation: str) -> None:
        """Log current memory usage at debug level."""
        if not self.enabled or not self.logger.is_enabled_for(logging.DEBUG):
            return
        usage = memory_usage()
        self.logger.debug(
            f"{operation} - Memory: MaxRSS={usage['max_rss_kb']} KB, "
            f"Objects={usage['objects']}, Collections={usage['collections']}"
        )

    def reclaim(self, operation: str) -> None:
        """Run a full collection, then log memory usage."""
        if not self.enabled:
            return
        freed = gc.collect()
        self.logger.debug(f"{operation} - collected {freed} objects")
        self.log_usage(operation)
