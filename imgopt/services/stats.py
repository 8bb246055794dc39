"""
UploadStats - Process-wide upload counters.

Initialised once at process start with init_upload_stats() and read or
incremented through get_upload_stats(). Counters are guarded by a lock so a
threaded server can record from several workers.
"""
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class UploadStats:
    """Counters for gateway uploads."""

    def __init__(self):
        self._lock = threading.Lock()
        self._started_at = datetime.now(timezone.utc)
        self._total = 0
        self._successful = 0
        self._failed = 0
        self._bytes_in = 0
        self._bytes_out = 0
        self._bytes_saved = 0
        self._failures_by_code: Dict[str, int] = {}

    def record_success(self, bytes_in: int, bytes_out: int) -> None:
        with self._lock:
            self._total += 1
            self._successful += 1
            self._bytes_in += bytes_in
            self._bytes_out += bytes_out
            self._bytes_saved += max(bytes_in - bytes_out, 0)

    def record_failure(self, code: str = "PROCESSING_FAILED", bytes_in: int = 0) -> None:
        with self._lock:
            self._total += 1
            self._failed += 1
            self._bytes_in += bytes_in
            self._failures_by_code[code] = self._failures_by_code.get(code, 0) + 1

    def snapshot(self) -> Dict[str, Any]:
        """Consistent copy of all counters."""
        with self._lock:
            return {
                "totalUploads": self._total,
                "successfulUploads": self._successful,
                "failedUploads": self._failed,
                "bytesIn": self._bytes_in,
                "bytesOut": self._bytes_out,
                "bytesSaved": self._bytes_saved,
                "failuresByCode": dict(self._failures_by_code),
                "startedAt": self._started_at.isoformat(),
            }

    def reset(self) -> None:
        with self._lock:
            self._started_at = datetime.now(timezone.utc)
            self._total = 0
            self._successful = 0
            self._failed = 0
            self._bytes_in = 0
            self._bytes_out = 0
            self._bytes_saved = 0
            self._failures_by_code = {}


# Global instance, created by init_upload_stats()
_global_stats: Optional[UploadStats] = None
_global_lock = threading.Lock()


def init_upload_stats() -> UploadStats:
    """Create (or reset) the process-wide counters. Call once at startup."""
    global _global_stats

    with _global_lock:
        if _global_stats is None:
            _global_stats = UploadStats()
        else:
            _global_stats.reset()
    logger.info("UploadStats: initialised")
    return _global_stats


def get_upload_stats() -> UploadStats:
    """Get the process-wide counters, initialising them on first use."""
    if _global_stats is None:
        return init_upload_stats()
    return _global_stats
