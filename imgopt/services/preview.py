"""
Preview Service - Single Responsibility: local preview handles.

A preview handle (blob:imgopt/<uuid>) resolves to the source bytes without a
network round trip, so a front end can show an image before the gateway
answers. Every handle must be released exactly once: on removal of its upload,
or by release_all() when the owner tears down.
"""
import logging
import threading
import uuid
from typing import Dict

from ..models import ImageFile

logger = logging.getLogger(__name__)

HANDLE_PREFIX = "blob:imgopt/"


class PreviewRegistry:
    """
    Creates, resolves and releases preview handles.

    created/released only ever grow, so after teardown they must be equal.
    """

    def __init__(self):
        self._handles: Dict[str, ImageFile] = {}
        self._created = 0
        self._released = 0
        self._lock = threading.Lock()

    def create(self, file: ImageFile) -> str:
        """Register a preview for file and return its handle."""
        handle = f"{HANDLE_PREFIX}{uuid.uuid4().hex}"
        with self._lock:
            self._handles[handle] = file
            self._created += 1
        logger.debug("[preview] created %s for %s", handle, file.filename)
        return handle

    def resolve(self, handle: str) -> bytes:
        """
        Get the bytes behind a live handle.

        Raises:
            KeyError: handle unknown or already released
        """
        with self._lock:
            file = self._handles.get(handle)
        if file is None:
            raise KeyError(f"Preview handle not active: {handle}")
        return file.data

    def release(self, handle: str) -> bool:
        """
        Release a handle.

        Returns:
            False if it was unknown or already released (nothing is counted)
        """
        with self._lock:
            file = self._handles.pop(handle, None)
            if file is not None:
                self._released += 1
        if file is None:
            logger.warning("[preview] release of inactive handle %s ignored", handle)
            return False
        logger.debug("[preview] released %s (%s)", handle, file.filename)
        return True

    def release_all(self) -> int:
        """Release every outstanding handle. Returns how many were released."""
        with self._lock:
            count = len(self._handles)
            self._handles.clear()
            self._released += count
        if count:
            logger.info("[preview] released %d outstanding previews", count)
        return count

    def is_active(self, handle: str) -> bool:
        return handle in self._handles

    @property
    def created(self) -> int:
        return self._created

    @property
    def released(self) -> int:
        return self._released

    @property
    def outstanding(self) -> int:
        return len(self._handles)
