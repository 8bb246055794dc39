"""
UploadStore - Tracked uploads keyed by id.

Every mutation builds a new mapping and swaps it in, so observers can detect
a change by comparing `snapshot` identity. Entries are frozen TrackedUpload
instances replaced with dataclasses.replace().
"""
import logging
import threading
from dataclasses import replace
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Mapping, Optional

from .errors import InvalidTransitionError, StaleUpdateError
from .models import ProcessedImage, TrackedUpload, UploadStatus

logger = logging.getLogger(__name__)


class UploadStore:
    """
    Insertion-ordered collection of TrackedUpload.

    Usage:
        store = UploadStore()
        store.add([upload])
        store.update_status(upload.id, UploadStatus.PROCESSING)
        store.update_status(upload.id, UploadStatus.COMPLETE, result)
        store.remove(upload.id)
    """

    def __init__(self):
        self._items: Mapping[str, TrackedUpload] = MappingProxyType({})
        self._lock = threading.Lock()

    @property
    def snapshot(self) -> Mapping[str, TrackedUpload]:
        """Read-only view of the current collection. A new object after every mutation."""
        return self._items

    def _swap(self, items: Dict[str, TrackedUpload]) -> None:
        self._items = MappingProxyType(items)

    def get(self, upload_id: str) -> Optional[TrackedUpload]:
        return self._items.get(upload_id)

    def items(self) -> List[TrackedUpload]:
        return list(self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, upload_id: object) -> bool:
        return upload_id in self._items

    def __iter__(self) -> Iterator[TrackedUpload]:
        return iter(list(self._items.values()))

    def add(self, uploads: Iterable[TrackedUpload]) -> None:
        """Append uploads in one replacement. Duplicate ids raise ValueError."""
        uploads = list(uploads)
        if not uploads:
            return
        with self._lock:
            items = dict(self._items)
            for upload in uploads:
                if upload.id in items:
                    raise ValueError(f"Upload {upload.id} is already tracked")
                items[upload.id] = upload
            self._swap(items)
        logger.debug("Store: added %d uploads (%d tracked)", len(uploads), len(items))

    def update_status(
        self,
        upload_id: str,
        status: UploadStatus,
        payload: Optional[object] = None,
    ) -> bool:
        """
        Move an upload to a new status.

        Args:
            upload_id: Upload to update
            status: Target status
            payload: ProcessedImage for COMPLETE, error message for ERROR

        Returns:
            True if the store changed, False if the id is no longer tracked

        Raises:
            InvalidTransitionError: status change not allowed by the lifecycle
        """
        with self._lock:
            try:
                current = self._lookup(upload_id)
            except StaleUpdateError as e:
                logger.debug("Store: ignoring %s update: %s", status.value, e)
                return False

            if not current.status.can_transition_to(status):
                raise InvalidTransitionError(upload_id, current.status, status)

            if status == UploadStatus.COMPLETE:
                if not isinstance(payload, ProcessedImage):
                    raise TypeError("COMPLETE requires a ProcessedImage payload")
                updated = replace(current, status=status, result=payload, error=None)
            elif status == UploadStatus.ERROR:
                updated = replace(current, status=status, result=None, error=str(payload or "Processing failed"))
            else:
                updated = replace(current, status=status)

            items = dict(self._items)
            items[upload_id] = updated
            self._swap(items)
        return True

    def _lookup(self, upload_id: str) -> TrackedUpload:
        upload = self._items.get(upload_id)
        if upload is None:
            raise StaleUpdateError(upload_id)
        return upload

    def remove(self, upload_id: str) -> Optional[TrackedUpload]:
        """Remove an upload. Returns it, or None if it was not tracked."""
        with self._lock:
            if upload_id not in self._items:
                return None
            items = dict(self._items)
            removed = items.pop(upload_id)
            self._swap(items)
        return removed

    def clear(self) -> List[TrackedUpload]:
        """Remove everything. Returns the removed uploads in insertion order."""
        with self._lock:
            removed = list(self._items.values())
            if removed:
                self._swap({})
        return removed
