"""Core orchestrator - drives tracked uploads through the gateway."""
import asyncio
import logging
import mimetypes
import uuid
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from ..errors import UploadError
from ..models import ImageFile, TrackedUpload, UploadConfig, UploadStatus
from ..protocols import IGateway, IPreviewRegistry
from ..services.gateway import HTTPGateway
from ..services.preview import PreviewRegistry
from ..store import UploadStore
from ..utils.events import EventEmitter
from ..validation import validate_batch
from .models import BatchResult

logger = logging.getLogger(__name__)


class UploadOrchestrator:
    """
    Orchestrates image uploads using injected services.

    Accepted files become `pending` TrackedUploads in the store, each with a
    preview handle. They are then queued and sent to the gateway by workers.
    The orchestrator's semaphore caps calls in flight at `config.concurrency`
    (default 1) across all of its batches. Separate orchestrators do not
    share it. Within a batch the gateway sees the files in the order they
    were submitted.

    Removing an upload never waits for its call: the call finishes and its
    result is discarded by the store.

    Usage:
        async with UploadOrchestrator(config=UploadConfig(gateway_url=url)) as uploader:
            uploader.on_item_status(lambda upload: print(upload.status))
            result = await uploader.submit_batch(files)
        # leaving the block releases every preview handle
    """

    def __init__(
        self,
        gateway: Optional[IGateway] = None,
        config: Optional[UploadConfig] = None,
        store: Optional[UploadStore] = None,
        previews: Optional[IPreviewRegistry] = None,
    ):
        """
        Initialize orchestrator with dependencies.

        Args:
            gateway: Gateway client; an HTTPGateway is built from config if omitted
            config: Client limits and gateway settings
            store: State store (a fresh one by default)
            previews: Preview registry (a fresh one by default)
        """
        self._config = config or UploadConfig()
        self._owns_gateway = gateway is None
        self._gateway = gateway or HTTPGateway(self._config)
        self._store = store or UploadStore()
        self._previews = previews or PreviewRegistry()
        self._events = EventEmitter()
        self._slots = asyncio.Semaphore(self._config.concurrency)
        self._active_batches = 0
        self._closed = False

    async def __aenter__(self):
        if self._owns_gateway:
            await self._gateway.__aenter__()
        return self

    async def __aexit__(self, *args):
        try:
            await self.close()
        finally:
            if self._owns_gateway:
                await self._gateway.__aexit__(*args)

    # Event subscription methods
    def on_batch_start(self, callback: Callable[[List[str]], None]):
        """Called when a batch is accepted. Receives the new upload ids."""
        self._events.on("batch_start", callback)

    def on_item_added(self, callback: Callable[[TrackedUpload], None]):
        """Called for each new pending upload."""
        self._events.on("item_added", callback)

    def on_item_status(self, callback: Callable[[TrackedUpload], None]):
        """Called after every status change. Receives the updated TrackedUpload."""
        self._events.on("item_status", callback)

    def on_item_removed(self, callback: Callable[[TrackedUpload], None]):
        """Called when an upload is removed."""
        self._events.on("item_removed", callback)

    def on_batch_finish(self, callback: Callable[[BatchResult], None]):
        """Called when every upload of a batch has been handled."""
        self._events.on("batch_finish", callback)

    def on_cleared(self, callback: Callable[[int], None]):
        """Called on teardown. Receives the number of released previews."""
        self._events.on("cleared", callback)

    # State properties
    @property
    def config(self) -> UploadConfig:
        return self._config

    @property
    def store(self) -> UploadStore:
        return self._store

    @property
    def previews(self) -> IPreviewRegistry:
        return self._previews

    @property
    def uploads(self) -> List[TrackedUpload]:
        return self._store.items()

    @property
    def is_processing(self) -> bool:
        """True while at least one batch is running."""
        return self._active_batches > 0

    async def submit_batch(self, files: Sequence[ImageFile]) -> BatchResult:
        """
        Track and process a batch of files.

        Returns once every accepted upload has reached a terminal status or
        been removed.

        Raises:
            ValidationError: batch rejected before anything was tracked
        """
        if self._closed:
            raise RuntimeError("UploadOrchestrator is closed")

        accepted, dropped = validate_batch(files, self._config)

        uploads = [
            TrackedUpload(
                id=uuid.uuid4().hex,
                source=file,
                preview_handle=self._previews.create(file),
            )
            for file in accepted
        ]
        self._store.add(uploads)
        ids = [upload.id for upload in uploads]
        logger.info(f"Batch accepted: {len(ids)} files" + (f", {len(dropped)} dropped" if dropped else ""))

        for upload in uploads:
            await self._events.emit("item_added", upload)
        await self._events.emit("batch_start", ids)

        result = BatchResult(ids=ids, dropped=[f.filename for f in dropped])
        outcomes: Dict[str, Optional[UploadStatus]] = {}

        queue: asyncio.Queue = asyncio.Queue()
        for upload_id in ids:
            queue.put_nowait(upload_id)

        self._active_batches += 1
        try:
            workers = [
                asyncio.create_task(self._worker(queue, outcomes))
                for _ in range(min(self._config.concurrency, len(ids)))
            ]
            await asyncio.gather(*workers)
        finally:
            self._active_batches -= 1

        for upload_id in ids:
            status = outcomes.get(upload_id)
            if status == UploadStatus.COMPLETE:
                result.completed.append(upload_id)
            elif status == UploadStatus.ERROR:
                result.failed.append(upload_id)
            else:
                result.skipped.append(upload_id)

        logger.info(
            f"Batch finished: {len(result.completed)} complete, "
            f"{len(result.failed)} failed, {len(result.skipped)} removed"
        )
        await self._events.emit("batch_finish", result)
        return result

    async def _worker(self, queue: asyncio.Queue, outcomes: Dict[str, Optional[UploadStatus]]):
        # Everything is queued before workers start, so an empty queue means done.
        while True:
            try:
                upload_id = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            outcomes[upload_id] = await self._process_one(upload_id)

    async def _process_one(self, upload_id: str) -> Optional[UploadStatus]:
        """Run one upload through the gateway. Returns its terminal status, None if it was removed."""
        async with self._slots:
            upload = self._store.get(upload_id)
            if upload is None or not self._store.update_status(upload_id, UploadStatus.PROCESSING):
                logger.debug(f"Upload {upload_id} removed before processing, skipping")
                return None
            await self._events.emit("item_status", self._store.get(upload_id))

            try:
                processed = await self._gateway.process(upload.source)
            except UploadError as e:
                logger.warning(f"Upload failed: {upload.filename}: {e}")
                status, payload = UploadStatus.ERROR, e.message
            except Exception as e:
                logger.error(f"Unexpected error processing {upload.filename}: {e}", exc_info=True)
                status, payload = UploadStatus.ERROR, str(e) or "Processing failed"
            else:
                logger.info(f"Upload complete: {upload.filename}")
                status, payload = UploadStatus.COMPLETE, processed

        if not self._store.update_status(upload_id, status, payload):
            logger.info(f"Result for removed upload {upload.filename} discarded")
            return None

        await self._events.emit("item_status", self._store.get(upload_id))
        return status

    async def remove(self, upload_id: str) -> bool:
        """
        Stop tracking an upload and release its preview.

        Does not wait for, or cancel, a gateway call that is in flight.
        """
        removed = self._store.remove(upload_id)
        if removed is None:
            return False
        self._previews.release(removed.preview_handle)
        logger.info(f"Removed upload {removed.filename} ({removed.status.value})")
        await self._events.emit("item_removed", removed)
        return True

    async def close(self) -> int:
        """
        Teardown: drop every upload and release all outstanding previews.

        Returns:
            Number of previews released
        """
        self._closed = True
        self._store.clear()
        released = self._previews.release_all()
        await self._events.emit("cleared", released)
        return released

    async def download(self, upload_id: str, output_dir: Path) -> Path:
        """
        Save the optimized image of a completed upload as compressed-<name>.

        Raises:
            KeyError: upload not tracked
            ValueError: upload has no result yet
            TransferError: optimized image could not be fetched
        """
        upload = self._store.get(upload_id)
        if upload is None:
            raise KeyError(upload_id)
        if upload.status != UploadStatus.COMPLETE or upload.result is None:
            raise ValueError(f"Upload {upload.filename} is {upload.status.value}, not complete")

        data = await self._gateway.fetch(upload.result)

        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        target = output_dir / _download_name(upload)
        target.write_bytes(data)
        logger.info(f"Saved {target}")
        return target


def _download_name(upload: TrackedUpload) -> str:
    """compressed-<original name>, with the suffix of the optimized image's type."""
    result = upload.result
    name = _safe_name(result.original_name) or _safe_name(upload.filename) or Path("image")
    url = result.download_url
    if url.startswith("data:"):
        mime = url[len("data:"):].split(";", 1)[0]
        suffix = mimetypes.guess_extension(mime) if mime else None
        if suffix:
            name = name.with_suffix(".jpg" if suffix in (".jpe", ".jpeg") else suffix)
    return f"compressed-{name.name}"


def _safe_name(raw: Optional[str]) -> Optional[Path]:
    # Final path component only; "", "." and ".." are not usable file names.
    name = Path(raw or "").name
    return Path(name) if name not in ("", ".", "..") else None
