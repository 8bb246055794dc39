"""
Models for imgopt.

Immutable dataclasses: a TrackedUpload is never edited in place, the store
swaps in a new instance on every status change.
"""
import mimetypes
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .errors import TransferError

MB = 1024 * 1024

DEFAULT_MAX_BATCH_SIZE = 5
DEFAULT_MAX_FILE_SIZE = 5 * MB
RELAXED_MAX_FILE_SIZE = 10 * MB
SUPPORTED_TYPES: Tuple[str, ...] = ("image/jpeg", "image/png", "image/webp", "image/gif")
DEFAULT_GATEWAY_URL = "http://127.0.0.1:8000"


class UploadStatus(Enum):
    """Lifecycle status of a tracked upload."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (UploadStatus.COMPLETE, UploadStatus.ERROR)

    def can_transition_to(self, target: "UploadStatus") -> bool:
        return target in _TRANSITIONS[self]


_TRANSITIONS = {
    UploadStatus.PENDING: {UploadStatus.PROCESSING},
    UploadStatus.PROCESSING: {UploadStatus.COMPLETE, UploadStatus.ERROR},
    UploadStatus.COMPLETE: set(),
    UploadStatus.ERROR: set(),
}


class BatchPolicy(Enum):
    """What to do with a batch larger than max_batch_size."""
    REJECT = "reject"      # refuse the whole batch
    TRUNCATE = "truncate"  # keep the first max_batch_size files


@dataclass(frozen=True)
class ImageFile:
    """Immutable file content submitted by the user."""
    filename: str
    content_type: str
    data: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_path(cls, path: Path, content_type: Optional[str] = None) -> "ImageFile":
        """Read a file from disk, guessing its media type from the extension."""
        path = Path(path)
        if content_type is None:
            content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return cls(filename=path.name, content_type=content_type, data=path.read_bytes())


@dataclass(frozen=True)
class ImageDimensions:
    width: int = 0
    height: int = 0


@dataclass(frozen=True)
class ImageMetadata:
    """Source image properties reported by the gateway."""
    format: Optional[str] = None
    space: Optional[str] = None
    has_alpha: Optional[bool] = None
    channels: Optional[int] = None


@dataclass(frozen=True)
class ProcessedImage:
    """Parsed gateway response for a successfully optimized image."""
    original_name: str
    size: int
    type: str
    processed_image: Optional[str] = field(default=None, repr=False)  # data URL
    optimized_url: Optional[str] = None  # CDN URL
    dimensions: Optional[ImageDimensions] = None
    metadata: Optional[ImageMetadata] = None
    optimized_size: Optional[int] = None
    compression_ratio: Optional[float] = None

    @property
    def download_url(self) -> str:
        """CDN URL when the gateway hosted the result, the inlined data URL otherwise."""
        return self.optimized_url or self.processed_image or ""

    @classmethod
    def from_payload(cls, payload: Any) -> "ProcessedImage":
        """
        Build from the gateway's JSON body (camelCase keys).

        Raises:
            TransferError: payload is not an object or misses required fields
        """
        if not isinstance(payload, dict):
            raise TransferError("Malformed response: expected a JSON object")

        missing = [key for key in ("originalName", "size", "type") if key not in payload]
        if missing:
            raise TransferError(f"Malformed response: missing {', '.join(missing)}")

        optimized_url = payload.get("optimizedUrl") or payload.get("cdnUrl")
        processed_image = payload.get("processedImage")
        if not optimized_url and not processed_image:
            raise TransferError("Malformed response: no optimized image or URL")

        try:
            dimensions = None
            raw_dims = payload.get("dimensions")
            if isinstance(raw_dims, dict):
                dimensions = ImageDimensions(
                    width=int(raw_dims.get("width") or 0),
                    height=int(raw_dims.get("height") or 0),
                )

            metadata = None
            raw_meta = payload.get("metadata")
            if isinstance(raw_meta, dict):
                metadata = ImageMetadata(
                    format=raw_meta.get("format"),
                    space=raw_meta.get("space"),
                    has_alpha=raw_meta.get("hasAlpha"),
                    channels=_optional_int(raw_meta.get("channels")),
                )

            return cls(
                original_name=str(payload["originalName"]),
                size=int(payload["size"]),
                type=str(payload["type"]),
                processed_image=processed_image,
                optimized_url=optimized_url,
                dimensions=dimensions,
                metadata=metadata,
                optimized_size=_optional_int(payload.get("optimizedSize")),
                compression_ratio=_optional_float(payload.get("compressionRatio")),
            )
        except (TypeError, ValueError) as e:
            raise TransferError(f"Malformed response: {e}") from e


def _optional_int(value: Any) -> Optional[int]:
    return None if value is None else int(value)


def _optional_float(value: Any) -> Optional[float]:
    return None if value is None else float(value)


@dataclass(frozen=True)
class TrackedUpload:
    """One submitted image and where it is in its lifecycle."""
    id: str
    source: ImageFile
    preview_handle: str
    status: UploadStatus = UploadStatus.PENDING
    result: Optional[ProcessedImage] = None
    error: Optional[str] = None

    def __post_init__(self):
        if self.status == UploadStatus.COMPLETE:
            ok = self.result is not None and self.error is None
        elif self.status == UploadStatus.ERROR:
            ok = self.error is not None and self.result is None
        else:
            ok = self.result is None and self.error is None
        if not ok:
            raise ValueError(
                f"Upload {self.id}: result/error do not match status {self.status.value}"
            )

    @property
    def filename(self) -> str:
        return self.source.filename

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


@dataclass(frozen=True)
class UploadConfig:
    """Immutable configuration for the upload client."""
    gateway_url: str = DEFAULT_GATEWAY_URL
    max_batch_size: int = DEFAULT_MAX_BATCH_SIZE
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    relaxed: bool = False  # raises the per-file ceiling to 10 MiB
    accepted_types: Tuple[str, ...] = SUPPORTED_TYPES
    concurrency: int = 1
    timeout: float = 60.0
    retries: int = 0
    batch_policy: BatchPolicy = BatchPolicy.REJECT

    def __post_init__(self):
        if self.max_batch_size < 1:
            raise ValueError("max_batch_size must be at least 1")
        if not 0 < self.max_file_size <= RELAXED_MAX_FILE_SIZE:
            raise ValueError(f"max_file_size must be between 1 and {RELAXED_MAX_FILE_SIZE} bytes")
        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if self.retries < 0:
            raise ValueError("retries cannot be negative")

    @property
    def file_size_limit(self) -> int:
        """Effective per-file ceiling in bytes."""
        if self.relaxed:
            return RELAXED_MAX_FILE_SIZE
        return self.max_file_size

    def is_accepted_type(self, content_type: str) -> bool:
        return content_type in self.accepted_types
