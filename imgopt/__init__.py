"""
imgopt - Drag-and-drop style image optimization client.

Tracks a batch of images through pending -> processing -> complete|error
while a remote gateway resizes and recompresses them.

Usage:
    from imgopt import UploadOrchestrator, UploadConfig, ImageFile

    config = UploadConfig(gateway_url="http://127.0.0.1:8000")
    async with UploadOrchestrator(config=config) as uploader:
        result = await uploader.submit_batch([ImageFile.from_path(path)])
        for upload in uploader.uploads:
            print(upload.filename, upload.status.value, upload.error)
"""
__version__ = "0.1.0"

from .errors import (
    InvalidTransitionError,
    StaleUpdateError,
    TransferError,
    UploadError,
    ValidationError,
)
from .models import (
    BatchPolicy,
    ImageFile,
    ProcessedImage,
    TrackedUpload,
    UploadConfig,
    UploadStatus,
)
from .orchestrator import BatchResult, UploadOrchestrator
from .services import HTTPGateway, PreviewRegistry, UploadStats, get_upload_stats
from .store import UploadStore

__all__ = [
    # Main
    "UploadOrchestrator",
    "BatchResult",
    "UploadStore",
    # Models
    "BatchPolicy",
    "ImageFile",
    "ProcessedImage",
    "TrackedUpload",
    "UploadConfig",
    "UploadStatus",
    # Services
    "HTTPGateway",
    "PreviewRegistry",
    "UploadStats",
    "get_upload_stats",
    # Errors
    "UploadError",
    "ValidationError",
    "TransferError",
    "StaleUpdateError",
    "InvalidTransitionError",
]
