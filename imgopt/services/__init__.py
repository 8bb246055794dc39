"""Services for imgopt."""
from .gateway import HTTPGateway
from .preview import PreviewRegistry
from .stats import UploadStats, get_upload_stats, init_upload_stats

__all__ = [
    "HTTPGateway",
    "PreviewRegistry",
    "UploadStats",
    "get_upload_stats",
    "init_upload_stats",
]
