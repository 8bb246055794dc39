"""Orchestrator package - coordinates batch uploads."""
from .core import UploadOrchestrator
from .models import BatchResult

__all__ = ["UploadOrchestrator", "BatchResult"]
