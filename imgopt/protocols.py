"""
Protocols (Interfaces) for Dependency Inversion.

The orchestrator only depends on these; tests pass in AsyncMock or small
fakes instead of the HTTP gateway.
"""
from typing import Protocol, runtime_checkable

from .models import ImageFile, ProcessedImage


@runtime_checkable
class IGateway(Protocol):
    """Interface for the remote image-processing service."""

    async def process(self, file: ImageFile) -> ProcessedImage:
        """Optimize one image. Raises UploadError subclasses on failure."""
        ...

    async def fetch(self, result: ProcessedImage) -> bytes:
        """Get the optimized image bytes for a result."""
        ...


@runtime_checkable
class IPreviewRegistry(Protocol):
    """Interface for local preview handles."""

    def create(self, file: ImageFile) -> str:
        ...

    def release(self, handle: str) -> bool:
        ...

    def release_all(self) -> int:
        ...
