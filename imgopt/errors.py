"""
Error taxonomy for imgopt.

- ValidationError: a batch or file fails local limits before submission
- TransferError: the gateway call failed (network, non-2xx, malformed body)
- StaleUpdateError: a status update for an item that no longer exists
- InvalidTransitionError: a status change the lifecycle does not allow
"""
from typing import Any, Dict, Optional


class UploadError(Exception):
    """Base class for imgopt errors."""

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class ValidationError(UploadError):
    """Raised when a batch or a file is rejected before it reaches the gateway."""


class TransferError(UploadError):
    """Raised when the gateway call fails."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, code=code, details=details)
        self.status_code = status_code


class StaleUpdateError(UploadError):
    """Raised internally when an update targets an id that was removed."""

    def __init__(self, upload_id: str):
        super().__init__(f"Upload {upload_id} is no longer tracked")
        self.upload_id = upload_id


class InvalidTransitionError(UploadError):
    """Raised on a status change outside pending -> processing -> complete|error."""

    def __init__(self, upload_id: str, current, target):
        super().__init__(
            f"Upload {upload_id}: cannot move from {current.value} to {target.value}"
        )
        self.upload_id = upload_id
        self.current = current
        self.target = target
