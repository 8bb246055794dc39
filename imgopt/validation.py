"""Local checks run before a file is sent to the gateway.

The gateway repeats the same checks and stays the authority; these only spare
a round trip for files it would reject anyway.
"""
import logging
from typing import List, Sequence, Tuple

from .errors import ValidationError
from .models import BatchPolicy, ImageFile, UploadConfig

logger = logging.getLogger(__name__)


def validate_file(file: ImageFile, config: UploadConfig) -> None:
    """Raise ValidationError if the file is empty, too large or not an accepted image type."""
    if file.size == 0:
        raise ValidationError(f"{file.filename}: file is empty", code="NO_FILE")

    if not config.is_accepted_type(file.content_type):
        raise ValidationError(
            f"{file.filename}: unsupported type {file.content_type}",
            code="INVALID_TYPE",
            details={"supportedTypes": list(config.accepted_types)},
        )

    limit = config.file_size_limit
    if file.size > limit:
        raise ValidationError(
            f"{file.filename}: file too large ({file.size} > {limit} bytes)",
            code="FILE_TOO_LARGE",
            details={"maxSize": limit, "actualSize": file.size},
        )


def validate_batch(
    files: Sequence[ImageFile],
    config: UploadConfig,
) -> Tuple[List[ImageFile], List[ImageFile]]:
    """
    Apply the batch-size policy and per-file checks.

    Args:
        files: Files in the order they were dropped
        config: Client limits

    Returns:
        (accepted, dropped) - dropped is only non-empty under BatchPolicy.TRUNCATE

    Raises:
        ValidationError: batch too large under REJECT, or any file fails validate_file
    """
    files = list(files)
    if not files:
        raise ValidationError("No files submitted", code="NO_FILE")

    dropped: List[ImageFile] = []
    if len(files) > config.max_batch_size:
        if config.batch_policy == BatchPolicy.REJECT:
            raise ValidationError(
                f"Too many files: {len(files)} submitted, at most {config.max_batch_size} allowed",
                code="TOO_MANY_FILES",
                details={"maxFiles": config.max_batch_size, "actualFiles": len(files)},
            )
        dropped = files[config.max_batch_size:]
        files = files[:config.max_batch_size]
        logger.warning(
            "Batch truncated to %d files, dropped: %s",
            config.max_batch_size,
            ", ".join(f.filename for f in dropped),
        )

    for file in files:
        validate_file(file, config)

    return files, dropped
