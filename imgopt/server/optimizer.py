"""
Image optimization with Pillow.

Resizes to fit inside max_width x max_height (never enlarging) and
re-encodes as progressive JPEG.
"""
import io
import logging
from dataclasses import dataclass
from typing import Optional

from PIL import Image

logger = logging.getLogger(__name__)

# Pillow mode -> colour space name reported to clients
_COLOUR_SPACES = {
    "1": "b-w",
    "L": "b-w",
    "LA": "b-w",
    "P": "srgb",
    "PA": "srgb",
    "RGB": "srgb",
    "RGBA": "srgb",
    "CMYK": "cmyk",
    "YCbCr": "srgb",
    "LAB": "lab",
    "I;16": "grey16",
}


@dataclass(frozen=True)
class OptimizedImage:
    """Encoded output plus properties of the source image."""
    data: bytes
    width: int
    height: int
    format: Optional[str]
    space: Optional[str]
    has_alpha: bool
    channels: int

    @property
    def size(self) -> int:
        return len(self.data)


def optimize_image(
    data: bytes,
    quality: int = 80,
    max_width: int = 1200,
    max_height: int = 1200,
) -> OptimizedImage:
    """
    Optimize an encoded image.

    Args:
        data: Source bytes (JPEG, PNG, WebP, GIF...)
        quality: JPEG quality 1-100
        max_width: Bounding box width
        max_height: Bounding box height

    Returns:
        OptimizedImage; width/height are the source dimensions

    Raises:
        PIL.UnidentifiedImageError, OSError: data is not a decodable image
    """
    with Image.open(io.BytesIO(data)) as image:
        image.load()
        width, height = image.size
        bands = image.getbands()
        has_alpha = "A" in bands or "transparency" in image.info
        source_format = image.format.lower() if image.format else None
        space = _COLOUR_SPACES.get(image.mode)

        output = _flatten(image)
        output.thumbnail((max_width, max_height), Image.Resampling.LANCZOS)

        buffer = io.BytesIO()
        output.save(buffer, format="JPEG", quality=quality, progressive=True, optimize=True)

    encoded = buffer.getvalue()
    logger.debug(
        "Optimized %s %dx%d: %d -> %d bytes", source_format, width, height, len(data), len(encoded)
    )
    return OptimizedImage(
        data=encoded,
        width=width,
        height=height,
        format=source_format,
        space=space,
        has_alpha=has_alpha,
        channels=len(bands),
    )


def _flatten(image: Image.Image) -> Image.Image:
    """Convert to RGB, compositing any transparency onto white."""
    if image.mode in ("RGBA", "LA", "PA") or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    if image.mode != "RGB":
        return image.convert("RGB")
    return image.copy()
