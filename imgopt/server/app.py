"""
FastAPI gateway.

Routes:
- POST /process-image: validate, optimize, return JSON with an inlined data URL
- GET /health: liveness and region
- GET /stats: process-wide upload counters
"""
import asyncio
import base64
import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from PIL import Image, UnidentifiedImageError
from starlette.datastructures import UploadFile

from ..services.stats import get_upload_stats, init_upload_stats
from .optimizer import optimize_image
from .settings import GatewaySettings

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str, code: Optional[str] = None, **extra: Any) -> JSONResponse:
    body = {"error": message}
    if code:
        body["code"] = code
    body.update(extra)
    return JSONResponse(body, status_code=status_code)


def create_app(settings: Optional[GatewaySettings] = None) -> FastAPI:
    """Build the gateway app. Upload counters are (re)initialised here."""
    settings = settings or GatewaySettings.from_env()
    init_upload_stats()

    app = FastAPI(
        title="imgopt gateway",
        description="Resizes and recompresses uploaded images",
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.allowed_origins),
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.post("/process-image")
    async def process_image(request: Request):
        stats = get_upload_stats()

        form = await request.form()
        image = form.get("image")
        # a plain text value under "image" counts as no file
        if not isinstance(image, UploadFile):
            stats.record_failure("NO_FILE")
            return _error(400, "No image file provided", "NO_FILE")

        content_type = image.content_type or ""
        if content_type not in settings.supported_types:
            stats.record_failure("INVALID_TYPE")
            return _error(
                400,
                "File must be an image of a supported type",
                "INVALID_TYPE",
                supportedTypes=list(settings.supported_types),
            )

        data = await image.read()
        if not data:
            stats.record_failure("NO_FILE")
            return _error(400, "No image file provided", "NO_FILE")

        if len(data) > settings.max_file_size:
            stats.record_failure("FILE_TOO_LARGE", len(data))
            return _error(
                400,
                "File too large",
                "FILE_TOO_LARGE",
                maxSize=settings.max_file_size,
                actualSize=len(data),
            )

        try:
            optimized = await asyncio.to_thread(
                optimize_image,
                data,
                quality=settings.quality,
                max_width=settings.max_width,
                max_height=settings.max_height,
            )
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
            logger.error(f"Error processing image {image.filename}: {e}", exc_info=True)
            stats.record_failure("PROCESSING_FAILED", len(data))
            return _error(500, "Failed to process image")

        stats.record_success(len(data), optimized.size)
        logger.info(f"Processed {image.filename}: {len(data)} -> {optimized.size} bytes")

        encoded = base64.b64encode(optimized.data).decode("ascii")
        body = {
            "originalName": image.filename,
            "size": optimized.size,
            "type": content_type,
            "dimensions": {"width": optimized.width, "height": optimized.height},
            "metadata": {
                "format": optimized.format,
                "space": optimized.space,
                "hasAlpha": optimized.has_alpha,
                "channels": optimized.channels,
            },
            "optimizedSize": optimized.size,
            "compressionRatio": len(data) / optimized.size,
            "processedImage": f"data:image/jpeg;base64,{encoded}",
        }
        return JSONResponse(
            body,
            headers={"Cache-Control": f"public, max-age={settings.cache_max_age}"},
        )

    @app.get("/health")
    async def health():
        return {"status": "ok", "region": settings.region}

    @app.get("/stats")
    async def upload_stats():
        return get_upload_stats().snapshot()

    return app
