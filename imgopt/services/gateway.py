"""HTTP adapter for the image-processing gateway."""
from __future__ import annotations

import asyncio
import base64
import logging
from typing import Any, Dict, Optional

import httpx

from ..errors import TransferError
from ..models import ImageFile, ProcessedImage, UploadConfig
from ..validation import validate_file

logger = logging.getLogger(__name__)

PROCESS_ENDPOINT = "/process-image"
HEALTH_ENDPOINT = "/health"
DEFAULT_ERROR_MESSAGE = "Failed to process image"


class HTTPGateway:
    """
    HTTP client adapter for the gateway.

    Implements IGateway protocol.

    Usage:
        async with HTTPGateway(config) as gateway:
            result = await gateway.process(image_file)
    """

    def __init__(
        self,
        config: Optional[UploadConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._config = config or UploadConfig()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self._client = httpx.AsyncClient(
            base_url=self._config.gateway_url,
            timeout=self._config.timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None

    def _require_client(self) -> httpx.AsyncClient:
        if not self._client:
            raise RuntimeError("HTTPGateway not initialized. Use 'async with' context.")
        return self._client

    async def process(self, file: ImageFile) -> ProcessedImage:
        """
        Send one image to the gateway.

        Raises:
            ValidationError: file breaks the client limits (nothing is sent)
            TransferError: network failure, non-2xx response or malformed body
        """
        validate_file(file, self._config)
        client = self._require_client()

        max_attempts = self._config.retries + 1
        for attempt in range(max_attempts):
            last_attempt = attempt == max_attempts - 1
            try:
                response = await client.post(
                    PROCESS_ENDPOINT,
                    files={"image": (file.filename, file.data, file.content_type)},
                )
            except (httpx.RequestError, httpx.TimeoutException) as exc:
                if not last_attempt:
                    logger.warning("[gateway] %s: %s, retrying", file.filename, exc)
                    await asyncio.sleep(0.5 * (attempt + 1))
                    continue
                raise TransferError(f"Network error: {exc}") from exc

            if response.status_code >= 500 and not last_attempt:
                logger.warning("[gateway] %s: HTTP %d, retrying", file.filename, response.status_code)
                await asyncio.sleep(0.5 * (attempt + 1))
                continue

            if response.status_code >= 400:
                raise _error_from_response(response)

            return ProcessedImage.from_payload(_json_body(response))

        raise TransferError(f"Failed to process {file.filename} after {max_attempts} attempts")

    async def fetch(self, result: ProcessedImage) -> bytes:
        """
        Get the optimized image bytes.

        Inlined data URLs are decoded locally, CDN URLs are downloaded.
        """
        url = result.download_url
        if url.startswith("data:"):
            header, _, encoded = url.partition(",")
            if not header.endswith(";base64"):
                raise TransferError("Unsupported data URL encoding")
            try:
                return base64.b64decode(encoded, validate=True)
            except ValueError as exc:
                raise TransferError(f"Malformed data URL: {exc}") from exc

        if not url:
            raise TransferError(f"No optimized image for {result.original_name}")

        client = self._require_client()
        try:
            response = await client.get(url)
        except (httpx.RequestError, httpx.TimeoutException) as exc:
            raise TransferError(f"Network error: {exc}") from exc
        if response.status_code >= 400:
            raise TransferError(
                f"Download failed with HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return response.content

    async def health(self) -> Dict[str, Any]:
        client = self._require_client()
        try:
            response = await client.get(HEALTH_ENDPOINT)
        except (httpx.RequestError, httpx.TimeoutException) as exc:
            raise TransferError(f"Network error: {exc}") from exc
        if response.status_code >= 400:
            raise _error_from_response(response)
        return _json_body(response)


def _json_body(response: httpx.Response) -> Any:
    content_type = response.headers.get("content-type", "")
    if "application/json" not in content_type:
        raise TransferError(
            f"Malformed response: expected application/json, got {content_type or 'nothing'}",
            status_code=response.status_code,
        )
    try:
        return response.json()
    except ValueError as exc:
        raise TransferError(f"Malformed response: {exc}", status_code=response.status_code) from exc


def _error_from_response(response: httpx.Response) -> TransferError:
    """Turn a 4xx/5xx into TransferError, keeping the gateway's message and code."""
    try:
        body = response.json()
    except ValueError:
        body = None

    if not isinstance(body, dict):
        return TransferError(
            f"{DEFAULT_ERROR_MESSAGE} (HTTP {response.status_code})",
            status_code=response.status_code,
        )

    message = body.get("error") or body.get("message") or DEFAULT_ERROR_MESSAGE
    details = {k: v for k, v in body.items() if k not in ("error", "message", "code")}
    return TransferError(
        str(message),
        status_code=response.status_code,
        code=body.get("code"),
        details=details,
    )
