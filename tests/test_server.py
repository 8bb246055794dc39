"""Tests for the reference gateway service."""
import base64
import io

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from imgopt.server import GatewaySettings, create_app
from imgopt.server.optimizer import optimize_image


def _image_bytes(size=(2000, 1000), mode="RGB", fmt="PNG", color=(200, 30, 30)) -> bytes:
    if mode == "RGBA":
        color = color + (128,)
    image = Image.new(mode, size, color)
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def client():
    return TestClient(create_app(GatewaySettings(region="test-region")))


class TestOptimizer:
    def test_resizes_to_fit_inside_bounds(self):
        result = optimize_image(_image_bytes((2400, 1200)))
        with Image.open(io.BytesIO(result.data)) as out:
            assert out.format == "JPEG"
            assert out.size == (1200, 600)
        assert (result.width, result.height) == (2400, 1200)
        assert result.format == "png"

    def test_never_enlarges(self):
        result = optimize_image(_image_bytes((300, 200)))
        with Image.open(io.BytesIO(result.data)) as out:
            assert out.size == (300, 200)

    def test_alpha_is_flattened(self):
        result = optimize_image(_image_bytes((50, 50), mode="RGBA"))
        assert result.has_alpha is True
        assert result.channels == 4
        assert result.space == "srgb"
        with Image.open(io.BytesIO(result.data)) as out:
            assert out.mode == "RGB"

    def test_grayscale_metadata(self):
        result = optimize_image(_image_bytes((20, 20), mode="L", color=128))
        assert result.space == "b-w"
        assert result.channels == 1
        assert result.has_alpha is False

    def test_invalid_data_raises(self):
        with pytest.raises(OSError):
            optimize_image(b"definitely not an image")


class TestProcessImageRoute:
    def test_success(self, client):
        data = _image_bytes((2000, 1000))
        response = client.post("/process-image", files={"image": ("banner.png", data, "image/png")})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/json")
        assert "max-age=604800" in response.headers["cache-control"]

        body = response.json()
        assert body["originalName"] == "banner.png"
        assert body["type"] == "image/png"
        assert body["dimensions"] == {"width": 2000, "height": 1000}
        assert body["metadata"]["format"] == "png"
        assert body["optimizedSize"] == body["size"]
        assert body["compressionRatio"] == pytest.approx(len(data) / body["optimizedSize"])

        prefix = "data:image/jpeg;base64,"
        assert body["processedImage"].startswith(prefix)
        decoded = base64.b64decode(body["processedImage"][len(prefix):])
        with Image.open(io.BytesIO(decoded)) as out:
            assert out.size == (1200, 600)

    def test_missing_image_field(self, client):
        response = client.post("/process-image", files={"other": ("a.png", b"x", "image/png")})
        assert response.status_code == 400
        assert response.json() == {"error": "No image file provided", "code": "NO_FILE"}

    def test_image_field_without_file(self, client):
        response = client.post("/process-image", data={"image": "not-a-file"})
        assert response.status_code == 400
        assert response.json() == {"error": "No image file provided", "code": "NO_FILE"}

    def test_empty_file(self, client):
        response = client.post("/process-image", files={"image": ("a.png", b"", "image/png")})
        assert response.status_code == 400
        assert response.json()["code"] == "NO_FILE"

    def test_invalid_type(self, client):
        response = client.post("/process-image", files={"image": ("notes.txt", b"hello", "text/plain")})
        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "INVALID_TYPE"
        assert body["supportedTypes"] == ["image/jpeg", "image/png", "image/webp", "image/gif"]

    def test_file_too_large(self):
        client = TestClient(create_app(GatewaySettings(max_file_size=100)))
        data = _image_bytes((64, 64))
        response = client.post("/process-image", files={"image": ("a.png", data, "image/png")})
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "File too large"
        assert body["code"] == "FILE_TOO_LARGE"
        assert body["maxSize"] == 100
        assert body["actualSize"] == len(data)

    def test_undecodable_image(self, client):
        response = client.post("/process-image", files={"image": ("a.png", b"garbage" * 10, "image/png")})
        assert response.status_code == 500
        assert response.json() == {"error": "Failed to process image"}


class TestHealthAndStats:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "region": "test-region"}

    def test_stats_track_outcomes(self, client):
        client.post("/process-image", files={"image": ("a.png", _image_bytes((10, 10)), "image/png")})
        client.post("/process-image", files={"image": ("notes.txt", b"hi", "text/plain")})

        stats = client.get("/stats").json()
        assert stats["totalUploads"] == 2
        assert stats["successfulUploads"] == 1
        assert stats["failedUploads"] == 1
        assert stats["failuresByCode"] == {"INVALID_TYPE": 1}


class TestGatewaySettings:
    def test_from_env(self):
        settings = GatewaySettings.from_env(
            {"GATEWAY_QUALITY": "70", "GATEWAY_MAX_WIDTH": "800", "GATEWAY_REGION": "eu", "GATEWAY_ALLOWED_ORIGINS": "a.com, b.com"}
        )
        assert settings.quality == 70
        assert settings.max_width == 800
        assert settings.max_height == 1200
        assert settings.region == "eu"
        assert settings.allowed_origins == ("a.com", "b.com")

    def test_rejects_bad_quality(self):
        with pytest.raises(ValueError):
            GatewaySettings(quality=0)
