"""Tests for imgopt services: previews, validation and upload stats."""
import threading

import pytest

from imgopt.errors import ValidationError
from imgopt.models import MB, BatchPolicy, ImageFile, UploadConfig
from imgopt.services.preview import HANDLE_PREFIX, PreviewRegistry
from imgopt.services.stats import UploadStats, get_upload_stats, init_upload_stats
from imgopt.validation import validate_batch, validate_file


def _file(name="a.jpg", size=10, content_type="image/jpeg"):
    return ImageFile(name, content_type, b"x" * size)


class TestPreviewRegistry:
    def test_create_and_resolve(self):
        registry = PreviewRegistry()
        handle = registry.create(_file(size=3))
        assert handle.startswith(HANDLE_PREFIX)
        assert registry.resolve(handle) == b"xxx"
        assert registry.is_active(handle)
        assert registry.created == 1
        assert registry.outstanding == 1

    def test_handles_are_unique(self):
        registry = PreviewRegistry()
        file = _file()
        assert registry.create(file) != registry.create(file)

    def test_release_once(self):
        registry = PreviewRegistry()
        handle = registry.create(_file())
        assert registry.release(handle) is True
        assert registry.release(handle) is False
        assert registry.released == 1
        with pytest.raises(KeyError):
            registry.resolve(handle)

    def test_release_unknown_handle(self):
        registry = PreviewRegistry()
        assert registry.release("blob:imgopt/nope") is False
        assert registry.released == 0

    def test_release_all_balances_counts(self):
        registry = PreviewRegistry()
        handles = [registry.create(_file()) for _ in range(4)]
        registry.release(handles[0])
        assert registry.release_all() == 3
        assert registry.created == registry.released == 4
        assert registry.outstanding == 0
        assert registry.release_all() == 0


class TestValidation:
    def test_accepts_valid_file(self):
        validate_file(_file(), UploadConfig())

    def test_rejects_empty_file(self):
        with pytest.raises(ValidationError) as exc:
            validate_file(_file(size=0), UploadConfig())
        assert exc.value.code == "NO_FILE"

    def test_rejects_unsupported_type(self):
        with pytest.raises(ValidationError) as exc:
            validate_file(_file("a.tiff", content_type="image/tiff"), UploadConfig())
        assert exc.value.code == "INVALID_TYPE"
        assert "image/png" in exc.value.details["supportedTypes"]

    def test_rejects_oversized_file(self):
        config = UploadConfig(max_file_size=100)
        with pytest.raises(ValidationError) as exc:
            validate_file(_file(size=101), config)
        assert exc.value.code == "FILE_TOO_LARGE"
        assert exc.value.details == {"maxSize": 100, "actualSize": 101}

    def test_relaxed_mode_allows_larger_files(self):
        big = _file(size=6 * MB)
        with pytest.raises(ValidationError):
            validate_file(big, UploadConfig())
        validate_file(big, UploadConfig(relaxed=True))

    def test_batch_over_limit_rejected(self):
        files = [_file(f"{i}.jpg") for i in range(6)]
        with pytest.raises(ValidationError) as exc:
            validate_batch(files, UploadConfig())
        assert exc.value.code == "TOO_MANY_FILES"

    def test_batch_over_limit_truncated(self):
        files = [_file(f"{i}.jpg") for i in range(6)]
        accepted, dropped = validate_batch(files, UploadConfig(batch_policy=BatchPolicy.TRUNCATE))
        assert [f.filename for f in accepted] == ["0.jpg", "1.jpg", "2.jpg", "3.jpg", "4.jpg"]
        assert [f.filename for f in dropped] == ["5.jpg"]

    def test_one_bad_file_rejects_batch(self):
        files = [_file("ok.jpg"), _file("bad.bmp", content_type="image/bmp")]
        with pytest.raises(ValidationError):
            validate_batch(files, UploadConfig())

    def test_empty_batch(self):
        with pytest.raises(ValidationError):
            validate_batch([], UploadConfig())


class TestUploadStats:
    def test_counts(self):
        stats = UploadStats()
        stats.record_success(1000, 400)
        stats.record_failure("FILE_TOO_LARGE", 9000)
        stats.record_failure()
        snap = stats.snapshot()
        assert snap["totalUploads"] == 3
        assert snap["successfulUploads"] == 1
        assert snap["failedUploads"] == 2
        assert snap["bytesOut"] == 400
        assert snap["bytesSaved"] == 600
        assert snap["failuresByCode"] == {"FILE_TOO_LARGE": 1, "PROCESSING_FAILED": 1}

    def test_reset(self):
        stats = UploadStats()
        stats.record_success(10, 5)
        stats.reset()
        assert stats.snapshot()["totalUploads"] == 0

    def test_snapshot_is_a_copy(self):
        stats = UploadStats()
        stats.record_failure("NO_FILE")
        snap = stats.snapshot()
        snap["failuresByCode"]["NO_FILE"] = 99
        assert stats.snapshot()["failuresByCode"]["NO_FILE"] == 1

    def test_concurrent_increments(self):
        stats = UploadStats()

        def worker():
            for _ in range(1000):
                stats.record_success(2, 1)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        snap = stats.snapshot()
        assert snap["successfulUploads"] == 8000
        assert snap["bytesIn"] == 16000

    def test_global_accessor(self):
        stats = init_upload_stats()
        stats.record_success(1, 1)
        assert get_upload_stats() is stats
        assert init_upload_stats() is stats
        assert stats.snapshot()["totalUploads"] == 0
