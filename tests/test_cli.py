"""Tests for the imgopt CLI."""
import base64
import logging

import pytest

from imgopt import cli
from imgopt.cli import CLIError, _build_parser, _read_files, _setup_logging, run_cli
from imgopt.cli_progress import BatchProgressDisplay, describe_result
from imgopt.errors import TransferError
from imgopt.models import ImageFile, ProcessedImage, TrackedUpload, UploadStatus
from imgopt.orchestrator import UploadOrchestrator
from imgopt.store import UploadStore


class FakeGateway:
    def __init__(self, fail=()):
        self.fail = set(fail)

    async def process(self, file):
        if file.filename in self.fail:
            raise TransferError("File too large", status_code=400, code="FILE_TOO_LARGE")
        return ProcessedImage(
            original_name=file.filename,
            size=3,
            type=file.content_type,
            processed_image="data:image/jpeg;base64," + base64.b64encode(b"jpg").decode(),
        )

    async def fetch(self, result):
        return b"jpg"


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for key in ("IMGOPT_GATEWAY_URL", "IMGOPT_BATCH_POLICY", "IMGOPT_MAX_BATCH_SIZE", "IMGOPT_CONCURRENCY"):
        monkeypatch.delenv(key, raising=False)
    yield tmp_path
    logging.disable(logging.NOTSET)


def _use_fake_gateway(monkeypatch, gateway):
    monkeypatch.setattr(
        cli,
        "UploadOrchestrator",
        lambda config: UploadOrchestrator(gateway=gateway, config=config),
    )


def test_parser_upload_options():
    args = _build_parser().parse_args(
        ["upload", "a.jpg", "b.png", "-g", "http://gw", "-o", "out", "--truncate", "-j", "2"]
    )
    assert args.command == "upload"
    assert [str(f) for f in args.files] == ["a.jpg", "b.png"]
    assert args.gateway == "http://gw"
    assert args.truncate is True
    assert args.concurrency == 2
    assert args.relaxed is None


def test_parser_serve_defaults():
    args = _build_parser().parse_args(["serve"])
    assert args.host == "127.0.0.1"
    assert args.port == 8000


def test_no_command_prints_help(capsys):
    assert run_cli([]) == 0
    assert "usage" in capsys.readouterr().out


def test_setup_logging_defaults_to_silent():
    mode = _setup_logging(debug=False, silent=False, log_level=None)
    assert mode == "silent"
    assert logging.getLogger().isEnabledFor(logging.CRITICAL) is False
    logging.disable(logging.NOTSET)


def test_setup_logging_debug_mode():
    mode = _setup_logging(debug=True, silent=False, log_level=None)
    assert mode == "DEBUG"
    assert logging.getLogger().isEnabledFor(logging.DEBUG) is True
    logging.disable(logging.NOTSET)


def test_read_files_missing(tmp_path):
    with pytest.raises(CLIError, match="not a file"):
        _read_files([tmp_path / "missing.jpg"])


def test_upload_saves_optimized_files(isolated, monkeypatch):
    (isolated / "beach.png").write_bytes(b"\x89PNG data")
    (isolated / "city.jpg").write_bytes(b"\xff\xd8 data")
    _use_fake_gateway(monkeypatch, FakeGateway())

    code = run_cli(
        ["upload", str(isolated / "beach.png"), str(isolated / "city.jpg"), "-o", str(isolated / "out"), "--silent"]
    )

    assert code == 0
    assert (isolated / "out" / "compressed-beach.jpg").read_bytes() == b"jpg"
    assert (isolated / "out" / "compressed-city.jpg").read_bytes() == b"jpg"


def test_upload_reports_unwritable_output_dir(isolated, monkeypatch, capsys):
    (isolated / "city.jpg").write_bytes(b"\xff\xd8 data")
    (isolated / "out").write_text("a file, not a directory")
    _use_fake_gateway(monkeypatch, FakeGateway())

    code = run_cli(["upload", str(isolated / "city.jpg"), "-o", str(isolated / "out"), "--silent"])

    assert code == 1
    assert "could not save" in capsys.readouterr().err


def test_upload_with_failed_item_exits_1(isolated, monkeypatch):
    (isolated / "big.jpg").write_bytes(b"\xff\xd8 data")
    _use_fake_gateway(monkeypatch, FakeGateway(fail={"big.jpg"}))

    assert run_cli(["upload", str(isolated / "big.jpg"), "--silent"]) == 1


def test_upload_rejected_batch(isolated, monkeypatch, capsys):
    paths = []
    for i in range(6):
        path = isolated / f"{i}.jpg"
        path.write_bytes(b"\xff\xd8")
        paths.append(str(path))
    _use_fake_gateway(monkeypatch, FakeGateway())

    assert run_cli(["upload", *paths, "--silent"]) == 1
    assert "Too many files" in capsys.readouterr().err


def test_upload_truncated_batch(isolated, monkeypatch):
    paths = []
    for i in range(6):
        path = isolated / f"{i}.jpg"
        path.write_bytes(b"\xff\xd8")
        paths.append(str(path))
    _use_fake_gateway(monkeypatch, FakeGateway())

    assert run_cli(["upload", *paths, "--truncate", "--silent"]) == 0


def test_missing_env_file(isolated, capsys):
    assert run_cli(["upload", "a.jpg", "--env-file", str(isolated / "nope.env")]) == 1
    assert "env file not found" in capsys.readouterr().err


def test_describe_result():
    source = ImageFile("a.jpg", "image/jpeg", b"x" * 2048)
    done = TrackedUpload(
        id="1",
        source=source,
        preview_handle="blob:imgopt/1",
        status=UploadStatus.COMPLETE,
        result=ProcessedImage(
            original_name="a.jpg", size=1024, type="image/jpeg",
            optimized_url="https://cdn.test/a.jpg", compression_ratio=2.0,
        ),
    )
    failed = TrackedUpload(
        id="2", source=source, preview_handle="blob:imgopt/2",
        status=UploadStatus.ERROR, error="File too large",
    )
    assert describe_result(done) == "2.00 KB -> 1.00 KB  x2.00  https://cdn.test/a.jpg"
    assert describe_result(failed) == "File too large"


def test_display_renders_store_rows():
    store = UploadStore()
    store.add([TrackedUpload(id="1", source=ImageFile("a.jpg", "image/jpeg", b"x"), preview_handle="blob:imgopt/1")])
    table = BatchProgressDisplay(store).render()
    assert table.row_count == 1
