"""Command line interface for imgopt."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from rich.logging import RichHandler

from . import __version__
from .cli_progress import BatchProgressDisplay, console, render_configuration_summary
from .config import ConfigError, load_config, load_env_file, resolve_default_env_file
from .errors import UploadError
from .models import BatchPolicy, ImageFile, UploadConfig
from .orchestrator import UploadOrchestrator

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000


class CLIError(RuntimeError):
    """Raised when CLI validation/execution fails."""


def _setup_logging(debug: bool, silent: bool, log_level: Optional[str]) -> str:
    """
    Configure logging.

    Default behavior is silent unless --debug or --log-level is provided.
    Returns a string describing effective mode.
    """
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    logging.disable(logging.NOTSET)

    if silent or (not debug and not log_level):
        logging.disable(logging.CRITICAL)
        root_logger.setLevel(logging.CRITICAL + 1)
        return "silent"

    if debug:
        level = logging.DEBUG
    else:
        level = getattr(logging, log_level.upper(), logging.INFO)

    handler = RichHandler(
        console=console,
        rich_tracebacks=True,
        markup=False,
        show_time=False,
        show_path=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    return logging.getLevelName(level)


def _read_files(paths: Sequence[Path]) -> List[ImageFile]:
    files = []
    for path in paths:
        path = Path(path).expanduser()
        if not path.is_file():
            raise CLIError(f"not a file: {path}")
        try:
            files.append(ImageFile.from_path(path))
        except OSError as exc:
            raise CLIError(f"could not read {path}: {exc}") from exc
    return files


async def _run_upload(paths: Sequence[Path], config: UploadConfig, output_dir: Optional[Path]) -> int:
    files = _read_files(paths)

    async with UploadOrchestrator(config=config) as orchestrator:
        display = BatchProgressDisplay(orchestrator.store)
        orchestrator.on_item_added(display.on_item_added)
        orchestrator.on_item_status(display.on_item_status)
        orchestrator.on_item_removed(display.on_item_removed)
        orchestrator.on_batch_finish(display.on_batch_finish)

        display.start()
        try:
            result = await orchestrator.submit_batch(files)
        except UploadError as exc:
            raise CLIError(str(exc)) from exc
        finally:
            display.stop()

        unsaved = 0
        if output_dir is not None:
            for upload_id in result.completed:
                try:
                    saved = await orchestrator.download(upload_id, output_dir)
                except (UploadError, OSError, ValueError) as exc:
                    print(f"ERROR: could not save {upload_id}: {exc}", file=sys.stderr)
                    unsaved += 1
                    continue
                console.print(f"Saved [bold]{saved}[/bold]")

        return 0 if not (result.failed or unsaved) else 1


def _run_serve(host: str, port: int, log_mode: str) -> int:
    import uvicorn

    from .server import create_app

    uvicorn_level = "critical" if log_mode == "silent" else log_mode.lower()
    uvicorn.run(create_app(), host=host, port=port, log_level=uvicorn_level)
    return 0


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Load environment variables from this .env file",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logs")
    parser.add_argument("--silent", action="store_true", help="Only print errors")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Explicit log level (DEBUG/INFO/WARNING/ERROR)",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="imgopt",
        description="Optimize images through an imgopt gateway.",
    )
    parser.add_argument("--version", action="version", version=f"imgopt {__version__}")
    subparsers = parser.add_subparsers(dest="command")

    upload = subparsers.add_parser("upload", help="Send a batch of images to the gateway")
    upload.add_argument("files", nargs="+", type=Path, help="Image files (one batch)")
    upload.add_argument(
        "-g",
        "--gateway",
        default=None,
        help="Gateway base URL (default from IMGOPT_GATEWAY_URL)",
    )
    upload.add_argument(
        "-o",
        "--output-dir",
        type=Path,
        default=None,
        help="Save optimized images here as compressed-<name>",
    )
    upload.add_argument(
        "--relaxed",
        action="store_true",
        default=None,
        help="Raise the per-file limit to 10 MiB",
    )
    upload.add_argument(
        "--truncate",
        action="store_true",
        help="Keep the first files of an oversized batch instead of rejecting it",
    )
    upload.add_argument(
        "-j",
        "--concurrency",
        type=int,
        default=None,
        help="Gateway calls in flight (default 1)",
    )
    _add_common_arguments(upload)

    serve = subparsers.add_parser("serve", help="Run the reference gateway")
    serve.add_argument("--host", default=DEFAULT_HOST, help=f"Bind address (default {DEFAULT_HOST})")
    serve.add_argument("--port", type=int, default=DEFAULT_PORT, help=f"Port (default {DEFAULT_PORT})")
    _add_common_arguments(serve)

    return parser


def run_cli(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    used_env_file = args.env_file or resolve_default_env_file()
    if used_env_file is not None:
        try:
            load_env_file(Path(used_env_file))
        except ConfigError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 1

    effective_log_mode = _setup_logging(
        debug=args.debug,
        silent=args.silent,
        log_level=args.log_level,
    )

    if args.command == "serve":
        return _run_serve(args.host, args.port, effective_log_mode)

    try:
        config = load_config(
            gateway_url=args.gateway,
            relaxed=args.relaxed,
            concurrency=args.concurrency,
            batch_policy=BatchPolicy.TRUNCATE if args.truncate else None,
        )
    except ConfigError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    render_configuration_summary(
        {
            "Gateway": config.gateway_url,
            "Files": len(args.files),
            "Max Batch": config.max_batch_size,
            "Max File Size": f"{config.file_size_limit // (1024 * 1024)} MiB",
            "Batch Policy": config.batch_policy.value,
            "Concurrency": config.concurrency,
            "Output Dir": str(args.output_dir) if args.output_dir else "-",
            "Env File": str(used_env_file) if used_env_file else "-",
            "Logging": effective_log_mode,
        }
    )

    try:
        return asyncio.run(_run_upload(args.files, config, args.output_dir))
    except CLIError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Cancelled.", file=sys.stderr)
        return 130


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
