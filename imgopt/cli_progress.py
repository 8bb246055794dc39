"""Console rendering and progress helpers for the imgopt CLI."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from .models import TrackedUpload, UploadStatus
from .orchestrator.models import BatchResult
from .store import UploadStore

console = Console()

_STATUS_STYLES = {
    UploadStatus.PENDING: "[dim]pending[/dim]",
    UploadStatus.PROCESSING: "[yellow]processing[/yellow]",
    UploadStatus.COMPLETE: "[green]complete[/green]",
    UploadStatus.ERROR: "[red]error[/red]",
}


def _human_size(value: int) -> str:
    size = float(max(value, 0))
    units = ["B", "KB", "MB", "GB", "TB"]
    unit_idx = 0
    while size >= 1024.0 and unit_idx < len(units) - 1:
        size /= 1024.0
        unit_idx += 1
    if unit_idx == 0:
        return f"{int(size)} {units[unit_idx]}"
    return f"{size:.2f} {units[unit_idx]}"


def render_configuration_summary(config: Dict[str, Any]) -> None:
    """Render startup configuration summary."""
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold cyan", justify="right")
    table.add_column(style="white")

    for key, value in config.items():
        rendered = "-" if value is None else str(value)
        table.add_row(key, rendered)

    panel = Panel(
        table,
        title="[bold green]imgopt[/bold green]",
        subtitle="[dim]image optimizer[/dim]",
        border_style="blue",
    )
    console.print(panel)


def describe_result(upload: TrackedUpload) -> str:
    """One-line summary of an upload's outcome."""
    if upload.status == UploadStatus.ERROR:
        return upload.error or ""
    if upload.status != UploadStatus.COMPLETE or upload.result is None:
        return ""

    result = upload.result
    parts = [f"{_human_size(upload.source.size)} -> {_human_size(result.optimized_size or result.size)}"]
    if result.compression_ratio:
        parts.append(f"x{result.compression_ratio:.2f}")
    if result.dimensions:
        parts.append(f"{result.dimensions.width}x{result.dimensions.height}")
    if result.optimized_url:
        parts.append(result.optimized_url)
    return "  ".join(parts)


class BatchProgressDisplay:
    """
    Live table of tracked uploads.

    Reads the store snapshot on every orchestrator event, so it never holds
    state of its own beyond the Live handle.
    """

    def __init__(self, store: UploadStore, live_console: Optional[Console] = None):
        self._store = store
        self._console = live_console or console
        self._live: Optional[Live] = None
        self._last_snapshot = None

    def render(self) -> Table:
        table = Table(title="Uploads", expand=True)
        table.add_column("File", style="bold cyan", no_wrap=True)
        table.add_column("Size", justify="right")
        table.add_column("Status")
        table.add_column("Result", overflow="fold")
        for upload in self._store:
            table.add_row(
                upload.filename,
                _human_size(upload.source.size),
                _STATUS_STYLES[upload.status],
                describe_result(upload),
            )
        return table

    def start(self) -> None:
        if self._live is None:
            self._live = Live(self.render(), console=self._console, refresh_per_second=8)
            self._live.start()

    def stop(self) -> None:
        if self._live is not None:
            self._live.update(self.render())
            self._live.stop()
            self._live = None

    def refresh(self, *_args) -> None:
        snapshot = self._store.snapshot
        if snapshot is self._last_snapshot:
            return
        self._last_snapshot = snapshot
        if self._live is not None:
            self._live.update(self.render())

    on_item_added = refresh
    on_item_status = refresh
    on_item_removed = refresh

    def on_batch_finish(self, result: BatchResult) -> None:
        self.refresh()
        self.stop()
        summary: List[str] = [f"[green]{len(result.completed)} complete[/green]"]
        if result.failed:
            summary.append(f"[red]{len(result.failed)} failed[/red]")
        if result.skipped:
            summary.append(f"[dim]{len(result.skipped)} removed[/dim]")
        if result.dropped:
            summary.append(f"[yellow]{len(result.dropped)} dropped: {', '.join(result.dropped)}[/yellow]")
        self._console.print(" / ".join(summary))
