"""
Human-readable output formatting.

Centralizes all CLI output formatting so commands stay thin. Tables go to
stdout through a Rich console; logs go to stderr through the logging setup.
"""
from __future__ import annotations

import json
from typing import List

from rich.console import Console
from rich.table import Table

from ..models import ImageStatus, ImageTarget, RunReport
from ..outputs import action_outputs, format_duration, format_file_size
from ..platform import OciPlatform
from .facade import KeyInfo

_console = Console()

_STATUS_STYLE = {
    ImageStatus.CACHED: "green",
    ImageStatus.PULLED: "yellow",
    ImageStatus.ERROR: "red",
}


def print_run_summary(report: RunReport, verbose: bool = False) -> None:
    """
    Print the per-image table and overall result of a run.

    Args:
        report: Finished run
        verbose: Also show cache keys and warnings
    """
    result = report.result
    if result.total_count == 0:
        _console.print("[dim]No images to process[/]")
        return

    table = Table(title="Images")
    table.add_column("Image", style="cyan")
    table.add_column("Platform")
    table.add_column("Status")
    table.add_column("Size", justify="right")
    table.add_column("Time", justify="right")
    if verbose:
        table.add_column("Cache key", style="dim")

    for img in report.images:
        style = _STATUS_STYLE[img.status]
        row = [
            img.name,
            img.platform,
            f"[{style}]{img.status.value}[/]",
            format_file_size(img.size) if img.size else "N/A",
            format_duration(img.processing_time_ms / 1000),
        ]
        if verbose:
            row.append(img.cache_key)
        table.add_row(*row)

    _console.print(table)

    hit = "[green]yes[/]" if result.all_from_cache else "[yellow]no[/]"
    _console.print(f"[bold]Cache hit:[/] {hit}  "
                   f"[bold]Restored:[/] {result.cache_hit_count}/{result.total_count}  "
                   f"[bold]Time:[/] {format_duration(report.duration_s)}")

    for record in report.records:
        if record.error:
            _console.print(f"[red]✗[/] {record.target}: {record.error}")
        if verbose:
            for warning in record.warnings:
                if warning != record.error:
                    _console.print(f"[yellow]![/] {record.target}: {warning}")


def print_run_json(report: RunReport) -> None:
    """Print the action outputs as a JSON document."""
    outputs = action_outputs(report)
    payload = {
        "cacheHit": outputs["cache-hit"] == "true",
        "images": json.loads(outputs["image-list"]),
    }
    _console.print_json(json.dumps(payload))


def print_targets(targets: List[ImageTarget]) -> None:
    if not targets:
        _console.print("[dim]No images found[/]")
        return
    table = Table(title=f"Images ({len(targets)})")
    table.add_column("Image", style="cyan")
    table.add_column("Platform")
    for t in targets:
        table.add_row(t.name, t.platform or "default")
    _console.print(table)


def print_keys(keys: List[KeyInfo], verbose: bool = False) -> None:
    """
    Print cache keys, one per line, so the output is easy to script against.

    With verbose, a table with digests and archive paths is printed instead.
    """
    if not verbose:
        for info in keys:
            _console.print(info.key, soft_wrap=True, highlight=False)
        return

    table = Table(title="Cache keys")
    table.add_column("Image", style="cyan")
    table.add_column("Digest", style="dim")
    table.add_column("Key")
    table.add_column("Archive", style="dim")
    for info in keys:
        table.add_row(str(info.target), info.digest, info.key, info.path)
    _console.print(table)


def print_platform(platform: OciPlatform, host_os: str) -> None:
    _console.print(f"[bold]Platform:[/] {platform}")
    _console.print(f"[bold]Descriptor:[/] {platform.descriptor}")
    _console.print(f"[bold]Runner OS:[/] {host_os}")
