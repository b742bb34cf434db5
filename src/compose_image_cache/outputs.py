"""
GitHub Actions outputs and job summary.

``cache-hit`` and ``image-list`` are appended to the file named by
GITHUB_OUTPUT; a markdown report is appended to GITHUB_STEP_SUMMARY. Both are
skipped silently when the variables are not set (local runs).
"""
from __future__ import annotations

import json
import logging
import os
import uuid
from typing import Dict, List, Optional

from .models import ImageReport, RunReport

__all__ = [
    "action_outputs",
    "write_github_outputs",
    "render_step_summary",
    "write_step_summary",
    "format_file_size",
    "format_duration",
]

logger = logging.getLogger(__name__)

_SIZE_UNITS = ("Bytes", "KB", "MB", "GB", "TB", "PB")


def format_file_size(size: Optional[int]) -> str:
    """
    Human-readable size with binary multiples.

    Examples:
        >>> format_file_size(0)
        '0 Bytes'
        >>> format_file_size(1536)
        '1.5 KB'
    """
    if size is None:
        return "N/A"
    if size <= 0:
        return "0 Bytes"
    index = 0
    value = float(size)
    while value >= 1024 and index < len(_SIZE_UNITS) - 1:
        value /= 1024
        index += 1
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {_SIZE_UNITS[index]}"


def format_duration(seconds: float) -> str:
    """Compact duration such as ``1m 5.2s`` or ``850ms``."""
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    minutes, secs = divmod(seconds, 60)
    if minutes >= 1:
        return f"{int(minutes)}m {secs:.1f}s"
    return f"{secs:.1f}s"


def action_outputs(report: RunReport) -> Dict[str, str]:
    """Output name -> value, as the action publishes them."""
    images = [img.model_dump(by_alias=True, mode="json", exclude_none=True) for img in report.images]
    return {
        "cache-hit": "true" if report.result.all_from_cache else "false",
        "image-list": json.dumps(images, separators=(",", ":")),
    }


def write_github_outputs(report: RunReport, path: Optional[str] = None) -> bool:
    """
    Append outputs to the GITHUB_OUTPUT file.

    Returns:
        True if outputs were written, False when no output file is configured
    """
    path = path or os.getenv("GITHUB_OUTPUT")
    if not path:
        return False

    with open(path, "a", encoding="utf-8") as f:
        for name, value in action_outputs(report).items():
            if "\n" in value:
                delimiter = f"ghadelimiter_{uuid.uuid4()}"
                f.write(f"{name}<<{delimiter}\n{value}\n{delimiter}\n")
            else:
                f.write(f"{name}={value}\n")
    logger.debug(f"Wrote action outputs to {path}")
    return True


def _row(img: ImageReport) -> str:
    digest = img.digest[:19] + "…" if len(img.digest) > 20 else img.digest
    cells = [
        f"`{img.name}`",
        img.platform,
        img.status.value,
        format_file_size(img.size) if img.size else "N/A",
        f"{img.processing_time_ms / 1000:.1f}s",
        f"`{digest}`" if digest else "",
    ]
    return "| " + " | ".join(cells) + " |"


def render_step_summary(report: RunReport) -> str:
    """Render the markdown job summary for a run."""
    result = report.result
    lines: List[str] = ["## Docker Compose Image Cache", ""]

    if result.total_count == 0:
        lines.append("No images to process.")
        return "\n".join(lines) + "\n"

    lines += [
        f"- **Cache hit:** {'yes' if result.all_from_cache else 'no'}",
        f"- **Restored from cache:** {result.cache_hit_count} / {result.total_count}",
        f"- **All successful:** {'yes' if result.all_successful else 'no'}",
        f"- **Skip latest check:** {'yes' if report.skip_latest_check else 'no'}",
        f"- **Execution time:** {format_duration(report.duration_s)}",
        "",
        "| Image | Platform | Status | Size | Time | Digest |",
        "|---|---|---|---|---|---|",
    ]
    lines += [_row(img) for img in report.images]

    errors = [img for img in report.images if img.error]
    if errors:
        lines += ["", "### Errors", ""]
        lines += [f"- `{img.name}`: {img.error}" for img in errors]

    if report.compose_files:
        lines += ["", "<details><summary>Compose files</summary>", ""]
        lines += [f"- `{path}`" for path in report.compose_files]
        lines += ["", "</details>"]

    return "\n".join(lines) + "\n"


def write_step_summary(report: RunReport, path: Optional[str] = None) -> bool:
    """Append the markdown summary to GITHUB_STEP_SUMMARY. False when not configured."""
    path = path or os.getenv("GITHUB_STEP_SUMMARY")
    if not path:
        return False
    with open(path, "a", encoding="utf-8") as f:
        f.write(render_step_summary(report))
    return True
