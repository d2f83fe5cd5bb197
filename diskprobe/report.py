from __future__ import annotations
import json
import logging
import time
from dataclasses import asdict
from typing import List, Optional

from .models import DescentResult, Drive, Level, Status
from .utils import format_bytes, format_measured

log = logging.getLogger(__name__)


def level_lines(level: Level, top_n: int) -> List[str]:
    lines = [f"Level {level.depth}: {len(level.results)} folder(s) under {level.parent}"]
    for m in level.results[:top_n]:
        mark = "*" if level.selected is not None and m.path == level.selected.path else " "
        lines.append(f" {mark} {format_measured(m):>12}  {m.status.value:<9}  {m.path}")
    hidden = len(level.results) - top_n
    if top_n and hidden > 0:
        lines.append(f"   ... {hidden} more")
    return lines


class LevelLogger:
    """on_level callback for GreedyDescent: logs the top of every level."""

    def __init__(self, top_n: int):
        self.top_n = top_n

    def __call__(self, level: Level):
        if self.top_n <= 0:
            return
        for line in level_lines(level, self.top_n):
            log.info(line)
        bad = [m for m in level.results if not m.measured]
        timeouts = sum(1 for m in bad if m.status is Status.TIMEOUT)
        if bad:
            log.warning("level %d: %d of %d folder(s) not measured (%d timeout)",
                        level.depth, len(bad), len(level.results), timeouts)


def summary_lines(result: DescentResult, drive: Optional[Drive] = None) -> List[str]:
    final = result.final
    lines = [
        f"Biggest folder: {final.path}",
        f"Size:           {format_measured(final)}"
        + ("" if final.measured else f" ({final.status.value})"),
        f"Depth reached:  {result.depth_reached} ({result.stop_reason})",
        f"Elapsed:        {result.elapsed_sec:.1f}s",
    ]
    if drive is not None:
        line = (f"Drive:          {drive.mountpoint} ({drive.fstype}) "
                f"{format_bytes(drive.used)} used of {format_bytes(drive.total)}")
        if final.measured and final.bytes:
            line += f", folder holds {drive.share_of_used(final.bytes):.1f}% of it"
        lines.append(line)
    return lines


def warn_if_degraded(result: DescentResult, timeout: float):
    if result.degraded:
        log.warning("some sizes are estimates or unknown; rerun with a larger --timeout "
                    "(currently %.1fs) for a better answer", timeout)


def to_dict(result: DescentResult, drive: Optional[Drive] = None) -> dict:
    data = asdict(result)
    data["drive"] = asdict(drive) if drive is not None else None
    data["created"] = time.time()
    data["final"]["size_human"] = format_bytes(result.final.bytes) if result.final.measured else None
    return data


def export_json(result: DescentResult, path: str, drive: Optional[Drive] = None):
    with open(path, "w", encoding="utf-8") as f:
        json.dump(to_dict(result, drive), f, ensure_ascii=False, indent=2)
    log.info("report saved to %s", path)
