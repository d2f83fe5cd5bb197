from __future__ import annotations
import logging
import os
import time
from typing import Callable, List, Optional, Sequence

from .measurer import BoundedMeasurer
from .models import DescentResult, Level, Measurement, Status
from .scanner import list_child_directories

log = logging.getLogger(__name__)

ListFn = Callable[[str], List[str]]
LevelCb = Callable[[Level], None]

DEFAULT_TIMEOUT = 8.0
DEFAULT_MAX_DEPTH = 4

STOP_DEPTH = "depth limit"
STOP_LEAF = "leaf reached"


class NoDirectoriesError(RuntimeError):
    def __init__(self, root: str):
        super().__init__(f"NO_DIRECTORIES: {root} has no subdirectories")
        self.root = root


def rank(measurements: Sequence[Measurement],
         listing: Optional[Sequence[str]] = None) -> List[Measurement]:
    """Biggest first; equal sizes follow ``listing`` order (or input order without one)."""
    if listing is None:
        listing = [m.path for m in measurements]
    order = {p: i for i, p in enumerate(listing)}
    return sorted(measurements, key=lambda m: (-(m.bytes or 0), order.get(m.path, len(order))))


def select_best(measurements: Sequence[Measurement]) -> Optional[Measurement]:
    """Pick the level winner from measurements already in ranked order.

    A confirmed non-empty size wins; otherwise anything that answered in time
    (empty or errored) beats a timeout; a lone timeout is still returned.
    """
    if not measurements:
        return None
    for m in measurements:
        if (m.bytes or 0) > 0:
            return m
    for m in measurements:
        if m.status is not Status.TIMEOUT:
            return m
    return measurements[0]


class GreedyDescent:
    def __init__(self, measurer: Optional[BoundedMeasurer] = None,
                 lister: ListFn = list_child_directories,
                 on_level: Optional[LevelCb] = None):
        self.measurer = measurer or BoundedMeasurer()
        self.lister = lister
        self.on_level = on_level

    def _children(self, path: str) -> List[str]:
        try:
            return list(self.lister(path))
        except OSError as e:
            log.debug("listing %s failed, treating as leaf: %s", path, e)
            return []

    def run(self, root: str, per_folder_timeout: float = DEFAULT_TIMEOUT,
            max_depth: int = DEFAULT_MAX_DEPTH) -> DescentResult:
        t0 = time.time()
        root = os.path.abspath(root)
        siblings = self._children(root)
        if not siblings:
            raise NoDirectoriesError(root)

        candidate = Measurement.root(root)
        levels: List[Level] = []
        depth = 1
        stop_reason = STOP_DEPTH

        while depth <= max_depth:
            level = Level(depth=depth, parent=candidate.path, paths=list(siblings))
            log.debug("level %d: measuring %d directories under %s",
                      depth, len(siblings), candidate.path)
            level.results = rank(self.measurer.measure(siblings, per_folder_timeout), siblings)
            level.selected = select_best(level.results)
            levels.append(level)

            if level.selected is not None and level.selected.path:
                candidate = level.selected
            if self.on_level:
                self.on_level(level)

            siblings = self._children(candidate.path)
            if not siblings:
                stop_reason = STOP_LEAF
                break
            depth += 1

        return DescentResult(root=root, final=candidate, levels=levels,
                             stop_reason=stop_reason, elapsed_sec=time.time() - t0)
