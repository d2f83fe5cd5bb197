from __future__ import annotations
import logging
import multiprocessing
import time
from dataclasses import dataclass
from multiprocessing.connection import Connection, wait
from typing import Callable, List, Optional, Sequence

import psutil

from .models import Measurement, Status
from .scanner import probe_size

log = logging.getLogger(__name__)

# prober(path) -> bytes; must be picklable (module-level function or functools.partial of one)
ProbeFn = Callable[[str], Optional[int]]

DEFAULT_KILL_GRACE = 2.0


def _probe_worker(prober: ProbeFn, path: str, conn: Connection):
    # runs in the child process, sends exactly one (path, kind, payload) message
    try:
        try:
            size = prober(path)
            if size is None:
                msg = (path, "none", None)
            else:
                size = int(size)
                if size < 0:
                    raise ValueError(f"negative size {size}")
                msg = (path, "ok", size)
        except Exception as e:
            msg = (path, "error", f"{type(e).__name__}: {e}")
        conn.send(msg)
    finally:
        conn.close()


@dataclass
class _Task:
    path: str
    process: multiprocessing.process.BaseProcess
    conn: Connection
    deadline: float
    answered: bool = False


class BoundedMeasurer:
    """Measures sibling directories in parallel, one process per directory.

    Every probe gets its own deadline counted from its launch. A probe that
    misses it is killed together with anything it spawned, and a result that
    shows up after the deadline is a timeout too. ``measure`` never returns
    while a probe it started is still running.
    """

    def __init__(self, prober: ProbeFn = probe_size, start_method: Optional[str] = None,
                 kill_grace: float = DEFAULT_KILL_GRACE):
        self.prober = prober
        self.kill_grace = kill_grace
        self._ctx = multiprocessing.get_context(start_method)

    def measure(self, paths: Sequence[str], timeout: float) -> List[Measurement]:
        tasks: List[_Task] = []
        try:
            for p in paths:
                tasks.append(self._launch(p, timeout))
            log.debug("launched %d probes (timeout %.1fs)", len(tasks), timeout)
            return self._collect(tasks, timeout)
        finally:
            self._sweep(tasks)

    def _launch(self, path: str, timeout: float) -> _Task:
        reader, writer = self._ctx.Pipe(duplex=False)
        proc = self._ctx.Process(target=_probe_worker, args=(self.prober, path, writer),
                                 name=f"probe:{path}", daemon=True)
        try:
            proc.start()
        except BaseException:
            reader.close()
            writer.close()
            raise
        deadline = time.monotonic() + timeout
        # parent keeps only the read end so a dead child shows up as EOF
        writer.close()
        log.debug("probe pid=%s -> %s", proc.pid, path)
        return _Task(path=path, process=proc, conn=reader, deadline=deadline)

    def _collect(self, tasks: List[_Task], timeout: float) -> List[Measurement]:
        # results come back in launch order
        results: List[Optional[Measurement]] = [None] * len(tasks)
        pending = {t.conn: i for i, t in enumerate(tasks)}
        while pending:
            next_deadline = min(tasks[i].deadline for i in pending.values())
            ready = wait(list(pending), timeout=max(0.0, next_deadline - time.monotonic()))
            for conn in ready:
                i = pending.pop(conn)
                if time.monotonic() > tasks[i].deadline:
                    results[i] = self._expire(tasks[i], timeout)
                else:
                    results[i] = self._receive(tasks[i])

            for conn, i in list(pending.items()):
                if time.monotonic() >= tasks[i].deadline:
                    del pending[conn]
                    results[i] = self._expire(tasks[i], timeout)
        return results

    def _expire(self, task: _Task, timeout: float) -> Measurement:
        log.warning("timeout after %.1fs: %s", timeout, task.path)
        self._kill(task)
        return Measurement(task.path, 0, Status.TIMEOUT)

    def _receive(self, task: _Task) -> Measurement:
        task.answered = True
        try:
            msg_path, kind, payload = task.conn.recv()
        except (EOFError, OSError):
            # exited (or crashed) without reporting anything
            log.warning("probe exited without result (exitcode=%s): %s",
                        task.process.exitcode, task.path)
            return Measurement(task.path, 0, Status.NO_RESULT)

        if msg_path != task.path or kind == "none":
            log.warning("probe produced no usable result: %s", task.path)
            return Measurement(task.path, 0, Status.NO_RESULT)
        if kind == "error":
            log.warning("probe failed for %s: %s", task.path, payload)
            return Measurement(task.path, 0, Status.ERROR)
        log.debug("probe ok %s: %d bytes", task.path, payload)
        return Measurement(task.path, int(payload), Status.OK)

    def _kill(self, task: _Task):
        proc = task.process
        if proc.is_alive():
            # grab descendants first, once the parent dies they get reparented
            try:
                descendants = psutil.Process(proc.pid).children(recursive=True)
            except psutil.Error:
                descendants = []
            proc.kill()
            for d in descendants:
                try:
                    d.kill()
                except psutil.NoSuchProcess:
                    pass
            if descendants:
                psutil.wait_procs(descendants, timeout=self.kill_grace)
        proc.join(self.kill_grace)

    def _sweep(self, tasks: List[_Task]):
        for t in tasks:
            if t.answered:
                # already reported, give it a moment to exit on its own
                t.process.join(self.kill_grace)
            if t.process.is_alive():
                log.debug("sweep: killing stray probe pid=%s (%s)", t.process.pid, t.path)
                self._kill(t)
            t.conn.close()
            if t.process.is_alive():
                log.error("probe pid=%s survived kill: %s", t.process.pid, t.path)
                continue
            t.process.close()
