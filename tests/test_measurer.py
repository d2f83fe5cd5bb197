"""Tests for the bounded parallel measurer.

Probers must be module-level so they survive pickling under "spawn".
"""

import os
import subprocess
import sys
import time

import psutil
import pytest

from diskprobe.models import Status
from diskprobe.scanner import probe_size


def sleepy_probe(path):
    time.sleep(10)
    return 1


def pid_then_sleep_probe(path):
    with open(os.path.join(path, "pid"), "w") as f:
        f.write(str(os.getpid()))
    time.sleep(30)
    return 1


def grandchild_probe(path):
    child = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(30)"])
    with open(os.path.join(path, "pid"), "w") as f:
        f.write(f"{os.getpid()} {child.pid}")
    time.sleep(30)
    return 1


def by_name_probe(path):
    name = os.path.basename(path)
    if name.startswith("slow"):
        time.sleep(10)
    if name.startswith("late"):
        time.sleep(1.5)
    if name.startswith("boom"):
        raise RuntimeError("disk on fire")
    if name.startswith("none"):
        return None
    if name.startswith("crash"):
        os._exit(3)
    return probe_size(path)


def _gone(pid):
    try:
        return psutil.Process(pid).status() == psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return True


def _read_pids(path):
    deadline = time.monotonic() + 5
    pid_file = os.path.join(path, "pid")
    while time.monotonic() < deadline:
        if os.path.exists(pid_file):
            with open(pid_file) as f:
                text = f.read().split()
            if text:
                return [int(x) for x in text]
        time.sleep(0.05)
    raise AssertionError(f"probe never wrote {pid_file}")


def _dirs(base, *names):
    out = []
    for n in names:
        d = base / n
        d.mkdir()
        out.append(str(d))
    return out


class TestOutcomes:
    def test_ok_measurement(self, tree, make_measurer):
        m = make_measurer(probe_size)
        [res] = m.measure([str(tree / "big")], timeout=10)
        assert res.path == str(tree / "big")
        assert res.status is Status.OK
        assert res.bytes == 4500

    def test_confirmed_empty_is_ok(self, tree, make_measurer):
        [res] = make_measurer(probe_size).measure([str(tree / "empty")], timeout=10)
        assert (res.bytes, res.status) == (0, Status.OK)

    def test_prober_exception_is_error(self, tmp_path, make_measurer):
        paths = _dirs(tmp_path, "boom")
        [res] = make_measurer(by_name_probe).measure(paths, timeout=10)
        assert (res.path, res.bytes, res.status) == (paths[0], 0, Status.ERROR)

    def test_none_result_is_no_result(self, tmp_path, make_measurer):
        paths = _dirs(tmp_path, "none")
        [res] = make_measurer(by_name_probe).measure(paths, timeout=10)
        assert (res.path, res.bytes, res.status) == (paths[0], 0, Status.NO_RESULT)

    def test_crashed_child_is_no_result_with_path(self, tmp_path, make_measurer):
        paths = _dirs(tmp_path, "crash")
        [res] = make_measurer(by_name_probe).measure(paths, timeout=10)
        assert (res.path, res.bytes, res.status) == (paths[0], 0, Status.NO_RESULT)

    def test_fatal_probe_error_is_error(self, tree, make_measurer):
        [res] = make_measurer(probe_size).measure([str(tree / "top.bin")], timeout=10)
        assert (res.bytes, res.status) == (0, Status.ERROR)


class TestCoverage:
    def test_one_measurement_per_path(self, tmp_path, make_measurer):
        names = ["ok1", "slow1", "boom1", "none1", "crash1", "ok2", "slow2"]
        paths = _dirs(tmp_path, *names)
        (tmp_path / "ok2" / "f").write_bytes(b"x" * 42)

        results = make_measurer(by_name_probe).measure(paths, timeout=1)

        assert len(results) == len(paths)
        assert sorted(r.path for r in results) == sorted(paths)
        by_name = {os.path.basename(r.path): r for r in results}
        assert by_name["ok1"].status is Status.OK
        assert by_name["ok2"].bytes == 42
        assert by_name["slow1"].status is Status.TIMEOUT
        assert by_name["slow2"].status is Status.TIMEOUT
        assert by_name["boom1"].status is Status.ERROR
        assert by_name["none1"].status is Status.NO_RESULT
        assert by_name["crash1"].status is Status.NO_RESULT
        for r in results:
            if r.status is not Status.OK:
                assert r.bytes == 0

    def test_empty_input(self, make_measurer):
        assert make_measurer(probe_size).measure([], timeout=1) == []


class TestTimeouts:
    def test_slow_probe_times_out_quickly(self, tmp_path, make_measurer):
        paths = _dirs(tmp_path, "a", "b", "c")
        t0 = time.monotonic()
        results = make_measurer(sleepy_probe).measure(paths, timeout=1)
        elapsed = time.monotonic() - t0

        assert [r.status for r in results] == [Status.TIMEOUT] * 3
        assert all(r.bytes == 0 for r in results)
        # deadlines run side by side, not one after another
        assert elapsed < 3

    def test_result_after_deadline_is_timeout(self, tmp_path, make_measurer, monkeypatch):
        paths = _dirs(tmp_path, "slow", "late", "ok")
        m = make_measurer(by_name_probe)
        real_kill = m._kill

        def sluggish_kill(task):
            # "late" finishes while "slow" is still being killed
            time.sleep(1)
            real_kill(task)

        monkeypatch.setattr(m, "_kill", sluggish_kill)
        results = m.measure(paths, timeout=1)

        statuses = {os.path.basename(r.path): r.status for r in results}
        assert statuses == {"slow": Status.TIMEOUT, "late": Status.TIMEOUT, "ok": Status.OK}

    def test_timed_out_probe_is_killed(self, tmp_path, make_measurer):
        paths = _dirs(tmp_path, "victim")
        [res] = make_measurer(pid_then_sleep_probe).measure(paths, timeout=1)
        assert res.status is Status.TIMEOUT
        [pid] = _read_pids(paths[0])
        assert _gone(pid)

    @pytest.mark.skipif(sys.platform.startswith("win"), reason="posix process tree")
    def test_descendants_of_timed_out_probe_are_killed(self, tmp_path, make_measurer):
        paths = _dirs(tmp_path, "parent")
        [res] = make_measurer(grandchild_probe).measure(paths, timeout=2)
        assert res.status is Status.TIMEOUT
        probe_pid, grandchild_pid = _read_pids(paths[0])
        assert _gone(probe_pid)
        deadline = time.monotonic() + 3
        while not _gone(grandchild_pid) and time.monotonic() < deadline:
            time.sleep(0.05)
        assert _gone(grandchild_pid)


class TestCleanup:
    def test_no_live_probe_after_measure(self, tmp_path, make_measurer):
        paths = _dirs(tmp_path, "x", "y")
        make_measurer(pid_then_sleep_probe).measure(paths, timeout=1)
        for p in paths:
            [pid] = _read_pids(p)
            assert _gone(pid)

    def test_launch_failure_kills_started_probes(self, tmp_path, make_measurer, monkeypatch):
        paths = _dirs(tmp_path, "first", "second")
        m = make_measurer(pid_then_sleep_probe)
        real_launch = m._launch
        calls = []

        def launch(path, timeout):
            calls.append(path)
            if len(calls) == 2:
                raise OSError("Resource temporarily unavailable")
            return real_launch(path, timeout)

        monkeypatch.setattr(m, "_launch", launch)
        with pytest.raises(OSError):
            m.measure(paths, timeout=5)
        # the first probe may have been killed before writing its pid
        pid_file = os.path.join(paths[0], "pid")
        if os.path.exists(pid_file):
            with open(pid_file) as f:
                text = f.read().strip()
            if text:
                assert _gone(int(text))
