import multiprocessing

import pytest

from diskprobe.measurer import BoundedMeasurer


@pytest.fixture
def start_method():
    methods = multiprocessing.get_all_start_methods()
    return "fork" if "fork" in methods else "spawn"


@pytest.fixture
def make_measurer(start_method):
    def factory(prober, **kwargs):
        return BoundedMeasurer(prober=prober, start_method=start_method, **kwargs)
    return factory


@pytest.fixture
def tree(tmp_path):
    """root/{big/{inner/{deep}}, small, empty} with files of known size."""
    root = tmp_path / "root"
    (root / "big" / "inner" / "deep").mkdir(parents=True)
    (root / "small").mkdir()
    (root / "empty").mkdir()
    (root / "big" / "a.bin").write_bytes(b"x" * 1000)
    (root / "big" / "inner" / "b.bin").write_bytes(b"x" * 3000)
    (root / "big" / "inner" / "deep" / "c.bin").write_bytes(b"x" * 500)
    (root / "small" / "d.bin").write_bytes(b"x" * 10)
    (root / "top.bin").write_bytes(b"x" * 99999)
    return root
