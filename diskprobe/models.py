from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class Status(str, Enum):
    OK = "OK"
    ERROR = "ERROR"
    TIMEOUT = "TIMEOUT"
    NO_RESULT = "NO_RESULT"
    ROOT = "ROOT"


@dataclass(frozen=True)
class Measurement:
    path: str
    bytes: int = 0
    status: Status = Status.NO_RESULT

    def __post_init__(self):
        # only OK carries a measured value, everything else is "unknown" -> 0
        if self.status is not Status.OK and self.bytes != 0:
            object.__setattr__(self, "bytes", 0)
        if self.bytes < 0:
            raise ValueError(f"negative size for {self.path!r}: {self.bytes}")

    @property
    def measured(self) -> bool:
        return self.status is Status.OK

    @classmethod
    def root(cls, path: str) -> "Measurement":
        return cls(path=path, bytes=0, status=Status.ROOT)


@dataclass
class Level:
    depth: int
    parent: str
    paths: List[str]
    results: List[Measurement] = field(default_factory=list)  # sorted, biggest first
    selected: Optional[Measurement] = None

    @property
    def degraded(self) -> bool:
        return any(not m.measured for m in self.results)


@dataclass
class DescentResult:
    root: str
    final: Measurement
    levels: List[Level]
    stop_reason: str  # "depth limit" | "leaf reached"
    elapsed_sec: float = 0.0

    @property
    def depth_reached(self) -> int:
        return len(self.levels)

    @property
    def degraded(self) -> bool:
        return any(lv.degraded for lv in self.levels)


@dataclass
class Drive:
    mountpoint: str
    fstype: str
    total: int
    used: int
    free: int
    percent: float

    def share_of_used(self, size: int) -> float:
        return 100.0 * size / self.used if self.used > 0 else 0.0
