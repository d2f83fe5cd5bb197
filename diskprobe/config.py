from __future__ import annotations
import os
from dataclasses import dataclass, field, replace
from typing import Mapping, Optional

from .descent import DEFAULT_MAX_DEPTH, DEFAULT_TIMEOUT
from .drives import default_root

ENV_ROOT = "DISKPROBE_ROOT"
ENV_TIMEOUT = "DISKPROBE_TIMEOUT"
ENV_MAX_DEPTH = "DISKPROBE_MAX_DEPTH"

DEFAULT_TOP_N = 5


class ConfigError(ValueError):
    pass


@dataclass
class Settings:
    root: str = field(default_factory=default_root)
    per_folder_timeout: float = DEFAULT_TIMEOUT
    max_depth: int = DEFAULT_MAX_DEPTH
    top_n: int = DEFAULT_TOP_N
    follow_symlinks: bool = False
    json_path: Optional[str] = None
    color: str = "auto"
    verbose: bool = False

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        s = cls()
        if env.get(ENV_ROOT):
            s.root = env[ENV_ROOT]
        if env.get(ENV_TIMEOUT):
            s.per_folder_timeout = _parse(env[ENV_TIMEOUT], float, ENV_TIMEOUT)
        if env.get(ENV_MAX_DEPTH):
            s.max_depth = _parse(env[ENV_MAX_DEPTH], int, ENV_MAX_DEPTH)
        return s

    def override(self, **values) -> "Settings":
        # None means "not given on the command line"
        return replace(self, **{k: v for k, v in values.items() if v is not None})

    def validate(self) -> "Settings":
        if not self.per_folder_timeout > 0:
            raise ConfigError(f"timeout must be positive, got {self.per_folder_timeout}")
        if self.max_depth < 1:
            raise ConfigError(f"max depth must be at least 1, got {self.max_depth}")
        if self.top_n < 0:
            raise ConfigError(f"top must not be negative, got {self.top_n}")
        if self.color not in ("auto", "always", "never"):
            raise ConfigError(f"unknown color mode {self.color!r}")
        if not self.root:
            raise ConfigError("root must not be empty")
        return self


def _parse(raw: str, conv, name: str):
    try:
        return conv(raw.strip())
    except ValueError:
        raise ConfigError(f"{name}: cannot parse {raw!r}") from None
