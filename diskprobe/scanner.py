from __future__ import annotations
import os
import stat as statmod
import logging
from typing import List

log = logging.getLogger(__name__)

# unreadable or vanished entries count as zero bytes instead of failing the probe
SKIPPABLE = (PermissionError, FileNotFoundError, NotADirectoryError)


class ProbeError(OSError):
    pass


def probe_size(path: str, follow_symlinks: bool = False) -> int:
    """Total size in bytes of every file below ``path``.

    Permission errors and entries that disappear mid-walk contribute nothing.
    Any other OSError aborts the whole probe with ProbeError; the partial sum
    is thrown away.
    """
    try:
        st = os.stat(path, follow_symlinks=True)
    except SKIPPABLE:
        return 0
    except OSError as e:
        raise ProbeError(e.errno, f"cannot stat {path}: {e.strerror}") from e
    if not statmod.S_ISDIR(st.st_mode):
        raise ProbeError(f"not a directory: {path}")

    total = 0
    pending: List[str] = [path]
    while pending:
        dir_path = pending.pop()
        try:
            with os.scandir(dir_path) as it:
                for entry in it:
                    try:
                        if entry.is_symlink() and not follow_symlinks:
                            continue
                        st = entry.stat(follow_symlinks=follow_symlinks)
                    except SKIPPABLE:
                        continue
                    except OSError as e:
                        raise ProbeError(e.errno, f"{entry.path}: {e.strerror}") from e

                    if statmod.S_ISDIR(st.st_mode):
                        pending.append(entry.path)
                    else:
                        total += int(getattr(st, "st_size", 0) or 0)
        except SKIPPABLE:
            continue
        except ProbeError:
            raise
        except OSError as e:
            raise ProbeError(e.errno, f"{dir_path}: {e.strerror}") from e
    return total


def list_child_directories(path: str, follow_symlinks: bool = False) -> List[str]:
    """Absolute paths of the immediate subdirectories of ``path``, in listing order.

    Never raises: an unreadable or missing directory has no children.
    """
    out: List[str] = []
    base = os.path.abspath(path)
    try:
        with os.scandir(base) as it:
            for entry in it:
                try:
                    if entry.is_symlink() and not follow_symlinks:
                        continue
                    if entry.is_dir(follow_symlinks=follow_symlinks):
                        out.append(os.path.join(base, entry.name))
                except OSError:
                    continue
    except OSError as e:
        log.debug("cannot list %s: %s", base, e)
        return []
    out.sort(key=lambda p: os.path.basename(p).lower())
    return out
