from __future__ import annotations
import os
import sys
from typing import Iterable, List, Optional

import psutil

from .models import Drive

def _usage(mountpoint: str, fstype: str) -> Optional[Drive]:
    try:
        u = psutil.disk_usage(mountpoint)
    except OSError:
        return None
    return Drive(mountpoint=mountpoint, fstype=fstype, total=int(u.total),
                 used=int(u.used), free=int(u.free), percent=float(u.percent))

def list_drives() -> List[Drive]:
    """Mounted partitions with usage, one entry per mountpoint."""
    by_mount = {}
    for part in psutil.disk_partitions(all=False):
        if not part.mountpoint:
            continue
        mp = os.path.abspath(part.mountpoint)
        if mp not in by_mount:
            drive = _usage(mp, part.fstype)
            if drive is not None:
                by_mount[mp] = drive
    return sorted(by_mount.values(), key=lambda d: d.mountpoint.lower())

def drive_for(path: str, drives: Optional[Iterable[Drive]] = None) -> Optional[Drive]:
    # deepest mountpoint containing path, so /home wins over / for /home/x
    path = os.path.normcase(os.path.abspath(path))
    best = None
    for d in list_drives() if drives is None else drives:
        mp = os.path.normcase(d.mountpoint)
        try:
            inside = os.path.commonpath([path, mp]) == mp
        except ValueError:
            # different Windows drive letters
            continue
        if inside and (best is None or len(mp) > len(os.path.normcase(best.mountpoint))):
            best = d
    return best

def default_root() -> str:
    # system drive on Windows (C:\), filesystem root elsewhere
    if sys.platform.startswith("win"):
        drive = os.environ.get("SystemDrive", "C:")
        return drive.rstrip("\\/") + os.sep
    return os.path.abspath(os.sep)
