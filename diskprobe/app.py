from __future__ import annotations

import argparse
import functools
import logging
import sys
from typing import List, Optional

from .config import ConfigError, Settings
from .descent import GreedyDescent, NoDirectoriesError
from .drives import drive_for, list_drives
from .log import setup_logging
from .measurer import BoundedMeasurer
from .report import LevelLogger, export_json, summary_lines, warn_if_degraded
from .scanner import list_child_directories, probe_size
from .utils import format_bytes

APP_NAME = "DiskProbePy"

EXIT_OK = 0
EXIT_NO_DIRECTORIES = 1
EXIT_INTERRUPTED = 130

log = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="diskprobe",
        description="Estimate which folder eats the most disk space by descending "
                    "into the heaviest subfolder level by level, with a time budget "
                    "per folder.",
    )
    p.add_argument("root", nargs="?", default=None,
                   help="Folder to start from (default: system drive / filesystem root)")
    p.add_argument("-t", "--timeout", type=float, default=None, dest="per_folder_timeout",
                   help="Seconds allowed to measure one folder (default: 8)")
    p.add_argument("-d", "--max-depth", type=int, default=None,
                   help="How many levels to descend; 1 = only the root's children (default: 4)")
    p.add_argument("-n", "--top", type=int, default=None, dest="top_n",
                   help="Folders shown per level, 0 hides the per-level table (default: 5)")
    p.add_argument("-L", "--follow-symlinks", action="store_true", default=None,
                   help="Follow symbolic links while measuring and listing")
    p.add_argument("--json", default=None, dest="json_path", metavar="PATH",
                   help="Also write the whole run as JSON to PATH")
    p.add_argument("--color", choices=["auto", "always", "never"], default=None,
                   help="Colored log output (default: auto)")
    p.add_argument("-v", "--verbose", action="store_true", default=None,
                   help="Debug logging (probe launches, kills, cleanup)")
    p.add_argument("--list-drives", action="store_true",
                   help="Show mounted drives with their usage and exit")
    return p


def load_settings(args: argparse.Namespace) -> Settings:
    s = Settings.from_env().override(
        root=args.root,
        per_folder_timeout=args.per_folder_timeout,
        max_depth=args.max_depth,
        top_n=args.top_n,
        follow_symlinks=args.follow_symlinks,
        json_path=args.json_path,
        color=args.color,
        verbose=args.verbose,
    )
    return s.validate()


def print_drives(out=None):
    out = out or sys.stdout
    drives = list_drives()
    for d in drives:
        print(f"{d.mountpoint:<24} {d.fstype:<8} "
              f"{format_bytes(d.total):>12} {format_bytes(d.used):>12} "
              f"{format_bytes(d.free):>12} {d.percent:>5.0f}%", file=out)
    return drives


def make_descent(settings: Settings) -> GreedyDescent:
    prober = probe_size
    lister = list_child_directories
    if settings.follow_symlinks:
        prober = functools.partial(probe_size, follow_symlinks=True)
        lister = functools.partial(list_child_directories, follow_symlinks=True)
    return GreedyDescent(
        measurer=BoundedMeasurer(prober=prober),
        lister=lister,
        on_level=LevelLogger(settings.top_n),
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        settings = load_settings(args)
    except ConfigError as e:
        parser.error(str(e))

    setup_logging(verbose=settings.verbose, color=settings.color)

    if args.list_drives:
        print_drives()
        return EXIT_OK

    log.info("%s: root=%s timeout=%.1fs max depth=%d", APP_NAME, settings.root,
             settings.per_folder_timeout, settings.max_depth)
    descent = make_descent(settings)
    try:
        result = descent.run(settings.root, settings.per_folder_timeout, settings.max_depth)
    except NoDirectoriesError as e:
        log.critical(str(e))
        return EXIT_NO_DIRECTORIES
    except KeyboardInterrupt:
        log.warning("interrupted, running probes were stopped")
        return EXIT_INTERRUPTED

    drive = drive_for(result.final.path)
    for line in summary_lines(result, drive):
        print(line)
    warn_if_degraded(result, settings.per_folder_timeout)
    if settings.json_path:
        export_json(result, settings.json_path, drive)
    return EXIT_OK


def run():
    sys.exit(main())
