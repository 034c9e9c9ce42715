"""System information passthroughs: block devices, mounts, usage check, disk I/O."""

from __future__ import annotations

import argparse
import logging
import shutil
from pathlib import Path
from typing import List

from .commands import format_table, run_command, usage_bar
from .config import get_settings

logger = logging.getLogger(__name__)


def _command_output(command: List[str]) -> str:
    if shutil.which(command[0]) is None:
        return f"({command[0]} not available)"
    result = run_command(command, check=False, capture_output=True)
    return result.stdout.strip() or result.stderr.strip() or "(no output)"


def parse_mount_table(text: str) -> List[List[str]]:
    """Split ``mount`` lines (``DEV on DIR type FS (OPTS)``) into table rows."""
    rows: List[List[str]] = []
    for line in text.splitlines():
        head, sep, rest = line.partition(" on ")
        if not sep:
            continue
        mountpoint, sep, tail = rest.rpartition(" type ")
        if not sep:
            continue
        fstype, _, options = tail.partition(" ")
        rows.append([head, mountpoint, fstype, options.strip("()")])
    return rows


def disk_info(_: argparse.Namespace) -> None:
    sections = ["--- Disk Information ---", _command_output(["lsblk", "-p", "-o", "NAME,SIZE,TYPE,MOUNTPOINT"]), ""]

    partitions = "(fdisk not available)"
    if shutil.which("fdisk"):
        result = run_command(["fdisk", "-l"], check=False, capture_output=True)
        lines = [line for line in result.stdout.splitlines() if line.startswith("/dev/")]
        partitions = "\n".join(lines) or "(no partitions reported; fdisk -l usually needs root)"
    sections.extend(["--- Partition Information ---", partitions, ""])

    mounts = "(mount not available)"
    if shutil.which("mount"):
        result = run_command(["mount"], check=False, capture_output=True)
        rows = parse_mount_table(result.stdout)
        mounts = format_table(["Device", "Mount point", "Type", "Options"], rows) if rows else "(no mounts reported)"
    sections.extend(["--- Mount Points ---", mounts])
    print("\n".join(sections))


def check_disk_usage(args: argparse.Namespace) -> None:
    target = Path(getattr(args, "path", None) or "/").expanduser()
    if not target.exists():
        raise FileNotFoundError(f"{target} does not exist.")
    threshold = args.threshold if args.threshold is not None else get_settings().disk_alert_threshold
    usage = shutil.disk_usage(target)
    used_pct = (usage.used / usage.total) * 100 if usage.total else 0.0
    if used_pct > threshold:
        logger.warning("Disk space on %s is above %.0f%% (%.1f%%)", target, threshold, used_pct)
        print(f"Disk space on {target} is above {threshold:.0f}% ({used_pct:.1f}%).")
        status = "ALERT"
    else:
        print(f"Disk space on {target} is OK ({used_pct:.1f}%).")
        status = "OK"
    print()
    rows = [
        ["Total space", f"{usage.total / 1024 ** 3:.2f} GB"],
        ["Used space", f"{usage.used / 1024 ** 3:.2f} GB"],
        ["Free space", f"{usage.free / 1024 ** 3:.2f} GB"],
        ["Usage", f"{used_pct:.2f}% {usage_bar(used_pct)}"],
        ["Threshold", f"{threshold:.0f}%"],
        ["Status", status],
    ]
    print(format_table(["Metric", "Details"], rows))


def disk_performance(_: argparse.Namespace) -> None:
    print("--- Disk I/O Performance ---")
    if shutil.which("iostat"):
        result = run_command(["iostat", "-dx", "1", "2"], capture_output=True, check=False)
    elif shutil.which("vmstat"):
        result = run_command(["vmstat", "-d"], capture_output=True, check=False)
    else:
        raise RuntimeError("Neither iostat nor vmstat is installed (try the sysstat package).")
    print(result.stdout.strip() or result.stderr.strip() or "(no output)")
