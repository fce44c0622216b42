from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import List, Sequence

from ..errors import StageError
from .command import run_cmd

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BlockEntry:
    name: str
    path: str
    mountpoint: str


def part_path(disk: str, n: int) -> str:
    # nvme/mmcblk/loop devices use p suffix
    if disk.endswith(tuple("0123456789")):
        return f"{disk}p{n}"
    return f"{disk}{n}"


def get_uuid(dev: str, *, dry_run: bool = False) -> str:
    """Return filesystem UUID for a block device."""

    r = run_cmd(["blkid", "-s", "UUID", "-o", "value", dev], dry_run=dry_run)
    uuid = (r.stdout or "").strip()
    if not uuid and not dry_run:
        raise StageError(f"Unable to determine UUID for {dev}")
    return uuid or "DRY-RUN-UUID"


def list_tree(device: str) -> List[BlockEntry]:
    """Return the device and its partitions with their mountpoints (lsblk)."""

    r = run_cmd(["lsblk", "-lnp", "-o", "NAME,MOUNTPOINT", device])
    entries: List[BlockEntry] = []
    for line in (r.stdout or "").splitlines():
        parts = line.split(None, 1)
        if not parts:
            continue
        path = parts[0]
        mp = parts[1].strip() if len(parts) > 1 else ""
        entries.append(BlockEntry(name=os.path.basename(path), path=path, mountpoint=mp))
    return entries


def holders(device: str) -> List[str]:
    """Kernel holders (dm, md, ...) of ``device`` from sysfs."""

    name = os.path.basename(os.path.realpath(device))
    holders_dir = os.path.join("/sys/class/block", name, "holders")
    try:
        return sorted(os.listdir(holders_dir))
    except FileNotFoundError:
        return []


def parent_disk(dev: str) -> str:
    """Parent disk name (lsblk PKNAME) of a partition, or '' for whole disks."""

    r = run_cmd(["lsblk", "-no", "PKNAME", dev], check=False)
    return (r.stdout or "").strip().splitlines()[0] if (r.stdout or "").strip() else ""


def mount_source(mountpoint: str) -> str:
    r = run_cmd(["findmnt", "-no", "SOURCE", mountpoint], check=False)
    return (r.stdout or "").strip()


def wait_for_partitions(paths: Sequence[str], *, timeout_s: float = 10.0, dry_run: bool = False) -> None:
    """Block until every partition node exists (udev can lag behind partprobe)."""

    if dry_run:
        return
    deadline = time.monotonic() + timeout_s
    while True:
        missing = [p for p in paths if not os.path.exists(p)]
        if not missing:
            return
        if time.monotonic() >= deadline:
            raise StageError(f"Partition device(s) did not appear: {', '.join(missing)}")
        time.sleep(0.5)
