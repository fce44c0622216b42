from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .block import list_tree, part_path, wait_for_partitions
from .command import run_cmd

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PartitionSpec:
    role: str
    size_mib: Optional[int]  # None takes the rest of the disk
    gpt_type: str = "8300"
    mbr_type: str = "83"
    bootable: bool = False


@dataclass(frozen=True)
class PartitionPlan:
    disk: str
    label: str  # gpt|dos
    partitions: List[PartitionSpec] = field(default_factory=list)

    def devices(self) -> Dict[str, str]:
        return {p.role: part_path(self.disk, i) for i, p in enumerate(self.partitions, start=1)}


def arch_plan(disk: str) -> PartitionPlan:
    """GPT: BIOS boot + ESP + root, bootable from both legacy BIOS and UEFI."""

    return PartitionPlan(
        disk=disk,
        label="gpt",
        partitions=[
            PartitionSpec(role="bios", size_mib=1, gpt_type="EF02"),
            PartitionSpec(role="esp", size_mib=512, gpt_type="EF00"),
            PartitionSpec(role="root", size_mib=None, gpt_type="8304"),
        ],
    )


def alpine_plan(disk: str) -> PartitionPlan:
    """DOS: 1 GiB bootable FAT32 for the system + rest for /home."""

    return PartitionPlan(
        disk=disk,
        label="dos",
        partitions=[
            PartitionSpec(role="system", size_mib=1024, mbr_type="c", bootable=True),
            PartitionSpec(role="data", size_mib=None, mbr_type="83"),
        ],
    )


def release_device_mounts(disk: str, *, dry_run: bool = False) -> None:
    """Unmount auto-mounted partitions and disable swap on the target.

    Failures are tolerated here; wipefs will refuse a busy device anyway.
    """

    if dry_run:
        return
    for entry in list_tree(disk):
        if not entry.mountpoint or entry.path == disk:
            continue
        if entry.mountpoint == "[SWAP]":
            run_cmd(["swapoff", entry.path], check=False)
        else:
            run_cmd(["umount", "-R", entry.mountpoint], check=False)


def sgdisk_argv(plan: PartitionPlan) -> List[str]:
    argv = ["sgdisk", "-o"]
    for i, p in enumerate(plan.partitions, start=1):
        end = f"+{p.size_mib}MiB" if p.size_mib else "0"
        argv += ["-n", f"{i}:0:{end}", "-t", f"{i}:{p.gpt_type}"]
    return argv + [plan.disk]


def sfdisk_script(plan: PartitionPlan) -> str:
    lines = [f"label: {plan.label}"]
    for p in plan.partitions:
        size = f"{p.size_mib}MiB" if p.size_mib else ""
        line = f",{size},{p.mbr_type}"
        if p.bootable:
            line += ",*"
        lines.append(line)
    return "\n".join(lines) + "\n"


def apply_plan(plan: PartitionPlan, *, dry_run: bool = False) -> Dict[str, str]:
    """Wipe the disk, write the partition table and return role -> device."""

    disk = plan.disk
    logger.info("Partitioning disk=%s label=%s", disk, plan.label)

    release_device_mounts(disk, dry_run=dry_run)
    run_cmd(["wipefs", "-a", disk], dry_run=dry_run)

    if plan.label == "gpt":
        run_cmd(["sgdisk", "-Z", disk], dry_run=dry_run)
        run_cmd(sgdisk_argv(plan), dry_run=dry_run)
    else:
        run_cmd(["sfdisk", disk], input_text=sfdisk_script(plan), dry_run=dry_run)

    # Inform kernel
    run_cmd(["partprobe", disk], dry_run=dry_run)
    run_cmd(["udevadm", "settle"], check=False, dry_run=dry_run)

    devices = plan.devices()
    wait_for_partitions(list(devices.values()), dry_run=dry_run)
    return devices


def mkfs_vfat(dev: str, label: str, *, dry_run: bool = False) -> None:
    run_cmd(["mkfs.vfat", "-F", "32", "-n", label, dev], dry_run=dry_run)


def mkfs_btrfs(dev: str, label: str, *, dry_run: bool = False) -> None:
    run_cmd(["mkfs.btrfs", "-f", "-L", label, dev], dry_run=dry_run)


def mkfs_f2fs(dev: str, label: str, *, dry_run: bool = False) -> None:
    run_cmd(["mkfs.f2fs", "-f", "-l", label, dev], dry_run=dry_run)


def btrfs_subvolume_create(path: str, *, dry_run: bool = False) -> None:
    run_cmd(["btrfs", "subvolume", "create", path], dry_run=dry_run)
