from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Mapping, Sequence

from ..lifecycle import LifecycleStack, ResourceHandle
from .command import CmdResult, run_cmd

logger = logging.getLogger(__name__)

CHROOT_ENV = {"HOME": "/root", "TERM": "dumb", "LANG": "C.UTF-8"}


def chroot_cmd(
    target_root: str,
    argv: Sequence[str],
    *,
    check: bool = True,
    env: Mapping[str, str] | None = None,
    input_text: str | None = None,
    dry_run: bool = False,
) -> CmdResult:
    """Run a command inside target root with a clean, explicit environment."""

    return run_cmd(
        ["chroot", target_root, *argv],
        check=check,
        env={**CHROOT_ENV, **(env or {})},
        clean_env=True,
        input_text=input_text,
        dry_run=dry_run,
    )


def arch_chroot_cmd(
    bootstrap_root: str,
    argv: Sequence[str],
    *,
    mountpoint: str = "/mnt",
    check: bool = True,
    input_text: str | None = None,
    dry_run: bool = False,
) -> CmdResult:
    """Run a command in the system installed at ``mountpoint`` of the bootstrap."""

    return chroot_cmd(
        bootstrap_root,
        ["arch-chroot", mountpoint, *argv],
        check=check,
        input_text=input_text,
        dry_run=dry_run,
    )


def bind_pseudo_filesystems(
    stack: LifecycleStack,
    target_root: str,
    names: Sequence[str],
    *,
    dry_run: bool = False,
) -> list[ResourceHandle]:
    handles = []
    for name in names:
        dst = Path(target_root) / name
        if not dry_run:
            dst.mkdir(parents=True, exist_ok=True)
        handles.append(stack.rbind(f"/{name}", str(dst)))
    return handles


def copy_resolv_conf(target_root: str, *, source: str = "/etc/resolv.conf", dry_run: bool = False) -> None:
    dst = Path(target_root) / "etc/resolv.conf"
    if dry_run:
        logger.info("Would copy %s -> %s", source, dst)
        return
    dst.parent.mkdir(parents=True, exist_ok=True)
    # The bootstrap may ship resolv.conf as a symlink into /run.
    if dst.is_symlink():
        dst.unlink()
    shutil.copyfile(os.path.realpath(source), dst)
    logger.info("Copied DNS config into %s", target_root)
