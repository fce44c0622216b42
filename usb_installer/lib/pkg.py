from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

from .chroot import chroot_cmd
from .sysconfig import write_file

logger = logging.getLogger(__name__)


# -- pacman (inside an Arch bootstrap root) ---------------------------------


def write_pacman_mirrorlist(target_root: str, server_line: str, *, dry_run: bool = False) -> None:
    write_file(Path(target_root) / "etc/pacman.d/mirrorlist", server_line.rstrip("\n") + "\n", dry_run=dry_run)


def pacman_keyring_init(target_root: str, *, dry_run: bool = False) -> None:
    chroot_cmd(target_root, ["pacman-key", "--init"], dry_run=dry_run)
    r = chroot_cmd(target_root, ["pacman-key", "--populate", "archlinux"], check=False, dry_run=dry_run)
    if r.returncode != 0:
        # An outdated keyring in an old bootstrap is fixed by the sync below.
        logger.warning("pacman-key --populate failed (%s); continuing", r.returncode)


def pacman_install(target_root: str, packages: Sequence[str], *, dry_run: bool = False) -> None:
    if not packages:
        return
    chroot_cmd(target_root, ["pacman", "-Sy", "--noconfirm", "--needed", *packages], dry_run=dry_run)


def pacstrap(
    target_root: str,
    packages: Sequence[str],
    *,
    mountpoint: str = "/mnt",
    use_host_cache: bool = True,
    dry_run: bool = False,
) -> None:
    """Install ``packages`` onto ``mountpoint`` as seen from inside the bootstrap."""

    argv = ["pacstrap"]
    if use_host_cache:
        # -c: reuse the bootstrap's (bind-mounted) package cache
        argv.append("-c")
    chroot_cmd(target_root, [*argv, mountpoint, *packages], dry_run=dry_run)


def genfstab(target_root: str, *, mountpoint: str = "/mnt", dry_run: bool = False) -> str:
    r = chroot_cmd(target_root, ["genfstab", "-U", mountpoint], dry_run=dry_run)
    return r.stdout


# -- apk (inside an Alpine minirootfs) --------------------------------------


def write_apk_repositories(target_root: str, repositories: Sequence[str], *, dry_run: bool = False) -> None:
    write_file(
        Path(target_root) / "etc/apk/repositories",
        "".join(f"{r}\n" for r in repositories),
        dry_run=dry_run,
    )


def apk_update(target_root: str, *, dry_run: bool = False) -> None:
    chroot_cmd(target_root, ["apk", "update"], dry_run=dry_run)


def apk_add(target_root: str, packages: Sequence[str], *, dry_run: bool = False) -> None:
    if not packages:
        return
    chroot_cmd(target_root, ["apk", "add", *packages], dry_run=dry_run)
