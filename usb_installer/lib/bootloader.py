from __future__ import annotations

import logging

from .chroot import arch_chroot_cmd, chroot_cmd

logger = logging.getLogger(__name__)


def install_grub_hybrid(
    *,
    bootstrap_root: str,
    disk: str,
    mountpoint: str = "/mnt",
    dry_run: bool = False,
) -> None:
    """Install GRUB for BIOS and UEFI onto a removable disk.

    Runs through ``arch-chroot`` from inside the bootstrap so the installed
    system's GRUB is used. Both targets use --removable so the stick boots
    on any machine.
    """

    def in_target(argv):
        arch_chroot_cmd(bootstrap_root, argv, mountpoint=mountpoint, dry_run=dry_run)

    in_target(["grub-install", "--target=i386-pc", "--recheck", "--removable", disk])
    in_target(
        [
            "grub-install",
            "--target=x86_64-efi",
            "--efi-directory=/boot",
            "--removable",
            "--recheck",
        ]
    )
    in_target(["grub-mkconfig", "-o", "/boot/grub/grub.cfg"])
    logger.info("GRUB installed for BIOS+UEFI on %s", disk)


def setup_bootable(
    *,
    target_root: str,
    iso_mount: str = "/media/iso",
    dest: str = "/media/trueroot",
    dry_run: bool = False,
) -> None:
    """Copy kernel/initramfs from a mounted Alpine ISO and install syslinux."""

    chroot_cmd(target_root, ["setup-bootable", iso_mount, dest], dry_run=dry_run)
    logger.info("Alpine boot files installed to %s", dest)
