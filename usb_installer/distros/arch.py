from __future__ import annotations

import logging

from ..lib.bootloader import install_grub_hybrid
from ..lib.chroot import arch_chroot_cmd
from ..lib.pkg import genfstab, pacman_install, pacman_keyring_init, pacstrap, write_pacman_mirrorlist
from ..lib.storage import PartitionPlan, arch_plan, btrfs_subvolume_create, mkfs_btrfs, mkfs_vfat
from ..lib.sysconfig import (
    write_file,
    write_hostname,
    write_hosts,
    write_locale,
    write_mkinitcpio_hooks,
    write_sudoers_wheel,
    write_vconsole,
)
from .base import DistroRecipe

logger = logging.getLogger(__name__)

TARGET_MOUNTPOINT = "/mnt"


class ArchRecipe(DistroRecipe):
    """Btrfs (@, @home) root, XFCE + LightDM, GRUB for BIOS and UEFI."""

    name = "arch"

    def partition_plan(self, disk: str) -> PartitionPlan:
        return arch_plan(disk)

    def format(self, ctx) -> None:
        esp = ctx.partition("esp")
        root = ctx.partition("root")
        mkfs_vfat(esp, self.labels.get("esp", "ARCH_EFI"), dry_run=ctx.dry_run)
        mkfs_btrfs(root, self.labels.get("root", "ARCH_ROOT"), dry_run=ctx.dry_run)

        tmp = ctx.workspace / "mnt_tmp"
        if not ctx.dry_run:
            tmp.mkdir(exist_ok=True)
        handle = ctx.stack.mount(root, str(tmp))
        for sv in self.manifest.get("btrfs_subvolumes") or []:
            btrfs_subvolume_create(str(tmp / sv["name"]), dry_run=ctx.dry_run)
        ctx.stack.release(handle)

    def mount_target(self, ctx) -> None:
        esp = ctx.partition("esp")
        root = ctx.partition("root")
        mnt = ctx.chroot_root / TARGET_MOUNTPOINT.lstrip("/")
        opts = list(self.manifest.get("btrfs_mount_options") or [])

        # "@" must come first: the other mountpoints live inside it.
        subvols = sorted(self.manifest.get("btrfs_subvolumes") or [], key=lambda s: len(s["mountpoint"]))
        for sv in subvols:
            target = mnt / sv["mountpoint"] if sv["mountpoint"] else mnt
            if not ctx.dry_run:
                target.mkdir(parents=True, exist_ok=True)
            ctx.stack.mount(root, str(target), options=[*opts, f"subvol={sv['name']}"])

        boot = mnt / "boot"
        if not ctx.dry_run:
            boot.mkdir(parents=True, exist_ok=True)
        ctx.stack.mount(esp, str(boot))

    def configure(self, ctx) -> None:
        cfg = ctx.cfg
        m = self.manifest
        bootstrap = str(ctx.chroot_root)
        target = ctx.chroot_root / TARGET_MOUNTPOINT.lstrip("/")
        dry_run = ctx.dry_run

        def in_target(argv, **kw):
            return arch_chroot_cmd(bootstrap, argv, mountpoint=TARGET_MOUNTPOINT, dry_run=dry_run, **kw)

        pacman_keyring_init(bootstrap, dry_run=dry_run)
        write_pacman_mirrorlist(bootstrap, m["mirrorlist"], dry_run=dry_run)
        pacman_install(bootstrap, m.get("bootstrap_packages") or [], dry_run=dry_run)

        pacstrap(
            bootstrap,
            m.get("packages") or [],
            mountpoint=TARGET_MOUNTPOINT,
            use_host_cache=cfg.cache_policy != "none",
            dry_run=dry_run,
        )
        write_file(target / "etc/fstab", genfstab(bootstrap, mountpoint=TARGET_MOUNTPOINT, dry_run=dry_run), dry_run=dry_run)

        # Time & locale
        in_target(["ln", "-sf", f"/usr/share/zoneinfo/{cfg.timezone}", "/etc/localtime"])
        r = in_target(["hwclock", "--systohc"], check=False)
        if r.returncode != 0:
            logger.warning("hwclock --systohc failed (%s); continuing", r.returncode)
        write_locale(target, cfg.locale, dry_run=dry_run)
        in_target(["locale-gen"])
        write_hostname(target, cfg.hostname, dry_run=dry_run)
        write_hosts(target, cfg.hostname, dry_run=dry_run)

        # Users
        in_target(["chpasswd"], input_text=f"root:{cfg.root_password}\n")
        in_target(["useradd", "-m", "-G", "wheel", "-s", "/bin/bash", cfg.username])
        in_target(["chpasswd"], input_text=f"{cfg.username}:{cfg.effective_user_password}\n")
        write_sudoers_wheel(target, dry_run=dry_run)

        # Initramfs with generic hooks for USB portability
        write_vconsole(target, cfg.keymap, dry_run=dry_run)
        write_mkinitcpio_hooks(target, m.get("mkinitcpio_hooks") or [], dry_run=dry_run)
        in_target(["mkinitcpio", "-P"])

        install_grub_hybrid(bootstrap_root=bootstrap, disk=cfg.device, mountpoint=TARGET_MOUNTPOINT, dry_run=dry_run)

        for svc in m.get("services") or []:
            in_target(["systemctl", "enable", svc])

        ctx.decisions()["user"] = cfg.username
        logger.info("Arch system configured on %s", cfg.device)
