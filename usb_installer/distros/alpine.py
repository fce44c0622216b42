from __future__ import annotations

import logging
from pathlib import Path

from ..lib.block import get_uuid
from ..lib.bootloader import setup_bootable
from ..lib.chroot import chroot_cmd
from ..lib.fstab import FstabEntry, merge_entries
from ..lib.pkg import apk_add, apk_update, write_apk_repositories
from ..lib.storage import PartitionPlan, alpine_plan, mkfs_f2fs, mkfs_vfat
from ..lib.sysconfig import write_file, write_hostname, write_network_interfaces
from .base import DistroRecipe

logger = logging.getLogger(__name__)


class AlpineRecipe(DistroRecipe):
    """Diskless Alpine with LBU persistence on FAT32 and /home on F2FS."""

    name = "alpine"

    def _mount_rel(self, key: str) -> str:
        return str((self.manifest.get("mounts") or {})[key])

    def partition_plan(self, disk: str) -> PartitionPlan:
        return alpine_plan(disk)

    def format(self, ctx) -> None:
        mkfs_vfat(ctx.partition("system"), self.labels.get("system", "ALPINE_SYS"), dry_run=ctx.dry_run)
        mkfs_f2fs(ctx.partition("data"), self.labels.get("data", "ALPINE_DATA"), dry_run=ctx.dry_run)

    def mount_target(self, ctx) -> None:
        root = ctx.chroot_root
        for role, key in (("system", "trueroot"), ("data", "home")):
            mp = root / self._mount_rel(key)
            if not ctx.dry_run:
                mp.mkdir(parents=True, exist_ok=True)
            ctx.stack.mount(ctx.partition(role), str(mp))
        if not ctx.dry_run:
            (root / self._mount_rel("trueroot") / "cache").mkdir(exist_ok=True)

    def configure(self, ctx) -> None:
        cfg = ctx.cfg
        m = self.manifest
        root = ctx.chroot_root
        rootstr = str(root)
        dry_run = ctx.dry_run
        trueroot = "/" + self._mount_rel("trueroot")
        iso_mp = "/" + self._mount_rel("iso")

        def run(argv, **kw):
            return chroot_cmd(rootstr, argv, dry_run=dry_run, **kw)

        write_apk_repositories(rootstr, m.get("repositories") or [], dry_run=dry_run)
        apk_update(rootstr, dry_run=dry_run)
        apk_add(rootstr, m.get("tool_packages") or [], dry_run=dry_run)

        # Boot files come from the standard ISO
        iso_path = (ctx.decisions().get("archives") or {}).get("iso")
        if not iso_path:
            raise RuntimeError("ISO archive unknown; run the bootstrap-download stage first")
        iso_dir = root / self._mount_rel("iso")
        if not dry_run:
            iso_dir.mkdir(parents=True, exist_ok=True)
        ctx.stack.loop_mount(iso_path, str(iso_dir))
        setup_bootable(target_root=rootstr, iso_mount=iso_mp, dest=trueroot, dry_run=dry_run)

        # Persistence first, so the desktop packages below land in the cache on the stick
        run(["setup-lbu", Path(trueroot).name])
        run(["setup-apkcache", f"{trueroot}/cache"])
        apk_add(rootstr, m.get("desktop_packages") or [], dry_run=dry_run)

        run(["setup-keymap", cfg.keymap, cfg.keymap])
        run(["setup-timezone", "-z", cfg.timezone])
        write_hostname(root, cfg.hostname, dry_run=dry_run)
        write_network_interfaces(root, dry_run=dry_run)
        for service, runlevel in m.get("services") or []:
            run(["rc-update", "add", service, runlevel])

        run(["adduser", "-D", "-G", "wheel", "-s", "/bin/ash", cfg.username])
        run(["chpasswd"], input_text=f"root:{cfg.root_password}\n{cfg.username}:{cfg.effective_user_password}\n")

        self._write_fstab(ctx)

        run(["lbu", "commit", "-d"])
        ctx.decisions()["user"] = cfg.username
        logger.info("Alpine system configured on %s", cfg.device)

    def _write_fstab(self, ctx) -> None:
        system_uuid = get_uuid(ctx.partition("system"), dry_run=ctx.dry_run)
        data_uuid = get_uuid(ctx.partition("data"), dry_run=ctx.dry_run)
        entries = [
            FstabEntry(spec=f"UUID={system_uuid}", mountpoint="/media/trueroot", fstype="vfat", options="defaults,noatime"),
            FstabEntry(spec=f"UUID={data_uuid}", mountpoint="/home", fstype="f2fs", options="defaults,noatime"),
        ]
        fstab = ctx.chroot_root / "etc/fstab"
        current = fstab.read_text(encoding="utf-8") if fstab.exists() else ""
        write_file(fstab, merge_entries(current, entries), dry_run=ctx.dry_run)
        ctx.decisions()["uuids"] = {"system": system_uuid, "data": data_uuid}
