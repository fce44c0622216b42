from __future__ import annotations

import logging
import os
from pathlib import Path

from ..errors import StageError
from ..lib.chroot import bind_pseudo_filesystems, copy_resolv_conf
from ..lib.command import run_cmd

logger = logging.getLogger(__name__)


class PopulateChrootStage:
    """Extract the bootstrap and make it a usable chroot.

    Acquires, in order: a self bind of the chroot root (pacman needs / to be a
    mountpoint), recursive binds of the pseudo filesystems, and the package
    cache bind.
    """

    stage_id = "populate-chroot"
    idempotent = False

    def run(self, ctx) -> None:
        root = ctx.chroot_root
        archives = ctx.decisions().get("archives") or {}

        for spec in ctx.recipe.archives:
            if not spec.get("extract"):
                continue
            dest = ctx.workspace if spec.get("extract_into") == "workspace" else root
            if not ctx.dry_run:
                dest.mkdir(parents=True, exist_ok=True)
            logger.info("Extracting %s", archives[spec["key"]])
            run_cmd(
                ["tar", *spec.get("tar_flags", ["-xpf"]), archives[spec["key"]], "-C", str(dest)],
                dry_run=ctx.dry_run,
            )

        if not ctx.dry_run and not root.is_dir():
            raise StageError(f"Extraction failed: {root} not found")

        ctx.stack.bind(str(root), str(root), private=True)
        bind_pseudo_filesystems(ctx.stack, str(root), ctx.recipe.pseudo_filesystems, dry_run=ctx.dry_run)
        copy_resolv_conf(str(root), dry_run=ctx.dry_run)
        self._bind_package_cache(ctx, root)

    def _bind_package_cache(self, ctx, root: Path) -> None:
        policy = ctx.cfg.cache_policy
        pc = ctx.recipe.package_cache
        if policy == "none" or not pc:
            logger.info("Package cache disabled")
            return

        src = Path(ctx.cfg.cache_dir) / pc["cache_subdir"]
        if policy == "host":
            host = Path(pc["host_path"])
            if host.is_dir():
                src = host
            else:
                logger.warning("Host package cache %s missing; using private cache %s", host, src)

        dst = root / pc["chroot_path"]
        if not ctx.dry_run:
            src.mkdir(parents=True, exist_ok=True)
            dst.mkdir(parents=True, exist_ok=True)
        ctx.stack.bind(str(src), str(dst))
        ctx.decisions()["package_cache"] = os.fspath(src)
