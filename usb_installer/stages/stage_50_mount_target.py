from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class MountTargetStage:
    stage_id = "mount-target"
    idempotent = False

    def run(self, ctx) -> None:
        ctx.recipe.mount_target(ctx)
        logger.info("Target filesystems mounted under %s", ctx.chroot_root)
