from __future__ import annotations

import logging

from ..lib.storage import apply_plan

logger = logging.getLogger(__name__)


class PartitionStage:
    stage_id = "partition"
    # destructive, but re-running converges on the same layout
    idempotent = True

    def run(self, ctx) -> None:
        plan = ctx.recipe.partition_plan(ctx.cfg.device)
        devices = apply_plan(plan, dry_run=ctx.dry_run)
        ctx.decisions()["partitions"] = devices
        logger.info("Partitioned %s: %s", ctx.cfg.device, devices)
