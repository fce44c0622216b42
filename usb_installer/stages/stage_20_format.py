from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class FormatStage:
    stage_id = "format"
    idempotent = True

    def run(self, ctx) -> None:
        ctx.recipe.format(ctx)
        logger.info("Filesystems created on %s", ctx.cfg.device)
