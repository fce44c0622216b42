from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class ConfigureStage:
    stage_id = "configure"
    idempotent = False

    def run(self, ctx) -> None:
        ctx.recipe.configure(ctx)
