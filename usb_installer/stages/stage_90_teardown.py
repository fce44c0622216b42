from __future__ import annotations

import logging

from ..lib.command import run_cmd

logger = logging.getLogger(__name__)


class TeardownStage:
    stage_id = "teardown"
    idempotent = True

    def run(self, ctx) -> None:
        run_cmd(["sync"], dry_run=ctx.dry_run)
        held = len(ctx.stack)
        errors = ctx.stack.release_all()
        ctx.release_errors.extend(errors)
        logger.info("Released %d resource(s), %d failed", held, len(errors))
