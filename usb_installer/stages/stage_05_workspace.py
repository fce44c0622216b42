from __future__ import annotations

import logging
import os
import time
from pathlib import Path

logger = logging.getLogger(__name__)


class WorkspaceStage:
    stage_id = "workspace"
    idempotent = False

    def run(self, ctx) -> None:
        cfg = ctx.cfg
        # On disk rather than tmpfs: an extracted bootstrap plus pacstrap can exhaust RAM.
        ws = Path(cfg.workspace_base) / f"usb-installer-{cfg.distro}-{int(time.time())}-{os.getpid()}"
        ctx.stack.directory(str(ws))
        ctx.workspace = ws
        ctx.decisions()["workspace"] = str(ws)
        logger.info("Workspace %s", ws)
