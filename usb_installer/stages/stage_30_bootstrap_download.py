from __future__ import annotations

import logging

from ..lib.download import fetch_cached

logger = logging.getLogger(__name__)


class BootstrapDownloadStage:
    stage_id = "bootstrap-download"
    idempotent = True

    def run(self, ctx) -> None:
        archives = ctx.decisions().setdefault("archives", {})
        for spec in ctx.recipe.archives:
            url = ctx.cfg.url_for(spec["url_option"])
            path = fetch_cached(url, str(ctx.archives_dir), spec["filename"], dry_run=ctx.dry_run)
            archives[spec["key"]] = str(path)
        logger.info("Archives ready: %s", sorted(archives))
