from __future__ import annotations

import logging
import os
from pathlib import Path

from .command import run_cmd

logger = logging.getLogger(__name__)


def fetch_cached(url: str, dest_dir: str, filename: str, *, dry_run: bool = False) -> Path:
    """Download ``url`` to ``dest_dir/filename`` unless it is already there.

    The transfer lands in ``<filename>.part`` and is renamed on success, so an
    interrupted download never leaves a truncated file that looks cached.
    """

    dest = Path(dest_dir) / filename
    if dest.is_file():
        logger.info("Using cached %s", dest)
        return dest

    partial = dest.with_name(dest.name + ".part")
    if not dry_run:
        dest.parent.mkdir(parents=True, exist_ok=True)
        if partial.exists():
            partial.unlink()

    logger.info("Downloading %s", url)
    run_cmd(["curl", "-L", "--fail", "-o", str(partial), url], dry_run=dry_run)
    if not dry_run:
        os.replace(partial, dest)
    return dest
