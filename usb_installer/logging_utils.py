from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Tuple

from .lib.env import PATHS

DEFAULT_LOG_PATH = PATHS.log_default
FALLBACK_LOG_NAME = "usb-installer.log"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"


def _open_log_file(log_path: str) -> Tuple[logging.FileHandler, str]:
    try:
        Path(os.path.dirname(log_path) or ".").mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(log_path), log_path
    except OSError:
        # Read-only /var/log on a live medium.
        fallback = str(Path.cwd() / FALLBACK_LOG_NAME)
        return logging.FileHandler(fallback), fallback


def configure_logging(
    log_path: str = DEFAULT_LOG_PATH,
    level: int = logging.INFO,
    also_console: bool = True,
) -> str:
    """Attach the installer's file and console handlers to the root logger.

    The log file receives each command line and each resource acquire and
    release. If ``log_path`` cannot be opened, ``./usb-installer.log`` is used
    instead. Calling this again is a no-op.

    Returns the path of the log file in use.
    """

    root = logging.getLogger()
    root.setLevel(level)

    if getattr(root, "_usb_installer_configured", False):
        return getattr(root, "_usb_installer_log_path", log_path)

    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    file_handler, used_path = _open_log_file(log_path)
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)

    if also_console:
        console = logging.StreamHandler()
        console.setFormatter(fmt)
        root.addHandler(console)

    setattr(root, "_usb_installer_configured", True)
    setattr(root, "_usb_installer_log_path", used_path)

    if used_path != log_path:
        logging.getLogger(__name__).warning("Cannot write %s; logging to %s", log_path, used_path)
    else:
        logging.getLogger(__name__).info("Logging to %s", used_path)
    return used_path
