from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Paths:
    state_default: str = "/var/lib/usb-installer/last-run.json"
    log_default: str = "/var/log/usb-installer.log"


PATHS = Paths()
