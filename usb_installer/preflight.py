"""Checks that run before any resource is acquired.

Everything here raises a PreconditionError subclass or UserAbortError;
nothing here mounts, writes or partitions.
"""

from __future__ import annotations

import logging
import os
import stat
from typing import Callable, Iterable, Optional

from .config import CONFIRM_PHRASE
from .errors import MissingDependencyError, PreconditionError, UnsafeDeviceError, UserAbortError
from .lib.block import holders, list_tree, mount_source, parent_disk
from .lib.command import missing_tools

logger = logging.getLogger(__name__)

# A target partition mounted at one of these belongs to the running system.
SYSTEM_MOUNTPOINTS = {"/", "/boot", "/boot/efi", "/efi", "/home", "/usr", "/var", "[SWAP]"}


def require_root() -> None:
    if os.geteuid() != 0:
        raise PreconditionError("Must run as root (try: sudo usb-installer ...)")


def check_dependencies(tools: Iterable[str]) -> None:
    missing = missing_tools(tools)
    if missing:
        raise MissingDependencyError(missing)
    logger.info("All host tools present")


def _host_disks() -> set[str]:
    disks = set()
    for mp in ("/", "/boot", "/boot/efi"):
        src = mount_source(mp)
        if not src.startswith("/dev/"):
            continue
        disks.add(os.path.basename(os.path.realpath(src)))
        pk = parent_disk(src)
        if pk:
            disks.add(pk)
    return disks


def validate_device(device: str) -> None:
    """Refuse anything that is not a removable-looking, unused block device."""

    try:
        st = os.stat(device)
    except FileNotFoundError:
        raise UnsafeDeviceError(f"Device {device} does not exist") from None
    if not stat.S_ISBLK(st.st_mode):
        raise UnsafeDeviceError(f"Device {device} is not a block device")

    name = os.path.basename(os.path.realpath(device))
    if name in _host_disks():
        raise UnsafeDeviceError(f"Device {device} holds the running system's root or boot filesystem")

    for entry in list_tree(device):
        if entry.mountpoint in SYSTEM_MOUNTPOINTS:
            raise UnsafeDeviceError(
                f"Device {device} is in use by the running system ({entry.path} on {entry.mountpoint})"
            )

    held = holders(device)
    if held:
        raise UnsafeDeviceError(f"Device {device} is held by {', '.join(held)}")

    logger.info("Target device %s passed safety checks", device)


def confirm_destruction(
    device: str,
    *,
    phrase: str = CONFIRM_PHRASE,
    input_fn: Optional[Callable[[str], str]] = None,
) -> None:
    ask = input_fn or input
    logger.warning("This will ERASE ALL DATA on %s", device)
    try:
        answer = ask(f"Type '{phrase}' (all caps) to continue: ")
    except EOFError:
        answer = ""
    if answer.strip("\n") != phrase:
        raise UserAbortError("Aborted by user.")
