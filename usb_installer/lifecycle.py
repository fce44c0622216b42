"""Ordered, reversible acquisition of mounts and directories.

Every resource the installer holds (a workspace directory, a bind mount of
``/proc`` into the chroot, the target's root filesystem, a loop-mounted ISO)
is recorded as a :class:`ResourceHandle` on a :class:`LifecycleStack` only
after the call that acquired it succeeded. Release walks the stack from the
most recent handle to the oldest, because later mounts usually live inside
earlier ones.
"""

from __future__ import annotations

import enum
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .errors import AcquisitionError, ReleaseError, ToolExecutionError
from .lib.command import CmdResult, run_cmd

logger = logging.getLogger(__name__)

Invoker = Callable[..., CmdResult]

MOUNTINFO_PATH = "/proc/self/mountinfo"


class ResourceKind(enum.Enum):
    BIND_MOUNT = "bind-mount"
    RECURSIVE_BIND_MOUNT = "rbind-mount"
    LOOP_MOUNT = "loop-mount"
    FILESYSTEM_MOUNT = "fs-mount"
    DIRECTORY = "directory"


@dataclass(frozen=True)
class ResourceHandle:
    kind: ResourceKind
    target: str
    source: Optional[str] = None
    options: Tuple[str, ...] = ()
    created_at: int = 0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "target": self.target,
            "source": self.source,
            "options": list(self.options),
            "created_at": self.created_at,
        }


def _unescape_mountinfo(path: str) -> str:
    # mountinfo escapes space, tab, newline and backslash as octal
    for esc, ch in (("\\040", " "), ("\\011", "\t"), ("\\012", "\n"), ("\\134", "\\")):
        path = path.replace(esc, ch)
    return path


def mountpoints_under(path: str) -> List[str]:
    """Return active mountpoints at or below ``path``."""

    root = os.path.normpath(path)
    found: List[str] = []
    try:
        with open(MOUNTINFO_PATH, "r", encoding="utf-8") as fh:
            for line in fh:
                parts = line.split()
                if len(parts) < 5:
                    continue
                mp = _unescape_mountinfo(parts[4])
                if mp == root or mp.startswith(root.rstrip("/") + "/"):
                    found.append(mp)
    except FileNotFoundError:
        return []
    return found


@dataclass
class LifecycleStack:
    """Ledger of held resources, released strictly last-in first-out."""

    invoke: Invoker = run_cmd
    dry_run: bool = False
    _handles: List[ResourceHandle] = field(default_factory=list, init=False, repr=False)

    def __len__(self) -> int:
        return len(self._handles)

    def snapshot(self) -> List[ResourceHandle]:
        return list(self._handles)

    # -- acquisition -----------------------------------------------------

    def _acquire_argv(
        self,
        kind: ResourceKind,
        target: str,
        source: Optional[str],
        options: Sequence[str],
    ) -> List[str]:
        if kind is ResourceKind.DIRECTORY:
            # Plain mkdir: refuse to adopt a directory somebody else created.
            return ["mkdir", "-m", "0700", target]
        if source is None:
            raise ValueError(f"{kind.value} requires a source")
        if kind is ResourceKind.BIND_MOUNT:
            return ["mount", "--bind", source, target]
        if kind is ResourceKind.RECURSIVE_BIND_MOUNT:
            return ["mount", "--rbind", source, target]
        if kind is ResourceKind.LOOP_MOUNT:
            return ["mount", "-o", ",".join(["loop", *options]), source, target]
        argv = ["mount"]
        if options:
            argv += ["-o", ",".join(options)]
        return argv + [source, target]

    def acquire(
        self,
        kind: ResourceKind,
        target: str,
        source: Optional[str] = None,
        options: Sequence[str] = (),
    ) -> ResourceHandle:
        argv = self._acquire_argv(kind, target, source, options)
        try:
            self.invoke(argv, dry_run=self.dry_run)
        except ToolExecutionError as e:
            logger.error("Acquisition failed: %s %s", kind.value, target)
            raise AcquisitionError(kind.value, target, source, e) from e

        handle = ResourceHandle(
            kind=kind,
            target=target,
            source=source,
            options=tuple(options),
            created_at=len(self._handles),
        )
        self._handles.append(handle)
        logger.info("Acquired #%d %s %s", handle.created_at, kind.value, target)
        return handle

    def directory(self, target: str) -> ResourceHandle:
        return self.acquire(ResourceKind.DIRECTORY, target)

    def bind(self, source: str, target: str, *, private: bool = False) -> ResourceHandle:
        handle = self.acquire(ResourceKind.BIND_MOUNT, target, source)
        if private:
            self.invoke(["mount", "--make-private", target], dry_run=self.dry_run)
        return handle

    def rbind(self, source: str, target: str, *, rslave: bool = True) -> ResourceHandle:
        handle = self.acquire(ResourceKind.RECURSIVE_BIND_MOUNT, target, source)
        if rslave:
            # Keep unmounts inside the chroot from propagating back to the host.
            self.invoke(["mount", "--make-rslave", target], dry_run=self.dry_run)
        return handle

    def mount(self, source: str, target: str, options: Sequence[str] = ()) -> ResourceHandle:
        return self.acquire(ResourceKind.FILESYSTEM_MOUNT, target, source, options)

    def loop_mount(self, image: str, target: str, options: Sequence[str] = ("ro",)) -> ResourceHandle:
        return self.acquire(ResourceKind.LOOP_MOUNT, target, image, options)

    # -- release ---------------------------------------------------------

    def _release_argv(self, handle: ResourceHandle) -> Tuple[List[str], List[str]]:
        if handle.kind is ResourceKind.RECURSIVE_BIND_MOUNT:
            return ["umount", "-R", handle.target], ["umount", "-R", "-l", handle.target]
        return ["umount", handle.target], ["umount", "-l", handle.target]

    def _remove_directory(self, handle: ResourceHandle) -> Optional[ReleaseError]:
        if not self.dry_run:
            busy = mountpoints_under(handle.target)
            if busy:
                return ReleaseError(handle, f"still mounted beneath it: {', '.join(sorted(busy))}")
        try:
            self.invoke(["rm", "-rf", "--one-file-system", handle.target], dry_run=self.dry_run)
        except ToolExecutionError as e:
            return ReleaseError(handle, e.stderr.strip() or str(e))
        return None

    def _release_one(self, handle: ResourceHandle) -> Optional[ReleaseError]:
        if handle.kind is ResourceKind.DIRECTORY:
            return self._remove_directory(handle)

        primary, fallback = self._release_argv(handle)
        try:
            self.invoke(primary, dry_run=self.dry_run)
            return None
        except ToolExecutionError as e:
            logger.warning("Unmount of %s failed (%s); trying lazy unmount", handle.target, e.returncode)
        try:
            self.invoke(fallback, dry_run=self.dry_run)
        except ToolExecutionError as e:
            return ReleaseError(handle, e.stderr.strip() or str(e))
        logger.warning("Lazily detached %s", handle.target)
        return None

    def release(self, handle: ResourceHandle) -> None:
        """Release ``handle`` early. Only the most recent handle may be released.

        On failure the handle stays on the stack, so the final unwind tries it
        again, and :class:`ReleaseError` is raised.
        """

        if not self._handles or self._handles[-1] is not handle:
            raise ValueError(f"{handle.target} is not the most recently acquired resource")
        err = self._release_one(handle)
        if err is not None:
            raise err
        self._handles.pop()
        logger.info("Released #%d %s %s", handle.created_at, handle.kind.value, handle.target)

    def release_all(self) -> List[ReleaseError]:
        """Release every handle, newest first. Never raises.

        Each handle is attempted exactly once; failures are collected and the
        unwind continues. The stack is empty afterwards.
        """

        errors: List[ReleaseError] = []
        while self._handles:
            handle = self._handles.pop()
            try:
                err = self._release_one(handle)
            except Exception as e:
                err = ReleaseError(handle, str(e))
            if err is None:
                logger.info("Released #%d %s %s", handle.created_at, handle.kind.value, handle.target)
            else:
                logger.warning("%s", err)
                errors.append(err)
        return errors
