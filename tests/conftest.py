from __future__ import annotations

from typing import Callable, List, Optional

import pytest

from usb_installer.errors import ToolExecutionError
from usb_installer.lib.command import CmdResult


class FakeInvoker:
    """Records every argv; raises for argv that ``fail_when`` matches."""

    def __init__(self, fail_when: Optional[Callable[[List[str]], bool]] = None) -> None:
        self.calls: List[List[str]] = []
        self.fail_when = fail_when

    def __call__(self, argv, *, dry_run=False, **_kwargs):
        argv = list(argv)
        self.calls.append(argv)
        if self.fail_when is not None and self.fail_when(argv):
            raise ToolExecutionError(argv, 32, "target is busy")
        return CmdResult(argv=argv, returncode=0, stdout="", stderr="")

    def umounts(self) -> List[List[str]]:
        return [c for c in self.calls if c and c[0] == "umount"]


@pytest.fixture
def invoker():
    return FakeInvoker()


@pytest.fixture(autouse=True)
def _no_mounts(monkeypatch):
    # Directory release consults the live mount table; tests must not.
    from usb_installer import lifecycle

    monkeypatch.setattr(lifecycle, "mountpoints_under", lambda path: [])


@pytest.fixture
def make_invoker():
    return FakeInvoker
