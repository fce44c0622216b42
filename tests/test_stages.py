from pathlib import Path

import pytest

from usb_installer.config import resolve_config
from usb_installer.context import InstallContext
from usb_installer.distros import load_recipe
from usb_installer.errors import AcquisitionError, ToolExecutionError
from usb_installer.lib import block, chroot, download, storage
from usb_installer.lib.command import CmdResult
from usb_installer.lifecycle import LifecycleStack
from usb_installer.main import build_stages
from usb_installer.pipeline import StageRunner
from usb_installer.stages import PopulateChrootStage, stage_40_populate_chroot, stage_90_teardown
from usb_installer.state_store import ensure_defaults


class Recorder:
    def __init__(self):
        self.calls = []
        self.stdin = []

    def __call__(self, argv, **kw):
        argv = list(argv)
        self.calls.append(argv)
        if kw.get("input_text"):
            self.stdin.append(kw["input_text"])
        return CmdResult(argv=argv, returncode=0, stdout="", stderr="")

    def index(self, predicate):
        for i, c in enumerate(self.calls):
            if predicate(c):
                return i
        raise AssertionError("no matching call")


@pytest.fixture
def rec(monkeypatch):
    r = Recorder()
    for mod in (block, chroot, download, storage, stage_40_populate_chroot, stage_90_teardown):
        monkeypatch.setattr(mod, "run_cmd", r)
    return r


def _ctx(tmp_path, rec, distro, **cli):
    cli = {"device": "/dev/sdz", "cache_dir": str(tmp_path / "cache"), "workspace_base": str(tmp_path), **cli}
    cfg = resolve_config(distro=distro, cli=cli, env={}, dry_run=True)
    stack = LifecycleStack(invoke=rec, dry_run=True)
    return InstallContext(cfg=cfg, recipe=load_recipe(distro), stack=stack, state=ensure_defaults({}))


def _run(ctx):
    return StageRunner(ctx.stack).run(build_stages(), ctx, state=ctx.state)


def test_arch_dry_run_pipeline(tmp_path, rec):
    ctx = _ctx(tmp_path, rec, "arch")
    result = _run(ctx)

    assert result.ran_stages == [
        "workspace",
        "partition",
        "format",
        "bootstrap-download",
        "populate-chroot",
        "mount-target",
        "configure",
        "teardown",
    ]
    assert len(ctx.stack) == 0
    ws = Path(ctx.decisions()["workspace"])
    root = str(ws / "root.x86_64")
    assert ws.parent == tmp_path
    assert ctx.decisions()["partitions"]["root"] == "/dev/sdz3"

    assert ["mkfs.btrfs", "-f", "-L", "ARCH_ROOT", "/dev/sdz3"] in rec.calls
    assert ["btrfs", "subvolume", "create", str(ws / "mnt_tmp" / "@home")] in rec.calls
    # the scoped subvolume mount is gone before the chroot is assembled
    assert rec.index(lambda c: c == ["umount", str(ws / "mnt_tmp")]) < rec.index(lambda c: c[:2] == ["mount", "--bind"])
    assert rec.calls[rec.index(lambda c: c[0] == "tar")][-2:] == ["-C", str(ws)]
    assert ["mount", "--make-private", root] in rec.calls
    assert [
        "mount", "-o", "noatime,compress=zstd:3,space_cache=v2,subvol=@home", "/dev/sdz3", root + "/mnt/home"
    ] in rec.calls
    assert ["chroot", root, "pacstrap", "-c", "/mnt"] == rec.calls[rec.index(lambda c: c[2:3] == ["pacstrap"])][:5]
    assert "root:root\n" in rec.stdin
    assert "archuser:archuser\n" in rec.stdin

    umounts = [c[-1] for c in rec.calls if c[0] == "umount"]
    assert umounts[-9:] == [
        root + "/mnt/boot",
        root + "/mnt/home",
        root + "/mnt",
        root + "/var/cache/pacman/pkg",
        root + "/run",
        root + "/sys",
        root + "/proc",
        root + "/dev",
        root,
    ]
    assert rec.calls[-1] == ["rm", "-rf", "--one-file-system", str(ws)]


def test_alpine_dry_run_pipeline(tmp_path, rec):
    ctx = _ctx(tmp_path, rec, "alpine")
    _run(ctx)

    root = str(Path(ctx.decisions()["workspace"]) / "alpine-root")
    iso = ctx.decisions()["archives"]["iso"]

    assert ["sfdisk", "/dev/sdz"] in rec.calls
    assert ["mkfs.f2fs", "-f", "-l", "ALPINE_DATA", "/dev/sdz2"] in rec.calls
    assert rec.calls[rec.index(lambda c: c[0] == "tar")][-2:] == ["-C", root]
    assert ["mount", "-o", "loop,ro", iso, root + "/media/iso"] in rec.calls
    assert ["chroot", root, "setup-bootable", "/media/iso", "/media/trueroot"] in rec.calls
    assert ["chroot", root, "rc-update", "add", "lightdm", "default"] in rec.calls
    assert "root:alpineusb\nalpine:alpineusb\n" in rec.stdin
    chroot_calls = [c for c in rec.calls if c[0] == "chroot"]
    assert chroot_calls[-1] == ["chroot", root, "lbu", "commit", "-d"]
    # ISO stays mounted until the final unwind, after the target mounts go
    umounts = [c[-1] for c in rec.calls if c[0] == "umount"]
    assert umounts[:3] == [root + "/media/iso", root + "/media/home", root + "/media/trueroot"]
    assert len(ctx.stack) == 0


def test_private_cache_bind(tmp_path, rec):
    ctx = _ctx(tmp_path, rec, "alpine")
    _run(ctx)
    root = str(Path(ctx.decisions()["workspace"]) / "alpine-root")
    assert ["mount", "--bind", str(tmp_path / "cache" / "apk"), root + "/etc/apk/cache"] in rec.calls


def _populate_only(ctx):
    ctx.workspace = Path(ctx.cfg.workspace_base) / "ws"
    ctx.decisions()["archives"] = {"bootstrap": "/cache/archives/bootstrap.tar.zst"}
    PopulateChrootStage().run(ctx)


def test_host_cache_falls_back_to_private(tmp_path, rec, caplog):
    ctx = _ctx(tmp_path, rec, "arch", cache_policy="host")
    ctx.recipe.manifest["package_cache"]["host_path"] = str(tmp_path / "missing")
    with caplog.at_level("WARNING"):
        _populate_only(ctx)
    assert "Host package cache" in caplog.text
    assert ctx.decisions()["package_cache"] == str(tmp_path / "cache" / "pkg")


def test_host_cache_used_when_present(tmp_path, rec):
    host = tmp_path / "pacman-pkg"
    host.mkdir()
    ctx = _ctx(tmp_path, rec, "arch", cache_policy="host")
    ctx.recipe.manifest["package_cache"]["host_path"] = str(host)
    _populate_only(ctx)
    assert ["mount", "--bind", str(host), str(ctx.chroot_root / "var/cache/pacman/pkg")] in rec.calls


def test_no_cache_policy(tmp_path, rec):
    ctx = _ctx(tmp_path, rec, "arch", cache_policy="none")
    _populate_only(ctx)
    assert not any(c[-1].endswith("var/cache/pacman/pkg") for c in rec.calls)
    assert ctx.archives_dir == ctx.workspace / "archives"


def test_failed_acquisition_in_chroot_unwinds_everything(tmp_path, rec):
    ctx = _ctx(tmp_path, rec, "arch")

    def failing(argv, **kw):
        if argv[:2] == ["mount", "--rbind"] and argv[2] == "/sys":
            raise ToolExecutionError(argv, 32, "mount: permission denied")
        return rec(argv, **kw)

    ctx.stack.invoke = failing
    with pytest.raises(AcquisitionError):
        _run(ctx)

    root = str(ctx.chroot_root)
    assert [c[-1] for c in rec.calls if c[0] in ("umount", "rm")][-4:] == [
        root + "/proc",
        root + "/dev",
        root,
        str(ctx.workspace),
    ]
    assert ctx.state["execution"]["failed_stage"] == "populate-chroot"
