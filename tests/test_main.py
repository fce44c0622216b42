import json
import logging

import pytest

from usb_installer import main as main_mod
from usb_installer import preflight
from usb_installer.errors import StageError, ToolExecutionError
from usb_installer.lib import command
from usb_installer.lifecycle import LifecycleStack
from usb_installer.pipeline import FunctionStage


@pytest.fixture(autouse=True)
def _reset_logging():
    root = logging.getLogger()
    before = list(root.handlers)
    yield
    for h in root.handlers[:]:
        if h not in before:
            root.removeHandler(h)
            h.close()
    for attr in ("_usb_installer_configured", "_usb_installer_log_path"):
        if hasattr(root, attr):
            delattr(root, attr)


@pytest.fixture
def paths(tmp_path):
    return ["--log", str(tmp_path / "run.log"), "--state", str(tmp_path / "last-run.json")]


@pytest.fixture
def host_ok(monkeypatch):
    monkeypatch.setattr(main_mod, "require_root", lambda: None)
    monkeypatch.setattr(main_mod, "check_dependencies", lambda tools: None)
    monkeypatch.setattr(main_mod, "validate_device", lambda device: None)


@pytest.fixture
def no_stages(monkeypatch):
    monkeypatch.setattr(
        main_mod,
        "build_stages",
        lambda: [FunctionStage("never", lambda ctx: pytest.fail("stage ran"))],
    )


def _report(tmp_path):
    return json.loads((tmp_path / "last-run.json").read_text(encoding="utf-8"))


def test_not_a_block_device_fails_before_stages(tmp_path, paths, monkeypatch, no_stages):
    monkeypatch.setattr(main_mod, "require_root", lambda: None)
    monkeypatch.setattr(main_mod, "check_dependencies", lambda tools: None)
    image = tmp_path / "disk.img"
    image.write_bytes(b"\0")

    rc = main_mod.main(["arch", "--device", str(image), *paths])

    assert rc == 5
    report = _report(tmp_path)
    assert report["execution"]["completed_stages"] == []
    assert report["execution"]["errors"][0]["type"] == "UnsafeDeviceError"


def test_wrong_confirmation_aborts(tmp_path, paths, host_ok, no_stages):
    rc = main_mod.main(["alpine", "--device", "/dev/sdz", *paths], input_fn=lambda prompt: "destroy")

    assert rc == 3
    report = _report(tmp_path)
    assert report["execution"]["resources"] == []
    assert report["execution"]["exit_code"] == 3


def test_missing_tools_exit_code(tmp_path, paths, monkeypatch, no_stages):
    monkeypatch.setattr(main_mod, "require_root", lambda: None)
    monkeypatch.setattr(preflight, "missing_tools", lambda tools: ["sfdisk"])
    assert main_mod.main(["alpine", "--device", "/dev/sdz", *paths]) == 4


def test_invalid_config_exit_code(paths, host_ok, no_stages):
    assert main_mod.main(["arch", "--device", "/dev/sdz", "--hostname", "not_valid!", *paths]) == 2


def test_stage_failure_exit_code(tmp_path, paths, host_ok, monkeypatch):
    def fail(ctx):
        raise ToolExecutionError(["sgdisk", "-Z", "/dev/sdz"], 2, "")

    monkeypatch.setattr(main_mod, "build_stages", lambda: [FunctionStage("partition", fail)])
    rc = main_mod.main(["arch", "--device", "/dev/sdz", *paths], input_fn=lambda prompt: "DESTROY")

    assert rc == 6
    report = _report(tmp_path)
    assert report["execution"]["failed_stage"] == "partition"
    assert "sgdisk" in report["execution"]["errors"][0]["error"]


def test_cleanup_incomplete_exit_code(tmp_path, paths, host_ok, monkeypatch, make_invoker):
    inv = make_invoker(fail_when=lambda argv: argv[0] == "umount")
    monkeypatch.setattr(main_mod, "LifecycleStack", lambda dry_run=False: LifecycleStack(invoke=inv, dry_run=dry_run))
    monkeypatch.setattr(
        main_mod,
        "build_stages",
        lambda: [FunctionStage("mount", lambda ctx: ctx.stack.mount("/dev/sdz1", "/w/mnt"))],
    )

    rc = main_mod.main(["arch", "--device", "/dev/sdz", *paths], input_fn=lambda prompt: "DESTROY")

    assert rc == 7
    report = _report(tmp_path)
    assert report["execution"]["release_errors"][0]["target"] == "/w/mnt"
    assert report["execution"]["errors"][0]["type"] == "CleanupIncompleteError"



def test_unexpected_error_is_internal(paths, host_ok, monkeypatch):
    def bug(ctx):
        raise KeyError("oops")

    monkeypatch.setattr(main_mod, "build_stages", lambda: [FunctionStage("bug", bug)])
    assert main_mod.main(["arch", "--device", "/dev/sdz", *paths], input_fn=lambda prompt: "DESTROY") == 1


def test_stage_error_subclass_keeps_its_code(paths, host_ok, monkeypatch):
    def fail(ctx):
        raise StageError("Extraction failed")

    monkeypatch.setattr(main_mod, "build_stages", lambda: [FunctionStage("populate-chroot", fail)])
    assert main_mod.main(["arch", "--device", "/dev/sdz", *paths], input_fn=lambda prompt: "DESTROY") == 6


def test_full_dry_run_executes_nothing(tmp_path, paths, monkeypatch):
    def no_exec(*args, **kwargs):
        raise AssertionError("a command was executed during a dry run")

    monkeypatch.setattr(command.subprocess, "run", no_exec)

    rc = main_mod.main(
        [
            "alpine",
            "--device", "/dev/sdz",
            "--dry-run",
            "--cache-dir", str(tmp_path / "cache"),
            "--workspace-base", str(tmp_path),
            *paths,
        ]
    )

    assert rc == 0
    report = _report(tmp_path)
    assert report["execution"]["completed_stages"][-1] == "teardown"
    assert report["execution"]["resources"] == []
    assert report["execution"]["release_errors"] == []
    assert report["config"]["distro"] == "alpine"
    assert "root_password" not in report["config"]


def test_yaml_report(tmp_path, host_ok, no_stages):
    state = tmp_path / "last-run.yaml"
    rc = main_mod.main(
        ["arch", "--device", "/dev/sdz", "--log", str(tmp_path / "l.log"), "--state", str(state)],
        input_fn=lambda prompt: "no",
    )
    assert rc == 3
    assert "UserAbortError" in state.read_text(encoding="utf-8")


def test_log_falls_back_to_working_directory(tmp_path, monkeypatch):
    from usb_installer.logging_utils import configure_logging

    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")
    monkeypatch.chdir(tmp_path)

    used = configure_logging(log_path=str(blocker / "installer.log"), also_console=False)

    assert used == str(tmp_path / "usb-installer.log")
    assert configure_logging(log_path="/elsewhere.log") == used
