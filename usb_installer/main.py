from __future__ import annotations

import argparse
import logging
import os
from typing import Any, Dict, Optional

from .config import CACHE_POLICIES, InstallConfig, resolve_config
from .context import InstallContext
from .distros import load_recipe
from .errors import EXIT_INTERNAL, EXIT_INTERRUPTED, EXIT_OK, CleanupIncompleteError, InstallerError
from .lib.command import missing_tools
from .lib.env import PATHS
from .lib.manifests import available_distros
from .lifecycle import LifecycleStack
from .logging_utils import DEFAULT_LOG_PATH, configure_logging
from .pipeline import StageRunner
from .preflight import check_dependencies, confirm_destruction, require_root, validate_device
from .stages import (
    BootstrapDownloadStage,
    ConfigureStage,
    FormatStage,
    MountTargetStage,
    PartitionStage,
    PopulateChrootStage,
    TeardownStage,
    WorkspaceStage,
)
from .state_store import ensure_defaults, record_error, save_state

logger = logging.getLogger(__name__)


DEFAULT_STATE_PATH = PATHS.state_default


def build_stages():
    return [
        WorkspaceStage(),
        PartitionStage(),
        FormatStage(),
        BootstrapDownloadStage(),
        PopulateChrootStage(),
        MountTargetStage(),
        ConfigureStage(),
        TeardownStage(),
    ]


def preflight(cfg: InstallConfig, recipe, *, input_fn=None) -> None:
    """Refuse to start unless the host, the device and the operator agree."""

    if cfg.dry_run:
        # Nothing will be touched; report what a real run would trip over.
        missing = missing_tools(recipe.host_tools)
        if missing:
            logger.warning("Dry run: host is missing %s", ", ".join(missing))
        logger.info("Dry run: skipping root, device and confirmation checks")
        return

    require_root()
    check_dependencies(recipe.host_tools)
    validate_device(cfg.device)
    confirm_destruction(cfg.device, input_fn=input_fn)


def run(
    cfg: InstallConfig,
    *,
    state: Dict[str, Any],
    stack: Optional[LifecycleStack] = None,
    stages=None,
    input_fn=None,
) -> Dict[str, Any]:
    """Run preflight and every stage for ``cfg``, unwinding on any exit path."""

    recipe = load_recipe(cfg.distro)
    state["config"] = cfg.public_dict()

    preflight(cfg, recipe, input_fn=input_fn)

    stack = stack if stack is not None else LifecycleStack(dry_run=cfg.dry_run)
    ctx = InstallContext(cfg=cfg, recipe=recipe, stack=stack, state=state)
    runner = StageRunner(stack)
    try:
        result = runner.run(stages if stages is not None else build_stages(), ctx, state=state)
    finally:
        state["execution"]["resources"] = [h.as_dict() for h in stack.snapshot()]
        state["execution"]["release_errors"] = [
            {**e.handle.as_dict(), "reason": e.reason} for e in runner.release_errors
        ]

    state["execution"].setdefault("summary", {})["ran_stages"] = result.ran_stages
    logger.info("Installation to %s complete; all resources released", cfg.device)
    return state


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="usb-installer",
        description="Install Arch Linux or Alpine Linux onto a USB stick.",
    )
    p.add_argument("distro", choices=available_distros(), help="Distribution to install")
    p.add_argument("--device", default=None, help="Target block device (e.g. /dev/sdb); ALL DATA IS ERASED")
    p.add_argument("--hostname", default=None)
    p.add_argument("--user", dest="username", default=None, help="Unprivileged user to create")
    p.add_argument("--tz", dest="timezone", default=None, help="Timezone (e.g. Europe/Berlin)")
    p.add_argument("--locale", default=None)
    p.add_argument("--keymap", default=None)
    p.add_argument("--bootstrap-url", default=None, help="Arch bootstrap tarball URL")
    p.add_argument("--miniroot-url", default=None, help="Alpine minirootfs URL")
    p.add_argument("--iso-url", default=None, help="Alpine standard ISO URL")
    p.add_argument("--cache-dir", default=None, help="Download and package cache directory")
    p.add_argument("--cache-policy", choices=CACHE_POLICIES, default=None)
    p.add_argument("--workspace-base", default=None, help="Where the per-run workspace is created")
    p.add_argument("--config", default=None, help="YAML file with defaults for the options above")
    p.add_argument("--log", default=DEFAULT_LOG_PATH, help="Path to installer log")
    p.add_argument("--state", default=DEFAULT_STATE_PATH, help="Path to run report (json|yaml)")
    p.add_argument("--dry-run", action="store_true", help="Log every command without running it")
    return p


_CLI_KEYS = (
    "device",
    "hostname",
    "username",
    "timezone",
    "locale",
    "keymap",
    "bootstrap_url",
    "miniroot_url",
    "iso_url",
    "cache_dir",
    "cache_policy",
    "workspace_base",
)


def main(argv: Optional[list[str]] = None, *, input_fn=None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(log_path=args.log)

    state = ensure_defaults({})
    exit_code = EXIT_INTERNAL
    try:
        cfg = resolve_config(
            distro=args.distro,
            cli={k: getattr(args, k) for k in _CLI_KEYS},
            env=os.environ,
            config_path=args.config,
            dry_run=args.dry_run,
        )
        run(cfg, state=state, input_fn=input_fn)
        exit_code = EXIT_OK
    except CleanupIncompleteError as e:
        record_error(state, e)
        for err in e.errors:
            logger.error("Left behind: %s", err)
        logger.error("%s; inspect with findmnt and clean up by hand", e)
        exit_code = e.exit_code
    except InstallerError as e:
        record_error(state, e)
        logger.error("%s", e)
        exit_code = e.exit_code
    except KeyboardInterrupt as e:
        record_error(state, e)
        logger.error("Interrupted")
        exit_code = EXIT_INTERRUPTED
    except Exception as e:
        record_error(state, e)
        logger.exception("Installer failed")
        exit_code = EXIT_INTERNAL
    finally:
        state["execution"]["exit_code"] = exit_code
        try:
            save_state(args.state, state)
        except OSError as e:
            logger.warning("Could not write run report %s: %s", args.state, e)
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
