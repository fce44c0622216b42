from __future__ import annotations

import dataclasses
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .errors import PreconditionError
from .lib.manifests import available_distros, load_manifest

logger = logging.getLogger(__name__)

CONFIRM_PHRASE = "DESTROY"
CACHE_POLICIES = ("private", "host", "none")
ENV_PREFIX = "USB_INSTALLER_"

_HOSTNAME_RE = re.compile(r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)$")
_USERNAME_RE = re.compile(r"^[a-z_][a-z0-9_-]{0,31}$")
_TZ_RE = re.compile(r"^[A-Za-z0-9_+\-]+(/[A-Za-z0-9_+\-]+)*$")
_LOCALE_RE = re.compile(r"^[A-Za-z0-9_.@\-]+$")


@dataclass(frozen=True)
class InstallConfig:
    distro: str
    device: str
    hostname: str
    username: str
    timezone: str
    locale: str
    keymap: str
    cache_dir: str
    cache_policy: str = "private"
    workspace_base: str = "/var/lib"
    bootstrap_url: Optional[str] = None
    miniroot_url: Optional[str] = None
    iso_url: Optional[str] = None
    root_password: Optional[str] = None
    user_password: Optional[str] = None
    dry_run: bool = False

    def url_for(self, option: str) -> str:
        url = getattr(self, option, None)
        if not url:
            raise PreconditionError(f"No URL configured for {option}")
        return str(url)

    @property
    def effective_user_password(self) -> str:
        return self.user_password or self.username

    def public_dict(self) -> Dict[str, Any]:
        """Config as recorded in the run state, without secrets."""
        d = dataclasses.asdict(self)
        d.pop("root_password", None)
        d.pop("user_password", None)
        return d


_FIELDS = {f.name for f in dataclasses.fields(InstallConfig)}
# distro is chosen on the command line, dry_run is not an operator default
_SETTABLE = _FIELDS - {"distro", "dry_run"}
_ENV_KEYS = {
    "device": "DEVICE",
    "hostname": "HOSTNAME",
    "username": "USER",
    "timezone": "TZ",
    "locale": "LOCALE",
    "keymap": "KEYMAP",
    "bootstrap_url": "BOOTSTRAP_URL",
    "miniroot_url": "MINIROOT_URL",
    "iso_url": "ISO_URL",
    "cache_dir": "CACHE_DIR",
    "cache_policy": "CACHE_POLICY",
    "workspace_base": "WORKSPACE_BASE",
}


def load_config_file(path: str) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        raise PreconditionError(f"Config file not found: {path}")

    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise PreconditionError("config file must be YAML")

    raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise PreconditionError(f"{path} must contain a mapping/object")

    unknown = sorted(set(raw) - _SETTABLE)
    if unknown:
        raise PreconditionError(f"Unknown keys in {path}: {', '.join(unknown)}")
    return raw


def env_overrides(env: Mapping[str, str]) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for key, suffix in _ENV_KEYS.items():
        val = env.get(ENV_PREFIX + suffix)
        if val:
            out[key] = val
    return out


def validate_config(cfg: InstallConfig) -> InstallConfig:
    if not cfg.device:
        raise PreconditionError("--device is required (e.g., --device /dev/sdb)")
    if cfg.cache_policy not in CACHE_POLICIES:
        raise PreconditionError(f"cache_policy must be one of {', '.join(CACHE_POLICIES)}, got {cfg.cache_policy!r}")
    if not _HOSTNAME_RE.match(cfg.hostname):
        raise PreconditionError(f"Invalid hostname: {cfg.hostname!r}")
    if not _USERNAME_RE.match(cfg.username):
        raise PreconditionError(f"Invalid username: {cfg.username!r}")
    # timezone ends up in a /usr/share/zoneinfo path
    if not _TZ_RE.match(cfg.timezone) or ".." in cfg.timezone.split("/"):
        raise PreconditionError(f"Invalid timezone: {cfg.timezone!r}")
    if not _LOCALE_RE.match(cfg.locale):
        raise PreconditionError(f"Invalid locale: {cfg.locale!r}")
    if not _LOCALE_RE.match(cfg.keymap):
        raise PreconditionError(f"Invalid keymap: {cfg.keymap!r}")
    if not os.path.isabs(cfg.workspace_base):
        raise PreconditionError("workspace_base must be an absolute path")
    return cfg


def resolve_config(
    *,
    distro: str,
    cli: Mapping[str, Any],
    env: Optional[Mapping[str, str]] = None,
    config_path: Optional[str] = None,
    dry_run: bool = False,
) -> InstallConfig:
    """Merge manifest defaults < config file < environment < CLI flags."""

    if distro not in available_distros():
        raise PreconditionError(f"Unsupported distro '{distro}' (choose from {', '.join(available_distros())})")

    manifest = load_manifest(distro)
    merged: Dict[str, Any] = {k: v for k, v in (manifest.get("defaults") or {}).items() if k in _SETTABLE}

    if config_path:
        merged.update(load_config_file(config_path))
    merged.update(env_overrides(os.environ if env is None else env))
    merged.update({k: v for k, v in cli.items() if k in _SETTABLE and v is not None})

    merged.setdefault("device", "")
    for required in ("hostname", "username", "timezone", "locale", "keymap", "cache_dir"):
        if not merged.get(required):
            raise PreconditionError(f"No value for {required}")

    values = {k: (None if v is None else str(v)) for k, v in merged.items() if k in _SETTABLE}
    cfg = InstallConfig(distro=distro, dry_run=dry_run, **values)
    validate_config(cfg)

    defaults = manifest.get("defaults") or {}
    if cfg.root_password == defaults.get("root_password"):
        logger.warning("Using the default root password; change it after first boot")
    return cfg
