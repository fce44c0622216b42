from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List

import yaml


def _package_root() -> Path:
    # usb_installer/lib/manifests.py -> usb_installer
    return Path(__file__).resolve().parents[1]


def available_distros() -> List[str]:
    return sorted(p.stem for p in (_package_root() / "manifests").glob("*.yaml"))


def load_yaml_rel(rel_path: str) -> Dict[str, Any]:
    """Load a YAML file relative to the package root (manifests/...)."""
    p = _package_root() / rel_path.lstrip("/")
    data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Manifest must be a mapping/dict: {p}")
    return data


def load_manifest(distro: str) -> Dict[str, Any]:
    if distro not in available_distros():
        raise ValueError(f"No manifest for distro '{distro}'")
    return load_yaml_rel(f"manifests/{distro}.yaml")
