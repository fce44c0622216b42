"""Run report: what was configured, which stages ran, what was left behind.

Written once per run for diagnosis. Never read back to resume a run.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict

import yaml

logger = logging.getLogger(__name__)

STATE_VERSION = "1"


def _detect_format(path: Path) -> str:
    ext = path.suffix.lower().lstrip(".")
    if ext in {"json", "yaml", "yml"}:
        return ext
    # Default to JSON for unknown extensions.
    return "json"


def save_state(path: str, state: Dict[str, Any]) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)

    if _detect_format(p) in {"yaml", "yml"}:
        p.write_text(yaml.safe_dump(state, sort_keys=False) + "\n", encoding="utf-8")
    else:
        p.write_text(json.dumps(state, indent=2, sort_keys=True, default=str) + "\n", encoding="utf-8")


def ensure_defaults(state: Dict[str, Any]) -> Dict[str, Any]:
    """Fill required keys with defaults (without overriding existing values)."""

    state.setdefault("version", STATE_VERSION)
    state.setdefault("config", {})
    state.setdefault("execution", {})

    exe = state["execution"]
    exe.setdefault("current_stage", None)
    exe.setdefault("completed_stages", [])
    exe.setdefault("failed_stage", None)
    exe.setdefault("errors", [])
    exe.setdefault("release_errors", [])
    exe.setdefault("resources", [])
    exe.setdefault("decisions", {})
    return state


def record_error(state: Dict[str, Any], error: BaseException) -> None:
    exe = state.setdefault("execution", {})
    exe.setdefault("errors", []).append(
        {
            "stage": exe.get("failed_stage") or exe.get("current_stage"),
            "type": type(error).__name__,
            "error": str(error),
        }
    )
