from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import InstallConfig
from .errors import ReleaseError
from .lifecycle import LifecycleStack


@dataclass
class InstallContext:
    """Everything a stage needs, passed explicitly instead of via cwd or env."""

    cfg: InstallConfig
    recipe: Any
    stack: LifecycleStack
    workspace: Optional[Path] = None
    state: Dict[str, Any] = field(default_factory=dict)
    release_errors: List[ReleaseError] = field(default_factory=list)

    @property
    def dry_run(self) -> bool:
        return self.cfg.dry_run

    @property
    def chroot_root(self) -> Path:
        if self.workspace is None:
            raise RuntimeError("Workspace not created yet; run the workspace stage first")
        return self.workspace / self.recipe.chroot_dirname

    @property
    def archives_dir(self) -> Path:
        if self.cfg.cache_policy == "none":
            if self.workspace is None:
                raise RuntimeError("Workspace not created yet; run the workspace stage first")
            return self.workspace / "archives"
        return Path(self.cfg.cache_dir) / "archives"

    def decisions(self) -> Dict[str, Any]:
        return self.state.setdefault("execution", {}).setdefault("decisions", {})

    def partition(self, role: str) -> str:
        parts = self.decisions().get("partitions") or {}
        dev = parts.get(role)
        if not dev:
            raise RuntimeError(f"Partition '{role}' unknown; run the partition stage first")
        return dev
