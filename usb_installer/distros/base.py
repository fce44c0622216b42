from __future__ import annotations

from typing import Any, Dict, List

from ..lib.storage import PartitionPlan


class DistroRecipe:
    """Distro-specific halves of the stages; data comes from the manifest."""

    name = ""

    def __init__(self, manifest: Dict[str, Any]) -> None:
        self.manifest = manifest

    @property
    def chroot_dirname(self) -> str:
        return str(self.manifest["chroot_dirname"])

    @property
    def host_tools(self) -> List[str]:
        return list(self.manifest.get("host_tools") or [])

    @property
    def archives(self) -> List[Dict[str, Any]]:
        return list(self.manifest.get("archives") or [])

    @property
    def pseudo_filesystems(self) -> List[str]:
        return list(self.manifest.get("pseudo_filesystems") or [])

    @property
    def package_cache(self) -> Dict[str, str]:
        return dict(self.manifest.get("package_cache") or {})

    @property
    def labels(self) -> Dict[str, str]:
        return dict(self.manifest.get("labels") or {})

    def partition_plan(self, disk: str) -> PartitionPlan:
        raise NotImplementedError

    def format(self, ctx) -> None:
        raise NotImplementedError

    def mount_target(self, ctx) -> None:
        raise NotImplementedError

    def configure(self, ctx) -> None:
        raise NotImplementedError
