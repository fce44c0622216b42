from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List


@dataclass(frozen=True)
class FstabEntry:
    spec: str
    mountpoint: str
    fstype: str
    options: str = "defaults"
    dump: int = 0
    passno: int = 0

    def render(self) -> str:
        return f"{self.spec}\t{self.mountpoint}\t{self.fstype}\t{self.options}\t{self.dump}\t{self.passno}"


def mounted_at(fstab_text: str) -> List[str]:
    """Mountpoints already present in an fstab, ignoring comments."""

    out = []
    for line in fstab_text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        fields = line.split()
        if len(fields) >= 2:
            out.append(fields[1])
    return out


def merge_entries(fstab_text: str, entries: Iterable[FstabEntry]) -> str:
    """Append entries whose mountpoint is not in ``fstab_text`` yet."""

    present = set(mounted_at(fstab_text))
    text = fstab_text
    if text and not text.endswith("\n"):
        text += "\n"
    for e in entries:
        if e.mountpoint not in present:
            text += e.render() + "\n"
            present.add(e.mountpoint)
    return text
