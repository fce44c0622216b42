"""System configuration files, written from Python instead of shell heredocs."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Sequence

logger = logging.getLogger(__name__)


def write_file(path: Path, contents: str, *, mode: int | None = None, dry_run: bool = False) -> None:
    if dry_run:
        logger.info("Would write %s", path)
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(contents, encoding="utf-8")
    if mode is not None:
        os.chmod(path, mode)
    logger.info("Wrote %s", path)


def write_hostname(root: Path, hostname: str, *, dry_run: bool = False) -> None:
    write_file(root / "etc/hostname", f"{hostname}\n", dry_run=dry_run)


def write_hosts(root: Path, hostname: str, *, dry_run: bool = False) -> None:
    contents = (
        "127.0.0.1\tlocalhost\n"
        "::1\t\tlocalhost\n"
        f"127.0.1.1\t{hostname}.localdomain\t{hostname}\n"
    )
    write_file(root / "etc/hosts", contents, dry_run=dry_run)


def enable_locale(locale_gen_text: str, locale: str) -> str:
    """Uncomment every ``locale`` line in a locale.gen file.

    Appends ``<locale> UTF-8`` when no commented line matched.
    """

    pattern = re.compile(r"^#\s*(" + re.escape(locale) + r"\s.*)$", re.MULTILINE)
    text, n = pattern.subn(r"\1", locale_gen_text)
    active = re.search(r"^" + re.escape(locale) + r"\s", text, re.MULTILINE)
    if n == 0 and not active:
        charset = locale.split(".", 1)[1] if "." in locale else "UTF-8"
        if text and not text.endswith("\n"):
            text += "\n"
        text += f"{locale} {charset}\n"
    return text


def write_locale(root: Path, locale: str, *, dry_run: bool = False) -> None:
    gen = root / "etc/locale.gen"
    current = gen.read_text(encoding="utf-8") if gen.exists() else ""
    write_file(gen, enable_locale(current, locale), dry_run=dry_run)
    write_file(root / "etc/locale.conf", f"LANG={locale}\n", dry_run=dry_run)


def write_vconsole(root: Path, keymap: str, *, dry_run: bool = False) -> None:
    write_file(root / "etc/vconsole.conf", f"KEYMAP={keymap}\nFONT=\n", dry_run=dry_run)


def set_mkinitcpio_hooks(conf_text: str, hooks: Sequence[str]) -> str:
    line = f"HOOKS=({' '.join(hooks)})"
    if re.search(r"^HOOKS=.*$", conf_text, re.MULTILINE):
        return re.sub(r"^HOOKS=.*$", line, conf_text, flags=re.MULTILINE)
    return conf_text + ("" if not conf_text or conf_text.endswith("\n") else "\n") + line + "\n"


def write_mkinitcpio_hooks(root: Path, hooks: Sequence[str], *, dry_run: bool = False) -> None:
    conf = root / "etc/mkinitcpio.conf"
    current = conf.read_text(encoding="utf-8") if conf.exists() else ""
    write_file(conf, set_mkinitcpio_hooks(current, hooks), dry_run=dry_run)


def write_sudoers_wheel(root: Path, *, dry_run: bool = False) -> None:
    write_file(root / "etc/sudoers.d/wheel", "%wheel ALL=(ALL:ALL) ALL\n", mode=0o440, dry_run=dry_run)


def write_network_interfaces(root: Path, iface: str = "eth0", *, dry_run: bool = False) -> None:
    contents = (
        "auto lo\n"
        "iface lo inet loopback\n"
        f"auto {iface}\n"
        f"iface {iface} inet dhcp\n"
    )
    write_file(root / "etc/network/interfaces", contents, dry_run=dry_run)
