from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from typing import Iterable, List, Mapping, Sequence

from ..errors import ToolExecutionError

logger = logging.getLogger(__name__)

CLEAN_PATH = "/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin"


@dataclass(frozen=True)
class CmdResult:
    argv: list[str]
    returncode: int
    stdout: str
    stderr: str


def _fmt_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


def _build_env(env: Mapping[str, str] | None, clean_env: bool) -> dict[str, str]:
    if clean_env:
        base = {"PATH": CLEAN_PATH}
        base.update(env or {})
        return base
    return dict(os.environ, **(env or {}))


def run_cmd(
    argv: Sequence[str],
    *,
    check: bool = True,
    env: Mapping[str, str] | None = None,
    clean_env: bool = False,
    cwd: str | None = None,
    input_text: str | None = None,
    dry_run: bool = False,
) -> CmdResult:
    """Run a command with consistent logging.

    - Always logs the command (never the stdin payload, which may hold passwords).
    - Captures stdout/stderr; they are logged at DEBUG.
    - check=True turns a non-zero exit into ToolExecutionError.
    - clean_env=True starts from an empty environment plus PATH, like ``env -i``.
    - dry_run logs but does not execute.
    """

    argv_list = list(argv)
    logger.info("CMD %s", _fmt_argv(argv_list))

    if dry_run:
        return CmdResult(argv=argv_list, returncode=0, stdout="", stderr="")

    try:
        p = subprocess.run(
            argv_list,
            input=input_text,
            text=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=cwd,
            env=_build_env(env, clean_env),
        )
    except FileNotFoundError as e:
        if check:
            raise ToolExecutionError(argv_list, 127, str(e)) from e
        logger.warning("Command not found: %s", argv_list[0] if argv_list else "")
        return CmdResult(argv=argv_list, returncode=127, stdout="", stderr=str(e))

    if p.stdout:
        logger.debug("STDOUT %s", p.stdout.strip())
    if p.stderr:
        logger.debug("STDERR %s", p.stderr.strip())

    if check and p.returncode != 0:
        raise ToolExecutionError(argv_list, p.returncode, p.stderr)

    return CmdResult(argv=argv_list, returncode=p.returncode, stdout=p.stdout, stderr=p.stderr)


def missing_tools(tools: Iterable[str]) -> List[str]:
    """Return the tools from ``tools`` that are not on PATH, in order."""

    return [t for t in tools if shutil.which(t) is None]
