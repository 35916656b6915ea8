"""Run external tools (``git``, ``nix``, ``cachix``) and capture their output."""

from __future__ import annotations

import os
import subprocess
from typing import Callable, List, Mapping, Optional

from .logging_utils import log_event

Runner = Callable[..., str]


class CommandError(RuntimeError):
    """Raised when an external command cannot be run or exits non-zero."""

    def __init__(self, cmd: List[str], returncode: Optional[int], message: str) -> None:
        super().__init__(message)
        self.cmd = list(cmd)
        self.returncode = returncode


def run_command(
    cmd: List[str],
    *,
    env: Optional[Mapping[str, str]] = None,
    cwd: Optional[str] = None,
) -> str:
    """Run ``cmd`` and return its stripped standard output.

    ``env`` entries are layered on top of the current environment. Standard
    error is passed through so the tool's own diagnostics reach the CI log.
    """

    child_env = None
    if env:
        child_env = os.environ.copy()
        child_env.update(env)

    log_event("t2_kernels.command.start", command=cmd, cwd=cwd)
    try:
        result = subprocess.run(
            cmd,
            check=False,
            stdout=subprocess.PIPE,
            text=True,
            env=child_env,
            cwd=cwd,
        )
    except FileNotFoundError as exc:
        log_event("t2_kernels.command.missing", command=cmd)
        raise CommandError(cmd, None, f"Command {cmd[0]} not found") from exc

    log_event(
        "t2_kernels.command.finished",
        command=cmd,
        returncode=result.returncode,
    )
    if result.returncode != 0:
        raise CommandError(
            cmd,
            result.returncode,
            f"Command {' '.join(cmd)} failed with exit status {result.returncode}",
        )
    return result.stdout.strip()
