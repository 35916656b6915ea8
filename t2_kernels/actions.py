"""Report results through the GitHub Actions step output and summary files."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, List, Mapping, Optional

from .check import CheckResult
from .logging_utils import log_event


def _append(environ: Mapping[str, str], key: str, text: str) -> bool:
    target = environ.get(key)
    if not target:
        return False
    with Path(target).open("a", encoding="utf-8") as handle:
        handle.write(text)
    return True


def write_output(name: str, value: str, *, environ: Optional[Mapping[str, str]] = None) -> bool:
    """Append ``name=value`` to ``$GITHUB_OUTPUT`` when running under Actions."""

    env = os.environ if environ is None else environ
    written = _append(env, "GITHUB_OUTPUT", f"{name}={value}\n")
    log_event("t2_kernels.actions.output", name=name, value=value, written=written)
    return written


def render_summary(results: Iterable[CheckResult], *, subject: str = "Kernel") -> str:
    """Return a markdown summary of ``results``."""

    updated = [result for result in results if result.updated]
    if not updated:
        return f"## All {subject.lower()}s are up to date\n"

    lines: List[str] = [
        f"## {subject} Updates Available",
        "",
        "| Variant | Old Version | New Version |",
        "|---------|-------------|-------------|",
    ]
    for result in updated:
        lines.append(f"| {result.variant} | {result.current} | {result.latest} |")
    return "\n".join(lines) + "\n"


def write_summary(
    results: Iterable[CheckResult],
    *,
    subject: str = "Kernel",
    environ: Optional[Mapping[str, str]] = None,
) -> bool:
    env = os.environ if environ is None else environ
    return _append(env, "GITHUB_STEP_SUMMARY", render_summary(results, subject=subject))
