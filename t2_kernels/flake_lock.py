"""Inspect and refresh flake inputs recorded in ``flake.lock``."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional

from .commands import Runner, run_command
from .config import HARDWARE_INPUT
from .logging_utils import log_event


class LockFileError(ValueError):
    """Raised when ``flake.lock`` is missing, malformed or lacks an input."""


def _load(path: Path) -> Dict[str, Any]:
    try:
        text = Path(path).read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise LockFileError(f"{path} does not exist") from exc
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise LockFileError(f"{path} is not valid JSON") from exc
    if not isinstance(data, dict) or not isinstance(data.get("nodes"), dict):
        raise LockFileError(f"{path} has no 'nodes' mapping")
    return data


def _input_node(data: Dict[str, Any], input_name: str) -> Dict[str, Any]:
    nodes = data["nodes"]
    root = nodes.get(data.get("root", "root"), {})
    node_name = input_name
    if isinstance(root, dict):
        mapped = (root.get("inputs") or {}).get(input_name)
        # Follows are recorded as a path list; only direct inputs are handled.
        if isinstance(mapped, str):
            node_name = mapped
    node = nodes.get(node_name)
    if not isinstance(node, dict):
        raise LockFileError(f"flake.lock has no node for input {input_name!r}")
    return node


def locked_revision(path: Path, input_name: str = HARDWARE_INPUT) -> str:
    """Return the commit ``input_name`` is locked to."""

    node = _input_node(_load(path), input_name)
    rev = (node.get("locked") or {}).get("rev")
    if not isinstance(rev, str) or not rev:
        raise LockFileError(f"Input {input_name!r} has no locked revision")
    return rev


def input_repository(path: Path, input_name: str = HARDWARE_INPUT) -> str:
    """Return the clone URL of a GitHub-hosted flake input."""

    node = _input_node(_load(path), input_name)
    for section in ("original", "locked"):
        ref = node.get(section) or {}
        if ref.get("type") == "github" and ref.get("owner") and ref.get("repo"):
            return f"https://github.com/{ref['owner']}/{ref['repo']}"
        if ref.get("type") == "git" and ref.get("url"):
            return str(ref["url"])
    raise LockFileError(f"Input {input_name!r} is not a GitHub or git input")


def update_input(
    repo_root: Path,
    input_name: str = HARDWARE_INPUT,
    *,
    runner: Optional[Runner] = None,
) -> None:
    """Refresh ``input_name`` in ``flake.lock`` with ``nix flake lock``.

    Raises :class:`~t2_kernels.commands.CommandError` when ``nix`` fails.
    """

    run = runner or run_command
    log_event("t2_kernels.flake_lock.update.start", input=input_name, repo_root=repo_root)
    run(
        ["nix", "flake", "lock", "--update-input", input_name],
        cwd=str(repo_root),
    )
    log_event("t2_kernels.flake_lock.update.finished", input=input_name)
