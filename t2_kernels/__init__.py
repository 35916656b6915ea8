"""Update tooling for the cached T2 kernel flake."""

from __future__ import annotations

from importlib import resources
from importlib.metadata import PackageNotFoundError, version as pkg_version

__all__ = [
    "actions",
    "builder",
    "check",
    "config",
    "flake",
    "flake_lock",
    "prefetch",
    "upstream",
    "versions",
]


def _discover_version() -> str:
    try:
        return pkg_version("t2-kernel-cache")
    except PackageNotFoundError:
        try:
            return resources.files(__package__).joinpath("VERSION").read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return "unknown"


__version__ = _discover_version()
