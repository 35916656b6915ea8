"""Kernel version ordering and helpers."""

from __future__ import annotations

import re
from typing import Iterable, Optional, Tuple

RE_CHUNK = re.compile(r"(\D*)(\d*)")
RE_COMMIT = re.compile(r"^[0-9a-fA-F]{40}$")
KERNEL_CDN = "https://cdn.kernel.org/pub/linux/kernel"


def version_key(version: str) -> Tuple[Tuple[str, int], ...]:
    """Return a sort key ordering versions like ``sort -V``.

    The string is split into alternating non-digit and digit runs. Digit runs
    compare numerically, so ``6.6.9`` sorts before ``6.6.10``.
    """

    parts = []
    for text, digits in RE_CHUNK.findall(version.strip()):
        if not text and not digits:
            continue
        parts.append((text, int(digits) if digits else -1))
    return tuple(parts)


def compare_versions(left: str, right: str) -> int:
    """Return ``-1``, ``0`` or ``1`` as ``left`` sorts before, with or after ``right``."""

    left_key = version_key(left)
    right_key = version_key(right)
    if left_key < right_key:
        return -1
    if left_key > right_key:
        return 1
    return 0


def in_series(version: str, series: str) -> bool:
    """Return ``True`` when ``version`` belongs to the ``series`` prefix.

    Components are compared whole: ``6.12.3`` is in ``6.12`` but not in
    ``6.1``. A pre-release suffix on the last series component (``6.12-rc1``)
    still counts as part of the series.
    """

    wanted = series.strip().split(".")
    components = version.strip().split(".")
    if len(components) < len(wanted):
        return False
    for index, part in enumerate(wanted):
        component = components[index]
        if component == part:
            continue
        if index == len(wanted) - 1 and component.startswith(part + "-"):
            continue
        return False
    return True


def latest_in_series(versions: Iterable[str], series: str) -> Optional[str]:
    """Return the highest version in ``series``, or ``None`` when there is none."""

    candidates = [version for version in versions if version and in_series(version, series)]
    if not candidates:
        return None
    return max(candidates, key=version_key)


def is_commit_hash(value: str) -> bool:
    return bool(RE_COMMIT.match(value))


def kernel_major(version: str) -> str:
    major = version.split(".", 1)[0]
    if not major.isdigit():
        raise ValueError(f"Not a kernel version: {version!r}")
    return major


def kernel_tarball_url(version: str) -> str:
    """Return the kernel.org source tarball URL for ``version``."""

    return f"{KERNEL_CDN}/v{kernel_major(version)}.x/linux-{version}.tar.xz"
