"""Compute content hashes for kernel source tarballs with the Nix tools."""

from __future__ import annotations

from typing import Optional

from .commands import CommandError, Runner, run_command
from .logging_utils import log_event
from .versions import kernel_tarball_url


class PrefetchError(RuntimeError):
    """Raised when a source hash cannot be computed."""


def prefetch_url(url: str, *, runner: Optional[Runner] = None) -> str:
    """Download ``url`` into the Nix store and return its base-32 SHA-256."""

    run = runner or run_command
    try:
        output = run(["nix-prefetch-url", url])
    except CommandError as exc:
        raise PrefetchError(f"Could not prefetch {url}: {exc}") from exc
    lines = output.splitlines()
    digest = lines[-1].strip() if lines else ""
    if not digest:
        raise PrefetchError(f"nix-prefetch-url printed no hash for {url}")
    return digest


def to_sri(digest: str, *, runner: Optional[Runner] = None) -> str:
    """Convert a base-32 SHA-256 into the ``sha256-<base64>`` SRI form."""

    if digest.startswith("sha256-"):
        return digest
    run = runner or run_command
    try:
        output = run(["nix", "hash", "to-sri", "--type", "sha256", digest])
    except CommandError as exc:
        raise PrefetchError(f"Could not convert {digest} to SRI: {exc}") from exc
    sri = output.strip()
    if not sri.startswith("sha256-"):
        raise PrefetchError(f"Unexpected SRI hash from nix: {sri!r}")
    return sri


def kernel_source_hash(version: str, *, runner: Optional[Runner] = None) -> str:
    """Return the SRI hash of the kernel.org tarball for ``version``."""

    url = kernel_tarball_url(version)
    log_event("t2_kernels.prefetch.start", version=version, url=url)
    sri = to_sri(prefetch_url(url, runner=runner), runner=runner)
    log_event("t2_kernels.prefetch.finished", version=version, hash=sri)
    return sri
