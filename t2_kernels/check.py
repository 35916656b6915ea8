"""Compare recorded kernel versions with upstream and apply updates.

Each check ends in one of three states. ``no-change`` and ``updated`` are the
two outcomes of a successful comparison; ``failed`` covers upstream errors and
is treated by callers exactly like ``no-change`` so a flaky network never
touches ``flake.nix``. Failures caused by ``flake.nix`` itself (a renamed
marker, a missing field) are flagged with ``config_error`` so the CLI can exit
non-zero for them.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence

from .commands import CommandError
from .config import HARDWARE_INPUT, Variant
from .flake import PatchError, load_flake, patch_flake
from .flake_lock import input_repository, locked_revision
from .logging_utils import log_event
from .prefetch import PrefetchError
from .upstream import UpstreamError
from .versions import latest_in_series

NO_CHANGE = "no-change"
UPDATED = "updated"
FAILED = "failed"

VersionFetcher = Callable[[], Sequence[str]]
HashLookup = Callable[[str], str]
CommitResolver = Callable[[str], str]


@dataclass(frozen=True)
class CheckResult:
    """Outcome of comparing one recorded value with upstream."""

    variant: str
    current: Optional[str]
    latest: Optional[str]
    status: str
    reason: Optional[str] = None
    config_error: bool = False

    @property
    def updated(self) -> bool:
        return self.status == UPDATED


def _result(
    variant: str,
    current: Optional[str],
    latest: Optional[str],
    status: str,
    reason: Optional[str] = None,
    *,
    config_error: bool = False,
) -> CheckResult:
    log_event(
        f"t2_kernels.check.variant.{status.replace('-', '_')}",
        variant=variant,
        current=current,
        latest=latest,
        reason=reason,
    )
    return CheckResult(
        variant=variant,
        current=current,
        latest=latest,
        status=status,
        reason=reason,
        config_error=config_error,
    )


def check_variant(
    variant: Variant, current: str, *, fetch_versions: VersionFetcher
) -> CheckResult:
    """Compare ``current`` with the newest upstream release in the variant's series."""

    try:
        versions = fetch_versions()
    except UpstreamError as exc:
        return _result(variant.name, current, None, FAILED, str(exc))

    latest = latest_in_series(versions, variant.series)
    if latest is None:
        return _result(
            variant.name,
            current,
            None,
            FAILED,
            f"no {variant.series}.x release found upstream",
        )
    if latest == current:
        return _result(variant.name, current, latest, NO_CHANGE)
    return _result(variant.name, current, latest, UPDATED)


def check_kernel_updates(
    flake_path: Path,
    variants: Iterable[Variant],
    *,
    fetch_versions: VersionFetcher,
    hash_for: HashLookup,
    dry_run: bool = False,
) -> List[CheckResult]:
    """Check every variant and patch ``flake_path`` for those with new releases.

    The release feed is fetched at most once per call. A variant that is
    already current but still pinned to a placeholder hash (``lib.fakeHash``
    or an empty string) gets the real hash of its current version. With
    ``dry_run`` the comparison runs but neither hashes nor ``flake.nix`` are
    touched.
    """

    cached: List[List[str]] = []

    def fetch_once() -> Sequence[str]:
        if not cached:
            cached.append(list(fetch_versions()))
        return cached[0]

    results: List[CheckResult] = []
    for variant in variants:
        try:
            document = load_flake(flake_path)
            current = document.current_version(variant.marker)
            placeholder = document.has_placeholder_hash(variant.marker)
        except PatchError as exc:
            results.append(
                _result(variant.name, None, None, FAILED, str(exc), config_error=True)
            )
            continue

        result = check_variant(variant, current, fetch_versions=fetch_once)
        if dry_run or result.status == FAILED:
            results.append(result)
            continue
        if result.status == NO_CHANGE and not placeholder:
            results.append(result)
            continue

        target = result.latest if result.updated else current
        assert target is not None
        try:
            new_hash = hash_for(target)
        except (PrefetchError, CommandError) as exc:
            results.append(_result(variant.name, current, target, FAILED, str(exc)))
            continue
        try:
            patch_flake(flake_path, variant.marker, current, target, new_hash)
        except PatchError as exc:
            results.append(
                _result(
                    variant.name,
                    current,
                    target,
                    FAILED,
                    str(exc),
                    config_error=True,
                )
            )
            continue
        if result.updated:
            results.append(result)
        else:
            results.append(
                _result(variant.name, current, target, UPDATED, "replaced placeholder hash")
            )

    return results


def check_hardware_input(
    lock_path: Path,
    *,
    resolve_commit: CommitResolver,
    input_name: str = HARDWARE_INPUT,
) -> CheckResult:
    """Compare the locked revision of ``input_name`` with its remote head.

    Raises :class:`~t2_kernels.flake_lock.LockFileError` when ``flake.lock``
    does not describe the input.
    """

    current = locked_revision(lock_path, input_name)
    try:
        latest = resolve_commit(input_repository(lock_path, input_name))
    except UpstreamError as exc:
        return _result(input_name, current, None, FAILED, str(exc))
    if latest == current:
        return _result(input_name, current, latest, NO_CHANGE)
    return _result(input_name, current, latest, UPDATED)


def any_updated(results: Iterable[CheckResult]) -> bool:
    return any(result.updated for result in results)
