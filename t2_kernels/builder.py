"""Build kernel packages with Nix and push them to a Cachix binary cache."""

from __future__ import annotations

from dataclasses import dataclass
from fnmatch import fnmatch
from typing import Iterable, List, Optional, Protocol, Sequence, Tuple

from .commands import CommandError, Runner, run_command
from .logging_utils import log_event

DEFAULT_EXCLUDES: Tuple[str, ...] = ("*.tar.xz", "*.tar.gz", "*-source")


class BuildError(RuntimeError):
    """Raised when ``nix build`` fails."""


class CacheError(RuntimeError):
    """Raised when artifacts cannot be pushed to the binary cache."""


@dataclass(frozen=True)
class ArtifactSet:
    """Store paths produced by a build."""

    paths: Tuple[str, ...] = ()

    def __bool__(self) -> bool:
        return bool(self.paths)

    def __iter__(self):
        return iter(self.paths)

    def __len__(self) -> int:
        return len(self.paths)

    def merge(self, other: "ArtifactSet") -> "ArtifactSet":
        seen = list(self.paths)
        seen.extend(path for path in other.paths if path not in self.paths)
        return ArtifactSet(tuple(seen))

    def filtered(self, excludes: Iterable[str] = DEFAULT_EXCLUDES) -> "ArtifactSet":
        """Return the paths that match none of the ``excludes`` patterns."""

        patterns = list(excludes)
        kept = [
            path
            for path in self.paths
            if not any(fnmatch(path, pattern) for pattern in patterns)
        ]
        return ArtifactSet(tuple(kept))


class Builder(Protocol):
    def build(self, package: str) -> ArtifactSet:
        ...


class Cache(Protocol):
    def push(self, artifacts: ArtifactSet, credential: Optional[str]) -> ArtifactSet:
        ...


class NixBuilder:
    """Build flake outputs through ``nix build``."""

    def __init__(
        self,
        *,
        runner: Optional[Runner] = None,
        nix_bin: str = "nix",
        flake_ref: str = ".",
    ) -> None:
        self._runner = runner or run_command
        self._nix_bin = nix_bin
        self._flake_ref = flake_ref

    def command(self, package: str) -> List[str]:
        return [
            self._nix_bin,
            "--experimental-features",
            "nix-command flakes",
            "build",
            "--no-link",
            "--print-out-paths",
            f"{self._flake_ref}#{package}",
        ]

    def build(self, package: str) -> ArtifactSet:
        log_event("t2_kernels.build.start", package=package)
        try:
            output = self._runner(self.command(package))
        except CommandError as exc:
            log_event("t2_kernels.build.failed", package=package, returncode=exc.returncode)
            raise BuildError(f"Building {package} failed: {exc}") from exc
        paths = tuple(line.strip() for line in output.splitlines() if line.strip())
        log_event("t2_kernels.build.finished", package=package, paths=paths)
        return ArtifactSet(paths)


class CachixCache:
    """Push store paths to a named Cachix cache."""

    def __init__(
        self,
        name: str,
        *,
        runner: Optional[Runner] = None,
        cachix_bin: str = "cachix",
        excludes: Sequence[str] = DEFAULT_EXCLUDES,
    ) -> None:
        if not name:
            raise CacheError("A Cachix cache name is required (set CACHIX_CACHE_NAME)")
        self.name = name
        self._runner = runner or run_command
        self._cachix_bin = cachix_bin
        self._excludes = tuple(excludes)

    def push(self, artifacts: ArtifactSet, credential: Optional[str]) -> ArtifactSet:
        """Push ``artifacts`` minus excluded paths and return what was pushed."""

        if not credential:
            raise CacheError("A Cachix auth token is required (set CACHIX_AUTH_TOKEN)")
        selected = artifacts.filtered(self._excludes)
        if not selected:
            log_event("t2_kernels.cache.push.skip", cache=self.name, reason="nothing to push")
            return selected
        cmd = [self._cachix_bin, "push", self.name, *selected.paths]
        log_event("t2_kernels.cache.push.start", cache=self.name, paths=selected.paths)
        try:
            self._runner(cmd, env={"CACHIX_AUTH_TOKEN": credential})
        except CommandError as exc:
            log_event("t2_kernels.cache.push.failed", cache=self.name, returncode=exc.returncode)
            raise CacheError(f"Pushing to {self.name} failed: {exc}") from exc
        log_event("t2_kernels.cache.push.finished", cache=self.name, count=len(selected))
        return selected


def build_all(packages: Iterable[str], builder: Builder) -> ArtifactSet:
    artifacts = ArtifactSet()
    for package in packages:
        artifacts = artifacts.merge(builder.build(package))
    return artifacts


def build_and_push(
    packages: Iterable[str],
    builder: Builder,
    cache: Cache,
    credential: Optional[str],
) -> ArtifactSet:
    """Build every package, then push the combined artifacts in one call."""

    return cache.push(build_all(packages, builder), credential)
