"""Environment-driven settings and the tracked kernel variants."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

DEFAULT_RELEASES_URL = "https://www.kernel.org/releases.json"
DEFAULT_HTTP_TIMEOUT = 30.0
HARDWARE_INPUT = "nixos-hardware"


@dataclass(frozen=True)
class Variant:
    """A kernel build target tracked in ``flake.nix``.

    ``marker`` is the word in the ``# <marker> kernel`` comment that opens the
    variant's block, ``series`` is the ``major.minor`` prefix its releases
    share, and ``package`` names the flake output that builds it.
    """

    name: str
    marker: str
    series: str
    package: str


DEFAULT_VARIANTS: Tuple[Variant, ...] = (
    Variant(name="lts", marker="LTS", series="6.6", package="linux-t2-stable"),
    Variant(name="latest", marker="Latest", series="6.12", package="linux-t2-latest"),
)

_VARIANT_ALIASES = {"stable": "lts"}


@dataclass(frozen=True)
class Settings:
    releases_url: str = DEFAULT_RELEASES_URL
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    variants: Tuple[Variant, ...] = DEFAULT_VARIANTS
    cachix_cache: Optional[str] = None
    cachix_token: Optional[str] = None
    log_events: bool = False
    log_file: Optional[Path] = None

    def variant(self, name: str) -> Variant:
        """Return the variant called ``name`` (``stable`` is an alias of ``lts``)."""

        key = name.strip().lower()
        key = _VARIANT_ALIASES.get(key, key)
        for variant in self.variants:
            if variant.name == key:
                return variant
        known = ", ".join(variant.name for variant in self.variants)
        raise ValueError(f"Unknown kernel variant {name!r} (expected one of: {known})")


def _non_empty(environ: Mapping[str, str], key: str) -> Optional[str]:
    value = environ.get(key)
    if value is None or value.strip() == "":
        return None
    return value.strip()


def _enabled(value: Optional[str]) -> bool:
    if value is None:
        return False
    return value.strip().lower() not in {"", "0", "false", "no"}


def _logging_fields(environ: Mapping[str, str]) -> Dict[str, Any]:
    log_file = _non_empty(environ, "T2_KERNELS_LOG_FILE")
    return {
        "log_events": _enabled(environ.get("T2_KERNELS_LOG_EVENTS")),
        "log_file": Path(log_file) if log_file else None,
    }


def logging_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Return default :class:`Settings` carrying only the logging options of ``environ``.

    Unlike :func:`load_settings` this never raises, so log calls made before
    the CLI has loaded its configuration still work.
    """

    env = os.environ if environ is None else environ
    return Settings(**_logging_fields(env))


def _parse_timeout(value: Optional[str]) -> float:
    if value is None:
        return DEFAULT_HTTP_TIMEOUT
    try:
        timeout = float(value)
    except ValueError as exc:
        raise ValueError(f"Invalid T2_KERNELS_HTTP_TIMEOUT: {value!r}") from exc
    if timeout <= 0:
        raise ValueError(f"T2_KERNELS_HTTP_TIMEOUT must be positive, got {value!r}")
    return timeout


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build :class:`Settings` from ``environ`` (defaults to ``os.environ``)."""

    env = os.environ if environ is None else environ

    variants = []
    for variant in DEFAULT_VARIANTS:
        series = _non_empty(env, f"T2_KERNELS_{variant.name.upper()}_SERIES")
        variants.append(replace(variant, series=series) if series else variant)

    return Settings(
        releases_url=_non_empty(env, "T2_KERNELS_RELEASES_URL") or DEFAULT_RELEASES_URL,
        http_timeout=_parse_timeout(_non_empty(env, "T2_KERNELS_HTTP_TIMEOUT")),
        variants=tuple(variants),
        cachix_cache=_non_empty(env, "CACHIX_CACHE_NAME"),
        cachix_token=_non_empty(env, "CACHIX_AUTH_TOKEN"),
        **_logging_fields(env),
    )
