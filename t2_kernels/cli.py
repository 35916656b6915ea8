"""CLI entry point for the T2 kernel cache tooling."""

import argparse
import sys
from functools import partial
from pathlib import Path
from typing import List, Sequence

from . import __version__, actions, builder, check, config, flake_lock, logging_utils, prefetch, upstream
from .commands import CommandError


def _print_result(label: str, result: check.CheckResult, *, detail: str = "") -> None:
    print(f"Checking {label}{detail}...")
    if result.status == check.FAILED:
        print(f"  Could not check {label}: {result.reason}")
        return
    print(f"  Current: {result.current}")
    print(f"  Latest:  {result.latest}")
    if result.updated and result.reason:
        print(f"  {label}: {result.reason}.")
    elif result.updated:
        print(f"  New {label} version available.")
    else:
        print(f"  {label} is up to date.")


def _report(
    results: Sequence[check.CheckResult], *, subject: str, signal: bool = True
) -> bool:
    """Print the outcome and, when ``signal`` is set, write the step output."""

    updated = check.any_updated(results)
    if updated:
        print(f"{subject} updates available:")
        for result in results:
            if result.updated:
                note = f" ({result.reason})" if result.reason else ""
                print(f"  - {result.variant}: {result.current} -> {result.latest}{note}")
    else:
        print(f"All {subject.lower()}s are up to date.")
    if signal:
        actions.write_output("updated", "true" if updated else "false")
    actions.write_summary(results, subject=subject)
    return updated


def _selected_variants(settings: config.Settings, names: List[str]) -> List[config.Variant]:
    if not names:
        return list(settings.variants)
    return [settings.variant(name) for name in names]


def _check_kernels(args: argparse.Namespace, settings: config.Settings) -> int:
    variants = _selected_variants(settings, args.variant)
    results = check.check_kernel_updates(
        args.flake,
        variants,
        fetch_versions=partial(
            upstream.fetch_release_versions,
            settings.releases_url,
            timeout=settings.http_timeout,
        ),
        hash_for=prefetch.kernel_source_hash,
        dry_run=args.dry_run,
    )
    for variant, result in zip(variants, results):
        _print_result(f"{variant.marker} kernel", result, detail=f" ({variant.series}.x)")
    # flake.nix is untouched on a dry run, so the step output stays unset.
    _report(results, subject="Kernel", signal=not args.dry_run)

    config_errors = [result for result in results if result.config_error]
    for result in config_errors:
        print(f"Error: {result.reason}", file=sys.stderr)
    return 1 if config_errors else 0


def _check_hardware(args: argparse.Namespace, settings: config.Settings) -> int:
    try:
        result = check.check_hardware_input(
            args.lock,
            resolve_commit=upstream.resolve_remote_commit,
            input_name=args.input,
        )
    except flake_lock.LockFileError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    _print_result(args.input, result)

    if result.updated and args.update:
        try:
            flake_lock.update_input(args.lock.resolve().parent, args.input)
        except CommandError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1
    _report([result], subject="Input")
    return 0


def _build(args: argparse.Namespace, settings: config.Settings) -> int:
    packages = args.package or [variant.package for variant in settings.variants]
    nix = builder.NixBuilder(flake_ref=args.flake_ref)
    try:
        if args.push:
            cache = builder.CachixCache(settings.cachix_cache or "")
            pushed = builder.build_and_push(packages, nix, cache, settings.cachix_token)
            print(f"Pushed {len(pushed)} store paths to {cache.name}.")
        else:
            artifacts = builder.build_all(packages, nix)
            for path in artifacts:
                print(path)
    except (builder.BuildError, builder.CacheError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="t2-kernels",
        description="Keep the cached T2 kernel builds current",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    kernels = subparsers.add_parser(
        "check-kernels", help="Check kernel.org for new releases and update flake.nix"
    )
    kernels.add_argument("--flake", type=Path, default=Path("flake.nix"))
    kernels.add_argument(
        "--variant",
        action="append",
        default=[],
        help="Variant to check (lts, stable or latest; can be repeated)",
    )
    kernels.add_argument(
        "--dry-run",
        action="store_true",
        help="Only report available updates without modifying flake.nix",
    )
    kernels.set_defaults(handler=_check_kernels)

    hardware = subparsers.add_parser(
        "check-hardware", help="Compare the locked nixos-hardware revision with upstream"
    )
    hardware.add_argument("--lock", type=Path, default=Path("flake.lock"))
    hardware.add_argument("--input", default=config.HARDWARE_INPUT)
    hardware.add_argument(
        "--update",
        action="store_true",
        help="Run nix flake lock for the input when it changed upstream",
    )
    hardware.set_defaults(handler=_check_hardware)

    build = subparsers.add_parser("build", help="Build kernel packages and optionally push them")
    build.add_argument(
        "--package",
        action="append",
        default=[],
        help="Flake package to build (defaults to every tracked variant)",
    )
    build.add_argument("--flake-ref", default=".")
    build.add_argument(
        "--push",
        action="store_true",
        help="Push the build results to CACHIX_CACHE_NAME",
    )
    build.set_defaults(handler=_build)
    return parser


def main(argv: List[str] | None = None) -> None:
    """Run the t2-kernels tool."""
    parser = _parser()
    args = parser.parse_args(argv)
    try:
        settings = config.load_settings()
        if getattr(args, "variant", None):
            for name in args.variant:
                settings.variant(name)
    except ValueError as exc:
        parser.error(str(exc))
    logging_utils.configure(settings)
    sys.exit(args.handler(args, settings))


if __name__ == "__main__":
    main()
