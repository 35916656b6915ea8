"""Tests for CLI entry point."""

import json

import pytest

from t2_kernels import cli
from t2_kernels.builder import ArtifactSet, BuildError
from t2_kernels.upstream import UpstreamError

NEW_HASH = "sha256-NEWHASHNEWHASHNEWHASHNEWHASHNEWHASHNEWHASH00="


@pytest.fixture
def actions_env(tmp_path, monkeypatch):
    output = tmp_path / "github-output"
    summary = tmp_path / "step-summary.md"
    monkeypatch.setenv("GITHUB_OUTPUT", str(output))
    monkeypatch.setenv("GITHUB_STEP_SUMMARY", str(summary))
    for key in ("T2_KERNELS_LTS_SERIES", "T2_KERNELS_LATEST_SERIES", "T2_KERNELS_HTTP_TIMEOUT"):
        monkeypatch.delenv(key, raising=False)
    return output, summary


def _run(argv):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(argv)
    return excinfo.value.code


def test_check_kernels_updates_flake(monkeypatch, capsys, flake_file, actions_env):
    output, summary = actions_env
    monkeypatch.setattr(
        cli.upstream,
        "fetch_release_versions",
        lambda url, timeout=None: ["6.6.62", "6.12.5"],
    )
    monkeypatch.setattr(cli.prefetch, "kernel_source_hash", lambda version: NEW_HASH)

    assert _run(["check-kernels", "--flake", str(flake_file)]) == 0

    out = capsys.readouterr().out
    assert "LTS kernel is up to date." in out
    assert "latest: 6.12.1 -> 6.12.5" in out
    assert 'version = "6.12.5";' in flake_file.read_text(encoding="utf-8")
    assert output.read_text(encoding="utf-8") == "updated=true\n"
    assert "| latest | 6.12.1 | 6.12.5 |" in summary.read_text(encoding="utf-8")


def test_check_kernels_fetch_failure_is_not_fatal(monkeypatch, capsys, flake_file, actions_env):
    output, _ = actions_env
    before = flake_file.read_bytes()

    def offline(url, timeout=None):
        raise UpstreamError("Could not reach kernel.org")

    monkeypatch.setattr(cli.upstream, "fetch_release_versions", offline)

    assert _run(["check-kernels", "--flake", str(flake_file)]) == 0

    out = capsys.readouterr().out
    assert "Could not check LTS kernel" in out
    assert "All kernels are up to date." in out
    assert flake_file.read_bytes() == before
    assert output.read_text(encoding="utf-8") == "updated=false\n"


def test_check_kernels_dry_run_single_variant(monkeypatch, capsys, flake_file, actions_env):
    output, summary = actions_env
    before = flake_file.read_bytes()
    monkeypatch.setattr(
        cli.upstream,
        "fetch_release_versions",
        lambda url, timeout=None: ["6.6.66", "6.12.5"],
    )

    assert _run(["check-kernels", "--flake", str(flake_file), "--variant", "stable", "--dry-run"]) == 0

    out = capsys.readouterr().out
    assert "lts: 6.6.62 -> 6.6.66" in out
    assert "latest" not in out
    assert flake_file.read_bytes() == before
    assert not output.exists()
    assert "| lts | 6.6.62 | 6.6.66 |" in summary.read_text(encoding="utf-8")


def test_check_kernels_renamed_marker_exits_non_zero(monkeypatch, capsys, flake_file, actions_env):
    flake_file.write_text(
        flake_file.read_text(encoding="utf-8").replace("# LTS kernel", "# Longterm kernel"),
        encoding="utf-8",
    )
    monkeypatch.setattr(
        cli.upstream, "fetch_release_versions", lambda url, timeout=None: ["6.12.1"]
    )

    assert _run(["check-kernels", "--flake", str(flake_file)]) == 1

    err = capsys.readouterr().err
    assert "No '# LTS kernel' block" in err


def test_unknown_variant_is_a_usage_error(flake_file, actions_env):
    assert _run(["check-kernels", "--flake", str(flake_file), "--variant", "mainline"]) == 2


def test_check_hardware_with_update(monkeypatch, capsys, tmp_path, actions_env):
    output, _ = actions_env
    lock = tmp_path / "flake.lock"
    lock.write_text(
        json.dumps(
            {
                "nodes": {
                    "nixos-hardware": {
                        "locked": {"owner": "NixOS", "repo": "nixos-hardware", "rev": "a" * 40, "type": "github"},
                        "original": {"owner": "NixOS", "repo": "nixos-hardware", "type": "github"},
                    },
                    "root": {"inputs": {"nixos-hardware": "nixos-hardware"}},
                },
                "root": "root",
                "version": 7,
            }
        ),
        encoding="utf-8",
    )
    updates = []
    monkeypatch.setattr(cli.upstream, "resolve_remote_commit", lambda repo: "b" * 40)
    monkeypatch.setattr(
        cli.flake_lock,
        "update_input",
        lambda root, name: updates.append((root, name)),
    )

    assert _run(["check-hardware", "--lock", str(lock), "--update"]) == 0

    assert updates == [(tmp_path.resolve(), "nixos-hardware")]
    assert output.read_text(encoding="utf-8") == "updated=true\n"
    assert "Input updates available:" in capsys.readouterr().out


def test_check_hardware_missing_lock(capsys, tmp_path, actions_env):
    assert _run(["check-hardware", "--lock", str(tmp_path / "flake.lock")]) == 1
    assert "does not exist" in capsys.readouterr().err


def test_build_and_push(monkeypatch, capsys, actions_env):
    monkeypatch.setenv("CACHIX_CACHE_NAME", "t2-kernels")
    monkeypatch.setenv("CACHIX_AUTH_TOKEN", "token")
    built = []
    pushed = []

    class FakeBuilder:
        def __init__(self, **kwargs):
            pass

        def build(self, package):
            built.append(package)
            return ArtifactSet((f"/nix/store/{package}",))

    class FakeCache:
        def __init__(self, name):
            self.name = name

        def push(self, artifacts, credential):
            pushed.append((self.name, artifacts.paths, credential))
            return artifacts

    monkeypatch.setattr(cli.builder, "NixBuilder", FakeBuilder)
    monkeypatch.setattr(cli.builder, "CachixCache", FakeCache)

    assert _run(["build", "--push"]) == 0

    assert built == ["linux-t2-stable", "linux-t2-latest"]
    assert pushed == [
        (
            "t2-kernels",
            ("/nix/store/linux-t2-stable", "/nix/store/linux-t2-latest"),
            "token",
        )
    ]
    assert "Pushed 2 store paths to t2-kernels." in capsys.readouterr().out


def test_build_failure_exits_non_zero(monkeypatch, capsys, actions_env):
    class FailingBuilder:
        def __init__(self, **kwargs):
            pass

        def build(self, package):
            raise BuildError(f"Building {package} failed")

    monkeypatch.setattr(cli.builder, "NixBuilder", FailingBuilder)

    assert _run(["build", "--package", "linux-t2-latest"]) == 1
    assert "Building linux-t2-latest failed" in capsys.readouterr().err


def test_version_flag(capsys):
    assert _run(["--version"]) == 0
    assert capsys.readouterr().out.startswith("t2-kernels ")


def test_check_kernels_invalid_feed_url_is_not_fatal(monkeypatch, capsys, flake_file, actions_env):
    output, _ = actions_env
    before = flake_file.read_bytes()
    monkeypatch.setenv("T2_KERNELS_RELEASES_URL", "kernel.org/releases.json")

    assert _run(["check-kernels", "--flake", str(flake_file)]) == 0

    out = capsys.readouterr().out
    assert "Invalid upstream URL" in out
    assert flake_file.read_bytes() == before
    assert output.read_text(encoding="utf-8") == "updated=false\n"


def test_check_kernels_logs_through_loaded_settings(monkeypatch, capsys, tmp_path, flake_file, actions_env):
    log_path = tmp_path / "events.log"
    monkeypatch.setenv("T2_KERNELS_LOG_EVENTS", "1")
    monkeypatch.setenv("T2_KERNELS_LOG_FILE", str(log_path))
    monkeypatch.setattr(
        cli.upstream,
        "fetch_release_versions",
        lambda url, timeout=None: ["6.6.62", "6.12.5"],
    )
    monkeypatch.setattr(cli.prefetch, "kernel_source_hash", lambda version: NEW_HASH)

    assert _run(["check-kernels", "--flake", str(flake_file)]) == 0

    assert cli.logging_utils._log_file_path() == log_path
    events = [json.loads(line)["event"] for line in log_path.read_text(encoding="utf-8").splitlines()]
    assert "t2_kernels.flake.written" in events
    assert "t2_kernels.actions.output" in events
