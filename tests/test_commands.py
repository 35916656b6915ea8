"""Tests for running external commands."""

import sys

import pytest

from t2_kernels.commands import CommandError, run_command


def test_run_command_returns_stdout() -> None:
    assert run_command([sys.executable, "-c", "print('  hello  ')"]) == "hello"


def test_run_command_layers_environment(monkeypatch) -> None:
    monkeypatch.setenv("T2_KERNELS_TEST_BASE", "base")
    output = run_command(
        [
            sys.executable,
            "-c",
            "import os; print(os.environ['T2_KERNELS_TEST_BASE'], os.environ['EXTRA'])",
        ],
        env={"EXTRA": "extra"},
    )

    assert output == "base extra"


def test_run_command_failure() -> None:
    with pytest.raises(CommandError) as excinfo:
        run_command([sys.executable, "-c", "import sys; sys.exit(3)"])

    assert excinfo.value.returncode == 3


def test_run_command_missing_executable() -> None:
    with pytest.raises(CommandError) as excinfo:
        run_command(["t2-kernels-no-such-tool"])

    assert excinfo.value.returncode is None
