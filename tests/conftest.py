from pathlib import Path
import sys

import pytest


# Ensure repository root is importable
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))


FLAKE_TEMPLATE = """{
  outputs = { self, nixpkgs, nixos-hardware }:
    let
      pkgs = import nixpkgs { system = "x86_64-linux"; };
      linux-t2 = pkgs.callPackage "${nixos-hardware}/apple/t2/pkgs/linux-t2" { };

      # LTS kernel (6.6.x series)
      linux-t2-stable-kernel = linux-t2.override {
        argsOverride = rec {
          version = "6.6.62";
          modDirVersion = version;
          src = pkgs.fetchurl {
            url = "https://cdn.kernel.org/pub/linux/kernel/v6.x/linux-6.6.62.tar.xz";
            hash = "sha256-LTSHASHLTSHASHLTSHASHLTSHASHLTSHASHLTSHASH=";
          };
        };
      };

      # Latest kernel (6.12.x series)
      linux-t2-latest-kernel = linux-t2.override {
        argsOverride = rec {
          version = "6.12.1";
          modDirVersion = version;
          src = pkgs.fetchurl {
            url = "https://cdn.kernel.org/pub/linux/kernel/v6.x/linux-6.12.1.tar.xz";
            hash = "sha256-LATESTHASHLATESTHASHLATESTHASHLATESTHASH00=";
          };
        };
      };
    in
    { };
}
"""


@pytest.fixture
def flake_text() -> str:
    return FLAKE_TEMPLATE


@pytest.fixture
def flake_file(tmp_path: Path) -> Path:
    path = tmp_path / "flake.nix"
    path.write_text(FLAKE_TEMPLATE, encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def _reset_logging():
    from t2_kernels import logging_utils

    logging_utils.configure(None)
    yield
    logging_utils.configure(None)
