"""Read and edit the pinned kernel versions recorded in ``flake.nix``.

``flake.nix`` is not evaluated here. Instead the file is split into variant
blocks, each opened by a ``# <Marker> kernel`` comment and running until the
next such comment, and the string-valued attributes the updater cares about
(``version``, ``url``, ``hash``/``sha256``) are located inside each block::

    # LTS kernel
    linux-t2-stable-kernel = base.override {
      argsOverride = rec {
        version = "6.6.62";
        src = pkgs.fetchurl {
          url = "https://cdn.kernel.org/pub/linux/kernel/v6.x/linux-6.6.62.tar.xz";
          hash = "sha256-...";
        };
      };
    };

Edits replace only the quoted value of a field, so :meth:`FlakeDocument.render`
returns the input byte-for-byte when nothing changed. A marker that cannot be
found, or a block lacking a field, raises :class:`PatchError` rather than
leaving the file silently untouched.
"""

from __future__ import annotations

import os
import re
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .logging_utils import log_event
from .versions import kernel_major

RE_MARKER = re.compile(r"^\s*#\s*(?P<marker>[A-Za-z0-9_.-]+)\s+kernel\b", re.IGNORECASE)
RE_FIELD = re.compile(
    r'^\s*(?P<name>[A-Za-z_][A-Za-z0-9_-]*)\s*=\s*"(?P<value>[^"\\]*)"\s*;'
)
TRACKED_FIELDS = ("version", "url", "hash", "sha256")
# ``lib.fakeHash``; Nix reports the real hash when a build uses it.
FAKE_HASH = "sha256-" + "A" * 43 + "="


def is_placeholder_hash(value: str) -> bool:
    """Return ``True`` for an empty hash or ``lib.fakeHash``."""

    value = value.strip()
    return value == "" or value == FAKE_HASH


class PatchError(ValueError):
    """Base class for errors raised while editing ``flake.nix``."""


class VariantNotFoundError(PatchError):
    """Raised when no block is opened by the requested marker."""


class FieldNotFoundError(PatchError):
    """Raised when a variant block lacks a required field."""


class VersionMismatchError(PatchError):
    """Raised when the recorded version differs from the expected old version."""


@dataclass
class Field:
    """A quoted attribute value and its position within a line."""

    name: str
    value: str
    line: int
    start: int
    end: int


@dataclass
class VariantBlock:
    marker: str
    first_line: int
    last_line: int
    fields: Dict[str, Field] = field(default_factory=dict)

    def get(self, name: str) -> Optional[Field]:
        return self.fields.get(name)

    def hash_field(self) -> Optional[Field]:
        return self.fields.get("hash") or self.fields.get("sha256")


class FlakeDocument:
    """Parsed view of ``flake.nix`` supporting field-level edits."""

    def __init__(self, lines: List[str], blocks: List[VariantBlock]) -> None:
        self._lines = lines
        self.blocks = blocks

    def render(self) -> str:
        return "".join(self._lines)

    def variant(self, marker: str) -> VariantBlock:
        """Return the block opened by ``# <marker> kernel`` (case-insensitive)."""

        wanted = marker.strip().lower()
        matches = [block for block in self.blocks if block.marker.lower() == wanted]
        if not matches:
            known = ", ".join(block.marker for block in self.blocks) or "none"
            raise VariantNotFoundError(
                f"No '# {marker} kernel' block in flake.nix (found: {known})"
            )
        if len(matches) > 1:
            raise PatchError(f"'# {marker} kernel' appears more than once in flake.nix")
        return matches[0]

    def current_version(self, marker: str) -> str:
        block = self.variant(marker)
        version = block.get("version")
        if version is None:
            raise FieldNotFoundError(f"The {marker} kernel block has no version field")
        return version.value

    def has_placeholder_hash(self, marker: str) -> bool:
        hash_field = self.variant(marker).hash_field()
        return hash_field is not None and is_placeholder_hash(hash_field.value)

    def _set(self, item: Field, value: str) -> None:
        line = self._lines[item.line]
        self._lines[item.line] = line[: item.start] + value + line[item.end :]
        item.end = item.start + len(value)
        item.value = value

    def apply_update(
        self, marker: str, old_version: str, new_version: str, new_hash: str
    ) -> None:
        """Point the ``marker`` variant at ``new_version`` with ``new_hash``.

        The version field must currently read ``old_version``. Every occurrence
        of ``old_version`` in the block's URL is replaced, and the ``v<major>.x``
        directory follows a change of major version. Other blocks are left as
        they are.
        """

        block = self.variant(marker)
        version = block.get("version")
        if version is None:
            raise FieldNotFoundError(f"The {marker} kernel block has no version field")
        if version.value != old_version:
            raise VersionMismatchError(
                f"The {marker} kernel is at {version.value}, expected {old_version}"
            )
        hash_field = block.hash_field()
        if hash_field is None:
            raise FieldNotFoundError(f"The {marker} kernel block has no hash field")

        self._set(version, new_version)

        url = block.get("url")
        if url is not None:
            updated_url = url.value.replace(old_version, new_version)
            old_major = kernel_major(old_version)
            new_major = kernel_major(new_version)
            if old_major != new_major:
                updated_url = updated_url.replace(f"/v{old_major}.x/", f"/v{new_major}.x/")
            if updated_url != url.value:
                self._set(url, updated_url)

        self._set(hash_field, new_hash)
        log_event(
            "t2_kernels.flake.variant_updated",
            variant=marker,
            old_version=old_version,
            new_version=new_version,
            hash=new_hash,
        )


def parse_flake(text: str) -> FlakeDocument:
    lines = text.splitlines(keepends=True)
    blocks: List[VariantBlock] = []
    current: Optional[VariantBlock] = None

    for index, line in enumerate(lines):
        marker = RE_MARKER.match(line)
        if marker:
            if current is not None:
                current.last_line = index - 1
            current = VariantBlock(
                marker=marker.group("marker"), first_line=index, last_line=index
            )
            blocks.append(current)
            continue
        if current is None:
            continue
        current.last_line = index
        match = RE_FIELD.match(line)
        if not match:
            continue
        name = match.group("name")
        if name in TRACKED_FIELDS and name not in current.fields:
            current.fields[name] = Field(
                name=name,
                value=match.group("value"),
                line=index,
                start=match.start("value"),
                end=match.end("value"),
            )

    return FlakeDocument(lines, blocks)


def load_flake(path: Path) -> FlakeDocument:
    return parse_flake(Path(path).read_text(encoding="utf-8"))


def _write_atomically(path: Path, text: str) -> None:
    handle = tempfile.NamedTemporaryFile(
        "w", encoding="utf-8", dir=path.parent, prefix=f".{path.name}.", delete=False
    )
    try:
        with handle:
            handle.write(text)
        os.chmod(handle.name, path.stat().st_mode & 0o7777)
        os.replace(handle.name, path)
    except OSError:
        try:
            os.remove(handle.name)
        except OSError:
            pass
        raise


def patch_flake(
    path: Path, marker: str, old_version: str, new_version: str, new_hash: str
) -> bool:
    """Apply :meth:`FlakeDocument.apply_update` to the file at ``path``.

    Returns ``True`` when the file was rewritten.
    """

    path = Path(path)
    original = path.read_text(encoding="utf-8")
    document = parse_flake(original)
    document.apply_update(marker, old_version, new_version, new_hash)
    updated = document.render()
    if updated == original:
        return False
    _write_atomically(path, updated)
    log_event("t2_kernels.flake.written", path=path, variant=marker)
    return True
