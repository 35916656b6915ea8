"""Structured logging helpers for the kernel update tooling."""

from __future__ import annotations

import datetime as _dt
import json
import sys
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence

from .config import Settings, logging_settings

_configured: Optional[Settings] = None


def _serialise(value: Any) -> Any:
    """Return a JSON-friendly representation of *value*."""

    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Mapping):
        return {str(key): _serialise(item) for key, item in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [_serialise(item) for item in value]
    return repr(value)


def configure(settings: Optional[Settings]) -> None:
    """Route :func:`log_event` through ``settings`` instead of the environment.

    Passing ``None`` restores the default of reading the logging options from
    ``os.environ`` on every call.
    """

    global _configured
    _configured = settings


def _settings() -> Settings:
    if _configured is not None:
        return _configured
    return logging_settings()


def _logs_enabled() -> bool:
    """Return ``True`` when structured logging is enabled."""

    return _settings().log_events


def _log_file_path() -> Optional[Path]:
    """Return the configured log file, or ``None`` to log to ``stderr`` only."""

    return _settings().log_file


def log_event(event: str, **fields: Any) -> None:
    """Emit a structured log entry to ``stderr`` when logging is enabled.

    The entry includes an ISO-8601 UTC timestamp so CI logs from separate
    workflow steps can be ordered. Non-JSON-serialisable values are converted
    to strings via ``repr``.
    """

    if not _logs_enabled():
        return

    record = {
        "timestamp": _dt.datetime.now(_dt.timezone.utc).isoformat(),
        "event": event,
    }
    for key, value in fields.items():
        record[str(key)] = _serialise(value)

    message = json.dumps(record, sort_keys=True)

    sys.stderr.write(message + "\n")
    sys.stderr.flush()
    _append_to_log_file(message)


def _append_to_log_file(message: str) -> None:
    """Append the given JSON *message* to the configured log file."""

    log_file = _log_file_path()
    if log_file is None:
        return
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        with log_file.open("a", encoding="utf-8") as handle:
            handle.write(message + "\n")
    except OSError as exc:  # pragma: no cover - unwritable log file
        sys.stderr.write(f"t2-kernels: failed to write log to {log_file}: {exc}\n")
        sys.stderr.flush()
