"""Read upstream release data: the kernel.org feed and git remotes."""

from __future__ import annotations

import http.client
import json
import os
import urllib.error
import urllib.request
from typing import Any, List, Optional

from .commands import CommandError, Runner, run_command
from .config import DEFAULT_HTTP_TIMEOUT, DEFAULT_RELEASES_URL
from .logging_utils import log_event
from .versions import is_commit_hash

USER_AGENT = "t2-kernel-cache-update-script"


class UpstreamError(RuntimeError):
    """Raised when upstream data cannot be fetched or understood."""


def _request(url: str) -> urllib.request.Request:
    headers = {
        "Accept": "application/json",
        "User-Agent": USER_AGENT,
    }
    if url.startswith("https://api.github.com/"):
        headers["Accept"] = "application/vnd.github+json"
        token = os.environ.get("GITHUB_TOKEN") or os.environ.get("GH_TOKEN")
        if token:
            headers["Authorization"] = f"Bearer {token}"
    return urllib.request.Request(url, headers=headers)


def fetch_json(url: str, *, timeout: float = DEFAULT_HTTP_TIMEOUT) -> Any:
    """Return the decoded JSON document served at ``url``.

    Every failure to fetch or decode the document is raised as
    :class:`UpstreamError`.
    """

    log_event("t2_kernels.upstream.fetch.start", url=url)
    try:
        request = _request(url)
    except ValueError as exc:
        raise UpstreamError(f"Invalid upstream URL {url!r}: {exc}") from exc

    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            payload = response.read()
    except urllib.error.HTTPError as exc:
        message = getattr(exc, "reason", exc)
        raise UpstreamError(f"Request to {url} failed: {message}") from exc
    except urllib.error.URLError as exc:
        raise UpstreamError(f"Could not reach {url}: {exc.reason}") from exc
    except http.client.HTTPException as exc:
        raise UpstreamError(f"Malformed HTTP response from {url}: {exc!r}") from exc
    except OSError as exc:
        raise UpstreamError(f"Could not read {url}: {exc}") from exc

    try:
        document = json.loads(payload)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise UpstreamError(f"Response from {url} is not valid JSON") from exc
    log_event("t2_kernels.upstream.fetch.finished", url=url, size=len(payload))
    return document


def release_versions(document: Any) -> List[str]:
    """Return the ``.releases[].version`` strings of a kernel.org feed."""

    if not isinstance(document, dict):
        raise UpstreamError("Release feed is not a JSON object")
    releases = document.get("releases")
    if not isinstance(releases, list):
        raise UpstreamError("Release feed has no 'releases' list")

    versions: List[str] = []
    for entry in releases:
        if not isinstance(entry, dict):
            continue
        version = entry.get("version")
        if isinstance(version, str) and version.strip():
            versions.append(version.strip())
    return versions


def fetch_release_versions(
    url: str = DEFAULT_RELEASES_URL, *, timeout: float = DEFAULT_HTTP_TIMEOUT
) -> List[str]:
    return release_versions(fetch_json(url, timeout=timeout))


def resolve_remote_commit(
    repository: str,
    ref: str = "HEAD",
    *,
    runner: Optional[Runner] = None,
) -> str:
    """Resolve ``ref`` on the git remote ``repository`` to a commit hash."""

    run = runner or run_command
    try:
        output = run(["git", "ls-remote", "--exit-code", repository, ref])
    except CommandError as exc:
        raise UpstreamError(f"Could not resolve {ref} on {repository}: {exc}") from exc

    first_line = output.splitlines()[0] if output else ""
    commit = first_line.split("\t", 1)[0].strip()
    if not is_commit_hash(commit):
        raise UpstreamError(f"Unexpected git ls-remote output for {repository}: {first_line!r}")
    log_event("t2_kernels.upstream.remote_commit", repository=repository, ref=ref, commit=commit)
    return commit.lower()
