"""GitHub release hosting through the ``gh`` CLI.

Reads (auth status, release lookup) are retried on transient network
failures. ``create_release`` runs once: a create that timed out may still
have published the release.
"""

from __future__ import annotations

import shutil
from pathlib import Path
from time import sleep

from nagare.core.result import Err, Ok, Result
from nagare.platform.process import ProcessError
from nagare.platform.process import run as run_process
from nagare.services.release.errors import ReleaseError
from nagare.services.release.timeouts import (
    GH_READ_RETRY_ATTEMPTS,
    GH_READ_RETRY_DELAY_SECONDS,
    GH_RELEASE_TIMEOUT_SECONDS,
    GH_TIMEOUT_SECONDS,
)

_TRANSIENT_MARKERS = (
    "timed out",
    "timeout",
    "connection reset",
    "connection refused",
    "temporarily unavailable",
    "service unavailable",
    "bad gateway",
    "network is unreachable",
    "http 429",
    "http 502",
    "http 503",
    "http 504",
)

_NOT_FOUND_MARKERS = ("release not found", "http 404")


def _output(error: ProcessError) -> str:
    return f"{error.stderr}\n{error.stdout}".lower()


def is_transient(error: ProcessError) -> bool:
    return error.timed_out or any(marker in _output(error) for marker in _TRANSIENT_MARKERS)


def read_with_retry(
    cmd: list[str],
    *,
    repo_root: Path,
    timeout: float = GH_TIMEOUT_SECONDS,
    attempts: int = GH_READ_RETRY_ATTEMPTS,
) -> Result[str, ProcessError]:
    """Run a read-only gh command, backing off between transient failures."""
    attempts = max(1, attempts)
    attempt = 0
    while True:
        result = run_process(cmd, cwd=repo_root, timeout=timeout)
        attempt += 1
        if isinstance(result, Ok) or attempt >= attempts or not is_transient(result.error):
            return result
        sleep(GH_READ_RETRY_DELAY_SECONDS * attempt)


def ensure_gh_available() -> Result[None, ReleaseError]:
    if shutil.which("gh") is None:
        return Err(
            ReleaseError(
                kind="gh_missing",
                message="gh: missing",
                hint="Install GitHub CLI: https://cli.github.com/",
            )
        )
    return Ok(None)


def ensure_gh_auth(*, repo_root: Path) -> Result[None, ReleaseError]:
    result = read_with_retry(["gh", "auth", "status"], repo_root=repo_root)
    if isinstance(result, Err):
        return Err(
            ReleaseError(
                kind="gh_auth_required",
                message="gh auth required",
                hint=result.error.stderr.strip() or "Run: gh auth login",
            )
        )
    return Ok(None)


def _repo_args(repo: str | None) -> list[str]:
    return ["--repo", repo] if repo is not None else []


def find_release(
    *,
    repo_root: Path,
    tag: str,
    repo: str | None = None,
) -> Result[str | None, ReleaseError]:
    """URL of the hosted release for ``tag``, None when there is none."""
    cmd = ["gh", "release", "view", tag, "--json", "url", "--jq", ".url", *_repo_args(repo)]
    result = read_with_retry(cmd, repo_root=repo_root)
    if isinstance(result, Ok):
        return Ok(result.value.strip() or None)
    if any(marker in _output(result.error) for marker in _NOT_FOUND_MARKERS):
        return Ok(None)
    return Err(
        ReleaseError(
            kind="release_failed",
            message=f"cannot look up GitHub release {tag}",
            hint=result.error.stderr.strip() or None,
        )
    )


def create_release(
    *,
    repo_root: Path,
    tag: str,
    title: str,
    notes: str,
    repo: str | None = None,
    draft: bool = False,
) -> Result[str | None, ReleaseError]:
    """Create a GitHub release for an already pushed ``tag``.

    Refuses when a release for the tag already exists. Returns the release
    URL when gh prints one.
    """
    ok = ensure_gh_available()
    if isinstance(ok, Err):
        return ok

    existing = find_release(repo_root=repo_root, tag=tag, repo=repo)
    if isinstance(existing, Err):
        return existing
    if existing.value is not None:
        return Err(
            ReleaseError(
                kind="release_failed",
                message=f"GitHub release {tag} already exists",
                hint=existing.value,
            )
        )

    cmd = ["gh", "release", "create", tag, "--title", title, "--notes", notes, "--verify-tag"]
    cmd += _repo_args(repo)
    if draft:
        cmd.append("--draft")

    result = run_process(cmd, cwd=repo_root, timeout=GH_RELEASE_TIMEOUT_SECONDS)
    if isinstance(result, Err):
        return Err(
            ReleaseError(
                kind="release_failed",
                message=f"failed to create GitHub release {tag}",
                hint=result.error.stderr.strip() or None,
            )
        )

    lines = [line.strip() for line in result.value.splitlines() if line.strip()]
    url = next((line for line in reversed(lines) if line.startswith("https://")), None)
    return Ok(url)
