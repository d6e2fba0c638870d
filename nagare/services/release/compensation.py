"""Undo actions attached to ledger operations.

Compensations are plain data; ``compensate`` interprets them against a
``CompensationContext``. A zero-argument callable is accepted as well for
steps that need something the built-in kinds do not cover; it may return a
Result, and an ``Err`` counts as a failure.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from nagare.core.result import Err, Ok, Result
from nagare.git.repository import Repository
from nagare.output.log import ReleaseLogger
from nagare.platform.paths import resolve_within
from nagare.services.release.backup import BackupStore

__all__ = [
    "Compensation",
    "CompensationContext",
    "DeleteFile",
    "DeleteTag",
    "ManualFollowUp",
    "NoCompensation",
    "ResetToCommit",
    "RestoreFile",
    "compensate",
]


@dataclass(frozen=True, slots=True)
class NoCompensation:
    """Nothing to undo (e.g. taking a backup)."""


@dataclass(frozen=True, slots=True)
class RestoreFile:
    backup_id: str
    path: str


@dataclass(frozen=True, slots=True)
class DeleteFile:
    """Remove a file the release created; there is no backup to restore."""

    path: str


@dataclass(frozen=True, slots=True)
class ResetToCommit:
    """Hard reset to the commit HEAD pointed at before the release commit."""

    commit: str


@dataclass(frozen=True, slots=True)
class DeleteTag:
    """Delete a local tag; with ``remote`` also try the remote copy."""

    tag: str
    remote: str | None = None


@dataclass(frozen=True, slots=True)
class ManualFollowUp:
    """Irreversible step; a human has to act on ``instructions``."""

    instructions: str


type Compensation = (
    NoCompensation
    | RestoreFile
    | DeleteFile
    | ResetToCommit
    | DeleteTag
    | ManualFollowUp
    | Callable[[], object]
)


@dataclass(frozen=True, slots=True)
class CompensationContext:
    repo: Repository
    backups: BackupStore
    logger: ReleaseLogger


def compensate(compensation: Compensation, ctx: CompensationContext) -> Result[str, str]:
    """Run one compensation; Ok carries a short description of what was undone."""
    match compensation:
        case NoCompensation():
            return Ok("nothing to undo")

        case RestoreFile(backup_id=backup_id, path=path):
            restored = ctx.backups.restore_file(backup_id, path)
            if isinstance(restored, Err):
                return Err(restored.error.message)
            ctx.logger.audit("file_restored", {"file": path, "backup_id": backup_id})
            return Ok(f"restored {path}")

        case DeleteFile(path=path):
            target = resolve_within(ctx.backups.root, path)
            if isinstance(target, Err):
                return Err(target.error.message)
            try:
                target.value.unlink(missing_ok=True)
            except OSError as e:
                return Err(f"failed to delete {path}: {e}")
            ctx.logger.audit("file_deleted", {"file": path})
            return Ok(f"deleted {path}")

        case ResetToCommit(commit=commit):
            reset = ctx.repo.reset_to_commit(commit, hard=True)
            if isinstance(reset, Err):
                return Err(f"git reset failed: {reset.error.message}")
            ctx.logger.audit("git_reset", {"commit": commit, "hard": True})
            return Ok(f"reset to {commit[:7]}")

        case DeleteTag(tag=tag, remote=remote):
            deleted = ctx.repo.delete_local_tag(tag)
            if isinstance(deleted, Err):
                return Err(f"failed to delete tag {tag}: {deleted.error.message}")
            ctx.logger.audit("tag_deleted", {"tag": tag, "scope": "local"})
            if remote is not None:
                _delete_remote_tag(ctx, remote, tag)
            return Ok(f"deleted tag {tag}")

        case ManualFollowUp(instructions=instructions):
            return Ok(instructions)

        case _ if callable(compensation):
            outcome = compensation()
            if isinstance(outcome, Err):
                return Err(str(outcome.error))
            return Ok("custom compensation")

        case _:
            raise TypeError(f"unsupported compensation: {compensation!r}")


def _delete_remote_tag(ctx: CompensationContext, remote: str, tag: str) -> None:
    exists = ctx.repo.remote_tag_exists(remote, tag)
    if isinstance(exists, Err):
        ctx.logger.warn(f"Could not check remote tag {tag}: {exists.error.message}")
        return
    if not exists.value:
        return
    deleted = ctx.repo.delete_remote_tag(remote, tag)
    if isinstance(deleted, Err):
        ctx.logger.warn(f"Could not delete remote tag {tag}: {deleted.error.message}")
        return
    ctx.logger.audit("tag_deleted", {"tag": tag, "scope": "remote", "remote": remote})
