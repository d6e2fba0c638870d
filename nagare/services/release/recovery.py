"""Manual rollback of a release that already completed.

Unlike ``RollbackCoordinator`` this works from git history alone: it reads
the last commit subject to find the release, then removes the tag and the
release commit.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass

from nagare.core.config import OptionsConfig
from nagare.core.result import Err
from nagare.git.repository import Repository
from nagare.output.log import ReleaseLogger
from nagare.services.release.semver import validate_version

__all__ = ["RecoveryResult", "RollbackManager"]

_RELEASE_SUBJECT_RE = re.compile(r"chore\(release\): bump version to (.+)$")


@dataclass(frozen=True, slots=True)
class RecoveryResult:
    success: bool
    version: str | None = None
    actions: tuple[str, ...] = ()
    error: str | None = None


def _no_prompt(_message: str) -> str | None:
    return None


def _no_confirm(_message: str) -> bool:
    return False


class RollbackManager:
    def __init__(
        self,
        repo: Repository,
        options: OptionsConfig,
        logger: ReleaseLogger,
        *,
        interactive: bool = True,
        prompt: Callable[[str], str | None] = _no_prompt,
        confirm: Callable[[str], bool] = _no_confirm,
    ) -> None:
        self.repo = repo
        self.options = options
        self.logger = logger
        self.interactive = interactive
        self.prompt = prompt
        self.confirm = confirm

    def rollback(self, version: str | None = None) -> RecoveryResult:
        """Undo the release ``version`` (or the one named by the last commit).

        The release commit is only reset when it is the last commit. The
        remote tag is deleted only after confirmation, or when confirmations
        are skipped; failing to delete it is a warning.
        """
        self.logger.info(f"Rolling back release {version or '(latest)'}")
        self.logger.audit("rollback_started", {"target_version": version or "auto-detect"})

        if not self.repo.exists():
            return self._fail("not a git repository", version)

        last = self.repo.last_commit_message()
        if isinstance(last, Err):
            return self._fail(f"cannot read last commit: {last.error.message}", version)
        tags = self.repo.local_tags()
        if isinstance(tags, Err):
            return self._fail(f"cannot list tags: {tags.error.message}", version)

        self.logger.info(f"Last commit: {last.value}")
        self.logger.debug(f"Local tags: {len(tags.value)} found")

        release_match = _RELEASE_SUBJECT_RE.search(last.value)
        target = version
        if target is None and release_match is not None:
            target = release_match.group(1).strip()
        if target is None:
            if not self.interactive:
                return self._fail("no version given and the last commit is not a release", None)
            target = self.prompt("Version to roll back (e.g. 1.1.0)")
            if not target:
                return self._fail("no version specified", None)

        valid = validate_version(target)
        if isinstance(valid, Err):
            return self._fail(valid.error.message, target)
        target = valid.value

        if not self.options.skip_confirmation and not self.confirm(
            f"Roll back release {target}? This rewrites local git history."
        ):
            self.logger.info("Rollback cancelled")
            return self._fail("cancelled", target)

        actions: list[str] = []
        tag = f"{self.options.tag_prefix}{target}"

        if tag in tags.value:
            deleted = self.repo.delete_local_tag(tag)
            if isinstance(deleted, Err):
                return self._fail(f"failed to delete tag {tag}: {deleted.error.message}", target)
            actions.append(f"Removed local tag {tag}")

        if release_match is not None:
            parent = self.repo.parent_commit_hash()
            if isinstance(parent, Err):
                return self._fail(f"cannot find previous commit: {parent.error.message}", target)
            reset = self.repo.reset_to_commit(parent.value, hard=True)
            if isinstance(reset, Err):
                return self._fail(f"git reset failed: {reset.error.message}", target)
            actions.append("Reset to previous commit")
        else:
            self.logger.info("Last commit is not a release commit, skipping reset")

        self._delete_remote_tag(tag, actions)

        self.logger.success(f"Rolled back {target}")
        for action in actions:
            self.logger.info(f"  - {action}")
        self.logger.audit(
            "rollback_completed",
            {"version": target, "actions_count": len(actions), "actions": actions},
        )
        return RecoveryResult(success=True, version=target, actions=tuple(actions))

    def _delete_remote_tag(self, tag: str, actions: list[str]) -> None:
        remote = self.options.git_remote
        exists = self.repo.remote_tag_exists(remote, tag)
        if isinstance(exists, Err):
            self.logger.warn(f"Could not check remote tag {tag}: {exists.error.message}")
            return
        if not exists.value:
            return
        if not (
            self.options.skip_confirmation
            or self.confirm(f"Delete remote tag {tag} from {remote}?")
        ):
            return
        deleted = self.repo.delete_remote_tag(remote, tag)
        if isinstance(deleted, Err):
            self.logger.warn(f"Could not delete remote tag: {deleted.error.message}")
            return
        actions.append(f"Deleted remote tag {tag}")

    def _fail(self, error: str, version: str | None) -> RecoveryResult:
        self.logger.error(f"Rollback failed: {error}")
        self.logger.audit("rollback_failed", {"error": error, "version": version})
        return RecoveryResult(success=False, version=version, error=error)
