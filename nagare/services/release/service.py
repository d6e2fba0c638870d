"""Release orchestration.

``ReleaseService.release`` runs one release attempt:

    validate environment -> resolve version -> back up files
    -> rewrite files -> commit -> tag -> push -> hosted release

Every mutating step is registered in an ``OperationLedger`` before it acts.
When a step fails, the ledger is replayed in reverse by a
``RollbackCoordinator``; the backup is kept so files can still be recovered
by hand. Push and hosted release cannot be undone automatically and are
reported as manual follow-ups.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from nagare.core.config import NagareConfig
from nagare.core.result import Err, Ok, Result
from nagare.git.commits import release_commit_message
from nagare.git.repository import Repository
from nagare.output.log import ReleaseLogger
from nagare.platform.paths import resolve_within
from nagare.services.release import gh
from nagare.services.release.backup import BackupStore
from nagare.services.release.compensation import (
    CompensationContext,
    DeleteFile,
    DeleteTag,
    ManualFollowUp,
    NoCompensation,
    ResetToCommit,
    RestoreFile,
)
from nagare.services.release.errors import ReleaseError, VersionConflict
from nagare.services.release.file_update import FileUpdateEngine
from nagare.services.release.handlers import HandlerRegistry
from nagare.services.release.ledger import OperationLedger, OperationType
from nagare.services.release.model import BumpKind, FileChange, ReleaseNotes
from nagare.services.release.notes import (
    build_release_notes,
    insert_changelog_entry,
    render_sections,
)
from nagare.services.release.rollback import RollbackCoordinator, RollbackResult
from nagare.services.release.semver import calculate_new_version

__all__ = ["CreateRelease", "ReleaseOutcome", "ReleaseService"]


class CreateRelease(Protocol):
    def __call__(
        self,
        *,
        repo_root: Path,
        tag: str,
        title: str,
        notes: str,
        repo: str | None = None,
        draft: bool = False,
    ) -> Result[str | None, ReleaseError]: ...


@dataclass(frozen=True, slots=True)
class ReleaseOutcome:
    success: bool
    version: str | None = None
    previous_version: str | None = None
    commit_count: int = 0
    updated_files: tuple[str, ...] = ()
    notes: ReleaseNotes | None = None
    release_url: str | None = None
    error: ReleaseError | VersionConflict | None = None
    rollback: RollbackResult | None = None
    backup_id: str | None = None
    dry_run: bool = False


@dataclass(frozen=True, slots=True)
class _Plan:
    current: str
    version: str
    tag: str
    commit_count: int
    notes: ReleaseNotes


def _always(_message: str) -> bool:
    return True


class ReleaseService:
    def __init__(
        self,
        *,
        root: Path,
        config: NagareConfig,
        logger: ReleaseLogger,
        repo: Repository | None = None,
        registry: HandlerRegistry | None = None,
        create_release: CreateRelease = gh.create_release,
        confirm: Callable[[str], bool] = _always,
    ) -> None:
        self.root = root
        self.config = config
        self.logger = logger
        self.repo = repo if repo is not None else Repository(root)
        self.engine = FileUpdateEngine(root, logger, registry)
        self.backups = BackupStore(root, config.options.backup_dir, logger)
        self.create_release = create_release
        self.confirm = confirm
        self.ledger = OperationLedger()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def validate_environment(self, *, check_gh: bool = True) -> Result[None, ReleaseError]:
        if not self.repo.exists():
            return Err(ReleaseError(kind="invalid_environment", message="not a git repository"))

        dirty = self.repo.has_uncommitted_changes()
        if isinstance(dirty, Err):
            return Err(ReleaseError(kind="git_failed", message=dirty.error.message))
        if dirty.value:
            return Err(
                ReleaseError(
                    kind="invalid_environment",
                    message="uncommitted changes detected",
                    hint="Commit or stash your changes before releasing.",
                )
            )

        user = self.repo.git_user()
        if isinstance(user, Err) or not user.value.is_configured:
            return Err(
                ReleaseError(
                    kind="invalid_environment",
                    message="git user.name and user.email must be configured",
                    hint='Run: git config user.name "..." && git config user.email "..."',
                )
            )

        version_file = resolve_within(self.root, self.config.version_file)
        if isinstance(version_file, Err):
            return Err(ReleaseError(kind="path_traversal", message=version_file.error.message))
        if not version_file.value.is_file():
            return Err(
                ReleaseError(
                    kind="read_failed",
                    message=f"version file not found: {self.config.version_file}",
                )
            )

        if check_gh and self.config.github.create_release:
            ok = gh.ensure_gh_available()
            if isinstance(ok, Err):
                return ok
            ok = gh.ensure_gh_auth(repo_root=self.root)
            if isinstance(ok, Err):
                return ok

        self.logger.debug("Environment validation passed")
        return Ok(None)

    def release(self, *, bump: BumpKind | None = None, dry_run: bool | None = None) -> ReleaseOutcome:
        dry = self.config.options.dry_run if dry_run is None else dry_run
        self.logger.info("Starting release")

        env = self.validate_environment(check_gh=not dry)
        if isinstance(env, Err):
            return self._fail(env.error)

        planned = self._plan(bump)
        if isinstance(planned, Err):
            return self._fail(planned.error)
        plan = planned.value

        self.logger.info(f"Current version: {plan.current}")
        self.logger.info(f"New version: {plan.version} ({plan.commit_count} commits)")
        self._log_notes(plan.notes)

        if dry:
            self.logger.info("Dry run: no changes will be made")
            self._log_preview(plan.version)
            return ReleaseOutcome(
                success=True,
                version=plan.version,
                previous_version=plan.current,
                commit_count=plan.commit_count,
                notes=plan.notes,
                dry_run=True,
            )

        if not self.config.options.skip_confirmation and not self.confirm(
            f"Proceed with release {plan.tag}?"
        ):
            self.logger.info("Release cancelled")
            return self._fail(ReleaseError(kind="cancelled", message="release cancelled"))

        return self._execute(plan)

    def next_version(
        self, bump: BumpKind | None = None
    ) -> Result[str, ReleaseError | VersionConflict]:
        planned = self._plan(bump)
        if isinstance(planned, Err):
            return planned
        return Ok(planned.value.version)

    def preview(self, version: str) -> dict[str, list[FileChange]]:
        """Changes a release to ``version`` would make, per target file."""
        out: dict[str, list[FileChange]] = {}
        for path, key in self._targets():
            changes = self.engine.preview_changes(path, key, version)
            if isinstance(changes, Err):
                self.logger.warn(f"{path}: {changes.error.message}")
                continue
            out.setdefault(path, []).extend(changes.value)
        return out

    # -------------------------------------------------------------------------
    # Planning
    # -------------------------------------------------------------------------

    def _plan(self, bump: BumpKind | None) -> Result[_Plan, ReleaseError | VersionConflict]:
        current = self.engine.current_value(self.config.version_file, "version")
        if isinstance(current, Err):
            return current

        commits = self.repo.commits_since_last_release(self.config.options.tag_prefix)
        if isinstance(commits, Err):
            return Err(ReleaseError(kind="git_failed", message=commits.error.message))
        self.logger.info(f"Found {len(commits.value)} commits since last release")

        if not commits.value and bump is None:
            return Err(
                ReleaseError(
                    kind="invalid_input",
                    message="no commits found since last release",
                    hint="Use --patch, --minor or --major to force a release.",
                )
            )

        version = calculate_new_version(current.value, commits.value, bump)
        if isinstance(version, Err):
            return version

        return Ok(
            _Plan(
                current=current.value,
                version=version.value,
                tag=f"{self.config.options.tag_prefix}{version.value}",
                commit_count=len(commits.value),
                notes=build_release_notes(version.value, commits.value),
            )
        )

    def _targets(self) -> list[tuple[str, str]]:
        """(path, key) pairs to rewrite, version file first, no duplicates."""
        out: list[tuple[str, str]] = [(self.config.version_file, "version")]
        for f in self.config.update_files:
            if (f.path, f.key) not in out:
                out.append((f.path, f.key))
        return out

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def _execute(self, plan: _Plan) -> ReleaseOutcome:
        self.ledger = ledger = OperationLedger()
        options = self.config.options
        ctx = CompensationContext(repo=self.repo, backups=self.backups, logger=self.logger)

        backup_id = self._backup(ledger)
        if isinstance(backup_id, Err):
            return self._fail(backup_id.error, plan=plan)

        updated = self._update_files(ledger, backup_id.value, plan)
        if isinstance(updated, Err):
            return self._abort(ctx, updated.error, plan=plan, backup_id=backup_id.value)

        parent = self.repo.current_commit_hash()
        if isinstance(parent, Err):
            error = ReleaseError(kind="git_failed", message=parent.error.message)
            return self._abort(ctx, error, plan=plan, backup_id=backup_id.value)

        op = ledger.track_operation(
            OperationType.GIT_COMMIT,
            f"commit release {plan.version}",
            {"parent": parent.value},
            ResetToCommit(parent.value),
        )
        ledger.mark_in_progress(op)
        committed = self.repo.commit_files(list(updated.value), release_commit_message(plan.version))
        if isinstance(committed, Err):
            ledger.mark_failed(op, committed.error.message)
            error = ReleaseError(kind="git_failed", message=f"commit failed: {committed.error.message}")
            return self._abort(ctx, error, plan=plan, backup_id=backup_id.value)
        ledger.mark_completed(op, {"commit": committed.value})

        tag_op = ledger.track_operation(
            OperationType.GIT_TAG,
            f"tag {plan.tag}",
            {"tag": plan.tag},
            DeleteTag(plan.tag),
        )
        ledger.mark_in_progress(tag_op)
        tagged = self.repo.create_tag(plan.tag, f"Release {plan.version}")
        if isinstance(tagged, Err):
            ledger.mark_failed(tag_op, tagged.error.message)
            error = ReleaseError(kind="git_failed", message=f"tag failed: {tagged.error.message}")
            return self._abort(ctx, error, plan=plan, backup_id=backup_id.value)
        ledger.mark_completed(tag_op)

        op = ledger.track_operation(
            OperationType.GIT_PUSH,
            f"push to {options.git_remote}",
            {"remote": options.git_remote, "tag": plan.tag},
            ManualFollowUp(
                f"The release commit and tag {plan.tag} were pushed to {options.git_remote}. "
                f"Revert the commit there and run: git push {options.git_remote} --delete {plan.tag}"
            ),
        )
        ledger.mark_in_progress(op)
        pushed = self.repo.push(options.git_remote, tag=plan.tag)
        if isinstance(pushed, Err):
            ledger.mark_failed(op, pushed.error.message)
            error = ReleaseError(
                kind="git_failed",
                message=f"push failed: {pushed.error.message}",
                hint=f"Check {options.git_remote} for a partially pushed release.",
            )
            return self._abort(ctx, error, plan=plan, backup_id=backup_id.value)
        ledger.mark_completed(op)
        # The remote tag is ours only from here on.
        ledger.set_compensation(tag_op, DeleteTag(plan.tag, remote=options.git_remote))

        release_url: str | None = None
        if self.config.github.create_release:
            op = ledger.track_operation(
                OperationType.GITHUB_RELEASE,
                f"GitHub release {plan.tag}",
                {"tag": plan.tag},
                ManualFollowUp(f"Delete the GitHub release {plan.tag} if it was created."),
            )
            ledger.mark_in_progress(op)
            created = self.create_release(
                repo_root=self.root,
                tag=plan.tag,
                title=f"Release {plan.version}",
                notes=render_sections(plan.notes),
                repo=self.config.github.slug,
                draft=self.config.github.draft,
            )
            if isinstance(created, Err):
                ledger.mark_failed(op, created.error.message)
                return self._abort(ctx, created.error, plan=plan, backup_id=backup_id.value)
            release_url = created.value
            ledger.mark_completed(op, {"url": release_url})

        self.backups.cleanup_backup(backup_id.value)
        self.logger.audit("release_completed", {"version": plan.version, "tag": plan.tag})
        self.logger.success(f"Released {plan.tag}")
        if release_url:
            self.logger.info(f"GitHub release: {release_url}")

        return ReleaseOutcome(
            success=True,
            version=plan.version,
            previous_version=plan.current,
            commit_count=plan.commit_count,
            updated_files=updated.value,
            notes=plan.notes,
            release_url=release_url,
        )

    def _backup(self, ledger: OperationLedger) -> Result[str, ReleaseError]:
        files = list(dict.fromkeys(path for path, _ in self._targets()))
        changelog = self.config.options.changelog
        if changelog and changelog not in files and self._exists(changelog):
            files.append(changelog)

        op = ledger.track_operation(
            OperationType.FILE_BACKUP,
            f"back up {len(files)} files",
            {"files": files},
            NoCompensation(),
        )
        ledger.mark_in_progress(op)
        created = self.backups.create_backup(files)
        if isinstance(created, Err):
            ledger.mark_failed(op, created.error.message)
            return created
        ledger.mark_completed(op, {"backup_id": created.value})
        return created

    def _update_files(
        self,
        ledger: OperationLedger,
        backup_id: str,
        plan: _Plan,
    ) -> Result[tuple[str, ...], ReleaseError]:
        """Rewrite every target; all are attempted even after a failure."""
        updated: list[str] = []
        failures: list[ReleaseError] = []

        for path, key in self._targets():
            op = ledger.track_operation(
                OperationType.FILE_UPDATE,
                f"update {path} ({key})",
                {"path": path, "key": key},
                RestoreFile(backup_id, path),
            )
            ledger.mark_in_progress(op)
            result = self.engine.update_file(path, key, plan.version)
            if not result.success or result.content is None:
                message = result.error or f"failed to update {path}"
                ledger.mark_failed(op, message)
                failures.append(ReleaseError(kind="file_update_failed", message=message))
                continue
            if result.valid is False:
                message = f"{path}: validation failed after update: {result.validation_error}"
                ledger.mark_failed(op, message)
                failures.append(ReleaseError(kind="file_update_failed", message=message))
                continue
            written = self.engine.write(path, result.content)
            if isinstance(written, Err):
                ledger.mark_failed(op, written.error.message)
                failures.append(written.error)
                continue
            ledger.mark_completed(op, {"match_count": result.match_count})
            if path not in updated:
                updated.append(path)
            self.logger.info(f"Updated {path}")

        changelog = self.config.options.changelog
        if changelog:
            written_changelog = self._update_changelog(ledger, backup_id, changelog, plan.notes)
            if isinstance(written_changelog, Err):
                failures.append(written_changelog.error)
            else:
                updated.append(changelog)

        if failures:
            detail = "; ".join(f.message for f in failures)
            return Err(
                ReleaseError(
                    kind=failures[0].kind,
                    message=f"{len(failures)} file update(s) failed: {detail}",
                )
            )
        return Ok(tuple(updated))

    def _update_changelog(
        self,
        ledger: OperationLedger,
        backup_id: str,
        path: str,
        notes: ReleaseNotes,
    ) -> Result[None, ReleaseError]:
        target = resolve_within(self.root, path)
        if isinstance(target, Err):
            return Err(ReleaseError(kind="path_traversal", message=target.error.message))

        existed = target.value.is_file()
        op = ledger.track_operation(
            OperationType.FILE_UPDATE,
            f"update {path}",
            {"path": path, "created": not existed},
            RestoreFile(backup_id, path) if existed else DeleteFile(path),
        )
        ledger.mark_in_progress(op)

        existing: str | None = None
        if existed:
            try:
                existing = target.value.read_bytes().decode("utf-8")
            except (OSError, UnicodeDecodeError) as e:
                ledger.mark_failed(op, str(e))
                return Err(ReleaseError(kind="read_failed", message=f"failed to read {path}: {e}"))

        written = self.engine.write(path, insert_changelog_entry(existing, notes))
        if isinstance(written, Err):
            ledger.mark_failed(op, written.error.message)
            return Err(written.error)
        ledger.mark_completed(op)
        self.logger.info(f"Updated {path}")
        return Ok(None)

    # -------------------------------------------------------------------------
    # Failure handling
    # -------------------------------------------------------------------------

    def _abort(
        self,
        ctx: CompensationContext,
        error: ReleaseError,
        *,
        plan: _Plan,
        backup_id: str,
    ) -> ReleaseOutcome:
        self.logger.error(f"Release failed: {error.pretty()}")
        self.logger.info("Rolling back completed steps")
        rollback = RollbackCoordinator(self.ledger, ctx).perform_rollback()

        if rollback.success:
            self.logger.info(f"Rolled back {len(rollback.rolled_back)} operations")
        else:
            self.logger.error(f"Rollback incomplete: {len(rollback.failed)} operations failed")
            for op, reason in rollback.failed:
                self.logger.error(f"  - {op.description}: {reason}")
            error = ReleaseError(
                kind="rollback_partial_failure",
                message=f"{error.message}; rollback left {len(rollback.failed)} operations undone",
                hint="Restore the remaining files from the kept backup.",
            )
        for instruction in rollback.instructions:
            self.logger.warn(f"Manual follow-up: {instruction}")
        self.logger.info(f"Backup kept: {self.backups.backup_root / backup_id}")

        return ReleaseOutcome(
            success=False,
            version=plan.version,
            previous_version=plan.current,
            commit_count=plan.commit_count,
            notes=plan.notes,
            error=error,
            rollback=rollback,
            backup_id=backup_id,
        )

    def _fail(
        self,
        error: ReleaseError | VersionConflict,
        *,
        plan: _Plan | None = None,
    ) -> ReleaseOutcome:
        self.logger.error(error.pretty())
        return ReleaseOutcome(
            success=False,
            version=plan.version if plan else None,
            previous_version=plan.current if plan else None,
            commit_count=plan.commit_count if plan else 0,
            error=error,
        )

    # -------------------------------------------------------------------------
    # Logging helpers
    # -------------------------------------------------------------------------

    def _log_notes(self, notes: ReleaseNotes) -> None:
        for title, items in notes.sections():
            if items:
                self.logger.info(f"  {title}: {len(items)} items")

    def _log_preview(self, version: str) -> None:
        for path, changes in self.preview(version).items():
            for change in changes:
                self.logger.info(f"  {path}:{change.line}: {change.original} -> {change.updated}")

    def _exists(self, path: str) -> bool:
        target = resolve_within(self.root, path)
        return isinstance(target, Ok) and target.value.is_file()
