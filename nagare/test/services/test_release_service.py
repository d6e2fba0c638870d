from __future__ import annotations

import re
import shutil
import subprocess
from pathlib import Path

import pytest

from nagare.core.config import GithubConfig, NagareConfig, OptionsConfig, UpdateFileConfig
from nagare.core.result import Err, Ok, Result
from nagare.git.commits import parse_subject
from nagare.git.repository import GitUser
from nagare.services.release import gh as gh_mod
from nagare.services.release.compensation import DeleteFile, DeleteTag
from nagare.services.release.errors import ReleaseError, VersionConflict
from nagare.services.release.handlers import (
    BUILT_IN_HANDLERS,
    FileHandler,
    HandlerRegistry,
    ValidationResult,
)
from nagare.services.release.ledger import OperationState, OperationType
from nagare.services.release.model import FileChange
from nagare.services.release.service import ReleaseService
from nagare.test.services._fakes import FakeRepository, make_logger

PACKAGE_JSON = '{\n  "name": "demo",\n  "version": "1.0.0"\n}\n'
README = "# Demo\n\nnpm install demo@1.0.0\n"

COMMITS = (
    parse_subject("feat: add export", hash="a" * 40),
    parse_subject("fix: crash on start", hash="b" * 40),
)


class FakeCreateRelease:
    def __init__(self, result: Result[str | None, ReleaseError]) -> None:
        self.result = result
        self.calls: list[dict[str, object]] = []

    def __call__(
        self,
        *,
        repo_root: Path,
        tag: str,
        title: str,
        notes: str,
        repo: str | None = None,
        draft: bool = False,
    ) -> Result[str | None, ReleaseError]:
        self.calls.append({"tag": tag, "title": title, "notes": notes, "repo": repo, "draft": draft})
        return self.result


def _config(*, github: GithubConfig | None = None, **options: object) -> NagareConfig:
    return NagareConfig(
        version_file="package.json",
        update_files=(UpdateFileConfig("README.md"),),
        github=github or GithubConfig(),
        options=OptionsConfig(**{"skip_confirmation": True, **options}),  # type: ignore[arg-type]
    )


def _project(root: Path) -> None:
    (root / "package.json").write_text(PACKAGE_JSON, encoding="utf-8")
    (root / "README.md").write_text(README, encoding="utf-8")


def _service(
    root: Path,
    repo: FakeRepository,
    config: NagareConfig | None = None,
    **kwargs: object,
) -> ReleaseService:
    logger, _ = make_logger()
    return ReleaseService(
        root=root,
        config=config or _config(),
        logger=logger,
        repo=repo,
        **kwargs,  # type: ignore[arg-type]
    )


@pytest.fixture
def gh_ready(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(gh_mod, "ensure_gh_available", lambda: Ok(None))
    monkeypatch.setattr(gh_mod, "ensure_gh_auth", lambda *, repo_root: Ok(None))


def _assert_untouched(root: Path) -> None:
    assert (root / "package.json").read_text(encoding="utf-8") == PACKAGE_JSON
    assert (root / "README.md").read_text(encoding="utf-8") == README
    assert not (root / "CHANGELOG.md").exists()


# -----------------------------------------------------------------------------
# Successful releases
# -----------------------------------------------------------------------------


def test_release_updates_commits_tags_and_pushes(tmp_path: Path) -> None:
    _project(tmp_path)
    repo = FakeRepository(tmp_path, commits=COMMITS)
    service = _service(tmp_path, repo)

    outcome = service.release()

    assert outcome.success is True
    assert outcome.version == "1.1.0"
    assert outcome.previous_version == "1.0.0"
    assert outcome.commit_count == 2
    assert outcome.updated_files == ("package.json", "README.md", "CHANGELOG.md")

    assert '"version": "1.1.0"' in (tmp_path / "package.json").read_text(encoding="utf-8")
    assert "npm install demo@1.1.0" in (tmp_path / "README.md").read_text(encoding="utf-8")
    changelog = (tmp_path / "CHANGELOG.md").read_text(encoding="utf-8")
    assert re.search(r"^## \[1\.1\.0\] - \d{4}-\d{2}-\d{2}$", changelog, re.MULTILINE)
    assert "add export (aaaaaaa)" in changelog

    assert repo.committed == [["package.json", "README.md", "CHANGELOG.md"]]
    assert repo.last_message == "chore(release): bump version to 1.1.0"
    assert repo.tags == ["v1.1.0"]
    assert repo.pushed == [("origin", "v1.1.0")]
    assert not (tmp_path / ".nagare-backups").exists()

    assert [op.type for op in service.ledger.operations] == [
        OperationType.FILE_BACKUP,
        OperationType.FILE_UPDATE,
        OperationType.FILE_UPDATE,
        OperationType.FILE_UPDATE,
        OperationType.GIT_COMMIT,
        OperationType.GIT_TAG,
        OperationType.GIT_PUSH,
    ]
    assert all(op.state is OperationState.COMPLETED for op in service.ledger.operations)
    assert service.logger.audited("release_completed")


def test_release_creates_hosted_release(tmp_path: Path, gh_ready: None) -> None:
    _project(tmp_path)
    repo = FakeRepository(tmp_path, commits=COMMITS)
    create = FakeCreateRelease(Ok("https://github.com/acme/demo/releases/tag/v1.1.0"))
    config = _config(github=GithubConfig(create_release=True, owner="acme", repo="demo"))
    service = _service(tmp_path, repo, config, create_release=create)

    outcome = service.release()

    assert outcome.success is True
    assert outcome.release_url == "https://github.com/acme/demo/releases/tag/v1.1.0"
    [call] = create.calls
    assert call["tag"] == "v1.1.0"
    assert call["repo"] == "acme/demo"
    assert "### Added" in str(call["notes"])
    assert service.ledger.by_type(OperationType.GITHUB_RELEASE)[0].metadata["url"] == (
        "https://github.com/acme/demo/releases/tag/v1.1.0"
    )


def test_forced_bump_without_commits(tmp_path: Path) -> None:
    _project(tmp_path)
    outcome = _service(tmp_path, FakeRepository(tmp_path)).release(bump="patch")

    assert outcome.success is True
    assert outcome.version == "1.0.1"


def test_custom_tag_prefix(tmp_path: Path) -> None:
    _project(tmp_path)
    repo = FakeRepository(tmp_path, commits=COMMITS)

    outcome = _service(tmp_path, repo, _config(tag_prefix="release-")).release()

    assert outcome.success is True
    assert repo.tags == ["release-1.1.0"]


# -----------------------------------------------------------------------------
# Refusals before anything changes
# -----------------------------------------------------------------------------


def test_dry_run_changes_nothing(tmp_path: Path) -> None:
    _project(tmp_path)
    repo = FakeRepository(tmp_path, commits=COMMITS)
    service = _service(tmp_path, repo)

    outcome = service.release(dry_run=True)

    assert outcome.success is True
    assert outcome.dry_run is True
    assert outcome.version == "1.1.0"
    _assert_untouched(tmp_path)
    assert repo.committed == []
    assert repo.tags == []
    assert not (tmp_path / ".nagare-backups").exists()


def test_no_commits_without_bump_is_rejected(tmp_path: Path) -> None:
    _project(tmp_path)
    outcome = _service(tmp_path, FakeRepository(tmp_path)).release()

    assert outcome.success is False
    assert isinstance(outcome.error, ReleaseError)
    assert outcome.error.kind == "invalid_input"
    assert outcome.error.hint is not None


def test_under_versioning_is_rejected(tmp_path: Path) -> None:
    _project(tmp_path)
    repo = FakeRepository(tmp_path, commits=COMMITS)

    outcome = _service(tmp_path, repo).release(bump="patch")

    assert outcome.success is False
    assert isinstance(outcome.error, VersionConflict)
    assert [c.type for c in outcome.error.offending] == ["feat"]
    _assert_untouched(tmp_path)


@pytest.mark.parametrize(
    "repo_kwargs",
    [
        {"dirty": True},
        {"user": GitUser(name="", email="")},
    ],
)
def test_environment_problems(tmp_path: Path, repo_kwargs: dict[str, object]) -> None:
    _project(tmp_path)
    repo = FakeRepository(tmp_path, commits=COMMITS, **repo_kwargs)  # type: ignore[arg-type]

    outcome = _service(tmp_path, repo).release()

    assert outcome.success is False
    assert isinstance(outcome.error, ReleaseError)
    assert outcome.error.kind == "invalid_environment"


def test_missing_version_file(tmp_path: Path) -> None:
    outcome = _service(tmp_path, FakeRepository(tmp_path, commits=COMMITS)).release()

    assert isinstance(outcome.error, ReleaseError)
    assert outcome.error.kind == "read_failed"


def test_missing_gh_is_an_environment_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _project(tmp_path)
    monkeypatch.setattr(gh_mod.shutil, "which", lambda _name: None)
    config = _config(github=GithubConfig(create_release=True))

    outcome = _service(tmp_path, FakeRepository(tmp_path, commits=COMMITS), config).release()

    assert isinstance(outcome.error, ReleaseError)
    assert outcome.error.kind == "gh_missing"


def test_declined_confirmation(tmp_path: Path) -> None:
    _project(tmp_path)
    repo = FakeRepository(tmp_path, commits=COMMITS)
    service = _service(
        tmp_path, repo, _config(skip_confirmation=False), confirm=lambda _m: False
    )

    outcome = service.release()

    assert isinstance(outcome.error, ReleaseError)
    assert outcome.error.kind == "cancelled"
    _assert_untouched(tmp_path)


# -----------------------------------------------------------------------------
# Failures after mutation
# -----------------------------------------------------------------------------


def test_push_failure_rolls_everything_back(tmp_path: Path) -> None:
    _project(tmp_path)
    repo = FakeRepository(tmp_path, commits=COMMITS, fail=["push"])
    service = _service(tmp_path, repo)

    outcome = service.release()

    assert outcome.success is False
    assert isinstance(outcome.error, ReleaseError)
    assert outcome.error.kind == "git_failed"
    assert outcome.rollback is not None
    assert outcome.rollback.success is True
    assert [op.type for op in outcome.rollback.rolled_back] == [
        OperationType.GIT_TAG,
        OperationType.GIT_COMMIT,
        OperationType.FILE_UPDATE,
        OperationType.FILE_UPDATE,
        OperationType.FILE_UPDATE,
    ]

    _assert_untouched(tmp_path)
    assert repo.tags == []
    assert repo.history == ["c0"]
    assert outcome.backup_id is not None
    assert (tmp_path / ".nagare-backups" / outcome.backup_id).is_dir()


def test_push_failure_keeps_a_remote_tag_it_never_pushed(tmp_path: Path) -> None:
    _project(tmp_path)
    repo = FakeRepository(tmp_path, commits=COMMITS, remote_tags=["v1.1.0"], fail=["push"])

    outcome = _service(tmp_path, repo).release()

    assert outcome.success is False
    assert outcome.rollback is not None
    assert outcome.rollback.success is True
    [tag_op] = [op for op in outcome.rollback.rolled_back if op.type is OperationType.GIT_TAG]
    assert tag_op.compensation == DeleteTag("v1.1.0")
    assert repo.tags == []
    assert repo.remote_tags == {"v1.1.0"}


def test_created_changelog_is_deleted_on_rollback(tmp_path: Path) -> None:
    _project(tmp_path)
    repo = FakeRepository(tmp_path, commits=COMMITS, fail=["tag"])

    outcome = _service(tmp_path, repo).release()

    assert outcome.rollback is not None
    [changelog_op] = [
        op for op in outcome.rollback.rolled_back if op.metadata.get("path") == "CHANGELOG.md"
    ]
    assert changelog_op.compensation == DeleteFile("CHANGELOG.md")
    _assert_untouched(tmp_path)


def _git(root: Path, *args: str) -> str:
    proc = subprocess.run(
        ["git", *args], cwd=root, check=True, capture_output=True, text=True
    )
    return proc.stdout


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
def test_refused_commit_leaves_a_clean_repository(tmp_path: Path) -> None:
    _project(tmp_path)
    _git(tmp_path, "init", "-q")
    _git(tmp_path, "config", "user.name", "Ada")
    _git(tmp_path, "config", "user.email", "ada@example.com")
    _git(tmp_path, "config", "commit.gpgsign", "false")
    _git(tmp_path, "config", "core.hooksPath", ".git/hooks")
    _git(tmp_path, "add", ".")
    _git(tmp_path, "commit", "-q", "-m", "feat: initial")
    hook = tmp_path / ".git" / "hooks" / "pre-commit"
    hook.parent.mkdir(parents=True, exist_ok=True)
    hook.write_text("#!/bin/sh\nexit 1\n", encoding="utf-8")
    hook.chmod(0o755)
    logger, _ = make_logger()

    outcome = ReleaseService(root=tmp_path, config=_config(), logger=logger).release()

    assert outcome.success is False
    assert isinstance(outcome.error, ReleaseError)
    assert outcome.error.kind == "git_failed"
    assert outcome.rollback is not None
    assert outcome.rollback.success is True
    assert _git(tmp_path, "status", "--porcelain") == ""
    _assert_untouched(tmp_path)


def test_hosted_release_failure_leaves_manual_follow_up(tmp_path: Path, gh_ready: None) -> None:
    _project(tmp_path)
    repo = FakeRepository(tmp_path, commits=COMMITS)
    create = FakeCreateRelease(Err(ReleaseError(kind="release_failed", message="HTTP 422")))
    config = _config(github=GithubConfig(create_release=True))

    outcome = _service(tmp_path, repo, config, create_release=create).release()

    assert outcome.success is False
    assert isinstance(outcome.error, ReleaseError)
    assert outcome.error.kind == "release_failed"
    assert outcome.rollback is not None
    assert outcome.rollback.success is True
    assert [op.type for op in outcome.rollback.manual] == [OperationType.GIT_PUSH]
    assert "git push origin --delete v1.1.0" in outcome.rollback.instructions[0]
    assert repo.tags == []
    assert repo.remote_tags == set()
    _assert_untouched(tmp_path)


def test_file_update_failure_reports_the_file_and_restores(tmp_path: Path) -> None:
    _project(tmp_path)
    (tmp_path / "README.md").write_text("# Demo\n", encoding="utf-8")
    repo = FakeRepository(tmp_path, commits=COMMITS)

    outcome = _service(tmp_path, repo).release()

    assert isinstance(outcome.error, ReleaseError)
    assert outcome.error.kind == "file_update_failed"
    assert "README.md" in outcome.error.message
    assert (tmp_path / "package.json").read_text(encoding="utf-8") == PACKAGE_JSON
    assert not (tmp_path / "CHANGELOG.md").exists()
    assert repo.committed == []


def test_validation_failure_stops_the_release(tmp_path: Path) -> None:
    _project(tmp_path)
    (tmp_path / "VERSION").write_text("1.0.0\n", encoding="utf-8")
    strict = FileHandler(
        id="version-txt",
        name="Plain version file",
        detector=lambda path: path.endswith("VERSION"),
        patterns={"version": (re.compile(r"^(?P<value>\S+)$", re.MULTILINE),)},
        validate=lambda _content: ValidationResult(False, "rejected"),
    )
    registry = HandlerRegistry([*BUILT_IN_HANDLERS, strict])
    config = NagareConfig(
        version_file="package.json",
        update_files=(UpdateFileConfig("VERSION"),),
        options=OptionsConfig(skip_confirmation=True, changelog=None),
    )
    repo = FakeRepository(tmp_path, commits=COMMITS)

    outcome = _service(tmp_path, repo, config, registry=registry).release()

    assert isinstance(outcome.error, ReleaseError)
    assert outcome.error.kind == "file_update_failed"
    assert "validation failed" in outcome.error.message
    assert (tmp_path / "VERSION").read_text(encoding="utf-8") == "1.0.0\n"
    assert (tmp_path / "package.json").read_text(encoding="utf-8") == PACKAGE_JSON


def test_failed_compensation_is_a_partial_rollback(tmp_path: Path) -> None:
    _project(tmp_path)
    repo = FakeRepository(tmp_path, commits=COMMITS, fail=["push", "reset"])

    outcome = _service(tmp_path, repo).release()

    assert isinstance(outcome.error, ReleaseError)
    assert outcome.error.kind == "rollback_partial_failure"
    assert outcome.rollback is not None
    assert outcome.rollback.success is False
    [(failed_op, _)] = outcome.rollback.failed
    assert failed_op.type is OperationType.GIT_COMMIT
    # Later compensations still ran.
    _assert_untouched(tmp_path)
    assert outcome.backup_id is not None
    assert (tmp_path / ".nagare-backups" / outcome.backup_id).is_dir()


# -----------------------------------------------------------------------------
# Planning helpers
# -----------------------------------------------------------------------------


def test_next_version_and_preview(tmp_path: Path) -> None:
    _project(tmp_path)
    service = _service(tmp_path, FakeRepository(tmp_path, commits=COMMITS))

    assert service.next_version() == Ok("1.1.0")
    assert service.next_version("major") == Ok("2.0.0")
    assert service.preview("1.1.0") == {
        "package.json": [FileChange(3, '"version": "1.0.0"', '"version": "1.1.0"')],
        "README.md": [FileChange(3, "npm install demo@1.0.0", "npm install demo@1.1.0")],
    }
    _assert_untouched(tmp_path)
