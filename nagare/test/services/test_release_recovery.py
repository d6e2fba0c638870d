from __future__ import annotations

from pathlib import Path

from nagare.core.config import OptionsConfig
from nagare.services.release.recovery import RollbackManager
from nagare.test.services._fakes import FakeRepository, make_logger

RELEASE_SUBJECT = "chore(release): bump version to 1.2.0"


def _released_repo(tmp_path: Path, *, fail: tuple[str, ...] = ()) -> FakeRepository:
    repo = FakeRepository(
        tmp_path,
        tags=["v1.1.0", "v1.2.0"],
        remote_tags=["v1.2.0"],
        last_message=RELEASE_SUBJECT,
        fail=fail,
    )
    repo.history = ["c0", "c1"]
    return repo


def _manager(
    repo: FakeRepository,
    *,
    skip_confirmation: bool = True,
    interactive: bool = False,
    answers: list[bool] | None = None,
    prompt_answer: str | None = None,
) -> RollbackManager:
    logger, _ = make_logger()
    pending = list(answers or [])
    return RollbackManager(
        repo,
        OptionsConfig(skip_confirmation=skip_confirmation),
        logger,
        interactive=interactive,
        prompt=lambda _m: prompt_answer,
        confirm=lambda _m: pending.pop(0) if pending else False,
    )


def test_rolls_back_the_last_release(tmp_path: Path) -> None:
    repo = _released_repo(tmp_path)
    manager = _manager(repo)

    result = manager.rollback()

    assert result.success is True
    assert result.version == "1.2.0"
    assert result.actions == (
        "Removed local tag v1.2.0",
        "Reset to previous commit",
        "Deleted remote tag v1.2.0",
    )
    assert repo.tags == ["v1.1.0"]
    assert repo.history == ["c0"]
    assert repo.remote_tags == set()
    assert [e.action for e in manager.logger.entries] == ["rollback_started", "rollback_completed"]


def test_explicit_version_without_release_commit_skips_reset(tmp_path: Path) -> None:
    repo = FakeRepository(tmp_path, tags=["v1.0.0"], last_message="fix: hotfix")
    repo.history = ["c0", "c1"]

    result = _manager(repo).rollback("v1.0.0")

    assert result.success is True
    assert result.version == "1.0.0"
    assert result.actions == ("Removed local tag v1.0.0",)
    assert repo.history == ["c0", "c1"]


def test_non_interactive_needs_a_version(tmp_path: Path) -> None:
    repo = FakeRepository(tmp_path, last_message="docs: readme")
    manager = _manager(repo)

    result = manager.rollback()

    assert result.success is False
    assert result.error is not None
    assert "no version given" in result.error
    assert manager.logger.audited("rollback_failed")


def test_interactive_prompt_supplies_version(tmp_path: Path) -> None:
    repo = FakeRepository(tmp_path, tags=["v0.9.0"], last_message="docs: readme")

    result = _manager(repo, interactive=True, prompt_answer="0.9.0").rollback()

    assert result.success is True
    assert repo.tags == []


def test_invalid_version_is_rejected_before_touching_git(tmp_path: Path) -> None:
    repo = _released_repo(tmp_path)

    result = _manager(repo).rollback("1.2; rm -rf /")

    assert result.success is False
    assert repo.tags == ["v1.1.0", "v1.2.0"]
    assert repo.history == ["c0", "c1"]


def test_declined_confirmation_cancels(tmp_path: Path) -> None:
    repo = _released_repo(tmp_path)

    result = _manager(repo, skip_confirmation=False, answers=[False]).rollback()

    assert result.success is False
    assert result.error == "cancelled"
    assert repo.tags == ["v1.1.0", "v1.2.0"]


def test_remote_tag_is_kept_when_deletion_is_declined(tmp_path: Path) -> None:
    repo = _released_repo(tmp_path)

    result = _manager(repo, skip_confirmation=False, answers=[True, False]).rollback()

    assert result.success is True
    assert repo.remote_tags == {"v1.2.0"}
    assert "Deleted remote tag v1.2.0" not in result.actions


def test_remote_tag_failure_is_a_warning(tmp_path: Path) -> None:
    repo = _released_repo(tmp_path, fail=("delete_remote_tag",))
    logger, console = make_logger()
    manager = RollbackManager(repo, OptionsConfig(skip_confirmation=True), logger)

    result = manager.rollback()

    assert result.success is True
    assert console.has_warning()
    assert repo.remote_tags == {"v1.2.0"}


def test_failed_reset_fails_the_rollback(tmp_path: Path) -> None:
    repo = _released_repo(tmp_path, fail=("reset",))

    result = _manager(repo).rollback()

    assert result.success is False
    assert result.error is not None
    assert result.error.startswith("git reset failed")
