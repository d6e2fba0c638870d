"""In-memory stand-ins for git used by the release tests."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from nagare.core.result import Err, Ok, Result
from nagare.git.commits import Commit
from nagare.git.repository import GitError, GitUser, Repository
from nagare.output.console import MockConsole
from nagare.output.log import ReleaseLogger


def make_logger(*, verbose: bool = False) -> tuple[ReleaseLogger, MockConsole]:
    console = MockConsole()
    return ReleaseLogger(console, verbose=verbose), console


class FakeRepository(Repository):
    """Linear history and tag sets kept in memory.

    ``fail`` names operations that return an error instead of acting:
    commit, tag, push, delete_tag, delete_remote_tag, reset, ls_remote.
    """

    def __init__(
        self,
        path: Path,
        *,
        commits: Iterable[Commit] = (),
        tags: Iterable[str] = (),
        remote_tags: Iterable[str] = (),
        last_message: str = "feat: initial",
        dirty: bool = False,
        user: GitUser | None = None,
        fail: Iterable[str] = (),
    ) -> None:
        super().__init__(path)
        self.commits = list(commits)
        self.tags = list(tags)
        self.remote_tags = set(remote_tags)
        self.last_message = last_message
        self.dirty = dirty
        self.user = user if user is not None else GitUser("Ada", "ada@example.com")
        self.fail = set(fail)
        self.history = ["c0"]
        self.committed: list[list[str]] = []
        self.pushed: list[tuple[str, str | None]] = []
        self.resets: list[str] = []

    def _boom(self, op: str) -> Err[GitError]:
        return Err(GitError(command=op, message=f"{op} exploded"))

    def exists(self) -> bool:
        return True

    def has_uncommitted_changes(self) -> Result[bool, GitError]:
        return Ok(self.dirty)

    def git_user(self) -> Result[GitUser, GitError]:
        return Ok(self.user)

    def current_commit_hash(self) -> Result[str, GitError]:
        return Ok(self.history[-1])

    def parent_commit_hash(self) -> Result[str, GitError]:
        if len(self.history) < 2:
            return self._boom("rev-parse")
        return Ok(self.history[-2])

    def last_commit_message(self) -> Result[str, GitError]:
        return Ok(self.last_message)

    def local_tags(self) -> Result[list[str], GitError]:
        return Ok(list(self.tags))

    def commits_since_last_release(self, prefix: str) -> Result[list[Commit], GitError]:
        return Ok(list(self.commits))

    def commit_files(self, files: list[str], message: str) -> Result[str, GitError]:
        if "commit" in self.fail:
            return self._boom("commit")
        sha = f"c{len(self.history)}"
        self.history.append(sha)
        self.committed.append(list(files))
        self.last_message = message
        return Ok(sha)

    def create_tag(self, tag: str, message: str) -> Result[None, GitError]:
        if "tag" in self.fail:
            return self._boom("tag")
        self.tags.append(tag)
        return Ok(None)

    def push(self, remote: str, *, tag: str | None = None) -> Result[None, GitError]:
        if "push" in self.fail:
            return self._boom("push")
        self.pushed.append((remote, tag))
        if tag is not None:
            self.remote_tags.add(tag)
        return Ok(None)

    def delete_local_tag(self, tag: str) -> Result[None, GitError]:
        if "delete_tag" in self.fail or tag not in self.tags:
            return self._boom("tag -d")
        self.tags.remove(tag)
        return Ok(None)

    def remote_tag_exists(self, remote: str, tag: str) -> Result[bool, GitError]:
        if "ls_remote" in self.fail:
            return self._boom("ls-remote")
        return Ok(tag in self.remote_tags)

    def delete_remote_tag(self, remote: str, tag: str) -> Result[None, GitError]:
        if "delete_remote_tag" in self.fail:
            return self._boom("push --delete")
        self.remote_tags.discard(tag)
        return Ok(None)

    def reset_to_commit(self, ref: str, *, hard: bool) -> Result[None, GitError]:
        if "reset" in self.fail or ref not in self.history:
            return self._boom("reset")
        self.history = self.history[: self.history.index(ref) + 1]
        self.resets.append(ref)
        return Ok(None)
