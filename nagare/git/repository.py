"""Git repository abstraction.

``Repository`` wraps the handful of git commands a release needs. Every
method returns a Result; every ref that reaches a command line is validated
first by ``validate_ref``.

Usage:
    repo = Repository(Path("."))

    match repo.commits_since_last_release("v"):
        case Ok(commits):
            print(f"{len(commits)} commits since last release")
        case Err(e):
            print(f"git failed: {e.message}")
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from nagare.core.result import Err, Ok, Result
from nagare.git.commits import LOG_FORMAT, Commit, parse_log
from nagare.platform.process import ProcessError
from nagare.platform.process import run as run_process

_GIT_TIMEOUT_SECONDS = 30.0
_GIT_NETWORK_TIMEOUT_SECONDS = 3 * 60.0
_NETWORK_COMMANDS = frozenset({"fetch", "pull", "push", "ls-remote"})

_INVALID_REF_CHARS = re.compile(r"[\s~^:?*\[\]\\`\x00-\x1f\x7f]")
_INVALID_REF_PATTERNS = re.compile(r"^-|\.\.|\.$|\.lock$|@\{|^/|/$|//")

__all__ = [
    "GitError",
    "GitUser",
    "Repository",
    "validate_ref",
]


@dataclass(frozen=True, slots=True)
class GitError:
    """Error from a git operation.

    Attributes:
        command: The git command that failed
        message: Error message
        returncode: Process return code
    """

    command: str
    message: str
    returncode: int = 1


@dataclass(frozen=True, slots=True)
class GitUser:
    name: str
    email: str

    @property
    def is_configured(self) -> bool:
        return bool(self.name and self.email)


def validate_ref(ref: str) -> Result[str, GitError]:
    """Check a tag, branch, remote or commit name before it reaches git.

    Rejects option-like names (leading ``-``) and everything git itself
    forbids in ref names.
    """
    trimmed = ref.strip()
    if not trimmed:
        return Err(GitError(command="validate", message="empty git ref"))
    if _INVALID_REF_CHARS.search(trimmed) or _INVALID_REF_PATTERNS.search(trimmed):
        return Err(GitError(command="validate", message=f"invalid git ref: {ref!r}"))
    return Ok(trimmed)


class Repository:
    """A git working tree.

    Attributes:
        path: Path to the repository root
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def exists(self) -> bool:
        """Check if this is a valid git repository."""
        if (self.path / ".git").exists():
            return True
        return isinstance(self._run(["rev-parse", "--git-dir"]), Ok)

    def has_uncommitted_changes(self) -> Result[bool, GitError]:
        result = self._run(["status", "--porcelain"])
        if isinstance(result, Err):
            return self._err("status", result.error)
        return Ok(result.value.strip() != "")

    def git_user(self) -> Result[GitUser, GitError]:
        # A missing key makes `git config` exit 1; treat that as unset.
        name = self._run(["config", "user.name"])
        email = self._run(["config", "user.email"])
        return Ok(
            GitUser(
                name=name.value.strip() if isinstance(name, Ok) else "",
                email=email.value.strip() if isinstance(email, Ok) else "",
            )
        )

    def current_commit_hash(self) -> Result[str, GitError]:
        return self.rev_parse("HEAD")

    def rev_parse(self, ref: str) -> Result[str, GitError]:
        valid = validate_ref(ref)
        if isinstance(valid, Err):
            return valid
        result = self._run(["rev-parse", "--verify", f"{valid.value}^{{commit}}"])
        if isinstance(result, Err):
            return self._err("rev-parse", result.error)
        return Ok(result.value.strip())

    def parent_commit_hash(self) -> Result[str, GitError]:
        """First parent of HEAD."""
        result = self._run(["rev-parse", "--verify", "HEAD^1^{commit}"])
        if isinstance(result, Err):
            return self._err("rev-parse", result.error)
        return Ok(result.value.strip())

    def last_commit_message(self) -> Result[str, GitError]:
        result = self._run(["log", "-1", "--pretty=format:%s"])
        if isinstance(result, Err):
            return self._err("log", result.error)
        return Ok(result.value.strip())

    def local_tags(self) -> Result[list[str], GitError]:
        result = self._run(["tag", "--list"])
        if isinstance(result, Err):
            return self._err("tag --list", result.error)
        return Ok([t.strip() for t in result.value.splitlines() if t.strip()])

    def last_release_tag(self, prefix: str) -> Result[str | None, GitError]:
        """Newest tag starting with ``prefix``, by version order."""
        result = self._run(["tag", "--list", f"{prefix}*", "--sort=-version:refname"])
        if isinstance(result, Err):
            return self._err("tag --list", result.error)
        tags = [t.strip() for t in result.value.splitlines() if t.strip()]
        return Ok(tags[0] if tags else None)

    def commits_since_last_release(self, prefix: str) -> Result[list[Commit], GitError]:
        last = self.last_release_tag(prefix)
        if isinstance(last, Err):
            return last
        rev_range = f"{last.value}..HEAD" if last.value else "HEAD"
        result = self._run(["log", rev_range, f"--format={LOG_FORMAT}", "--no-merges"])
        if isinstance(result, Err):
            return self._err("log", result.error)
        return Ok(parse_log(result.value))

    def commit_files(self, files: list[str], message: str) -> Result[str, GitError]:
        """Stage ``files``, commit them, and return the new commit hash.

        When the commit is refused (hook, signing) the files are unstaged
        again, so the index matches HEAD as before the call.
        """
        add = self._run(["add", "--", *files])
        if isinstance(add, Err):
            return self._err("add", add.error)
        commit = self._run(["commit", "-m", message])
        if isinstance(commit, Err):
            failed = self._err("commit", commit.error)
            unstaged = self.unstage(files)
            if isinstance(unstaged, Err):
                return Err(
                    GitError(
                        command="commit",
                        message=(
                            f"{failed.error.message}; "
                            f"unstaging failed: {unstaged.error.message}"
                        ),
                        returncode=failed.error.returncode,
                    )
                )
            return failed
        return self.current_commit_hash()

    def unstage(self, files: list[str]) -> Result[None, GitError]:
        """Reset the index entries of ``files`` to HEAD; the worktree is untouched."""
        result = self._run(["reset", "-q", "--", *files])
        if isinstance(result, Err):
            return self._err("reset -q", result.error)
        return Ok(None)

    def create_tag(self, tag: str, message: str) -> Result[None, GitError]:
        valid = validate_ref(tag)
        if isinstance(valid, Err):
            return valid
        result = self._run(["tag", "-a", valid.value, "-m", message])
        if isinstance(result, Err):
            return self._err("tag -a", result.error)
        return Ok(None)

    def push(self, remote: str, *, tag: str | None = None) -> Result[None, GitError]:
        """Push HEAD to ``remote``, then ``tag`` if given."""
        valid = validate_ref(remote)
        if isinstance(valid, Err):
            return valid
        result = self._run(["push", valid.value, "HEAD"])
        if isinstance(result, Err):
            return self._err("push", result.error)
        if tag is None:
            return Ok(None)
        return self.push_tag(remote, tag)

    def push_tag(self, remote: str, tag: str) -> Result[None, GitError]:
        for ref in (remote, tag):
            valid = validate_ref(ref)
            if isinstance(valid, Err):
                return valid
        result = self._run(["push", remote.strip(), f"refs/tags/{tag.strip()}"])
        if isinstance(result, Err):
            return self._err("push tag", result.error)
        return Ok(None)

    def delete_local_tag(self, tag: str) -> Result[None, GitError]:
        valid = validate_ref(tag)
        if isinstance(valid, Err):
            return valid
        result = self._run(["tag", "-d", valid.value])
        if isinstance(result, Err):
            return self._err("tag -d", result.error)
        return Ok(None)

    def remote_tag_exists(self, remote: str, tag: str) -> Result[bool, GitError]:
        for ref in (remote, tag):
            valid = validate_ref(ref)
            if isinstance(valid, Err):
                return valid
        result = self._run(["ls-remote", "--tags", remote.strip(), f"refs/tags/{tag.strip()}"])
        if isinstance(result, Err):
            return self._err("ls-remote", result.error)
        return Ok(result.value.strip() != "")

    def delete_remote_tag(self, remote: str, tag: str) -> Result[None, GitError]:
        for ref in (remote, tag):
            valid = validate_ref(ref)
            if isinstance(valid, Err):
                return valid
        result = self._run(["push", remote.strip(), "--delete", f"refs/tags/{tag.strip()}"])
        if isinstance(result, Err):
            return self._err("push --delete", result.error)
        return Ok(None)

    def reset_to_commit(self, ref: str, *, hard: bool) -> Result[None, GitError]:
        valid = validate_ref(ref)
        if isinstance(valid, Err):
            return valid
        mode = "--hard" if hard else "--soft"
        result = self._run(["reset", mode, valid.value])
        if isinstance(result, Err):
            return self._err(f"reset {mode}", result.error)
        return Ok(None)

    def _run(self, args: list[str]) -> Result[str, ProcessError]:
        command = args[0] if args else ""
        timeout = (
            _GIT_NETWORK_TIMEOUT_SECONDS if command in _NETWORK_COMMANDS else _GIT_TIMEOUT_SECONDS
        )
        return run_process(["git", "-C", str(self.path), *args], cwd=self.path, timeout=timeout)

    @staticmethod
    def _err(command: str, error: ProcessError) -> Err[GitError]:
        return Err(
            GitError(
                command=command,
                message=error.detail,
                returncode=error.returncode,
            )
        )
