"""Git operations module.

Usage:
    from nagare.git import Repository

    repo = Repository(Path("."))
    match repo.current_commit_hash():
        case Ok(sha):
            print(sha)
        case Err(e):
            print(e.message)
"""

from nagare.git.commits import Commit, parse_log, parse_subject
from nagare.git.repository import GitError, GitUser, Repository, validate_ref

__all__ = [
    "Commit",
    "GitError",
    "GitUser",
    "Repository",
    "parse_log",
    "parse_subject",
    "validate_ref",
]
