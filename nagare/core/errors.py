"""Error codes for CLI exit status.

Each command maps the failure it hit onto one of these codes so scripts
wrapping ``nagare`` can tell a rejected input from a half-rolled-back release.
"""

from enum import IntEnum

__all__ = ["ErrorCode"]


class ErrorCode(IntEnum):
    """Exit codes for CLI commands.

    These values are used as process exit codes and should remain stable:
    - 0: Success
    - 1: User error (bad input, version conflict, cancelled)
    - 2: Environment error (not a git repo, dirty tree, missing tools)
    - 3: Git error (commit, tag or reset failed)
    - 4: Network error (push or release creation failed)
    - 5: I/O error (file not readable or writable)
    - 6: Rollback error (automatic recovery left work for a human)
    """

    OK = 0
    USER_ERROR = 1
    ENV_ERROR = 2
    GIT_ERROR = 3
    NETWORK_ERROR = 4
    IO_ERROR = 5
    ROLLBACK_ERROR = 6

    def __str__(self) -> str:
        return self.name.lower().replace("_", " ")

    @property
    def is_success(self) -> bool:
        return self == ErrorCode.OK

    @property
    def is_error(self) -> bool:
        return self != ErrorCode.OK
