"""Process exit codes.

A finished run maps onto one of these codes so that CI jobs can branch on
the outcome without parsing output. The values are part of the CLI contract
and must stay stable.
"""

from enum import IntEnum

__all__ = ["ErrorCode"]


class ErrorCode(IntEnum):
    """Exit codes for relflow commands.

    - 0: Success
    - 1: User error (bad arguments, invalid version strings)
    - 2: Precondition failed (wrong branch, dirty tree, missing tag)
    - 3: Merge or cherry-pick conflict
    - 4: Publish failed or outcome unknown
    - 5: I/O or git command failure
    - 6: Tag or branch already exists
    - 7: Partial success (hotfix published, merge-back needs a human)
    """

    OK = 0
    USER_ERROR = 1
    PRECONDITION_ERROR = 2
    CONFLICT = 3
    PUBLISH_ERROR = 4
    IO_ERROR = 5
    ALREADY_EXISTS = 6
    PARTIAL = 7

    def __str__(self) -> str:
        return self.name.lower().replace("_", " ")
