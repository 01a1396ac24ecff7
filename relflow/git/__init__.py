"""Git operations.

    from relflow.git import Repository

    repo = Repository(Path("/path/to/repo"))
    if repo.tag_exists("v2.0.16"):
        ...
"""

from relflow.git.repository import (
    CommitInfo,
    Committed,
    GitError,
    GitErrorKind,
    MergeStrategy,
    NothingToCommit,
    Repository,
    RepositoryDriver,
)

__all__ = [
    "CommitInfo",
    "Committed",
    "GitError",
    "GitErrorKind",
    "MergeStrategy",
    "NothingToCommit",
    "Repository",
    "RepositoryDriver",
]
