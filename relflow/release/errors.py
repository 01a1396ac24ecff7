"""Error types for release and hotfix orchestration."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

FlowErrorKind = Literal[
    "invalid_version",
    "precondition",
    "version_mismatch",
    "descriptor_not_found",
    "descriptor_malformed",
    "descriptor_write_failed",
    "branch_exists",
    "branch_not_found",
    "tag_exists",
    "merge_conflict",
    "cherry_pick_conflict",
    "publish_failed",
    "publish_unknown",
    "git_failed",
]

ErrorCategory = Literal[
    "PreconditionError",
    "AlreadyExistsError",
    "ConflictError",
    "PublishError",
    "DescriptorError",
    "GitError",
]

_CATEGORIES: dict[str, ErrorCategory] = {
    "invalid_version": "PreconditionError",
    "precondition": "PreconditionError",
    "branch_not_found": "PreconditionError",
    "version_mismatch": "DescriptorError",
    "descriptor_not_found": "DescriptorError",
    "descriptor_malformed": "DescriptorError",
    "descriptor_write_failed": "DescriptorError",
    "branch_exists": "AlreadyExistsError",
    "tag_exists": "AlreadyExistsError",
    "merge_conflict": "ConflictError",
    "cherry_pick_conflict": "ConflictError",
    "publish_failed": "PublishError",
    "publish_unknown": "PublishError",
    "git_failed": "GitError",
}


@dataclass(frozen=True, slots=True)
class FlowError:
    """Canonical error payload for every orchestration step.

    Attributes:
        kind: Machine-readable error kind.
        message: One-line description.
        hint: What the operator should do next, when known.
        paths: Conflicting paths for merge and cherry-pick conflicts.
    """

    kind: FlowErrorKind
    message: str
    hint: str | None = None
    paths: tuple[str, ...] = ()

    @property
    def category(self) -> ErrorCategory:
        return _CATEGORIES[self.kind]

    @property
    def recoverable(self) -> bool:
        """True when a recovery command can resume from here without repair."""
        return self.category in ("AlreadyExistsError", "ConflictError")
