from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Literal

from relflow.release.errors import FlowError
from relflow.release.version import IncrementField, Version

BranchKind = Literal["release", "hotfix"]
StepStatus = Literal["done", "noop", "skipped"]
RunOutcome = Literal["done", "partially_merged", "failed"]


class FlowState(StrEnum):
    """States of the start and finish state machines, in execution order."""

    VALIDATING = "validating"
    BRANCH_CREATED = "branch_created"
    SNAPSHOT_SET = "snapshot_set"
    VERSION_FINALIZED = "version_finalized"
    TAGGED = "tagged"
    PUBLISHED = "published"
    MERGED = "merged"
    NEXT_VERSION_SET = "next_version_set"
    BRANCH_DELETED = "branch_deleted"
    DONE = "done"
    PARTIALLY_MERGED = "partially_merged"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class Increment:
    field: IncrementField


@dataclass(frozen=True, slots=True)
class Explicit:
    version: Version


NextVersionPolicy = Increment | Explicit


@dataclass(frozen=True, slots=True)
class BranchRef:
    """A working branch and the version its descriptor declares."""

    kind: BranchKind
    name: str
    base_version: Version


@dataclass(frozen=True, slots=True)
class ReleaseRequest:
    """Parameters of one release finish run."""

    branch_name: str
    base_branch: str
    tag_prefix: str
    next_version_policy: NextVersionPolicy


@dataclass(frozen=True, slots=True)
class HotfixRequest:
    """Parameters of one hotfix finish run.

    ``base_tag`` overrides the production tag the hotfix was cut from; by
    default it is derived from the hotfix version.
    """

    branch_name: str
    base_branch: str
    tag_prefix: str
    merge_to_base: bool
    base_tag: str | None = None


@dataclass(frozen=True, slots=True)
class ReleaseStartRequest:
    """Cut a release branch from ``base_branch``.

    The release version is ``version`` if given, else the base version bumped
    by ``increment`` if given, else the base's own snapshot version.
    """

    base_branch: str
    version: Version | None = None
    increment: IncrementField | None = None
    branch_name: str | None = None
    branch_prefix: str = "release/"
    tag_prefix: str = "v"


@dataclass(frozen=True, slots=True)
class HotfixStartRequest:
    from_tag: str
    tag_prefix: str
    branch_name: str | None = None
    branch_prefix: str = "hotfix/"


@dataclass(frozen=True, slots=True)
class ArtifactDescriptor:
    """Informational: which artifacts a publish covers."""

    group_id: str
    artifact_ids: frozenset[str] = frozenset()

    def coordinates(self, version: Version) -> tuple[str, ...]:
        return tuple(f"{self.group_id}:{a}:{version}" for a in sorted(self.artifact_ids))


@dataclass(frozen=True, slots=True)
class Invocation:
    """Runner and toolchain selection, passed through to the publish step."""

    runner: str | None = None
    toolchain_version: str | None = None


@dataclass(frozen=True, slots=True)
class Credentials:
    username: str | None = None
    password: str | None = field(default=None, repr=False)

    @property
    def complete(self) -> bool:
        return bool(self.username and self.password)


@dataclass(frozen=True, slots=True)
class FlowSettings:
    """Per-run settings shared by every step."""

    module_root: Path = Path(".")
    process_all_modules: bool = True
    credentials: Credentials = field(default_factory=Credentials)
    invocation: Invocation = field(default_factory=Invocation)


@dataclass(frozen=True, slots=True)
class StepRecord:
    state: FlowState
    status: StepStatus = "done"
    detail: str | None = None


@dataclass(frozen=True, slots=True)
class RunResult:
    """Structured outcome of one orchestration run.

    ``last_completed`` is the last state whose side effects are known to have
    happened; nothing after it was attempted except ``failed_at``.
    """

    kind: BranchKind
    branch: str
    outcome: RunOutcome
    last_completed: FlowState | None
    failed_at: FlowState | None = None
    tag_created: str | None = None
    release_id: str | None = None
    error: FlowError | None = None
    steps: tuple[StepRecord, ...] = ()

    @property
    def final_state(self) -> FlowState:
        match self.outcome:
            case "done":
                return FlowState.DONE
            case "partially_merged":
                return FlowState.PARTIALLY_MERGED
            case _:
                return FlowState.FAILED

    @property
    def ok(self) -> bool:
        return self.outcome == "done"

    @property
    def error_kind(self) -> str | None:
        return self.error.kind if self.error is not None else None

    @property
    def conflicting_paths(self) -> tuple[str, ...]:
        return self.error.paths if self.error is not None else ()

    def step(self, state: FlowState) -> StepRecord | None:
        for record in self.steps:
            if record.state == state:
                return record
        return None
