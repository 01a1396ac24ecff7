"""Release branch orchestration.

``start_release`` cuts ``release/<version>`` from the base branch.
``finish_release`` walks the finish state machine:

    validating -> version_finalized -> tagged -> published -> merged
        -> next_version_set -> branch_deleted -> done

Every failure stops the run at the last completed state. ``merge_into_base``
and ``set_next_version`` are also used by ``relflow recover merge``.
"""

from __future__ import annotations

from dataclasses import replace

from relflow.core.result import Err, Ok, Result
from relflow.output.console import Style
from relflow.release.errors import FlowError
from relflow.release.machine import DONE, RunLedger, StepDone, StepOutcome, run_steps
from relflow.release.model import (
    BranchRef,
    Explicit,
    FlowState,
    Increment,
    NextVersionPolicy,
    ReleaseRequest,
    ReleaseStartRequest,
    RunResult,
)
from relflow.release.steps import (
    FlowDeps,
    check_branch_name,
    commit_message,
    commit_version,
    create_and_push_tag,
    delete_working_branch,
    ensure_on_branch,
    from_git,
    precondition,
    publish_version,
    read_branch_version,
)
from relflow.release.version import (
    Version,
    add_snapshot,
    format_version,
    increment,
    strip_snapshot,
    tag_name,
)


def _core(v: Version) -> tuple[int, int, int]:
    return (v.major, v.minor, v.patch)


def validate_next_version_policy(policy: NextVersionPolicy) -> Result[None, FlowError]:
    """An explicit next version must be a 3-component snapshot."""
    match policy:
        case Explicit(version=v) if not v.snapshot:
            return Err(
                precondition(
                    f"next version must be a snapshot: {v}",
                    hint=f"Use {format_version(add_snapshot(v))}",
                )
            )
        case Explicit(version=v) if v.is_hotfix:
            return Err(
                FlowError(kind="invalid_version", message=f"next version cannot be a hotfix: {v}")
            )
        case _:
            return Ok(None)


def merge_into_base(
    deps: FlowDeps, *, branch: str, base_branch: str, tag: str
) -> Result[StepOutcome, FlowError]:
    """Merge the release branch into base, unless the tag is already there."""
    repo = deps.repo
    if repo.tag_exists(tag) and repo.is_ancestor(tag, base_branch):
        deps.console.print(f"{tag} already reachable from {base_branch}; skipping merge", Style.DIM)
        return Ok(StepDone(status="skipped", detail="already merged"))

    deps.console.print(f"git merge --no-ff {branch} into {base_branch}", Style.DIM)
    merged = repo.merge(branch, base_branch, strategy="no-ff")
    if isinstance(merged, Err):
        return Err(
            from_git(
                merged.error,
                hint=(
                    f"Branch {branch} and tag {tag} are kept. Resolve the merge on "
                    f"{base_branch}, commit, then run `relflow recover merge`."
                ),
            )
        )
    return Ok(DONE)


def set_next_version(
    deps: FlowDeps,
    *,
    base_branch: str,
    released: Version,
    policy: NextVersionPolicy,
) -> Result[StepOutcome, FlowError]:
    """Move base to the next development snapshot and push it.

    Idempotent: if base already carries a snapshot beyond ``released`` (or
    the explicit target), nothing is committed and base is only pushed.
    """
    repo = deps.repo
    if repo.current_branch() != base_branch:
        checkout = repo.checkout(base_branch)
        if isinstance(checkout, Err):
            return Err(from_git(checkout.error))

    current = read_branch_version(deps, "release")
    if isinstance(current, Err):
        return current

    match policy:
        case Explicit(version=v):
            target = v
        case Increment(field=f):
            target = increment(current.value, f)

    outcome: StepOutcome
    if current.value == target or (
        isinstance(policy, Increment)
        and current.value.snapshot
        and _core(current.value) > _core(released)
    ):
        deps.console.print(f"{base_branch} already at {current.value}", Style.DIM)
        outcome = StepDone(status="noop", detail=str(current.value))
    else:
        committed = commit_version(
            deps, target, message=commit_message("release", f"next development version {target}")
        )
        if isinstance(committed, Err):
            return committed
        outcome = committed.value

    deps.console.print(f"git push {base_branch}", Style.DIM)
    pushed = repo.push(base_branch)
    if isinstance(pushed, Err):
        return Err(from_git(pushed.error))
    return Ok(outcome)


class _ReleaseStart:
    def __init__(self, deps: FlowDeps, request: ReleaseStartRequest) -> None:
        self.deps = deps
        self.request = request
        self.version: Version | None = None
        self.branch: str = request.branch_name or ""

    def validate(self) -> Result[StepOutcome, FlowError]:
        repo = self.deps.repo
        base = self.request.base_branch
        if not repo.branch_exists(base):
            return Err(precondition(f"base branch not found: {base}"))
        if not repo.is_clean():
            return Err(precondition("working tree has uncommitted changes"))
        if repo.current_branch() != base:
            checkout = repo.checkout(base)
            if isinstance(checkout, Err):
                return Err(from_git(checkout.error))

        current = read_branch_version(self.deps, "release")
        if isinstance(current, Err):
            return current

        if self.request.version is not None:
            version = strip_snapshot(self.request.version)
            if version.is_hotfix:
                return Err(
                    FlowError(kind="invalid_version", message=f"release version cannot be a hotfix: {version}")
                )
        elif self.request.increment is not None:
            version = strip_snapshot(increment(current.value, self.request.increment))
        else:
            version = strip_snapshot(current.value)

        self.version = version
        self.branch = self.request.branch_name or f"{self.request.branch_prefix}{version}"

        if repo.branch_exists(self.branch) or repo.branch_exists(self.branch, remote=True):
            return Err(
                FlowError(kind="branch_exists", message=f"branch already exists: {self.branch}")
            )
        tag = tag_name(self.request.tag_prefix, version)
        if repo.tag_exists(tag):
            return Err(
                FlowError(
                    kind="tag_exists",
                    message=f"{version} was already released as {tag}",
                    hint="Pick another version with --version or --increment.",
                )
            )
        return Ok(StepDone(detail=str(version)))

    def create(self) -> Result[StepOutcome, FlowError]:
        repo = self.deps.repo
        self.deps.console.print(f"git branch {self.branch} {self.request.base_branch}", Style.DIM)
        created = repo.create_branch(self.branch, self.request.base_branch)
        if isinstance(created, Err):
            return Err(from_git(created.error))
        checkout = repo.checkout(self.branch)
        if isinstance(checkout, Err):
            return Err(from_git(checkout.error))
        return Ok(StepDone(detail=self.branch))

    def set_snapshot(self) -> Result[StepOutcome, FlowError]:
        assert self.version is not None
        snapshot = add_snapshot(self.version)
        committed = commit_version(
            self.deps, snapshot, message=commit_message("release", f"start {snapshot}")
        )
        if isinstance(committed, Err):
            return committed
        pushed = self.deps.repo.push(self.branch, set_upstream=True)
        if isinstance(pushed, Err):
            return Err(from_git(pushed.error))
        return committed


def start_release(deps: FlowDeps, request: ReleaseStartRequest) -> RunResult:
    run = _ReleaseStart(deps, request)
    result = run_steps(
        kind="release",
        branch=request.branch_name or request.base_branch,
        steps=(
            (FlowState.VALIDATING, run.validate),
            (FlowState.BRANCH_CREATED, run.create),
            (FlowState.SNAPSHOT_SET, run.set_snapshot),
        ),
        ledger=RunLedger(),
        console=deps.console,
    )
    if run.branch and run.branch != result.branch:
        return replace(result, branch=run.branch)
    return result


class _ReleaseFinish:
    def __init__(self, deps: FlowDeps, request: ReleaseRequest, ledger: RunLedger) -> None:
        self.deps = deps
        self.request = request
        self.ledger = ledger
        self.version: Version | None = None
        self.tag: str = ""

    def validate(self) -> Result[StepOutcome, FlowError]:
        policy_ok = validate_next_version_policy(self.request.next_version_policy)
        if isinstance(policy_ok, Err):
            return policy_ok

        on_branch = ensure_on_branch(self.deps, self.request.branch_name)
        if isinstance(on_branch, Err):
            return on_branch

        current = read_branch_version(self.deps, "release")
        if isinstance(current, Err):
            return current
        if not current.value.snapshot:
            return Err(
                precondition(
                    f"{self.request.branch_name} is at {current.value}, expected a -SNAPSHOT version",
                    hint="If an earlier run already finalized it, use `relflow recover retag`.",
                )
            )

        named = check_branch_name(
            BranchRef(kind="release", name=self.request.branch_name, base_version=current.value)
        )
        if isinstance(named, Err):
            return named

        self.version = strip_snapshot(current.value)
        self.tag = tag_name(self.request.tag_prefix, self.version)
        return Ok(StepDone(detail=str(current.value)))

    def finalize(self) -> Result[StepOutcome, FlowError]:
        assert self.version is not None
        return commit_version(
            self.deps, self.version, message=commit_message("release", str(self.version))
        )

    def tag_release(self) -> Result[StepOutcome, FlowError]:
        assert self.version is not None
        return create_and_push_tag(
            self.deps,
            branch=self.request.branch_name,
            tag=self.tag,
            version=self.version,
            ledger=self.ledger,
        )

    def publish(self) -> Result[StepOutcome, FlowError]:
        assert self.version is not None
        return publish_version(self.deps, version=self.version, tag=self.tag, ledger=self.ledger)

    def merge(self) -> Result[StepOutcome, FlowError]:
        return merge_into_base(
            self.deps,
            branch=self.request.branch_name,
            base_branch=self.request.base_branch,
            tag=self.tag,
        )

    def next_version(self) -> Result[StepOutcome, FlowError]:
        assert self.version is not None
        return set_next_version(
            self.deps,
            base_branch=self.request.base_branch,
            released=self.version,
            policy=self.request.next_version_policy,
        )

    def delete(self) -> Result[StepOutcome, FlowError]:
        return delete_working_branch(
            self.deps, branch=self.request.branch_name, base_branch=self.request.base_branch
        )


def finish_release(deps: FlowDeps, request: ReleaseRequest) -> RunResult:
    ledger = RunLedger()
    run = _ReleaseFinish(deps, request, ledger)
    return run_steps(
        kind="release",
        branch=request.branch_name,
        steps=(
            (FlowState.VALIDATING, run.validate),
            (FlowState.VERSION_FINALIZED, run.finalize),
            (FlowState.TAGGED, run.tag_release),
            (FlowState.PUBLISHED, run.publish),
            (FlowState.MERGED, run.merge),
            (FlowState.NEXT_VERSION_SET, run.next_version),
            (FlowState.BRANCH_DELETED, run.delete),
        ),
        ledger=ledger,
        console=deps.console,
    )
