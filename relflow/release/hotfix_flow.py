"""Hotfix branch orchestration.

A hotfix is cut from a production tag rather than from the base branch, so
its merge-back cherry-picks the fix commits instead of merging the branch.
Finish states:

    validating -> version_finalized -> tagged -> published
        -> merged | skipped -> branch_deleted -> done

A cherry-pick conflict ends the run in ``partially_merged``: the tag and the
publish stand and the branch is kept for manual completion.
"""

from __future__ import annotations

from dataclasses import replace

from relflow.core.result import Err, Ok, Result
from relflow.output.console import Style
from relflow.release.descriptor import expect_version
from relflow.release.errors import FlowError
from relflow.release.machine import RunLedger, StepDone, StepHalt, StepOutcome, run_steps
from relflow.release.model import (
    BranchRef,
    FlowState,
    HotfixRequest,
    HotfixStartRequest,
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
    is_relflow_commit,
    precondition,
    publish_version,
    read_branch_version,
)
from relflow.release.version import (
    Version,
    add_snapshot,
    next_hotfix,
    previous_release,
    strip_snapshot,
    tag_name,
    version_from_tag,
)


def resolve_base_tag(
    deps: FlowDeps, *, version: Version, tag_prefix: str, override: str | None
) -> Result[str, FlowError]:
    """The production tag a hotfix was cut from; it must exist."""
    if override is not None:
        base_tag = override
    else:
        previous = previous_release(version)
        if previous is None:
            return Err(
                precondition(
                    f"cannot derive the production tag {version} was cut from",
                    hint="Pass --base-tag.",
                )
            )
        base_tag = tag_name(tag_prefix, previous)

    if not deps.repo.tag_exists(base_tag):
        return Err(
            precondition(
                f"base tag not found: {base_tag}",
                hint="Pass --base-tag with the tag the hotfix branch was created from.",
            )
        )
    return Ok(base_tag)


def cherry_pick_onto_base(
    deps: FlowDeps, *, branch: str, base_branch: str, base_tag: str
) -> Result[StepOutcome, FlowError]:
    """Apply the hotfix commits not yet on base, skipping relflow's own commits.

    Commits with a patch-equivalent already on base are left out, so a rerun
    after a manual completion picks nothing.
    """
    repo = deps.repo
    listed = repo.list_commits(branch, base_tag, upstream=base_branch)
    if isinstance(listed, Err):
        return Err(from_git(listed.error))

    commits = [c for c in listed.value if not is_relflow_commit(c)]
    if not commits:
        deps.console.print(f"{base_branch} already has every commit of {branch}", Style.DIM)
        pushed = repo.push(base_branch)
        if isinstance(pushed, Err):
            return Err(from_git(pushed.error))
        return Ok(StepDone(status="noop", detail="nothing to cherry-pick"))

    for commit in commits:
        deps.console.print(f"git cherry-pick {commit.short_sha} {commit.subject}", Style.DIM)
    picked = repo.cherry_pick([c.sha for c in commits], base_branch)
    if isinstance(picked, Err):
        error = from_git(
            picked.error,
            hint=(
                f"Finish the cherry-pick on {base_branch} by hand and push it. "
                f"Branch {branch} is kept; delete it with `relflow recover delete-branch`."
            ),
        )
        if error.kind == "cherry_pick_conflict":
            return Ok(StepHalt(error))
        return Err(error)

    deps.console.print(f"git push {base_branch}", Style.DIM)
    pushed = repo.push(base_branch)
    if isinstance(pushed, Err):
        return Err(from_git(pushed.error))
    return Ok(StepDone(detail=f"{len(commits)} commit(s)"))


class _HotfixStart:
    def __init__(self, deps: FlowDeps, request: HotfixStartRequest) -> None:
        self.deps = deps
        self.request = request
        self.released: Version | None = None
        self.version: Version | None = None
        self.branch: str = request.branch_name or ""

    def validate(self) -> Result[StepOutcome, FlowError]:
        repo = self.deps.repo
        from_tag = self.request.from_tag
        if not repo.tag_exists(from_tag):
            return Err(precondition(f"tag not found: {from_tag}"))
        released = version_from_tag(tag=from_tag, prefix=self.request.tag_prefix)
        if isinstance(released, Err):
            return released
        if not repo.is_clean():
            return Err(precondition("working tree has uncommitted changes"))

        version = next_hotfix(released.value)
        self.released = released.value
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
                    message=f"hotfix {version} was already released as {tag}",
                    hint=f"Start from {tag} instead.",
                )
            )
        return Ok(StepDone(detail=str(version)))

    def create(self) -> Result[StepOutcome, FlowError]:
        repo = self.deps.repo
        self.deps.console.print(f"git branch {self.branch} {self.request.from_tag}", Style.DIM)
        created = repo.create_branch(self.branch, self.request.from_tag)
        if isinstance(created, Err):
            return Err(from_git(created.error))
        checkout = repo.checkout(self.branch)
        if isinstance(checkout, Err):
            return Err(from_git(checkout.error))
        return Ok(StepDone(detail=self.branch))

    def set_snapshot(self) -> Result[StepOutcome, FlowError]:
        assert self.released is not None and self.version is not None
        tagged = expect_version(self.deps.module_root, self.released)
        if isinstance(tagged, Err):
            return tagged

        snapshot = add_snapshot(self.version)
        committed = commit_version(
            self.deps, snapshot, message=commit_message("hotfix", f"start {snapshot}")
        )
        if isinstance(committed, Err):
            return committed
        pushed = self.deps.repo.push(self.branch, set_upstream=True)
        if isinstance(pushed, Err):
            return Err(from_git(pushed.error))
        return committed


def start_hotfix(deps: FlowDeps, request: HotfixStartRequest) -> RunResult:
    run = _HotfixStart(deps, request)
    result = run_steps(
        kind="hotfix",
        branch=request.branch_name or request.from_tag,
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


class _HotfixFinish:
    def __init__(self, deps: FlowDeps, request: HotfixRequest, ledger: RunLedger) -> None:
        self.deps = deps
        self.request = request
        self.ledger = ledger
        self.version: Version | None = None
        self.tag: str = ""

    def validate(self) -> Result[StepOutcome, FlowError]:
        on_branch = ensure_on_branch(self.deps, self.request.branch_name)
        if isinstance(on_branch, Err):
            return on_branch

        current = read_branch_version(self.deps, "hotfix")
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
            BranchRef(kind="hotfix", name=self.request.branch_name, base_version=current.value)
        )
        if isinstance(named, Err):
            return named

        self.version = strip_snapshot(current.value)
        self.tag = tag_name(self.request.tag_prefix, self.version)
        return Ok(StepDone(detail=str(current.value)))

    def finalize(self) -> Result[StepOutcome, FlowError]:
        assert self.version is not None
        return commit_version(
            self.deps, self.version, message=commit_message("hotfix", str(self.version))
        )

    def tag_hotfix(self) -> Result[StepOutcome, FlowError]:
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
        assert self.version is not None
        if not self.request.merge_to_base:
            self.deps.console.print("merge to base disabled; skipping", Style.DIM)
            return Ok(StepDone(status="skipped", detail="merge_to_base is off"))

        base_tag = resolve_base_tag(
            self.deps,
            version=self.version,
            tag_prefix=self.request.tag_prefix,
            override=self.request.base_tag,
        )
        if isinstance(base_tag, Err):
            return base_tag
        return cherry_pick_onto_base(
            self.deps,
            branch=self.request.branch_name,
            base_branch=self.request.base_branch,
            base_tag=base_tag.value,
        )

    def delete(self) -> Result[StepOutcome, FlowError]:
        return delete_working_branch(
            self.deps, branch=self.request.branch_name, base_branch=self.request.base_branch
        )


def finish_hotfix(deps: FlowDeps, request: HotfixRequest) -> RunResult:
    ledger = RunLedger()
    run = _HotfixFinish(deps, request, ledger)
    return run_steps(
        kind="hotfix",
        branch=request.branch_name,
        steps=(
            (FlowState.VALIDATING, run.validate),
            (FlowState.VERSION_FINALIZED, run.finalize),
            (FlowState.TAGGED, run.tag_hotfix),
            (FlowState.PUBLISHED, run.publish),
            (FlowState.MERGED, run.merge),
            (FlowState.BRANCH_DELETED, run.delete),
        ),
        ledger=ledger,
        console=deps.console,
    )
