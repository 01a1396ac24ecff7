"""Manual recovery paths.

Each function re-runs one finish step in isolation after a failed or
interrupted run, for either branch kind, and returns the same RunResult as a
full run. They are safe to repeat: a step whose effect is already present
reports ``noop`` or ``skipped``.
"""

from __future__ import annotations

from relflow.core.result import Err, Ok, Result
from relflow.output.console import Style
from relflow.release.errors import FlowError
from relflow.release.hotfix_flow import cherry_pick_onto_base, resolve_base_tag
from relflow.release.machine import RunLedger, StepDone, StepOutcome, StepHandler, run_steps
from relflow.release.model import BranchKind, FlowState, NextVersionPolicy, RunResult
from relflow.release.release_flow import (
    merge_into_base,
    set_next_version,
    validate_next_version_policy,
)
from relflow.release.steps import (
    FlowDeps,
    create_and_push_tag,
    delete_working_branch,
    from_git,
    is_relflow_commit,
    precondition,
    publish_version,
    read_branch_version,
)
from relflow.release.version import Version, tag_name, version_from_tag


def _checkout_clean(deps: FlowDeps, ref: str) -> Result[None, FlowError]:
    repo = deps.repo
    if not repo.is_clean():
        return Err(precondition("working tree has uncommitted changes"))
    if repo.current_branch() == ref:
        return Ok(None)
    deps.console.print(f"git checkout {ref}", Style.DIM)
    return repo.checkout(ref).map_err(from_git)


def _released_version(
    deps: FlowDeps, *, kind: BranchKind, branch: str
) -> Result[Version, FlowError]:
    """Check out ``branch`` and read its finalized (non-snapshot) version."""
    if not deps.repo.branch_exists(branch):
        return Err(precondition(f"branch not found: {branch}"))
    checked_out = _checkout_clean(deps, branch)
    if isinstance(checked_out, Err):
        return checked_out
    current = read_branch_version(deps, kind)
    if isinstance(current, Err):
        return current
    if current.value.snapshot:
        return Err(
            precondition(
                f"{branch} is still at {current.value}; it was never finalized",
                hint=f"Run `relflow {kind} finish {branch}`.",
            )
        )
    return current


def _tag_left_local(deps: FlowDeps, *, tag: str, branch: str) -> bool:
    """A tag an earlier run created on ``branch`` but never got onto the remote."""
    repo = deps.repo
    return (
        repo.tag_exists(tag)
        and not repo.tag_exists(tag, remote=True)
        and repo.is_ancestor(tag, branch)
    )


def _push_local_tag(
    deps: FlowDeps, *, branch: str, tag: str, ledger: RunLedger
) -> Result[StepOutcome, FlowError]:
    repo = deps.repo
    deps.console.print(f"git push {branch}", Style.DIM)
    pushed = repo.push(branch)
    if isinstance(pushed, Err):
        return Err(from_git(pushed.error, hint=f"Tag {tag} exists locally only; push it by hand."))
    pushed_tag = repo.push_tag(tag)
    if isinstance(pushed_tag, Err):
        return Err(from_git(pushed_tag.error))
    ledger.tag_created = tag
    return Ok(StepDone(detail=f"{tag} (pushed existing local tag)"))


def retag_only(deps: FlowDeps, *, kind: BranchKind, branch: str, tag_prefix: str) -> RunResult:
    """Create and push the tag for a finalized branch.

    A tag that an interrupted run left on the branch locally is pushed as is.
    """
    ledger = RunLedger()
    found: dict[str, Version] = {}

    def validate() -> Result[StepOutcome, FlowError]:
        version = _released_version(deps, kind=kind, branch=branch)
        if isinstance(version, Err):
            return version
        found["version"] = version.value
        return Ok(StepDone(detail=str(version.value)))

    def tag() -> Result[StepOutcome, FlowError]:
        version = found["version"]
        name = tag_name(tag_prefix, version)
        if _tag_left_local(deps, tag=name, branch=branch):
            return _push_local_tag(deps, branch=branch, tag=name, ledger=ledger)
        return create_and_push_tag(deps, branch=branch, tag=name, version=version, ledger=ledger)

    return run_steps(
        kind=kind,
        branch=branch,
        steps=((FlowState.VALIDATING, validate), (FlowState.TAGGED, tag)),
        ledger=ledger,
        console=deps.console,
    )


def republish_only(deps: FlowDeps, *, kind: BranchKind, tag: str, tag_prefix: str) -> RunResult:
    """Publish the artifacts at an existing tag.

    The tag is checked out for the duration of the publish and the previous
    branch restored afterwards.
    """
    ledger = RunLedger()
    found: dict[str, Version] = {}
    repo = deps.repo

    def validate() -> Result[StepOutcome, FlowError]:
        if not repo.tag_exists(tag):
            return Err(
                precondition(
                    f"tag not found: {tag}",
                    hint="Only tagged versions can be republished; run `relflow recover retag` first.",
                )
            )
        version = version_from_tag(tag=tag, prefix=tag_prefix)
        if isinstance(version, Err):
            return version
        found["version"] = version.value
        return Ok(StepDone(detail=str(version.value)))

    def publish() -> Result[StepOutcome, FlowError]:
        previous = repo.current_branch()
        checked_out = _checkout_clean(deps, tag)
        if isinstance(checked_out, Err):
            return checked_out
        published = publish_version(deps, version=found["version"], tag=tag, ledger=ledger)
        if previous is not None:
            restored = repo.checkout(previous)
            if isinstance(restored, Err) and not isinstance(published, Err):
                return Err(from_git(restored.error, hint=f"Published; check out {previous} by hand."))
        return published

    return run_steps(
        kind=kind,
        branch=tag,
        steps=((FlowState.VALIDATING, validate), (FlowState.PUBLISHED, publish)),
        ledger=ledger,
        console=deps.console,
    )


def merge_only(
    deps: FlowDeps,
    *,
    kind: BranchKind,
    branch: str,
    base_branch: str,
    tag_prefix: str,
    policy: NextVersionPolicy | None = None,
    base_tag: str | None = None,
) -> RunResult:
    """Reconcile a tagged branch with base.

    Release: merge unless already merged, then move base to the next
    snapshot (``policy`` required). Hotfix: cherry-pick whatever is not on
    base yet.
    """
    ledger = RunLedger()
    found: dict[str, Version] = {}

    def validate() -> Result[StepOutcome, FlowError]:
        if kind == "release":
            if policy is None:
                return Err(precondition("a next version policy is required to merge a release"))
            policy_ok = validate_next_version_policy(policy)
            if isinstance(policy_ok, Err):
                return policy_ok
        version = _released_version(deps, kind=kind, branch=branch)
        if isinstance(version, Err):
            return version
        tag = tag_name(tag_prefix, version.value)
        if not deps.repo.tag_exists(tag):
            return Err(
                precondition(
                    f"tag not found: {tag}",
                    hint="Tag before merging: `relflow recover retag`.",
                )
            )
        found["version"] = version.value
        return Ok(StepDone(detail=tag))

    def merge_release() -> Result[StepOutcome, FlowError]:
        return merge_into_base(
            deps,
            branch=branch,
            base_branch=base_branch,
            tag=tag_name(tag_prefix, found["version"]),
        )

    def next_version() -> Result[StepOutcome, FlowError]:
        assert policy is not None
        return set_next_version(
            deps, base_branch=base_branch, released=found["version"], policy=policy
        )

    def cherry_pick() -> Result[StepOutcome, FlowError]:
        resolved = resolve_base_tag(
            deps, version=found["version"], tag_prefix=tag_prefix, override=base_tag
        )
        if isinstance(resolved, Err):
            return resolved
        return cherry_pick_onto_base(
            deps, branch=branch, base_branch=base_branch, base_tag=resolved.value
        )

    steps: tuple[tuple[FlowState, StepHandler], ...]
    if kind == "release":
        steps = (
            (FlowState.VALIDATING, validate),
            (FlowState.MERGED, merge_release),
            (FlowState.NEXT_VERSION_SET, next_version),
        )
    else:
        steps = ((FlowState.VALIDATING, validate), (FlowState.MERGED, cherry_pick))

    return run_steps(kind=kind, branch=branch, steps=steps, ledger=ledger, console=deps.console)


def _unmerged_work(
    deps: FlowDeps, *, kind: BranchKind, branch: str, base_branch: str
) -> Result[None, FlowError]:
    repo = deps.repo
    hint = "Pass --force to delete it anyway."
    if kind == "release":
        if not repo.is_ancestor(branch, base_branch):
            return Err(precondition(f"{branch} is not merged into {base_branch}", hint=hint))
        return Ok(None)

    listed = repo.list_commits(branch, None, upstream=base_branch)
    if isinstance(listed, Err):
        return Err(from_git(listed.error))
    pending = [c for c in listed.value if not is_relflow_commit(c)]
    if pending:
        shas = ", ".join(c.short_sha for c in pending)
        return Err(
            precondition(
                f"{branch} has {len(pending)} commit(s) not on {base_branch}: {shas}", hint=hint
            )
        )
    return Ok(None)


def delete_branch_only(
    deps: FlowDeps, *, kind: BranchKind, branch: str, base_branch: str, force: bool = False
) -> RunResult:
    """Delete the branch locally and remotely; absence is success.

    Unless ``force`` is set, a branch with work that never reached base is
    kept.
    """

    def validate() -> Result[StepOutcome, FlowError]:
        if not deps.repo.branch_exists(branch):
            return Ok(StepDone(status="noop", detail="no local branch"))
        if not deps.repo.branch_exists(base_branch):
            return Err(precondition(f"base branch not found: {base_branch}"))
        if force:
            deps.console.warning(f"deleting {branch} without checking for unmerged work")
            return Ok(StepDone(detail="forced"))
        checked = _unmerged_work(deps, kind=kind, branch=branch, base_branch=base_branch)
        if isinstance(checked, Err):
            return checked
        return Ok(StepDone())

    def delete() -> Result[StepOutcome, FlowError]:
        return delete_working_branch(deps, branch=branch, base_branch=base_branch)

    return run_steps(
        kind=kind,
        branch=branch,
        steps=((FlowState.VALIDATING, validate), (FlowState.BRANCH_DELETED, delete)),
        ledger=RunLedger(),
        console=deps.console,
    )
