"""Step implementations shared by the release, hotfix and recovery flows.

Each function performs one state transition against the repository and
returns a StepOutcome or a FlowError. None of them retries anything.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from relflow.core.result import Err, Ok, Result
from relflow.git.repository import (
    CommitInfo,
    Committed,
    GitError,
    NothingToCommit,
    RepositoryDriver,
)
from relflow.output.console import ConsoleProtocol, Style
from relflow.release.descriptor import (
    POM_FILE,
    read_artifact_descriptor,
    read_current_version,
    write_version,
)
from relflow.release.errors import FlowError
from relflow.release.machine import DONE, RunLedger, StepDone, StepOutcome
from relflow.release.model import BranchKind, BranchRef, FlowSettings
from relflow.release.publish import PublishGateway, PublishRequest
from relflow.release.version import (
    Version,
    format_version,
    parse_release_version,
    parse_version,
    strip_snapshot,
)

# Subject prefix of every commit relflow makes. Hotfix merge-back skips
# these so that base never receives the hotfix version bump.
COMMIT_MARKER = "[relflow]"


@dataclass(frozen=True, slots=True)
class FlowDeps:
    """The collaborators every flow is composed of."""

    repo: RepositoryDriver
    gateway: PublishGateway
    console: ConsoleProtocol
    settings: FlowSettings = field(default_factory=FlowSettings)

    @property
    def module_root(self) -> Path:
        return self.repo.root / self.settings.module_root


def commit_message(kind: BranchKind, text: str) -> str:
    return f"{COMMIT_MARKER} {kind}: {text}"


def is_relflow_commit(commit: CommitInfo) -> bool:
    return commit.subject.startswith(COMMIT_MARKER)


def from_git(e: GitError, *, hint: str | None = None) -> FlowError:
    """Translate a driver error into the flow error taxonomy."""
    match e.kind:
        case "branch_exists" | "branch_not_found" | "tag_exists":
            return FlowError(kind=e.kind, message=e.message, hint=hint)
        case "merge_conflict" | "cherry_pick_conflict":
            return FlowError(kind=e.kind, message=e.message, hint=hint, paths=e.paths)
        case "tag_not_found":
            return FlowError(kind="precondition", message=e.message, hint=hint)
        case "timeout":
            return FlowError(
                kind="git_failed",
                message=f"git {e.command} timed out",
                hint=hint or "Outcome unknown: inspect the remote before retrying.",
            )
        case _:
            return FlowError(kind="git_failed", message=f"git {e.command} failed: {e.message}", hint=hint)


def precondition(message: str, *, hint: str | None = None) -> FlowError:
    return FlowError(kind="precondition", message=message, hint=hint)


def ensure_on_branch(deps: FlowDeps, branch: str) -> Result[None, FlowError]:
    """The branch must exist, be checked out, and have a clean working tree."""
    repo = deps.repo
    if not repo.branch_exists(branch):
        return Err(precondition(f"branch not found: {branch}"))
    current = repo.current_branch()
    if current != branch:
        return Err(
            precondition(
                f"{branch} is not checked out (current: {current or 'detached HEAD'})",
                hint=f"git checkout {branch}",
            )
        )
    if not repo.is_clean():
        return Err(precondition(f"working tree of {branch} has uncommitted changes"))
    return Ok(None)


def read_branch_version(deps: FlowDeps, kind: BranchKind) -> Result[Version, FlowError]:
    """Descriptor version, parsed with the rules of the branch kind."""
    current = read_current_version(deps.module_root)
    if isinstance(current, Err):
        return current
    if kind == "release":
        return parse_release_version(format_version(current.value))
    return current


def check_branch_name(ref: BranchRef) -> Result[None, FlowError]:
    """A branch named after a version (``hotfix/2.0.15.1``) must match it."""
    branch, version = ref.name, ref.base_version
    suffix = branch.rsplit("/", 1)[-1]
    named = parse_version(suffix)
    if isinstance(named, Err):
        return Ok(None)
    if strip_snapshot(named.value) != strip_snapshot(version):
        return Err(
            FlowError(
                kind="version_mismatch",
                message=f"branch {branch} does not match descriptor version {version}",
                hint="Fix the descriptor version or finish the branch that matches it.",
            )
        )
    return Ok(None)


def commit_version(
    deps: FlowDeps, version: Version, *, message: str
) -> Result[StepOutcome, FlowError]:
    """Write ``version`` to the descriptor(s) and commit.

    An unchanged descriptor is not an error: the step reports ``noop``.
    """
    written = write_version(
        deps.module_root, version, process_all_modules=deps.settings.process_all_modules
    )
    if isinstance(written, Err):
        return written

    paths = list(written.value) or [deps.module_root / POM_FILE]
    committed = deps.repo.commit(message, paths)
    if isinstance(committed, Err):
        return Err(from_git(committed.error))

    match committed.value:
        case NothingToCommit():
            deps.console.print(f"descriptor already at {version}; nothing to commit", Style.DIM)
            return Ok(StepDone(status="noop", detail=f"already {version}"))
        case Committed(sha=sha):
            deps.console.print(f"git commit -m {message!r} ({sha[:8]})", Style.DIM)
            return Ok(StepDone(detail=sha))


def create_and_push_tag(
    deps: FlowDeps,
    *,
    branch: str,
    tag: str,
    version: Version,
    ledger: RunLedger,
) -> Result[StepOutcome, FlowError]:
    repo = deps.repo
    if repo.tag_exists(tag):
        return Err(
            FlowError(
                kind="tag_exists",
                message=f"tag already exists: {tag}",
                hint=(
                    "An earlier run got further than this one. Check whether "
                    f"{version} was published, then resume with `relflow recover republish` "
                    "or `relflow recover merge`."
                ),
            )
        )

    deps.console.print(f"git tag -a {tag}", Style.DIM)
    tagged = repo.tag(tag, message=f"Release {version}")
    if isinstance(tagged, Err):
        return Err(from_git(tagged.error))
    ledger.tag_created = tag

    deps.console.print(f"git push --follow-tags {branch}", Style.DIM)
    pushed = repo.push(branch, with_tags=True)
    if isinstance(pushed, Err):
        return Err(from_git(pushed.error, hint=f"Tag {tag} exists locally only; push it by hand."))
    pushed_tag = repo.push_tag(tag)
    if isinstance(pushed_tag, Err):
        return Err(from_git(pushed_tag.error))
    return Ok(StepDone(detail=tag))


def publish_version(
    deps: FlowDeps,
    *,
    version: Version,
    tag: str,
    ledger: RunLedger,
) -> Result[StepOutcome, FlowError]:
    """Call the publish gateway exactly once."""
    artifacts = read_artifact_descriptor(
        deps.module_root, process_all_modules=deps.settings.process_all_modules
    )
    if isinstance(artifacts, Err):
        return artifacts

    request = PublishRequest(
        artifact_version=version,
        group_id=artifacts.value.group_id,
        tag=tag,
        credentials=deps.settings.credentials,
        artifacts=artifacts.value,
        invocation=deps.settings.invocation,
    )
    if not request.credentials.complete:
        deps.console.warning("publish credentials are not set; relying on the publish command")
    for coordinate in artifacts.value.coordinates(version):
        deps.console.print(f"publish {coordinate}", Style.DIM)

    outcome = deps.gateway.publish(request)
    match outcome.status:
        case "published":
            ledger.release_id = outcome.release_id
            return Ok(StepDone(detail=outcome.release_id))
        case "unknown":
            return Err(
                FlowError(
                    kind="publish_unknown",
                    message=f"publish of {version} did not report an outcome",
                    hint=(
                        "Artifacts may be live. Check the registry before running "
                        "`relflow recover republish`."
                    ),
                )
            )
        case _:
            return Err(
                FlowError(
                    kind="publish_failed",
                    message=f"publish of {version} failed: {outcome.error_detail or 'no detail'}",
                    hint=f"Tag {tag} is kept; run `relflow recover republish` once fixed.",
                )
            )


def delete_working_branch(
    deps: FlowDeps, *, branch: str, base_branch: str
) -> Result[StepOutcome, FlowError]:
    """Delete the branch locally and remotely; absence is tolerated."""
    repo = deps.repo
    if not repo.branch_exists(branch) and not repo.branch_exists(branch, remote=True):
        return Ok(StepDone(status="noop", detail="already deleted"))

    if repo.current_branch() == branch:
        checkout = repo.checkout(base_branch)
        if isinstance(checkout, Err):
            return Err(from_git(checkout.error))

    deps.console.print(f"git branch -D {branch} (local and remote)", Style.DIM)
    deleted = repo.delete_branch(branch, remote=True, missing_ok=True)
    if isinstance(deleted, Err):
        return Err(from_git(deleted.error))
    return Ok(DONE)

