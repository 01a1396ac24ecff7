"""Git repository driver.

This module provides the RepositoryDriver protocol used by the orchestrators
and Repository, its implementation on top of the git CLI. Every operation
acts on the working copy at ``root`` and returns a Result; the error kind
tells callers which failures are expected (existing tag, conflicts) and
which are plain command failures.

Usage:
    repo = Repository(Path("/path/to/repo"), remote="origin")

    match repo.tag("v2.0.16", message="release 2.0.16"):
        case Ok(_):
            print("tagged")
        case Err(GitError(kind="tag_exists")):
            print("already tagged by an earlier run")
        case Err(e):
            print(f"tag failed: {e.message}")
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Protocol

from relflow.core.result import Err, Ok, Result
from relflow.platform.process import ProcessError
from relflow.platform.process import run as run_process

_GIT_TIMEOUT_SECONDS = 30.0
_GIT_NETWORK_TIMEOUT_SECONDS = 3 * 60.0
_NETWORK_COMMANDS = frozenset({"fetch", "pull", "push", "clone", "ls-remote"})

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

GitErrorKind = Literal[
    "failed",
    "timeout",
    "branch_exists",
    "branch_not_found",
    "tag_exists",
    "tag_not_found",
    "merge_conflict",
    "cherry_pick_conflict",
]

MergeStrategy = Literal["no-ff", "ff", "ff-only"]


@dataclass(frozen=True, slots=True)
class GitError:
    """Error from a git operation.

    Attributes:
        command: The git command that failed
        message: Error message
        returncode: Process return code
        kind: What went wrong, for callers that branch on it
        paths: Unmerged paths for merge and cherry-pick conflicts
    """

    command: str
    message: str
    returncode: int = 1
    kind: GitErrorKind = "failed"
    paths: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Committed:
    sha: str


@dataclass(frozen=True, slots=True)
class NothingToCommit:
    """The working tree had no delta; not an error."""


@dataclass(frozen=True, slots=True)
class CommitInfo:
    sha: str
    subject: str

    @property
    def short_sha(self) -> str:
        return self.sha[:8]


class RepositoryDriver(Protocol):
    """Version-control operations the orchestrators depend on."""

    @property
    def root(self) -> Path: ...

    def current_branch(self) -> str | None: ...

    def is_clean(self) -> bool: ...

    def branch_exists(self, name: str, *, remote: bool = False) -> bool: ...

    def tag_exists(self, name: str, *, remote: bool = False) -> bool: ...

    def checkout(self, ref: str) -> Result[None, GitError]: ...

    def create_branch(self, name: str, from_ref: str) -> Result[None, GitError]: ...

    def delete_branch(
        self, name: str, *, remote: bool, missing_ok: bool = False
    ) -> Result[None, GitError]: ...

    def commit(
        self, message: str, paths: Sequence[Path] | None = None
    ) -> Result[Committed | NothingToCommit, GitError]: ...

    def tag(self, name: str, *, message: str) -> Result[None, GitError]: ...

    def push(
        self, ref: str, *, with_tags: bool = False, set_upstream: bool = False
    ) -> Result[None, GitError]: ...

    def push_tag(self, name: str) -> Result[None, GitError]: ...

    def merge(
        self, source: str, target: str, *, strategy: MergeStrategy = "no-ff"
    ) -> Result[None, GitError]: ...

    def cherry_pick(self, commits: Sequence[str], target: str) -> Result[None, GitError]: ...

    def list_commits(
        self, branch: str, since_tag: str | None, *, upstream: str | None = None
    ) -> Result[tuple[CommitInfo, ...], GitError]: ...

    def is_ancestor(self, ref: str, of: str) -> bool: ...


class Repository:
    """RepositoryDriver backed by the git CLI.

    Attributes:
        path: Path to the working copy root
        remote: Remote that branches and tags are pushed to
    """

    def __init__(
        self,
        path: Path,
        *,
        remote: str = "origin",
        timeout: float = _GIT_TIMEOUT_SECONDS,
        network_timeout: float = _GIT_NETWORK_TIMEOUT_SECONDS,
    ) -> None:
        self.path = path
        self.remote = remote
        self._timeout = timeout
        self._network_timeout = network_timeout

    @property
    def root(self) -> Path:
        return self.path

    def exists(self) -> bool:
        """Check if this is a valid git working copy."""
        return (self.path / ".git").exists()

    # -- queries -------------------------------------------------------------

    def current_branch(self) -> str | None:
        """Get current branch name; None on detached HEAD or error."""
        result = self._run(["rev-parse", "--abbrev-ref", "HEAD"])
        match result:
            case Ok(stdout):
                branch = stdout.strip()
                return None if branch == "HEAD" else branch
            case Err(_):
                return None

    def is_clean(self) -> bool:
        """Check if working tree is clean; False if it cannot be determined."""
        result = self._run(["status", "--porcelain"])
        match result:
            case Ok(stdout):
                return stdout.strip() == ""
            case Err(_):
                return False

    def branch_exists(self, name: str, *, remote: bool = False) -> bool:
        if remote:
            return self._remote_ref_exists(f"refs/heads/{name}")
        return self._ref_exists(f"refs/heads/{name}")

    def tag_exists(self, name: str, *, remote: bool = False) -> bool:
        if remote:
            return self._remote_ref_exists(f"refs/tags/{name}")
        return self._ref_exists(f"refs/tags/{name}")

    def is_ancestor(self, ref: str, of: str) -> bool:
        """True if ``ref`` is reachable from ``of``."""
        return isinstance(self._run(["merge-base", "--is-ancestor", ref, of]), Ok)

    def head_sha(self) -> Result[str, GitError]:
        result = self._run(["rev-parse", "HEAD"])
        return result.map(str.strip).map_err(lambda e: self._error("rev-parse HEAD", e))

    def list_commits(
        self, branch: str, since_tag: str | None, *, upstream: str | None = None
    ) -> Result[tuple[CommitInfo, ...], GitError]:
        """Commits in ``since_tag..branch``, oldest first.

        With ``upstream``, commits that already have a patch-equivalent on
        upstream are left out, so re-running a cherry-pick is safe. Without
        ``since_tag`` the range starts at the merge base with upstream (or at
        the root commit when there is no upstream either).
        """
        if since_tag is not None and not self.tag_exists(since_tag):
            return Err(
                GitError(
                    command="list-commits",
                    message=f"tag not found: {since_tag}",
                    kind="tag_not_found",
                )
            )

        if upstream is not None:
            cmd = ["cherry", "-v", upstream, branch]
            if since_tag is not None:
                cmd.append(since_tag)
            result = self._run(cmd)
            if isinstance(result, Err):
                return Err(self._error("cherry", result.error))
            commits: list[CommitInfo] = []
            for line in result.value.splitlines():
                # "+ <sha> <subject>" (not upstream) or "- <sha> <subject>"
                marker, _, rest = line.partition(" ")
                if marker != "+":
                    continue
                sha, _, subject = rest.partition(" ")
                commits.append(CommitInfo(sha=sha, subject=subject))
            return Ok(tuple(commits))

        rev_range = branch if since_tag is None else f"{since_tag}..{branch}"
        result = self._run(["log", "--reverse", "--format=%H%x09%s", rev_range])
        if isinstance(result, Err):
            return Err(self._error("log", result.error))
        out: list[CommitInfo] = []
        for line in result.value.splitlines():
            if not line.strip():
                continue
            sha, _, subject = line.partition("\t")
            out.append(CommitInfo(sha=sha, subject=subject))
        return Ok(tuple(out))

    # -- mutations -----------------------------------------------------------

    def checkout(self, ref: str) -> Result[None, GitError]:
        result = self._run(["checkout", ref])
        if isinstance(result, Err):
            return Err(self._error(f"checkout {ref}", result.error))
        return Ok(None)

    def create_branch(self, name: str, from_ref: str) -> Result[None, GitError]:
        """Create ``name`` at ``from_ref`` without switching to it."""
        if self.branch_exists(name):
            return Err(
                GitError(
                    command=f"branch {name}",
                    message=f"branch already exists: {name}",
                    kind="branch_exists",
                )
            )
        result = self._run(["branch", name, from_ref])
        if isinstance(result, Err):
            return Err(self._error(f"branch {name} {from_ref}", result.error))
        return Ok(None)

    def delete_branch(
        self, name: str, *, remote: bool, missing_ok: bool = False
    ) -> Result[None, GitError]:
        """Delete a branch locally, and on the remote when ``remote`` is set.

        Absence is an error unless ``missing_ok``; recovery paths pass
        ``missing_ok=True`` so that a repeated delete succeeds.
        """
        local = self.branch_exists(name)
        on_remote = remote and self.branch_exists(name, remote=True)

        if not local and not on_remote:
            if missing_ok:
                return Ok(None)
            return Err(
                GitError(
                    command=f"branch -D {name}",
                    message=f"branch not found: {name}",
                    kind="branch_not_found",
                )
            )

        if local:
            result = self._run(["branch", "-D", name])
            if isinstance(result, Err):
                return Err(self._error(f"branch -D {name}", result.error))

        if on_remote:
            result = self._run(["push", self.remote, "--delete", name])
            if isinstance(result, Err):
                return Err(self._error(f"push {self.remote} --delete {name}", result.error))

        return Ok(None)

    def commit(
        self, message: str, paths: Sequence[Path] | None = None
    ) -> Result[Committed | NothingToCommit, GitError]:
        """Stage ``paths`` (everything if None) and commit.

        Returns NothingToCommit instead of failing when nothing is staged.
        """
        add_cmd = ["add", "-A"]
        if paths is not None:
            add_cmd += ["--", *(str(self._relative(p)) for p in paths)]
        add = self._run(add_cmd)
        if isinstance(add, Err):
            return Err(self._error("add", add.error))

        staged = self._run(["diff", "--cached", "--quiet"])
        if isinstance(staged, Ok):
            return Ok(NothingToCommit())
        if staged.error.returncode != 1:
            return Err(self._error("diff --cached", staged.error))

        commit = self._run(["commit", "-m", message])
        if isinstance(commit, Err):
            return Err(self._error("commit", commit.error))

        head = self.head_sha()
        if isinstance(head, Err):
            return head
        return Ok(Committed(sha=head.value))

    def tag(self, name: str, *, message: str) -> Result[None, GitError]:
        """Create an annotated tag at HEAD; never moves an existing tag."""
        if self.tag_exists(name):
            return Err(
                GitError(
                    command=f"tag {name}",
                    message=f"tag already exists: {name}",
                    kind="tag_exists",
                )
            )
        result = self._run(["tag", "-a", name, "-m", message])
        if isinstance(result, Err):
            return Err(self._error(f"tag {name}", result.error))
        return Ok(None)

    def push(
        self, ref: str, *, with_tags: bool = False, set_upstream: bool = False
    ) -> Result[None, GitError]:
        cmd = ["push"]
        if set_upstream:
            cmd.append("-u")
        if with_tags:
            cmd.append("--follow-tags")
        cmd += [self.remote, ref]
        result = self._run(cmd)
        if isinstance(result, Err):
            return Err(self._error(f"push {self.remote} {ref}", result.error))
        return Ok(None)

    def push_tag(self, name: str) -> Result[None, GitError]:
        result = self._run(["push", self.remote, f"refs/tags/{name}"])
        if isinstance(result, Err):
            error = self._error(f"push {self.remote} {name}", result.error)
            if "already exists" in result.error.stderr:
                return Err(
                    GitError(
                        command=error.command,
                        message=f"tag already exists on {self.remote}: {name}",
                        returncode=error.returncode,
                        kind="tag_exists",
                    )
                )
            return Err(error)
        return Ok(None)

    def merge(
        self, source: str, target: str, *, strategy: MergeStrategy = "no-ff"
    ) -> Result[None, GitError]:
        """Merge ``source`` into ``target``, leaving ``target`` checked out.

        On conflict the merge stays in progress for a human to resolve.
        """
        checkout = self.checkout(target)
        if isinstance(checkout, Err):
            return checkout

        cmd = ["merge", f"--{strategy}", "-m", f"Merge branch '{source}' into {target}", source]
        result = self._run(cmd)
        if isinstance(result, Ok):
            return Ok(None)

        conflicts = self._unmerged_paths()
        if conflicts:
            return Err(
                GitError(
                    command=f"merge {source}",
                    message=f"merge of {source} into {target} has conflicts",
                    returncode=result.error.returncode,
                    kind="merge_conflict",
                    paths=conflicts,
                )
            )
        return Err(self._error(f"merge {source}", result.error))

    def cherry_pick(self, commits: Sequence[str], target: str) -> Result[None, GitError]:
        """Apply ``commits`` onto ``target`` in order.

        A conflict is never aborted: the cherry-pick stays in progress so the
        remaining work can be finished by hand.
        """
        checkout = self.checkout(target)
        if isinstance(checkout, Err):
            return checkout
        if not commits:
            return Ok(None)

        result = self._run(["cherry-pick", "-x", *commits])
        if isinstance(result, Ok):
            return Ok(None)

        conflicts = self._unmerged_paths()
        if conflicts:
            return Err(
                GitError(
                    command="cherry-pick",
                    message=f"cherry-pick onto {target} has conflicts",
                    returncode=result.error.returncode,
                    kind="cherry_pick_conflict",
                    paths=conflicts,
                )
            )
        return Err(self._error("cherry-pick", result.error))

    # -- internals -----------------------------------------------------------

    def _ref_exists(self, ref: str) -> bool:
        return isinstance(self._run(["rev-parse", "--verify", "--quiet", ref]), Ok)

    def _remote_ref_exists(self, ref: str) -> bool:
        # ls-remote matches patterns by suffix, so compare the full ref name.
        result = self._run(["ls-remote", self.remote, ref])
        if isinstance(result, Err):
            return False
        return any(
            line.partition("\t")[2].strip() == ref for line in result.value.splitlines()
        )

    def _unmerged_paths(self) -> tuple[str, ...]:
        result = self._run(["diff", "--name-only", "--diff-filter=U"])
        if isinstance(result, Err):
            return ()
        return tuple(line.strip() for line in result.value.splitlines() if line.strip())

    def _relative(self, path: Path) -> Path:
        if path.is_absolute():
            try:
                return path.relative_to(self.path)
            except ValueError:
                return path
        return path

    def _error(self, command: str, e: ProcessError) -> GitError:
        return GitError(
            command=command,
            message=e.detail() or f"git {command} failed",
            returncode=e.returncode,
            kind="timeout" if e.timed_out else "failed",
        )

    def _run(self, args: list[str]) -> Result[str, ProcessError]:
        """Run a git command in this repository."""
        command = args[0] if args else ""
        timeout = self._network_timeout if command in _NETWORK_COMMANDS else self._timeout
        return run_process(["git", "-C", str(self.path), *args], cwd=self.path, timeout=timeout)
