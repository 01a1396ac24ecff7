"""Tests for the release start and finish flows."""

from __future__ import annotations

from pathlib import Path

import pytest

from relflow.core.result import Ok
from relflow.output.console import MockConsole
from relflow.release.model import (
    Credentials,
    Explicit,
    FlowSettings,
    FlowState,
    Increment,
    NextVersionPolicy,
    ReleaseRequest,
    ReleaseStartRequest,
    RunResult,
)
from relflow.release.release_flow import (
    finish_release,
    merge_into_base,
    set_next_version,
    start_release,
)
from relflow.release.steps import FlowDeps, commit_version
from relflow.release.version import Version

from ._fakes import FakePublishGateway, FakeRepository, pom


@pytest.fixture
def repo(tmp_path: Path) -> FakeRepository:
    return FakeRepository.create(
        tmp_path / "repo",
        {"pom.xml": pom("2.0.15-SNAPSHOT"), "README.md": "shop\n"},
    )


@pytest.fixture
def gateway() -> FakePublishGateway:
    return FakePublishGateway()


@pytest.fixture
def console() -> MockConsole:
    return MockConsole()


@pytest.fixture
def deps(repo: FakeRepository, gateway: FakePublishGateway, console: MockConsole) -> FlowDeps:
    return FlowDeps(repo=repo, gateway=gateway, console=console)


def start(deps: FlowDeps, version: Version, branch: str | None = None) -> str:
    result = start_release(
        deps, ReleaseStartRequest(base_branch="main", version=version, branch_name=branch)
    )
    assert result.ok, result.error
    return result.branch


def finish(
    deps: FlowDeps, branch: str, policy: NextVersionPolicy = Increment("minor")
) -> RunResult:
    return finish_release(
        deps,
        ReleaseRequest(
            branch_name=branch, base_branch="main", tag_prefix="v", next_version_policy=policy
        ),
    )


class TestStartRelease:
    def test_explicit_version(self, deps: FlowDeps, repo: FakeRepository) -> None:
        result = start_release(deps, ReleaseStartRequest(base_branch="main", version=Version(2, 0, 16)))

        assert result.ok
        assert result.branch == "release/2.0.16"
        assert repo.current_branch() == "release/2.0.16"
        assert "<version>2.0.16-SNAPSHOT</version>" in (repo.file_at("release/2.0.16", "pom.xml") or "")
        assert repo.branch_exists("release/2.0.16", remote=True)
        # base is untouched
        assert "2.0.15-SNAPSHOT" in (repo.file_at("main", "pom.xml") or "")

    def test_defaults_to_base_snapshot(self, deps: FlowDeps, repo: FakeRepository) -> None:
        result = start_release(deps, ReleaseStartRequest(base_branch="main"))

        assert result.ok
        assert result.branch == "release/2.0.15"
        snapshot = result.step(FlowState.SNAPSHOT_SET)
        assert snapshot is not None and snapshot.status == "noop"

    def test_increment(self, deps: FlowDeps) -> None:
        result = start_release(deps, ReleaseStartRequest(base_branch="main", increment="minor"))

        assert result.ok
        assert result.branch == "release/2.1.0"

    def test_branch_exists(self, deps: FlowDeps, repo: FakeRepository) -> None:
        repo.create_branch("release/2.0.16", "main")

        result = start_release(deps, ReleaseStartRequest(base_branch="main", version=Version(2, 0, 16)))

        assert result.outcome == "failed"
        assert result.error_kind == "branch_exists"
        assert result.error is not None and result.error.category == "AlreadyExistsError"

    def test_already_released(self, deps: FlowDeps, repo: FakeRepository) -> None:
        repo.tag("v2.0.16", message="x")

        result = start_release(deps, ReleaseStartRequest(base_branch="main", version=Version(2, 0, 16)))

        assert result.error_kind == "tag_exists"
        assert "release/2.0.16" not in repo.branches

    def test_hotfix_version_rejected(self, deps: FlowDeps) -> None:
        result = start_release(
            deps, ReleaseStartRequest(base_branch="main", version=Version(2, 0, 15, hotfix=1))
        )

        assert result.error_kind == "invalid_version"

    def test_dirty_tree(self, deps: FlowDeps, repo: FakeRepository) -> None:
        repo.write("notes.txt", "wip")

        result = start_release(deps, ReleaseStartRequest(base_branch="main", version=Version(2, 0, 16)))

        assert result.error_kind == "precondition"
        assert result.failed_at == FlowState.VALIDATING


class TestFinishRelease:
    def test_full_release(
        self, deps: FlowDeps, repo: FakeRepository, gateway: FakePublishGateway
    ) -> None:
        branch = start(deps, Version(2, 0, 16))

        result = finish(deps, branch, Increment("minor"))

        assert result.ok, result.error
        assert result.final_state == FlowState.DONE
        assert result.tag_created == "v2.0.16"
        assert "<version>2.0.16</version>" in (repo.file_at("v2.0.16", "pom.xml") or "")
        assert "v2.0.16" in repo.remote_tags
        assert [r.artifact_version for r in gateway.requests] == [Version(2, 0, 16)]
        assert gateway.requests[0].group_id == "org.example"
        assert "<version>2.1.0-SNAPSHOT</version>" in (repo.file_at("main", "pom.xml") or "")
        assert repo.remote_branches["main"] == repo.branches["main"]
        assert branch not in repo.branches
        assert not repo.branch_exists(branch, remote=True)
        assert repo.current_branch() == "main"
        assert [s.state for s in result.steps] == [
            FlowState.VALIDATING,
            FlowState.VERSION_FINALIZED,
            FlowState.TAGGED,
            FlowState.PUBLISHED,
            FlowState.MERGED,
            FlowState.NEXT_VERSION_SET,
            FlowState.BRANCH_DELETED,
        ]

    def test_credentials_reach_gateway(
        self, repo: FakeRepository, gateway: FakePublishGateway, console: MockConsole
    ) -> None:
        settings = FlowSettings(credentials=Credentials(username="ci", password="s3cret"))
        deps = FlowDeps(repo=repo, gateway=gateway, console=console, settings=settings)
        branch = start(deps, Version(2, 0, 16))

        result = finish(deps, branch)

        assert result.ok
        assert gateway.requests[0].credentials.username == "ci"
        assert not console.find("credentials are not set")

    def test_missing_credentials_warn(self, deps: FlowDeps, console: MockConsole) -> None:
        branch = start(deps, Version(2, 0, 16))

        result = finish(deps, branch)

        assert result.ok
        assert console.find("publish credentials are not set")

    def test_explicit_next_version(self, deps: FlowDeps, repo: FakeRepository) -> None:
        branch = start(deps, Version(2, 0, 16))

        result = finish(deps, branch, Explicit(Version(3, 0, 0, snapshot=True)))

        assert result.ok
        assert "<version>3.0.0-SNAPSHOT</version>" in (repo.file_at("main", "pom.xml") or "")

    def test_commits_are_marked(self, deps: FlowDeps, repo: FakeRepository) -> None:
        branch = start(deps, Version(2, 0, 16))
        finish(deps, branch)

        marked = [s for s in repo.subjects("main") if s.startswith("[relflow]")]
        assert marked == [
            "[relflow] release: start 2.0.16-SNAPSHOT",
            "[relflow] release: 2.0.16",
            "[relflow] release: next development version 2.1.0-SNAPSHOT",
        ]

    def test_next_version_must_be_snapshot(self, deps: FlowDeps, gateway: FakePublishGateway) -> None:
        branch = start(deps, Version(2, 0, 16))

        result = finish(deps, branch, Explicit(Version(3, 0, 0)))

        assert result.error_kind == "precondition"
        assert result.last_completed is None
        assert gateway.requests == []

    def test_branch_not_checked_out(self, deps: FlowDeps, repo: FakeRepository) -> None:
        branch = start(deps, Version(2, 0, 16))
        repo.checkout("main")

        result = finish(deps, branch)

        assert result.error_kind == "precondition"
        assert result.error is not None and result.error.hint == f"git checkout {branch}"

    def test_missing_branch(self, deps: FlowDeps) -> None:
        result = finish(deps, "release/9.9.9")

        assert result.error_kind == "precondition"
        assert result.failed_at == FlowState.VALIDATING

    def test_branch_name_must_match_descriptor(self, deps: FlowDeps) -> None:
        branch = start(deps, Version(2, 0, 16), branch="release/2.0.17")

        result = finish(deps, branch)

        assert result.error_kind == "version_mismatch"
        assert result.error is not None and result.error.category == "DescriptorError"

    def test_tag_exists(
        self, deps: FlowDeps, repo: FakeRepository, gateway: FakePublishGateway
    ) -> None:
        branch = start(deps, Version(2, 0, 16))
        repo.tags["v2.0.16"] = repo.branches["main"]

        result = finish(deps, branch)

        assert result.outcome == "failed"
        assert result.error_kind == "tag_exists"
        assert result.error is not None and result.error.recoverable
        assert result.last_completed == FlowState.VERSION_FINALIZED
        assert result.failed_at == FlowState.TAGGED
        assert gateway.requests == []

    def test_publish_failed_keeps_tag_and_branch(
        self, deps: FlowDeps, repo: FakeRepository, gateway: FakePublishGateway
    ) -> None:
        gateway.status = "failed"
        branch = start(deps, Version(2, 0, 16))
        main_before = repo.branches["main"]

        result = finish(deps, branch)

        assert result.error_kind == "publish_failed"
        assert result.last_completed == FlowState.TAGGED
        assert result.tag_created == "v2.0.16"
        assert branch in repo.branches
        assert repo.branches["main"] == main_before
        assert len(gateway.requests) == 1

    def test_publish_unknown_is_not_retried(
        self, deps: FlowDeps, gateway: FakePublishGateway
    ) -> None:
        gateway.status = "unknown"
        branch = start(deps, Version(2, 0, 16))

        result = finish(deps, branch)

        assert result.error_kind == "publish_unknown"
        assert result.error is not None and "registry" in (result.error.hint or "")
        assert len(gateway.requests) == 1

    def test_merge_conflict(self, deps: FlowDeps, repo: FakeRepository) -> None:
        branch = start(deps, Version(2, 0, 16))
        repo.write("README.md", "release notes\n")
        repo.commit_all("Update README on release")
        repo.checkout("main")
        repo.write("README.md", "main notes\n")
        repo.commit_all("Update README on main")
        repo.checkout(branch)

        result = finish(deps, branch)

        assert result.outcome == "failed"
        assert result.error_kind == "merge_conflict"
        assert result.conflicting_paths == ("README.md",)
        assert result.last_completed == FlowState.PUBLISHED
        assert result.tag_created == "v2.0.16"
        assert branch in repo.branches

    def test_push_failure_after_tag(self, deps: FlowDeps, repo: FakeRepository) -> None:
        branch = start(deps, Version(2, 0, 16))
        repo.fail_push.add(branch)

        result = finish(deps, branch)

        assert result.error_kind == "git_failed"
        assert result.failed_at == FlowState.TAGGED
        assert result.tag_created == "v2.0.16"


class TestReleaseSteps:
    def test_commit_without_delta_is_noop(self, deps: FlowDeps, repo: FakeRepository) -> None:
        head = repo.branches["main"]

        outcome = commit_version(deps, Version(2, 0, 15, snapshot=True), message="[relflow] x")

        assert isinstance(outcome, Ok)
        assert outcome.value.status == "noop"
        assert repo.branches["main"] == head

    def test_merge_skipped_when_tag_reachable(self, deps: FlowDeps, repo: FakeRepository) -> None:
        repo.tag("v2.0.15", message="x")

        outcome = merge_into_base(deps, branch="release/2.0.15", base_branch="main", tag="v2.0.15")

        assert isinstance(outcome, Ok) and outcome.value.status == "skipped"

    def test_next_version_is_idempotent(self, deps: FlowDeps, repo: FakeRepository) -> None:
        repo.write("pom.xml", pom("2.1.0-SNAPSHOT"))
        repo.commit_all("[relflow] release: next development version 2.1.0-SNAPSHOT")
        head = repo.branches["main"]

        outcome = set_next_version(
            deps, base_branch="main", released=Version(2, 0, 16), policy=Increment("minor")
        )

        assert isinstance(outcome, Ok)
        assert outcome.value.status == "noop"
        assert repo.branches["main"] == head
        assert repo.pushes[-1] == "main"
