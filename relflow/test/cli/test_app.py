"""End-to-end tests for the relflow command line."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import TYPE_CHECKING

import pytest
from typer.testing import CliRunner

from relflow import __version__
from relflow.cli.app import app
from relflow.cli.context import REPO_ENV
from relflow.core.errors import ErrorCode

from ..git._gitrepo import commit_files, git, init_repo, isolate_git, requires_git
from ..release._fakes import pom

if TYPE_CHECKING:
    from click.testing import Result

runner = CliRunner()


def relflow_toml(publish_script: str) -> str:
    return (
        "[repository]\n"
        'base_branch = "main"\n'
        "\n"
        "[publish]\n"
        f"command = ['{sys.executable}', '-c', \"{publish_script}\"]\n"
        "timeout_seconds = 60\n"
    )


@pytest.fixture
def work(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    isolate_git(monkeypatch, tmp_path)
    # --repo writes this variable; keep it scoped to the test
    monkeypatch.setenv(REPO_ENV, str(tmp_path / "unused"))
    return init_repo(
        tmp_path,
        {
            "pom.xml": pom("2.0.15-SNAPSHOT"),
            "src/App.java": "v1\n",
            "relflow.toml": relflow_toml("print('release-id: R-42')"),
        },
    )


def invoke(work: Path, *args: str) -> Result:
    return runner.invoke(app, ["--repo", str(work), *args])


class TestGlobalOptions:
    def test_version(self) -> None:
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_repo_must_be_a_directory(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv(REPO_ENV, str(tmp_path))

        result = runner.invoke(app, ["--repo", str(tmp_path / "missing"), "release", "start"])

        assert result.exit_code == ErrorCode.USER_ERROR

    def test_not_a_working_copy(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(REPO_ENV, str(tmp_path))

        result = runner.invoke(app, ["--repo", str(tmp_path), "release", "start"])

        assert result.exit_code == ErrorCode.PRECONDITION_ERROR

    def test_republish_confirmation_mismatch(self) -> None:
        result = runner.invoke(
            app, ["recover", "republish", "v2.0.16", "--kind", "release", "--confirm-tag", "v2.0.15"]
        )

        assert result.exit_code == ErrorCode.USER_ERROR

    def test_exclusive_next_version_options(self) -> None:
        result = runner.invoke(
            app,
            [
                "release",
                "finish",
                "release/2.0.16",
                "--increment",
                "major",
                "--next-version",
                "3.0.0-SNAPSHOT",
            ],
        )

        assert result.exit_code == ErrorCode.USER_ERROR


@requires_git
class TestReleaseCommands:
    def test_start_and_finish(self, work: Path, tmp_path: Path) -> None:
        started = invoke(work, "release", "start", "--version", "2.0.16")
        assert started.exit_code == 0, started.output
        assert git(work, "rev-parse", "--abbrev-ref", "HEAD").strip() == "release/2.0.16"

        finished = invoke(work, "release", "finish", "release/2.0.16")

        assert finished.exit_code == 0, finished.output
        assert "R-42" in finished.output
        assert "<version>2.1.0-SNAPSHOT</version>" in git(work, "show", "main:pom.xml")
        assert "<version>2.0.16</version>" in git(work, "show", "v2.0.16:pom.xml")
        assert "v2.0.16" in git(tmp_path / "origin.git", "tag", "--list")
        assert git(work, "branch", "--list", "release/2.0.16").strip() == ""

    def test_start_rejects_dirty_tree(self, work: Path) -> None:
        (work / "notes.txt").write_text("wip\n", encoding="utf-8")

        result = invoke(work, "release", "start", "--increment", "minor")

        assert result.exit_code == ErrorCode.PRECONDITION_ERROR

    def test_publish_failure_exit_code(self, work: Path) -> None:
        commit_files(
            work, {"relflow.toml": relflow_toml("raise SystemExit(3)")}, "Break publishing"
        )
        assert invoke(work, "release", "start", "--version", "2.0.16").exit_code == 0

        result = invoke(work, "release", "finish", "release/2.0.16")

        assert result.exit_code == ErrorCode.PUBLISH_ERROR
        # tag stays, branch stays
        assert git(work, "tag", "--list", "v2.0.16").strip() == "v2.0.16"
        assert git(work, "branch", "--list", "release/2.0.16").strip() != ""

    def test_finish_checkout_flag(self, work: Path) -> None:
        assert invoke(work, "release", "start", "--version", "2.0.16").exit_code == 0
        git(work, "checkout", "main")

        without = invoke(work, "release", "finish", "release/2.0.16")
        with_flag = invoke(work, "release", "finish", "release/2.0.16", "--checkout")

        assert without.exit_code == ErrorCode.PRECONDITION_ERROR
        assert with_flag.exit_code == 0, with_flag.output


@requires_git
class TestHotfixCommands:
    def test_hotfix_round_trip(self, work: Path) -> None:
        assert invoke(work, "release", "start", "--version", "2.0.16").exit_code == 0
        assert invoke(work, "release", "finish", "release/2.0.16").exit_code == 0

        started = invoke(work, "hotfix", "start", "--from-tag", "v2.0.16")
        assert started.exit_code == 0, started.output
        assert git(work, "rev-parse", "--abbrev-ref", "HEAD").strip() == "hotfix/2.0.16.1"
        commit_files(work, {"src/App.java": "v1 fixed\n"}, "Fix NPE in checkout")

        finished = invoke(work, "hotfix", "finish", "hotfix/2.0.16.1")

        assert finished.exit_code == 0, finished.output
        assert git(work, "show", "main:src/App.java") == "v1 fixed\n"
        assert "<version>2.1.0-SNAPSHOT</version>" in git(work, "show", "main:pom.xml")
        assert "<version>2.0.16.1</version>" in git(work, "show", "v2.0.16.1:pom.xml")

    def test_conflict_is_partial(self, work: Path) -> None:
        assert invoke(work, "release", "start", "--version", "2.0.16").exit_code == 0
        assert invoke(work, "release", "finish", "release/2.0.16").exit_code == 0
        commit_files(work, {"src/App.java": "v2 rewritten\n"}, "Rewrite App")
        assert invoke(work, "hotfix", "start", "--from-tag", "v2.0.16").exit_code == 0
        commit_files(work, {"src/App.java": "v1 fixed\n"}, "Fix NPE in checkout")

        result = invoke(work, "hotfix", "finish", "hotfix/2.0.16.1")

        assert result.exit_code == ErrorCode.PARTIAL
        assert "src/App.java" in result.output
        assert (work / ".git" / "CHERRY_PICK_HEAD").exists()


@requires_git
class TestRecoverCommands:
    def test_retag_then_delete_branch(self, work: Path) -> None:
        assert invoke(work, "release", "start", "--version", "2.0.16").exit_code == 0
        commit_files(work, {"pom.xml": pom("2.0.16")}, "Finalize by hand")

        retag = invoke(work, "recover", "retag", "release/2.0.16", "--kind", "release")
        again = invoke(work, "recover", "retag", "release/2.0.16", "--kind", "release")
        unmerged = invoke(
            work, "recover", "delete-branch", "release/2.0.16", "--kind", "release"
        )

        assert retag.exit_code == 0, retag.output
        assert again.exit_code == ErrorCode.ALREADY_EXISTS
        assert unmerged.exit_code == ErrorCode.PRECONDITION_ERROR

    def test_republish(self, work: Path) -> None:
        assert invoke(work, "release", "start", "--version", "2.0.16").exit_code == 0
        assert invoke(work, "release", "finish", "release/2.0.16").exit_code == 0

        result = invoke(
            work, "recover", "republish", "v2.0.16", "--kind", "release", "--confirm-tag", "v2.0.16"
        )

        assert result.exit_code == 0, result.output
        assert git(work, "rev-parse", "--abbrev-ref", "HEAD").strip() == "main"
