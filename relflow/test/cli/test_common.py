"""Tests for the shared command helpers."""

from __future__ import annotations

import pytest
import typer

from relflow.cli.commands._common import (
    confirm_tag,
    flow_error_code,
    next_version_policy,
    print_result,
    result_code,
)
from relflow.core.errors import ErrorCode
from relflow.output.console import MockConsole
from relflow.release.errors import FlowError, FlowErrorKind
from relflow.release.model import Explicit, FlowState, Increment, RunResult
from relflow.release.version import Version


def failed(kind: FlowErrorKind, **kwargs: object) -> RunResult:
    return RunResult(
        kind="release",
        branch="release/2.0.16",
        outcome="failed",
        last_completed=None,
        failed_at=FlowState.VALIDATING,
        error=FlowError(kind=kind, message="boom", **kwargs),  # type: ignore[arg-type]
    )


class TestExitCodes:
    @pytest.mark.parametrize(
        ("kind", "code"),
        [
            ("invalid_version", ErrorCode.USER_ERROR),
            ("precondition", ErrorCode.PRECONDITION_ERROR),
            ("version_mismatch", ErrorCode.PRECONDITION_ERROR),
            ("descriptor_write_failed", ErrorCode.IO_ERROR),
            ("tag_exists", ErrorCode.ALREADY_EXISTS),
            ("merge_conflict", ErrorCode.CONFLICT),
            ("publish_unknown", ErrorCode.PUBLISH_ERROR),
            ("git_failed", ErrorCode.IO_ERROR),
        ],
    )
    def test_flow_error_code(self, kind: FlowErrorKind, code: ErrorCode) -> None:
        assert flow_error_code(FlowError(kind=kind, message="x")) == code

    def test_done(self) -> None:
        result = RunResult(kind="release", branch="b", outcome="done", last_completed=FlowState.DONE)

        assert result_code(result) == ErrorCode.OK

    def test_partially_merged(self) -> None:
        result = RunResult(
            kind="hotfix",
            branch="hotfix/2.0.15.1",
            outcome="partially_merged",
            last_completed=FlowState.PUBLISHED,
            failed_at=FlowState.MERGED,
            error=FlowError(kind="cherry_pick_conflict", message="x", paths=("a.java",)),
        )

        assert result_code(result) == ErrorCode.PARTIAL


class TestNextVersionPolicy:
    def test_default_is_minor(self) -> None:
        assert next_version_policy(increment=None, next_version=None) == Increment("minor")

    def test_explicit(self) -> None:
        policy = next_version_policy(increment=None, next_version="3.0.0-SNAPSHOT")

        assert policy == Explicit(Version(3, 0, 0, snapshot=True))

    def test_exclusive(self) -> None:
        with pytest.raises(typer.Exit) as exc:
            next_version_policy(increment="major", next_version="3.0.0-SNAPSHOT")

        assert exc.value.exit_code == ErrorCode.USER_ERROR

    def test_invalid_version(self) -> None:
        with pytest.raises(typer.Exit) as exc:
            next_version_policy(increment=None, next_version="three")

        assert exc.value.exit_code == ErrorCode.USER_ERROR


class TestConfirmTag:
    def test_match(self) -> None:
        confirm_tag("v2.0.16", confirm_tag=" v2.0.16 ")

    def test_mismatch(self) -> None:
        with pytest.raises(typer.Exit) as exc:
            confirm_tag("v2.0.16", confirm_tag="v2.0.15")

        assert exc.value.exit_code == ErrorCode.USER_ERROR


class TestPrintResult:
    def test_failure_reports_state_and_hint(self) -> None:
        console = MockConsole()
        result = failed("precondition", hint="git checkout release/2.0.16")

        print_result(result, console=console)

        assert console.has_error()
        assert console.find("failed at validating")
        assert console.find("hint: git checkout release/2.0.16")

    def test_partial_is_a_warning(self) -> None:
        console = MockConsole()
        result = RunResult(
            kind="hotfix",
            branch="hotfix/2.0.15.1",
            outcome="partially_merged",
            last_completed=FlowState.PUBLISHED,
            failed_at=FlowState.MERGED,
            error=FlowError(kind="cherry_pick_conflict", message="conflict", paths=("a.java",)),
        )

        print_result(result, console=console)

        assert console.has_warning()
        assert not console.has_error()
        assert console.find("conflict: a.java")
