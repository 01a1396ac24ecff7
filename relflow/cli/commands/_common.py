"""Shared helpers for the flow commands."""

from __future__ import annotations

from typing import NoReturn

import typer

from relflow.core.errors import ErrorCode
from relflow.core.result import Err
from relflow.output.console import ConsoleProtocol, Style
from relflow.release.errors import FlowError
from relflow.release.model import Explicit, Increment, NextVersionPolicy, RunResult
from relflow.release.version import IncrementField, Version, parse_version


def exit_flow(err: str, *, code: ErrorCode) -> NoReturn:
    typer.echo(f"error: {err}", err=True)
    raise typer.Exit(code=int(code))


def confirm_tag(tag: str, *, confirm_tag: str | None) -> None:
    if confirm_tag is not None:
        if confirm_tag.strip() != tag:
            exit_flow("confirmation mismatch", code=ErrorCode.USER_ERROR)
        return

    typed = typer.prompt("Type the tag to confirm", default="")
    if typed.strip() != tag:
        exit_flow("confirmation mismatch", code=ErrorCode.USER_ERROR)


def flow_error_code(error: FlowError) -> ErrorCode:
    if error.kind == "invalid_version":
        return ErrorCode.USER_ERROR
    if error.kind == "descriptor_write_failed":
        return ErrorCode.IO_ERROR
    match error.category:
        case "PreconditionError" | "DescriptorError":
            return ErrorCode.PRECONDITION_ERROR
        case "AlreadyExistsError":
            return ErrorCode.ALREADY_EXISTS
        case "ConflictError":
            return ErrorCode.CONFLICT
        case "PublishError":
            return ErrorCode.PUBLISH_ERROR
        case _:
            return ErrorCode.IO_ERROR


def result_code(result: RunResult) -> ErrorCode:
    match result.outcome:
        case "done":
            return ErrorCode.OK
        case "partially_merged":
            return ErrorCode.PARTIAL
        case _:
            assert result.error is not None
            return flow_error_code(result.error)


def parse_version_option(text: str, *, flag: str) -> Version:
    parsed = parse_version(text)
    if isinstance(parsed, Err):
        exit_flow(f"invalid {flag}: {parsed.error.message}", code=ErrorCode.USER_ERROR)
    return parsed.value


def next_version_policy(
    *, increment: IncrementField | None, next_version: str | None
) -> NextVersionPolicy:
    if increment is not None and next_version is not None:
        exit_flow("--increment and --next-version are exclusive", code=ErrorCode.USER_ERROR)
    if next_version is not None:
        return Explicit(parse_version_option(next_version, flag="--next-version"))
    return Increment(increment or "minor")


def print_result(result: RunResult, *, console: ConsoleProtocol) -> None:
    console.header(f"{result.kind} {result.branch}: {result.final_state}")
    for record in result.steps:
        detail = f" ({record.detail})" if record.detail else ""
        console.print(f"  {record.state}: {record.status}{detail}", Style.DIM)
    if result.tag_created:
        console.print(f"tag: {result.tag_created}")
    if result.release_id:
        console.print(f"release id: {result.release_id}")

    error = result.error
    if error is None:
        console.success(f"{result.kind} {result.branch} done")
        return

    where = result.failed_at or "validating"
    last = result.last_completed or "nothing"
    if result.outcome == "partially_merged":
        console.warning(f"stopped at {where}: {error.message}")
    else:
        console.error(f"[{error.category}] failed at {where}: {error.message}")
    console.print(f"last completed: {last}", Style.DIM)
    for path in error.paths:
        console.print(f"  conflict: {path}")
    if error.hint:
        console.print(f"hint: {error.hint}", Style.DIM)


def finish_with(result: RunResult, *, console: ConsoleProtocol) -> NoReturn:
    print_result(result, console=console)
    raise typer.Exit(code=int(result_code(result)))
