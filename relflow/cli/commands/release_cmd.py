from __future__ import annotations

import typer

from relflow.cli.commands._common import (
    exit_flow,
    finish_with,
    next_version_policy,
    parse_version_option,
)
from relflow.cli.context import build_context
from relflow.core.errors import ErrorCode
from relflow.core.result import Err
from relflow.release.model import ReleaseRequest, ReleaseStartRequest
from relflow.release.release_flow import finish_release, start_release
from relflow.release.version import IncrementField

release_app = typer.Typer(add_completion=False, no_args_is_help=True)


@release_app.command("start")
def start_cmd(
    version: str | None = typer.Option(None, "--version", help="Release version (X.Y.Z)"),
    increment: IncrementField | None = typer.Option(
        None, "--increment", help="Bump the base version: major/minor/patch"
    ),
    base: str | None = typer.Option(None, "--base", help="Base branch (default from config)"),
    branch: str | None = typer.Option(None, "--branch", help="Override branch name"),
    tag_prefix: str | None = typer.Option(None, "--tag-prefix", help="Tag prefix"),
) -> None:
    """Cut a release branch from the base branch."""
    if version is not None and increment is not None:
        exit_flow("--version and --increment are exclusive", code=ErrorCode.USER_ERROR)

    ctx = build_context()
    repo_cfg = ctx.config.repository
    request = ReleaseStartRequest(
        base_branch=base or repo_cfg.base_branch,
        version=None if version is None else parse_version_option(version, flag="--version"),
        increment=increment,
        branch_name=branch,
        branch_prefix=repo_cfg.release_branch_prefix,
        tag_prefix=repo_cfg.tag_prefix if tag_prefix is None else tag_prefix,
    )
    result = start_release(ctx.deps(), request)
    finish_with(result, console=ctx.console)


@release_app.command("finish")
def finish_cmd(
    branch: str = typer.Argument(..., help="Release branch, e.g. release/2.0.16"),
    base: str | None = typer.Option(None, "--base", help="Base branch (default from config)"),
    tag_prefix: str | None = typer.Option(None, "--tag-prefix", help="Tag prefix"),
    increment: IncrementField | None = typer.Option(
        None, "--increment", help="Next development version bump (default: minor)"
    ),
    next_version: str | None = typer.Option(
        None, "--next-version", help="Explicit next version, X.Y.Z-SNAPSHOT"
    ),
    all_modules: bool | None = typer.Option(
        None, "--all-modules/--root-only", help="Rewrite every reactor module or only the root"
    ),
    checkout: bool = typer.Option(False, "--checkout", help="Check out BRANCH first"),
) -> None:
    """Finalize, tag, publish and merge back a release branch."""
    policy = next_version_policy(increment=increment, next_version=next_version)
    ctx = build_context()
    repo_cfg = ctx.config.repository

    if checkout and ctx.repo.current_branch() != branch:
        switched = ctx.repo.checkout(branch)
        if isinstance(switched, Err):
            exit_flow(switched.error.message, code=ErrorCode.PRECONDITION_ERROR)

    request = ReleaseRequest(
        branch_name=branch,
        base_branch=base or repo_cfg.base_branch,
        tag_prefix=repo_cfg.tag_prefix if tag_prefix is None else tag_prefix,
        next_version_policy=policy,
    )
    result = finish_release(ctx.deps(process_all_modules=all_modules), request)
    finish_with(result, console=ctx.console)
