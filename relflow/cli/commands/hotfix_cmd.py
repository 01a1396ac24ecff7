from __future__ import annotations

import typer

from relflow.cli.commands._common import exit_flow, finish_with
from relflow.cli.context import build_context
from relflow.core.errors import ErrorCode
from relflow.core.result import Err
from relflow.release.hotfix_flow import finish_hotfix, start_hotfix
from relflow.release.model import HotfixRequest, HotfixStartRequest

hotfix_app = typer.Typer(add_completion=False, no_args_is_help=True)


@hotfix_app.command("start")
def start_cmd(
    from_tag: str = typer.Option(..., "--from-tag", help="Production tag, e.g. v2.0.15"),
    branch: str | None = typer.Option(None, "--branch", help="Override branch name"),
    tag_prefix: str | None = typer.Option(None, "--tag-prefix", help="Tag prefix"),
) -> None:
    """Cut a hotfix branch from a production tag."""
    ctx = build_context()
    repo_cfg = ctx.config.repository
    request = HotfixStartRequest(
        from_tag=from_tag,
        tag_prefix=repo_cfg.tag_prefix if tag_prefix is None else tag_prefix,
        branch_name=branch,
        branch_prefix=repo_cfg.hotfix_branch_prefix,
    )
    result = start_hotfix(ctx.deps(), request)
    finish_with(result, console=ctx.console)


@hotfix_app.command("finish")
def finish_cmd(
    branch: str = typer.Argument(..., help="Hotfix branch, e.g. hotfix/2.0.15.1"),
    merge: bool = typer.Option(
        True, "--merge/--no-merge", help="Cherry-pick the fix onto the base branch"
    ),
    base: str | None = typer.Option(None, "--base", help="Base branch (default from config)"),
    base_tag: str | None = typer.Option(
        None, "--base-tag", help="Tag the hotfix was cut from (default: derived)"
    ),
    tag_prefix: str | None = typer.Option(None, "--tag-prefix", help="Tag prefix"),
    all_modules: bool | None = typer.Option(
        None, "--all-modules/--root-only", help="Rewrite every reactor module or only the root"
    ),
    checkout: bool = typer.Option(False, "--checkout", help="Check out BRANCH first"),
) -> None:
    """Finalize, tag, publish and cherry-pick back a hotfix branch."""
    ctx = build_context()
    repo_cfg = ctx.config.repository

    if checkout and ctx.repo.current_branch() != branch:
        switched = ctx.repo.checkout(branch)
        if isinstance(switched, Err):
            exit_flow(switched.error.message, code=ErrorCode.PRECONDITION_ERROR)

    request = HotfixRequest(
        branch_name=branch,
        base_branch=base or repo_cfg.base_branch,
        tag_prefix=repo_cfg.tag_prefix if tag_prefix is None else tag_prefix,
        merge_to_base=merge,
        base_tag=base_tag,
    )
    result = finish_hotfix(ctx.deps(process_all_modules=all_modules), request)
    finish_with(result, console=ctx.console)
