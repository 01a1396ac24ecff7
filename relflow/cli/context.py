from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import typer

from relflow.core.config import CONFIG_FILE_NAME, Config, load_config
from relflow.core.errors import ErrorCode
from relflow.core.result import Err
from relflow.git.repository import Repository
from relflow.output.console import ConsoleProtocol, RichConsole
from relflow.release.model import Credentials, FlowSettings, Invocation
from relflow.release.publish import CommandPublishGateway
from relflow.release.steps import FlowDeps

REPO_ENV = "RELFLOW_REPO"
RUNNER_ENV = "RELFLOW_RUNNER"
TOOLCHAIN_ENV = "RELFLOW_TOOLCHAIN_VERSION"


@dataclass(frozen=True, slots=True)
class CLIContext:
    root: Path
    config: Config
    console: ConsoleProtocol
    repo: Repository

    def deps(self, *, process_all_modules: bool | None = None) -> FlowDeps:
        repo_cfg = self.config.repository
        publish_cfg = self.config.publish
        settings = FlowSettings(
            module_root=Path(repo_cfg.module_root),
            process_all_modules=(
                repo_cfg.process_all_modules if process_all_modules is None else process_all_modules
            ),
            credentials=Credentials(
                username=os.environ.get(publish_cfg.username_env) or None,
                password=os.environ.get(publish_cfg.password_env) or None,
            ),
            invocation=Invocation(
                runner=os.environ.get(RUNNER_ENV) or None,
                toolchain_version=os.environ.get(TOOLCHAIN_ENV) or None,
            ),
        )
        gateway = CommandPublishGateway(
            command=publish_cfg.command,
            cwd=self.root / settings.module_root,
            console=self.console,
            timeout=publish_cfg.timeout_seconds,
        )
        return FlowDeps(repo=self.repo, gateway=gateway, console=self.console, settings=settings)


def build_context() -> CLIContext:
    root = Path(os.environ.get(REPO_ENV) or Path.cwd())

    repo_config = Config()
    config_path = root / CONFIG_FILE_NAME
    if config_path.exists():
        loaded = load_config(config_path)
        if isinstance(loaded, Err):
            typer.echo(f"error: {loaded.error.message}", err=True)
            raise typer.Exit(code=int(ErrorCode.USER_ERROR))
        repo_config = loaded.value

    repo = Repository(
        root,
        remote=repo_config.repository.remote,
        timeout=repo_config.timeouts.git_seconds,
        network_timeout=repo_config.timeouts.network_seconds,
    )
    if not repo.exists():
        typer.echo(f"error: not a git working copy: {root}", err=True)
        raise typer.Exit(code=int(ErrorCode.PRECONDITION_ERROR))

    return CLIContext(root=root, config=repo_config, console=RichConsole(), repo=repo)
