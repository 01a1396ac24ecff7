"""Typed configuration loading and access.

relflow reads an optional ``relflow.toml`` from the repository root:

    [repository]
    remote = "origin"
    base_branch = "main"
    tag_prefix = "v"
    module_root = "."
    process_all_modules = true

    [publish]
    command = ["mvn", "-B", "deploy", "-DskipTests"]
    username_env = "MAVEN_USERNAME"
    password_env = "MAVEN_PASSWORD"
    timeout_seconds = 1800

    [timeouts]
    git_seconds = 30
    network_seconds = 180

Every key is optional; CLI options override whatever is loaded here.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from .result import Err, Ok, Result
from .structured import (
    StrDict,
    as_str_dict,
    get_bool,
    get_float,
    get_raw_str,
    get_str,
    get_str_list,
    get_table,
)

__all__ = [
    "CONFIG_FILE_NAME",
    "Config",
    "ConfigError",
    "PublishConfig",
    "RepositoryConfig",
    "TimeoutsConfig",
    "load_config",
]

CONFIG_FILE_NAME = "relflow.toml"

DEFAULT_PUBLISH_COMMAND = ("mvn", "-B", "deploy", "-DskipTests")


@dataclass(frozen=True, slots=True)
class ConfigError:
    """Error when config cannot be loaded or parsed."""

    message: str
    path: Path | None = None


@dataclass(frozen=True, slots=True)
class RepositoryConfig:
    """Branch, tag and descriptor layout of the managed repository."""

    remote: str = "origin"
    base_branch: str = "main"
    tag_prefix: str = "v"
    release_branch_prefix: str = "release/"
    hotfix_branch_prefix: str = "hotfix/"
    module_root: str = "."
    process_all_modules: bool = True


@dataclass(frozen=True, slots=True)
class PublishConfig:
    """How the publishing subsystem is invoked.

    Credentials are never stored here, only the names of the environment
    variables that hold them.
    """

    command: tuple[str, ...] = DEFAULT_PUBLISH_COMMAND
    username_env: str = "MAVEN_USERNAME"
    password_env: str = "MAVEN_PASSWORD"
    timeout_seconds: float = 30 * 60.0


@dataclass(frozen=True, slots=True)
class TimeoutsConfig:
    git_seconds: float = 30.0
    network_seconds: float = 3 * 60.0


@dataclass(frozen=True, slots=True)
class Config:
    """Main configuration container."""

    repository: RepositoryConfig = field(default_factory=RepositoryConfig)
    publish: PublishConfig = field(default_factory=PublishConfig)
    timeouts: TimeoutsConfig = field(default_factory=TimeoutsConfig)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Config:
        """Create Config from a mapping (parsed TOML)."""
        repo: StrDict = get_table(data, "repository") or {}
        publish: StrDict = get_table(data, "publish") or {}
        timeouts: StrDict = get_table(data, "timeouts") or {}

        repo_defaults = RepositoryConfig()
        publish_defaults = PublishConfig()
        timeout_defaults = TimeoutsConfig()

        tag_prefix = get_raw_str(repo, "tag_prefix")
        process_all = get_bool(repo, "process_all_modules")
        command = get_str_list(publish, "command")

        return cls(
            repository=RepositoryConfig(
                remote=get_str(repo, "remote") or repo_defaults.remote,
                base_branch=get_str(repo, "base_branch") or repo_defaults.base_branch,
                tag_prefix=repo_defaults.tag_prefix if tag_prefix is None else tag_prefix,
                release_branch_prefix=get_str(repo, "release_branch_prefix")
                or repo_defaults.release_branch_prefix,
                hotfix_branch_prefix=get_str(repo, "hotfix_branch_prefix")
                or repo_defaults.hotfix_branch_prefix,
                module_root=get_str(repo, "module_root") or repo_defaults.module_root,
                process_all_modules=(
                    repo_defaults.process_all_modules if process_all is None else process_all
                ),
            ),
            publish=PublishConfig(
                command=tuple(command) if command else publish_defaults.command,
                username_env=get_str(publish, "username_env") or publish_defaults.username_env,
                password_env=get_str(publish, "password_env") or publish_defaults.password_env,
                timeout_seconds=get_float(publish, "timeout_seconds")
                or publish_defaults.timeout_seconds,
            ),
            timeouts=TimeoutsConfig(
                git_seconds=get_float(timeouts, "git_seconds") or timeout_defaults.git_seconds,
                network_seconds=get_float(timeouts, "network_seconds")
                or timeout_defaults.network_seconds,
            ),
        )


def _parse_toml(path: Path) -> Result[StrDict, ConfigError]:
    """Parse a TOML file, handling read and syntax errors."""
    import tomllib

    try:
        content = path.read_bytes()
        data_obj: object = tomllib.loads(content.decode("utf-8"))
        data = as_str_dict(data_obj)
        if data is None:
            return Err(ConfigError("Config root must be a TOML table", path=path))
        return Ok(data)
    except FileNotFoundError:
        return Err(ConfigError(f"Config file not found: {path}", path=path))
    except PermissionError:
        return Err(ConfigError(f"Permission denied reading: {path}", path=path))
    except tomllib.TOMLDecodeError as e:
        return Err(ConfigError(f"Invalid TOML syntax: {e}", path=path))
    except UnicodeDecodeError as e:
        return Err(ConfigError(f"Error reading config: {e}", path=path))


def load_config(path: Path) -> Result[Config, ConfigError]:
    """Load and parse configuration from a TOML file.

    Args:
        path: Path to relflow.toml

    Returns:
        Ok(Config) on success, Err(ConfigError) on failure
    """
    result = _parse_toml(path)
    if isinstance(result, Err):
        return result

    try:
        return Ok(Config.from_dict(result.value))
    except (KeyError, TypeError, ValueError) as e:
        return Err(ConfigError(f"Invalid config structure: {e}", path=path))

