"""Resolution of command line inputs into an immutable run configuration."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Tuple
import os
import platform

from core.config_loader import find_config_file, load_config_file

from .errors import ConfigError, ConfigFileError, InvalidBuildType, InvalidToolchain, UnknownHostOS
from .toolchains import ToolchainDefinition, ToolchainRegistry


CONFIG_FILE_STEM = "buildfront"
COMPILE_COMMANDS = "compile_commands.json"


class BuildType(str, Enum):
    DEBUG = "Debug"
    RELEASE = "Release"
    REL_WITH_DEB_INFO = "RelWithDebInfo"
    MIN_SIZE_REL = "MinSizeRel"

    @classmethod
    def names(cls) -> List[str]:
        return [member.value for member in cls]

    @classmethod
    def parse(cls, value: str) -> "BuildType":
        for member in cls:
            if member.value == value:
                return member
        raise InvalidBuildType(value, cls.names())


def _positive_int(value: Any, *, field_name: str, path: str | None) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigFileError(f"'{field_name}' must be a positive integer, got {value!r}", path)
    return value


def _optional_str(value: Any, *, field_name: str, path: str | None) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise ConfigFileError(f"'{field_name}' must be a non-empty string", path)
    return value.strip()


@dataclass(slots=True)
class ProjectDefaults:
    """Per-project defaults read from ``buildfront.{toml,json,yaml,yml}``."""

    output_dir: str = "build"
    generator: str = "Ninja"
    jobs: int | None = None
    build_type: str | None = None
    toolchain: str | None = None
    repeat_until_fail: int = 3
    header_filter: str = "include/"
    source: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, path: str | None = None) -> "ProjectDefaults":
        section = data.get("build", {})
        if not isinstance(section, Mapping):
            raise ConfigFileError("'build' must be a table", path)

        allowed_keys = {
            "output_dir",
            "generator",
            "jobs",
            "build_type",
            "toolchain",
            "repeat_until_fail",
            "header_filter",
        }
        unknown = {str(key) for key in section.keys() if str(key) not in allowed_keys}
        if unknown:
            raise ConfigFileError(f"Unknown keys in 'build': {', '.join(sorted(unknown))}", path)

        defaults = cls(source=path)
        output_dir = _optional_str(section.get("output_dir"), field_name="output_dir", path=path)
        if output_dir:
            defaults.output_dir = output_dir
        generator = _optional_str(section.get("generator"), field_name="generator", path=path)
        if generator:
            defaults.generator = generator
        if section.get("jobs") is not None:
            defaults.jobs = _positive_int(section["jobs"], field_name="jobs", path=path)
        defaults.build_type = _optional_str(section.get("build_type"), field_name="build_type", path=path)
        defaults.toolchain = _optional_str(section.get("toolchain"), field_name="toolchain", path=path)
        if section.get("repeat_until_fail") is not None:
            defaults.repeat_until_fail = _positive_int(
                section["repeat_until_fail"], field_name="repeat_until_fail", path=path
            )
        header_filter = _optional_str(section.get("header_filter"), field_name="header_filter", path=path)
        if header_filter:
            defaults.header_filter = header_filter
        return defaults

    @classmethod
    def load(cls, project_dir: Path, config_file: Path | None = None) -> "ProjectDefaults":
        """Load defaults from ``config_file`` or the project's own defaults file.

        A project without a defaults file gets the built-in defaults.
        """

        if config_file is not None and not config_file.is_absolute():
            config_file = project_dir / config_file
        try:
            path = config_file if config_file is not None else find_config_file(project_dir, CONFIG_FILE_STEM)
        except ValueError as exc:
            raise ConfigFileError(str(exc)) from exc
        if path is None:
            return cls()
        if not path.is_file():
            raise ConfigFileError("Configuration file does not exist", str(path))
        try:
            data = load_config_file(path)
        except (OSError, ValueError, TypeError) as exc:
            raise ConfigFileError(str(exc), str(path)) from exc
        return cls.from_mapping(data, path=str(path))


@dataclass(slots=True)
class RunOptions:
    """Raw, unvalidated inputs gathered from the command line."""

    build_type: str | None = None
    toolchain: str | None = None
    skip_tests: bool = False
    test_names: List[str] = field(default_factory=list)
    verbose: bool = False
    jobs: int | None = None
    project_dir: Path | None = None
    config_file: Path | None = None


@dataclass(frozen=True, slots=True)
class RunConfig:
    build_type: BuildType
    toolchain: ToolchainDefinition
    toolchain_args: Tuple[str, ...]
    project_dir: Path
    output_root: Path
    build_dir: Path
    skip_tests: bool = False
    test_filter: Tuple[str, ...] = ()
    verbose: bool = False
    jobs: int | None = None
    generator: str = "Ninja"
    repeat_until_fail: int = 3
    header_filter: str = "include/"
    missing_environment: Tuple[str, ...] = ()

    @property
    def test_regex(self) -> str | None:
        if not self.test_filter:
            return None
        return "|".join(self.test_filter)

    @property
    def compile_commands(self) -> Path:
        return self.build_dir / COMPILE_COMMANDS

    def describe(self) -> Dict[str, str]:
        return {
            "project_dir": str(self.project_dir),
            "build_type": self.build_type.value,
            "toolchain": self.toolchain.name,
            "build_dir": str(self.build_dir),
            "generator": self.generator,
            "jobs": str(self.jobs) if self.jobs else "auto",
            "tests": "off" if self.skip_tests else "on",
            "test_filter": self.test_regex or "<all>",
        }


def parse_test_names(values: Iterable[str]) -> Tuple[str, ...]:
    """Split semicolon separated ``--testnames`` values, keeping first-seen order."""

    names: List[str] = []
    for value in values:
        if not value:
            continue
        for part in value.split(";"):
            text = part.strip()
            if text and text not in names:
                names.append(text)
    return tuple(names)


def build_directory(output_root: Path, toolchain: str, build_type: BuildType) -> Path:
    return output_root / toolchain / build_type.value


def resolve_toolchain(
    name: str | None,
    *,
    host_os: str,
    registry: ToolchainRegistry,
) -> ToolchainDefinition:
    if name is None:
        name = registry.default_for_host(host_os)
        if name is None:
            raise UnknownHostOS(host_os)
    definition = registry.get(name)
    if definition is None:
        raise InvalidToolchain(name, registry.available())
    return definition


def resolve(
    options: RunOptions,
    *,
    host_os: str | None = None,
    env: Mapping[str, str] | None = None,
    defaults: ProjectDefaults | None = None,
    registry: ToolchainRegistry | None = None,
) -> RunConfig:
    """Resolve ``options`` against the host, environment and project defaults.

    Nothing is created on disk; the generator creates the build directory on
    the first ``build``.
    """

    host_os = platform.system().lower() if host_os is None else host_os.lower()
    env = dict(os.environ) if env is None else env
    registry = registry or ToolchainRegistry.with_builtins()
    project_dir = (options.project_dir or Path.cwd()).resolve()
    if defaults is None:
        defaults = ProjectDefaults.load(project_dir, options.config_file)

    build_type = BuildType.parse(options.build_type or defaults.build_type or BuildType.DEBUG.value)
    toolchain = resolve_toolchain(options.toolchain or defaults.toolchain, host_os=host_os, registry=registry)

    output_root = Path(defaults.output_dir)
    if not output_root.is_absolute():
        output_root = project_dir / output_root
    output_root = output_root.resolve()
    # cleanall removes output_root wholesale.
    if output_root == project_dir or project_dir.is_relative_to(output_root):
        raise ConfigFileError(
            f"'output_dir' must not be the project directory or one of its parents, got {defaults.output_dir!r}",
            defaults.source,
        )

    jobs = options.jobs if options.jobs is not None else defaults.jobs
    if jobs is not None and jobs < 1:
        raise ConfigError(f"Job count must be a positive integer, got {jobs}")

    return RunConfig(
        build_type=build_type,
        toolchain=toolchain,
        toolchain_args=toolchain.cmake_arguments(project_dir=project_dir, env=env),
        project_dir=project_dir,
        output_root=output_root,
        build_dir=build_directory(output_root, toolchain.name, build_type),
        skip_tests=options.skip_tests,
        test_filter=parse_test_names(options.test_names),
        verbose=options.verbose,
        jobs=jobs,
        generator=defaults.generator,
        repeat_until_fail=defaults.repeat_until_fail,
        header_filter=defaults.header_filter,
        missing_environment=tuple(toolchain.missing_environment(env)),
    )


__all__ = [
    "BuildType",
    "COMPILE_COMMANDS",
    "CONFIG_FILE_STEM",
    "ProjectDefaults",
    "RunConfig",
    "RunOptions",
    "build_directory",
    "parse_test_names",
    "resolve",
    "resolve_toolchain",
]
