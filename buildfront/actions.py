"""Translation of build actions into command sequences and their execution."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Sequence, Tuple
import os
import shutil
import stat

from core.command_runner import CommandRunner
from core.console import Console

from .config import RunConfig
from .errors import UnknownAction


class Action(str, Enum):
    BUILD = "build"
    REBUILD = "rebuild"
    CLEAN = "clean"
    CLEANALL = "cleanall"
    TEST = "test"
    RETEST = "retest"
    ANALYZE = "analyze"

    @classmethod
    def names(cls) -> List[str]:
        return [member.value for member in cls]


ACTION_HELP: Dict[Action, str] = {
    Action.BUILD: "generate build files and build (default)",
    Action.REBUILD: "build with the build tool cleaning first",
    Action.CLEAN: "run the build tool's clean target",
    Action.CLEANALL: "delete the whole output directory for every toolchain and build type",
    Action.TEST: "build, then run the test suite",
    Action.RETEST: "re-run only the tests that failed last time, without rebuilding",
    Action.ANALYZE: "build, then run clang-tidy over the compile-command database",
}


@dataclass(slots=True)
class ExtraArgs:
    """Additional arguments for the generator, the build tool and the native tool."""

    config: List[str] = field(default_factory=list)
    build: List[str] = field(default_factory=list)
    native: List[str] = field(default_factory=list)

    def extended(self, *, build: Sequence[str] = ()) -> "ExtraArgs":
        return ExtraArgs(config=list(self.config), build=[*self.build, *build], native=list(self.native))


@dataclass(frozen=True, slots=True)
class CommandSpec:
    command: Tuple[str, ...]
    cwd: Path
    description: str


def validate_actions(names: Iterable[str]) -> List[Action]:
    """Map ``names`` onto :class:`Action` members, rejecting the whole batch on any unknown name.

    An empty request means ``build``.
    """

    requested = list(names)
    if not requested:
        return [Action.BUILD]

    allowed = Action.names()
    unknown = [name for name in requested if name not in allowed]
    if unknown:
        raise UnknownAction(unknown, allowed)
    return [Action(name) for name in requested]


def compose_build(config: RunConfig, extra: ExtraArgs | None = None) -> List[CommandSpec]:
    extra = extra or ExtraArgs()
    configure = [
        "cmake",
        "-S",
        str(config.project_dir),
        "-B",
        str(config.build_dir),
        "-G",
        config.generator,
        f"-DCMAKE_BUILD_TYPE={config.build_type.value}",
        "-DCMAKE_EXPORT_COMPILE_COMMANDS=ON",
        f"-DBUILD_TESTING={'OFF' if config.skip_tests else 'ON'}",
        *config.toolchain_args,
        *extra.config,
    ]

    build = ["cmake", "--build", str(config.build_dir), "-j"]
    if config.jobs:
        build.append(str(config.jobs))
    build.extend(extra.build)
    native: List[str] = []
    if config.verbose:
        native.append("-v")
    native.extend(extra.native)
    if native:
        build.extend(["--", *native])

    return [
        CommandSpec(command=tuple(configure), cwd=config.project_dir, description="Generate build files"),
        CommandSpec(command=tuple(build), cwd=config.project_dir, description="Build project"),
    ]


def compose_rebuild(config: RunConfig, extra: ExtraArgs | None = None) -> List[CommandSpec]:
    return compose_build(config, (extra or ExtraArgs()).extended(build=["--clean-first"]))


def compose_clean(config: RunConfig, extra: ExtraArgs | None = None) -> List[CommandSpec]:
    return compose_build(config, (extra or ExtraArgs()).extended(build=["--target", "clean"]))


def compose_test(config: RunConfig) -> List[CommandSpec]:
    """CTest invocation only; the ``test`` action runs a build before it."""

    jobs = config.jobs or os.cpu_count() or 1
    cmd = [
        "ctest",
        "-j",
        str(jobs),
        "--schedule-random",
        "--repeat-until-fail",
        str(config.repeat_until_fail),
        "--output-on-failure",
    ]
    if config.verbose:
        cmd.append("-V")
    regex = config.test_regex
    if regex:
        cmd.extend(["-R", regex])
    return [CommandSpec(command=tuple(cmd), cwd=config.build_dir, description="Run tests")]


def compose_retest(config: RunConfig) -> List[CommandSpec]:
    cmd = ["ctest", "--rerun-failed", "--output-on-failure"]
    if config.verbose:
        cmd.append("-V")
    return [CommandSpec(command=tuple(cmd), cwd=config.build_dir, description="Re-run failed tests")]


def compose_analyze(config: RunConfig) -> List[CommandSpec]:
    """clang-tidy invocation only; the ``analyze`` action runs a build before it."""

    cmd = [
        "run-clang-tidy",
        "-p",
        str(config.build_dir),
        f"-header-filter={config.header_filter}",
    ]
    if not config.verbose:
        cmd.append("-quiet")
    return [CommandSpec(command=tuple(cmd), cwd=config.build_dir, description="Run static analysis")]


class ActionExecutor:
    """Runs validated actions in order, stopping at the first failing command.

    Every command carries its own working directory; the process working
    directory is never changed.
    """

    def __init__(
        self,
        config: RunConfig,
        *,
        runner: CommandRunner,
        console: Console | None = None,
        dry_run: bool = False,
    ) -> None:
        self._config = config
        self._runner = runner
        self._console = console or Console()
        self._dry_run = dry_run
        self._handlers: Dict[Action, Callable[[ExtraArgs], None]] = {
            Action.BUILD: self.build,
            Action.REBUILD: self.rebuild,
            Action.CLEAN: self.clean,
            Action.CLEANALL: self.cleanall,
            Action.TEST: self.test,
            Action.RETEST: self.retest,
            Action.ANALYZE: self.analyze,
        }

    @property
    def config(self) -> RunConfig:
        return self._config

    def execute(self, actions: Iterable[str], extra: ExtraArgs | None = None) -> List[Action]:
        validated = validate_actions(actions)
        extra = extra or ExtraArgs()
        for action in validated:
            self._console.debug(f"Running action '{action.value}'")
            self._handlers[action](extra)
        return validated

    def build(self, extra: ExtraArgs) -> None:
        self._run_steps(compose_build(self._config, extra))
        self._after_build()

    def rebuild(self, extra: ExtraArgs) -> None:
        self._run_steps(compose_rebuild(self._config, extra))
        self._after_build()

    def clean(self, extra: ExtraArgs) -> None:
        self._run_steps(compose_clean(self._config, extra))

    def cleanall(self, extra: ExtraArgs) -> None:
        output_root = self._config.output_root
        if self._dry_run:
            self._console.dry(f"remove {output_root}")
            return
        if not output_root.exists():
            self._console.debug(f"Nothing to remove at {output_root}")
            return
        self._console.info(f"Removing {output_root}")
        shutil.rmtree(output_root)

    def test(self, extra: ExtraArgs) -> None:
        self.build(extra)
        self._run_steps(compose_test(self._config))

    def retest(self, extra: ExtraArgs) -> None:
        self._run_steps(compose_retest(self._config))

    def analyze(self, extra: ExtraArgs) -> None:
        self.build(extra)
        self._run_steps(compose_analyze(self._config))

    def _run_steps(self, steps: Sequence[CommandSpec]) -> None:
        for step in steps:
            formatted = self._runner.format_command(step.command)
            if self._dry_run:
                self._console.dry(f"{step.description} (cwd={step.cwd}) {formatted}")
            else:
                self._console.info(f"-> {formatted}")
                self._console.debug(f"{step.description} (cwd={step.cwd})")
            self._runner.run(step.command, cwd=step.cwd, note=step.description)

    def _after_build(self) -> None:
        if self._dry_run:
            return
        if self._config.toolchain.needs_permission_fix:
            self.fix_permissions()
        self.publish_compile_commands()

    def fix_permissions(self) -> List[Path]:
        """Mark produced binaries executable; cross builds from WSL leave them without +x."""

        fixed: List[Path] = []
        build_dir = self._config.build_dir
        if not build_dir.is_dir():
            return fixed
        for pattern in self._config.toolchain.executable_patterns:
            for path in sorted(build_dir.rglob(pattern)):
                if not path.is_file():
                    continue
                mode = path.stat().st_mode
                path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
                fixed.append(path)
        self._console.debug(f"Marked {len(fixed)} file(s) executable under {build_dir}")
        return fixed

    def publish_compile_commands(self) -> Path | None:
        """Link (or copy) the compile-command database into the project root.

        Failure only produces a warning.
        """

        source = self._config.compile_commands
        target = self._config.project_dir / source.name
        try:
            if not source.is_file():
                self._console.warning(f"No compile-command database at {source}")
                return None
            if target.is_symlink() or target.exists():
                target.unlink()
            if os.name == "nt":
                shutil.copy2(source, target)
            else:
                try:
                    target.symlink_to(source)
                except OSError:
                    shutil.copy2(source, target)
        except OSError as exc:
            self._console.warning(f"Could not publish {source.name} to {target.parent}: {exc}")
            return None
        self._console.debug(f"Published {source} -> {target}")
        return target


__all__ = [
    "ACTION_HELP",
    "Action",
    "ActionExecutor",
    "CommandSpec",
    "ExtraArgs",
    "compose_analyze",
    "compose_build",
    "compose_clean",
    "compose_rebuild",
    "compose_retest",
    "compose_test",
    "validate_actions",
]
