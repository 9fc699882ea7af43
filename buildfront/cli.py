"""Command line interface for the build front end."""
from __future__ import annotations

from argparse import ArgumentParser, ArgumentTypeError, Namespace, RawDescriptionHelpFormatter
from pathlib import Path
from typing import Iterable, List
import sys

from core.command_runner import CommandError, RecordingCommandRunner, SubprocessCommandRunner
from core.console import Console

from .actions import ACTION_HELP, Action, ActionExecutor, ExtraArgs, validate_actions
from .config import BuildType, RunOptions, resolve
from .errors import BuildfrontError
from .toolchains import BUILTIN_TOOLCHAINS


EXIT_OK = 0
EXIT_COMMAND_FAILED = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130

_EXTRA_SCOPES = ("config", "build", "native")


def _parse_extra_switches(values: Iterable[str]) -> ExtraArgs:
    """Sort ``-X`` values into generator, build tool and native tool arguments.

    ``-Xconfig,ARG`` and ``-Xbuild,ARG`` and ``-Xnative,ARG`` target one
    command; an unscoped ``-XARG`` goes to both the generator and the build tool.
    """

    extra = ExtraArgs()
    for raw in values:
        if raw is None:
            continue
        text = raw.strip()
        if not text:
            continue

        scope: str | None = None
        payload = text

        if "," in text:
            prefix, _, remainder = text.partition(",")
            candidate = prefix.strip().lower()
            if candidate in _EXTRA_SCOPES and remainder:
                scope = candidate
                payload = remainder

        parts = [part.strip() for part in payload.split(",") if part.strip()]
        if not parts:
            continue

        targets: List[List[str]]
        if scope == "config":
            targets = [extra.config]
        elif scope == "build":
            targets = [extra.build]
        elif scope == "native":
            targets = [extra.native]
        else:
            targets = [extra.config, extra.build]

        for part in parts:
            for target in targets:
                target.append(part)

    return extra


def _positive_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError as exc:
        raise ArgumentTypeError(f"invalid job count: {text!r}") from exc
    if value < 1:
        raise ArgumentTypeError(f"job count must be positive: {value}")
    return value


def _actions_epilog() -> str:
    width = max(len(name) for name in Action.names())
    lines = ["Possible actions:"]
    for action in Action:
        lines.append(f"  {action.value.ljust(width)}  {ACTION_HELP[action]}")
    lines.append("")
    lines.append("The 'build' action is performed if no actions are given.")
    lines.append("")
    lines.append("Toolchains:")
    width = max(len(name) for name in BUILTIN_TOOLCHAINS)
    for name, definition in BUILTIN_TOOLCHAINS.items():
        lines.append(f"  {name.ljust(width)}  {definition.description}")
    return "\n".join(lines)


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="buildfront",
        description="Wrapper around the CMake configure/build/test cycle",
        usage="%(prog)s [options] [actions ...]",
        epilog=_actions_epilog(),
        formatter_class=RawDescriptionHelpFormatter,
    )
    parser.add_argument("actions", nargs="*", metavar="action", help="Actions to run in order")

    build_type = parser.add_mutually_exclusive_group()
    build_type.add_argument(
        "--build-type",
        dest="build_type",
        metavar="BUILD_TYPE",
        help=f"Specify the CMake build type [{'|'.join(BuildType.names())}]",
    )
    build_type.add_argument(
        "--debug",
        dest="build_type",
        action="store_const",
        const=BuildType.DEBUG.value,
        help="Shorthand for --build-type Debug",
    )
    build_type.add_argument(
        "--release",
        dest="build_type",
        action="store_const",
        const=BuildType.RELEASE.value,
        help="Shorthand for --build-type Release",
    )

    parser.add_argument(
        "--toolchain",
        metavar="TOOLCHAIN",
        help=f"Specify the toolchain [{'|'.join(BUILTIN_TOOLCHAINS)}]; inferred from the host OS if omitted",
    )
    parser.add_argument("--notests", action="store_true", help="Do not build test targets")
    parser.add_argument(
        "--testnames",
        action="append",
        default=[],
        metavar="NAME1;NAME2",
        help="Only run tests matching these names (semicolon separated, may be repeated)",
    )
    parser.add_argument("-j", "--jobs", type=_positive_int, help="Parallel job count for the build tool and tests")
    parser.add_argument("--project-dir", type=Path, help="Project root (default: current directory)")
    parser.add_argument("--config", dest="config_file", type=Path, help="Project defaults file")
    parser.add_argument("--dry-run", action="store_true", help="Print commands without executing them")
    parser.add_argument("-v", "--verbose", action="store_true", help="Print extra info for all actions")
    parser.add_argument(
        "-X",
        dest="extra_switches",
        action="append",
        default=[],
        metavar="SCOPE,ARG",
        help="Extra arguments (-Xconfig,<arg>, -Xbuild,<arg> or -Xnative,<arg>; omit scope for config and build)",
    )
    return parser


def _parse_arguments(argv: Iterable[str]) -> Namespace:
    return build_parser().parse_args(list(argv))


def main(argv: Iterable[str] | None = None) -> int:
    args = _parse_arguments(sys.argv[1:] if argv is None else argv)
    console = Console(level="debug" if args.verbose else "info", dry_run=args.dry_run)

    try:
        return _handle_run(args, console)
    except BuildfrontError as exc:
        console.error(str(exc))
        return EXIT_USAGE
    except CommandError as exc:
        console.error(f"Build command failed: {exc.command_line}")
        if exc.reason:
            console.error(exc.reason)
        return EXIT_COMMAND_FAILED
    except OSError as exc:
        console.error(f"Build step failed: {exc}")
        return EXIT_COMMAND_FAILED
    except KeyboardInterrupt:
        console.error("Interrupted")
        return EXIT_INTERRUPTED


def _handle_run(args: Namespace, console: Console) -> int:
    # Reject typos before anything is resolved or run.
    actions = validate_actions(args.actions)

    options = RunOptions(
        build_type=args.build_type,
        toolchain=args.toolchain,
        skip_tests=args.notests,
        test_names=list(args.testnames),
        verbose=args.verbose,
        jobs=args.jobs,
        project_dir=args.project_dir,
        config_file=args.config_file,
    )
    config = resolve(options)

    for name in config.missing_environment:
        console.warning(f"Environment variable {name} is not set; toolchain '{config.toolchain.name}' needs it")
    for key, value in config.describe().items():
        console.debug(f"{key} = {value}")

    runner: SubprocessCommandRunner | RecordingCommandRunner
    if args.dry_run:
        runner = RecordingCommandRunner()
    else:
        runner = SubprocessCommandRunner()

    executor = ActionExecutor(config, runner=runner, console=console, dry_run=args.dry_run)
    executor.execute([action.value for action in actions], _parse_extra_switches(args.extra_switches))

    if args.dry_run:
        return EXIT_OK

    console.info("All build commands succeeded!")
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
