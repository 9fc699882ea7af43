"""Utilities for executing external commands with optional dry-run support."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, Sequence
import shlex
import subprocess
import sys


OutputSink = Callable[[str], None]

# Shell convention for "command not found".
EXIT_NOT_STARTED = 127


def _write_stdout(line: str) -> None:
    sys.stdout.write(line)
    sys.stdout.flush()


def format_command(command: Sequence[str]) -> str:
    return " ".join(shlex.quote(str(part)) for part in command)


@dataclass
class CommandResult:
    """Represents the outcome of an executed command."""

    command: Sequence[str]
    returncode: int
    stdout: str
    stderr: str
    streamed: bool = False


class CommandError(RuntimeError):
    """Raised when a command fails."""

    def __init__(self, result: CommandResult):
        message = f"Command failed with exit code {result.returncode}: {format_command(result.command)}"
        if result.streamed:
            message = f"{message}\nstdout/stderr already streamed above."
        else:
            message = (
                f"{message}\n"
                f"stdout: {result.stdout}\n"
                f"stderr: {result.stderr}"
            )
        super().__init__(message)
        self.result = result

    @property
    def command_line(self) -> str:
        return format_command(self.result.command)

    @property
    def reason(self) -> str | None:
        """Why the command could not run, when it never produced output."""

        if self.result.streamed:
            return None
        return self.result.stderr.strip() or None


class CommandRunner:
    """Abstract command runner interface."""

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        check: bool = True,
        note: str | None = None,
    ) -> CommandResult:
        raise NotImplementedError

    def format_command(self, command: Sequence[str]) -> str:
        return format_command(command)


class SubprocessCommandRunner(CommandRunner):
    """Command runner that executes commands via :mod:`subprocess`.

    stderr is merged into stdout and every line is handed to ``sink`` as soon
    as the child writes it. A command that cannot be started at all (missing
    executable or working directory) fails like one that exits with 127.
    """

    def __init__(self, sink: OutputSink | None = None) -> None:
        self._sink = sink or _write_stdout

    def _finalize(self, result: CommandResult, *, check: bool) -> CommandResult:
        if check and result.returncode != 0:
            raise CommandError(result)
        return result

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        check: bool = True,
        note: str | None = None,
    ) -> CommandResult:
        try:
            process = subprocess.Popen(
                list(command),
                cwd=str(cwd) if cwd else None,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                bufsize=1,
            )
        except OSError as exc:
            reason = exc.strerror or str(exc)
            if exc.filename is not None:
                reason = f"{reason}: {exc.filename}"
            return self._finalize(
                CommandResult(command=command, returncode=EXIT_NOT_STARTED, stdout="", stderr=reason),
                check=check,
            )

        with process:
            assert process.stdout is not None
            for line in process.stdout:
                self._sink(line)
            returncode = process.wait()

        return self._finalize(
            CommandResult(
                command=command,
                returncode=returncode,
                stdout="",
                stderr="",
                streamed=True,
            ),
            check=check,
        )


@dataclass(slots=True)
class RecordedCommand:
    command: List[str]
    cwd: str | None
    note: str | None


class RecordingCommandRunner(CommandRunner):
    """Command runner that records commands instead of executing them."""

    def __init__(self) -> None:
        self.commands: List[RecordedCommand] = []

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        check: bool = True,
        note: str | None = None,
    ) -> CommandResult:
        self.commands.append(
            RecordedCommand(command=list(command), cwd=str(cwd) if cwd else None, note=note)
        )
        return CommandResult(command=command, returncode=0, stdout="", stderr="", streamed=True)

    def iter_commands(self) -> Iterable[RecordedCommand]:
        return iter(self.commands)


__all__ = [
    "CommandError",
    "CommandResult",
    "CommandRunner",
    "EXIT_NOT_STARTED",
    "OutputSink",
    "RecordedCommand",
    "RecordingCommandRunner",
    "SubprocessCommandRunner",
    "format_command",
]
