from __future__ import annotations

from pathlib import Path
import sys
import tempfile
import textwrap
import unittest

from core.command_runner import (
    EXIT_NOT_STARTED,
    CommandError,
    RecordingCommandRunner,
    SubprocessCommandRunner,
    format_command,
)


def _python(script: str) -> list[str]:
    return [sys.executable, "-c", textwrap.dedent(script)]


class SubprocessCommandRunnerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.lines: list[str] = []
        self.runner = SubprocessCommandRunner(sink=self.lines.append)

    def test_stream_merges_stdout_and_stderr_in_order(self) -> None:
        script = """
            import sys
            print("first"); sys.stdout.flush()
            print("second", file=sys.stderr); sys.stderr.flush()
            print("third"); sys.stdout.flush()
        """
        result = self.runner.run(_python(script))
        self.assertEqual(result.returncode, 0)
        self.assertTrue(result.streamed)
        self.assertEqual(self.lines, ["first\n", "second\n", "third\n"])

    def test_stream_failure_raises_with_command(self) -> None:
        command = _python("import sys; print('boom'); sys.exit(3)")
        with self.assertRaises(CommandError) as ctx:
            self.runner.run(command)
        self.assertEqual(ctx.exception.result.returncode, 3)
        self.assertEqual(ctx.exception.command_line, format_command(command))
        self.assertIn("already streamed", str(ctx.exception))
        self.assertEqual(self.lines, ["boom\n"])

    def test_check_false_returns_failed_result(self) -> None:
        result = self.runner.run(_python("import sys; sys.exit(5)"), check=False)
        self.assertEqual(result.returncode, 5)

    def test_runs_in_given_directory(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            self.runner.run(_python("import os; print(os.getcwd())"), cwd=Path(tmp))
            self.assertEqual(Path(self.lines[0].strip()).resolve(), Path(tmp).resolve())

    def test_missing_executable_fails_like_a_command(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            missing = str(Path(tmp) / "no-such-tool")
            with self.assertRaises(CommandError) as ctx:
                self.runner.run([missing, "--version"])
        self.assertEqual(ctx.exception.result.returncode, EXIT_NOT_STARTED)
        self.assertEqual(ctx.exception.command_line, format_command([missing, "--version"]))
        self.assertIn("no-such-tool", ctx.exception.reason)
        self.assertEqual(self.lines, [])

    def test_missing_working_directory_fails_like_a_command(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            missing = Path(tmp) / "build" / "gcc" / "Debug"
            with self.assertRaises(CommandError) as ctx:
                self.runner.run(_python("print(1)"), cwd=missing)
        self.assertEqual(ctx.exception.result.returncode, EXIT_NOT_STARTED)
        self.assertIsNotNone(ctx.exception.reason)

    def test_unstartable_command_with_check_false(self) -> None:
        result = self.runner.run(["/nonexistent/buildfront-tool"], check=False)
        self.assertEqual(result.returncode, EXIT_NOT_STARTED)
        self.assertFalse(result.streamed)


class RecordingCommandRunnerTests(unittest.TestCase):
    def test_records_without_executing(self) -> None:
        runner = RecordingCommandRunner()
        result = runner.run(["cmake", "--build", "out dir"], cwd=Path("/src"), note="Build project")
        self.assertEqual(result.returncode, 0)
        records = list(runner.iter_commands())
        self.assertEqual(len(records), 1)
        self.assertEqual(records[0].command, ["cmake", "--build", "out dir"])
        self.assertEqual(records[0].cwd, str(Path("/src")))
        self.assertEqual(records[0].note, "Build project")
        self.assertEqual(runner.format_command(records[0].command), "cmake --build 'out dir'")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
