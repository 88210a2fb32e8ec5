"""Tests for the sandbox runner - deadlines, process-group kill and verdicts."""

import asyncio
import os
import signal
import sys
import time
from pathlib import Path

import pytest

from onlinejudge.core.languages import RunCommand
from onlinejudge.core.process import ProcessOutcome, run_process
from onlinejudge.core.sandbox import SandboxRunner
from onlinejudge.core.verdict import Verdict

# Slack allowed on top of the time limit for killing and reaping
KILL_SLACK_SECONDS = 3.0

STUBBORN_LOOP = """
import os, signal, subprocess, sys
signal.signal(signal.SIGTERM, signal.SIG_IGN)
signal.signal(signal.SIGINT, signal.SIG_IGN)
child = subprocess.Popen([
    sys.executable, "-c",
    "import signal, time\\n"
    "signal.signal(signal.SIGTERM, signal.SIG_IGN)\\n"
    "while True: time.sleep(0.05)\\n",
])
with open("pids.txt", "w") as f:
    f.write(f"{os.getpid()} {child.pid}")
while True:
    pass
"""

BACKGROUND_CHILD = """
import subprocess, sys
child = subprocess.Popen(
    [sys.executable, "-c", "import time\\nwhile True: time.sleep(0.05)\\n"],
    stdin=subprocess.DEVNULL,
    stdout=subprocess.DEVNULL,
    stderr=subprocess.DEVNULL,
)
with open("pids.txt", "w") as f:
    f.write(str(child.pid))
print("done")
"""

# The child starts its own session, so the group kill cannot reach it, and it
# keeps the inherited stdout open.
ESCAPED_CHILD = """
import subprocess, sys
child = subprocess.Popen(
    [sys.executable, "-c", "import time\\nwhile True: time.sleep(0.05)\\n"],
    start_new_session=True,
)
with open("pids.txt", "w") as f:
    f.write(str(child.pid))
while True:
    pass
"""


def python_command(tmp_path: Path, code: str) -> RunCommand:
    source = tmp_path / "main.py"
    source.write_text(code)
    return RunCommand(program=sys.executable, args=[str(source)], cwd=tmp_path)


def is_running(pid: int) -> bool:
    """True if ``pid`` exists and is not a zombie."""
    stat = Path(f"/proc/{pid}/stat")
    if Path("/proc/self/stat").exists():
        try:
            state = stat.read_text().rsplit(")", 1)[1].split()[0]
        except FileNotFoundError:
            return False
        return state != "Z"
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    return True


async def wait_until_gone(pid: int, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if not is_running(pid):
            return True
        await asyncio.sleep(0.05)
    return not is_running(pid)


class TestRunProcess:
    """The process-group execution primitive."""

    @pytest.mark.asyncio
    async def test_captures_output_and_exit_code(self, tmp_path):
        outcome = await run_process(
            [sys.executable, "-c", "import sys; print(input()[::-1]); sys.stderr.write('e'); sys.exit(2)"],
            stdin=b"abc\n",
            cwd=tmp_path,
            timeout=5,
        )
        assert outcome.returncode == 2
        assert outcome.stdout == b"cba\n"
        assert outcome.stderr == b"e"
        assert outcome.timed_out is False

    @pytest.mark.asyncio
    async def test_unread_stdin_does_not_fail(self, tmp_path):
        outcome = await run_process(
            [sys.executable, "-c", "pass"],
            stdin=b"x" * (4 * 1024 * 1024),
            timeout=5,
        )
        assert outcome.returncode == 0
        assert outcome.timed_out is False

    @pytest.mark.asyncio
    async def test_output_is_capped(self):
        outcome = await run_process(
            [sys.executable, "-c", "print('x' * 100000)"],
            timeout=5,
            max_output_bytes=10,
        )
        assert outcome.stdout == b"x" * 10
        assert outcome.stdout_truncated is True
        assert outcome.stderr_truncated is False

    @pytest.mark.asyncio
    async def test_spawn_failure_raises(self):
        with pytest.raises(OSError):
            await run_process(["/nonexistent/binary"], timeout=1)

    @pytest.mark.asyncio
    async def test_stubborn_process_tree_is_killed(self, tmp_path):
        source = tmp_path / "main.py"
        source.write_text(STUBBORN_LOOP)

        started = time.monotonic()
        outcome = await run_process([sys.executable, str(source)], cwd=tmp_path, timeout=1.0)
        elapsed = time.monotonic() - started

        assert outcome.timed_out is True
        assert elapsed < 1.0 + KILL_SLACK_SECONDS

        parent_pid, child_pid = map(int, (tmp_path / "pids.txt").read_text().split())
        assert await wait_until_gone(parent_pid)
        assert await wait_until_gone(child_pid)

    @pytest.mark.asyncio
    async def test_background_child_is_swept_after_normal_exit(self, tmp_path):
        source = tmp_path / "main.py"
        source.write_text(BACKGROUND_CHILD)

        outcome = await run_process([sys.executable, str(source)], cwd=tmp_path, timeout=5)

        assert outcome.timed_out is False
        assert outcome.returncode == 0
        assert outcome.stdout == b"done\n"
        child_pid = int((tmp_path / "pids.txt").read_text())
        assert await wait_until_gone(child_pid)

    @pytest.mark.asyncio
    async def test_escaped_descendant_does_not_block_return(self, tmp_path):
        source = tmp_path / "main.py"
        source.write_text(ESCAPED_CHILD)

        started = time.monotonic()
        outcome = await run_process(
            [sys.executable, str(source)], cwd=tmp_path, timeout=1.0, kill_grace=0.5
        )
        elapsed = time.monotonic() - started

        child_pid = int((tmp_path / "pids.txt").read_text())
        try:
            assert outcome.timed_out is True
            assert elapsed < 1.0 + 0.5 + KILL_SLACK_SECONDS
            # Out of reach of the group kill
            assert is_running(child_pid)
        finally:
            os.kill(child_pid, signal.SIGKILL)


class TestSandboxRunner:
    """Verdict classification for single test case runs."""

    @pytest.mark.asyncio
    async def test_accepted(self, runner, tmp_path):
        command = python_command(tmp_path, "a, b = map(int, input().split())\nprint(a + b)\n")
        result = await runner.run(command, "3 4\n", "7\n", time_limit_ms=2000)
        assert result.status is Verdict.ACCEPTED
        assert result.stdout == "7\n"
        assert result.error is None
        assert 0 <= result.time_used_ms < 2000

    @pytest.mark.asyncio
    async def test_wrong_answer(self, runner, tmp_path):
        command = python_command(tmp_path, "print(8)\n")
        result = await runner.run(command, "3 4\n", "7\n", time_limit_ms=2000)
        assert result.status is Verdict.WRONG_ANSWER
        assert result.error == "Output does not match expected output"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "printed,expected",
        [
            ("print(7, end='')", "7\n"),
            ("print(7)", "7"),
            ("print('7 ')", "7\n"),
            ("print(7); print()", "7\n"),
            ("print(7)", "7\r\n"),
        ],
    )
    async def test_comparison_is_byte_exact(self, runner, tmp_path, printed, expected):
        command = python_command(tmp_path, printed + "\n")
        result = await runner.run(command, "", expected, time_limit_ms=2000)
        assert result.status is Verdict.WRONG_ANSWER

    @pytest.mark.asyncio
    async def test_truncated_output_is_never_accepted(self, tmp_path):
        runner = SandboxRunner(max_output_bytes=4)
        command = python_command(tmp_path, "print('abcdEXTRA', end='')\n")
        result = await runner.run(command, "", "abcd", time_limit_ms=2000)
        assert result.status is Verdict.WRONG_ANSWER
        assert result.stdout == "abcd"
        assert result.error == "Output does not match expected output"

    def test_classify_ignores_truncated_stderr(self, runner):
        outcome = ProcessOutcome(
            returncode=0,
            stdout=b"7\n",
            stderr=b"w" * 10,
            elapsed_ms=5,
            stderr_truncated=True,
        )
        assert runner.classify(outcome, "7\n", time_limit_ms=1000).status is Verdict.ACCEPTED

    @pytest.mark.asyncio
    async def test_runtime_error_carries_stderr(self, runner, tmp_path):
        command = python_command(tmp_path, "raise ValueError('boom')\n")
        result = await runner.run(command, "", "", time_limit_ms=2000)
        assert result.status is Verdict.RUNTIME_ERROR
        assert "ValueError: boom" in result.error
        assert result.stderr == result.error

    @pytest.mark.asyncio
    async def test_runtime_error_without_stderr(self, runner, tmp_path):
        command = python_command(tmp_path, "import sys; sys.exit(3)\n")
        result = await runner.run(command, "", "", time_limit_ms=2000)
        assert result.status is Verdict.RUNTIME_ERROR
        assert result.error == "exited with status 3"

    @pytest.mark.asyncio
    async def test_killed_by_signal(self, runner, tmp_path):
        command = python_command(tmp_path, "import os, signal; os.kill(os.getpid(), signal.SIGKILL)\n")
        result = await runner.run(command, "", "", time_limit_ms=2000)
        assert result.status is Verdict.RUNTIME_ERROR
        assert result.error == "terminated by SIGKILL"

    @pytest.mark.asyncio
    async def test_time_limit(self, runner, tmp_path):
        command = python_command(tmp_path, "while True:\n    pass\n")
        started = time.monotonic()
        result = await runner.run(command, "", "", time_limit_ms=500)
        elapsed = time.monotonic() - started

        assert result.status is Verdict.TIME_LIMIT
        assert result.time_used_ms == 500
        assert result.error == "Time limit exceeded"
        assert elapsed < 0.5 + KILL_SLACK_SECONDS

    @pytest.mark.asyncio
    @pytest.mark.skipif(sys.platform != "linux", reason="RLIMIT_AS semantics differ")
    async def test_memory_limit_enforced_when_enabled(self, tmp_path):
        runner = SandboxRunner(enforce_memory_limit=True)
        command = python_command(tmp_path, "data = bytearray(2 * 1024 ** 3)\nprint(len(data))\n")
        result = await runner.run(command, "", "", time_limit_ms=5000, memory_limit_mb=256)
        assert result.status is Verdict.RUNTIME_ERROR
        assert "MemoryError" in result.error

    def test_classify_time_limit_uses_configured_limit(self, runner):
        outcome = ProcessOutcome(returncode=-9, stdout=b"", stderr=b"", elapsed_ms=1004, timed_out=True)
        result = runner.classify(outcome, "7\n", time_limit_ms=1000)
        assert result.status is Verdict.TIME_LIMIT
        assert result.time_used_ms == 1000
