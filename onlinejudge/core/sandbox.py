"""Sandbox runner: execute one artifact against one test case."""

import logging
import signal
from dataclasses import dataclass
from typing import Optional

from onlinejudge.config import Settings
from onlinejudge.core.languages import RunCommand
from onlinejudge.core.process import DEFAULT_MAX_OUTPUT_BYTES, ProcessOutcome, run_process
from onlinejudge.core.verdict import Verdict

logger = logging.getLogger(__name__)

TIME_LIMIT_MESSAGE = "Time limit exceeded"
WRONG_ANSWER_MESSAGE = "Output does not match expected output"


@dataclass
class SandboxResult:
    """Classified result of a single test case run."""

    status: Verdict
    time_used_ms: int
    memory_used_kb: int = 0
    stdout: str = ""
    stderr: str = ""
    error: Optional[str] = None


def _describe_exit(returncode: int) -> str:
    if returncode < 0:
        try:
            return f"terminated by {signal.Signals(-returncode).name}"
        except ValueError:
            return f"terminated by signal {-returncode}"
    return f"exited with status {returncode}"


class SandboxRunner:
    """Runs commands in an isolated process group under a wall-clock limit."""

    def __init__(
        self,
        kill_grace_seconds: float = 2.0,
        max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
        enforce_memory_limit: bool = False,
    ):
        self.kill_grace_seconds = kill_grace_seconds
        self.max_output_bytes = max_output_bytes
        self.enforce_memory_limit = enforce_memory_limit

    @classmethod
    def from_settings(cls, settings: Settings) -> "SandboxRunner":
        return cls(
            kill_grace_seconds=settings.sandbox_kill_grace_seconds,
            max_output_bytes=settings.sandbox_max_output_bytes,
            enforce_memory_limit=settings.sandbox_enforce_memory_limit,
        )

    async def run(
        self,
        command: RunCommand,
        stdin: str,
        expected_output: str,
        time_limit_ms: int,
        memory_limit_mb: Optional[int] = None,
    ) -> SandboxResult:
        """
        Run ``command`` with ``stdin`` and classify the result.

        Args:
            command: Invocation produced by a language adapter
            stdin: Test case input
            expected_output: Test case expected output, compared byte for byte
            time_limit_ms: Wall-clock limit in milliseconds
            memory_limit_mb: Problem memory limit, applied only when enforcement is on

        Returns:
            SandboxResult with one of accepted, wrong_answer, time_limit, runtime_error
        """
        outcome = await run_process(
            command.argv,
            stdin=stdin.encode("utf-8"),
            timeout=time_limit_ms / 1000,
            cwd=command.cwd,
            max_output_bytes=self.max_output_bytes,
            memory_limit_mb=memory_limit_mb if self.enforce_memory_limit else None,
            kill_grace=self.kill_grace_seconds,
        )
        return self.classify(outcome, expected_output, time_limit_ms)

    def classify(
        self, outcome: ProcessOutcome, expected_output: str, time_limit_ms: int
    ) -> SandboxResult:
        if outcome.timed_out:
            return SandboxResult(
                status=Verdict.TIME_LIMIT,
                time_used_ms=time_limit_ms,
                error=TIME_LIMIT_MESSAGE,
            )

        stdout = outcome.stdout.decode("utf-8", errors="replace")
        stderr = outcome.stderr.decode("utf-8", errors="replace")

        if outcome.returncode != 0:
            return SandboxResult(
                status=Verdict.RUNTIME_ERROR,
                time_used_ms=outcome.elapsed_ms,
                stdout=stdout,
                stderr=stderr,
                error=stderr or _describe_exit(outcome.returncode),
            )

        # A truncated stdout is longer than anything kept, so it never matches.
        if outcome.stdout_truncated or outcome.stdout != expected_output.encode("utf-8"):
            if outcome.stdout_truncated:
                logger.debug("Output truncated at %d bytes", self.max_output_bytes)
            return SandboxResult(
                status=Verdict.WRONG_ANSWER,
                time_used_ms=outcome.elapsed_ms,
                stdout=stdout,
                stderr=stderr,
                error=WRONG_ANSWER_MESSAGE,
            )

        return SandboxResult(
            status=Verdict.ACCEPTED,
            time_used_ms=outcome.elapsed_ms,
            stdout=stdout,
            stderr=stderr,
        )
