"""Process execution with deadline enforcement at the process-group level.

Every process is started as the leader of a new session, so the whole tree it
spawns shares one process group. When the deadline passes the group is
killed with SIGKILL as a unit; a launcher that forks a further child (the JVM,
shell wrappers) cannot leave that child running behind it.
"""

import asyncio
import functools
import logging
import os
import resource
import signal
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Union

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024
DEFAULT_MAX_OUTPUT_BYTES = 10 * 1024 * 1024


@dataclass
class ProcessOutcome:
    """Raw outcome of one process run."""

    returncode: Optional[int]
    stdout: bytes
    stderr: bytes
    elapsed_ms: int
    timed_out: bool = False
    stdout_truncated: bool = False
    stderr_truncated: bool = False


def _limit_memory(limit_mb: int) -> None:
    """Cap the address space of the child (runs between fork and exec)."""
    limit = limit_mb * 1024 * 1024
    resource.setrlimit(resource.RLIMIT_AS, (limit, limit))


def kill_process_group(pgid: int) -> None:
    """Send SIGKILL to every process in the group, ignoring an empty group."""
    try:
        os.killpg(pgid, signal.SIGKILL)
    except ProcessLookupError:
        pass


async def _feed(stream: asyncio.StreamWriter, data: bytes) -> None:
    try:
        if data:
            stream.write(data)
            await stream.drain()
    except (BrokenPipeError, ConnectionResetError):
        # The program exited without consuming all of its input.
        pass
    finally:
        stream.close()


async def _collect(stream: asyncio.StreamReader, limit: int) -> tuple[bytes, bool]:
    """Read a stream to EOF, keeping at most ``limit`` bytes."""
    chunks = []
    kept = 0
    truncated = False
    while True:
        chunk = await stream.read(READ_CHUNK_SIZE)
        if not chunk:
            break
        if kept >= limit:
            truncated = True
            continue
        piece = chunk[: limit - kept]
        chunks.append(piece)
        kept += len(piece)
        if len(piece) < len(chunk):
            truncated = True
    return b"".join(chunks), truncated


async def _communicate(
    process: asyncio.subprocess.Process, stdin: bytes, limit: int
) -> tuple[int, bytes, bytes, bool, bool]:
    _, (stdout, out_truncated), (stderr, err_truncated) = await asyncio.gather(
        _feed(process.stdin, stdin),
        _collect(process.stdout, limit),
        _collect(process.stderr, limit),
    )
    returncode = await process.wait()
    return returncode, stdout, stderr, out_truncated, err_truncated


async def _reap(
    task: asyncio.Task, process: asyncio.subprocess.Process, pgid: int, grace: float
) -> None:
    """Wait for a killed group's pipes to close, giving up after ``grace``."""
    done, _ = await asyncio.wait({task}, timeout=grace)
    if not done:
        # Only a descendant that left the group with setsid() can get here.
        logger.warning(
            "Process group %d still holds its pipes %.1fs after SIGKILL", pgid, grace
        )
        task.cancel()
        try:
            process.kill()
        except ProcessLookupError:
            pass
    await asyncio.gather(task, return_exceptions=True)


async def run_process(
    argv: Sequence[str],
    stdin: bytes = b"",
    timeout: float = 10.0,
    cwd: Optional[Union[str, Path]] = None,
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
    memory_limit_mb: Optional[int] = None,
    kill_grace: float = 2.0,
) -> ProcessOutcome:
    """
    Run ``argv`` in its own process group and race it against ``timeout``.

    Args:
        argv: Program and arguments
        stdin: Bytes fed to the process' standard input
        timeout: Wall-clock deadline in seconds
        cwd: Working directory of the process
        max_output_bytes: Bytes kept per output stream; the rest is drained
        memory_limit_mb: Optional RLIMIT_AS applied to the process
        kill_grace: Seconds allowed for reaping after the group is killed

    Returns:
        ProcessOutcome; ``timed_out`` is set when the deadline won the race

    Raises:
        OSError: The program could not be spawned
    """
    preexec_fn = None
    if memory_limit_mb:
        preexec_fn = functools.partial(_limit_memory, memory_limit_mb)

    started = time.monotonic()
    process = await asyncio.create_subprocess_exec(
        *argv,
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=cwd,
        start_new_session=True,
        preexec_fn=preexec_fn,
    )
    # start_new_session makes the child a session and group leader.
    pgid = process.pid
    task = asyncio.ensure_future(_communicate(process, stdin, max_output_bytes))

    try:
        done, _ = await asyncio.wait({task}, timeout=timeout)
        elapsed_ms = int((time.monotonic() - started) * 1000)

        # Also sweeps up background children of a process that exited normally.
        kill_process_group(pgid)

        if not done:
            await _reap(task, process, pgid, kill_grace)
            return ProcessOutcome(
                returncode=process.returncode,
                stdout=b"",
                stderr=b"",
                elapsed_ms=elapsed_ms,
                timed_out=True,
            )

        returncode, stdout, stderr, out_truncated, err_truncated = task.result()
        return ProcessOutcome(
            returncode=returncode,
            stdout=stdout,
            stderr=stderr,
            elapsed_ms=elapsed_ms,
            stdout_truncated=out_truncated,
            stderr_truncated=err_truncated,
        )
    finally:
        if not task.done():
            # Cancelled from outside (worker shutdown).
            kill_process_group(pgid)
            task.cancel()
