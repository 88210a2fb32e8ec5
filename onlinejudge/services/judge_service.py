"""Judging pipeline: drive one submission from source code to a verdict."""

import logging
import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from onlinejudge.config import Settings
from onlinejudge.core.exceptions import CompilationError, UnsupportedLanguage, WorkspaceError
from onlinejudge.core.languages import LanguageRegistry, RunCommand
from onlinejudge.core.sandbox import SandboxRunner
from onlinejudge.core.verdict import Verdict
from onlinejudge.schemas.submission import JudgeResultSchema, SubmissionEvent
from onlinejudge.services.repository import JudgeRepository, ProblemLimits, TestCaseData

logger = logging.getLogger(__name__)


class JudgingPipeline:
    """
    Compiles a submission, runs it against its problem's test cases in order
    and records the verdict.

    Evaluation stops at the first test case that is not accepted. The
    submission takes the status, time and memory of the last result produced.
    Failures of the submitted program are recorded as verdicts; only
    infrastructure faults (workspace, process spawn, storage) are raised, and
    in that case the submission is left pending.
    """

    def __init__(
        self,
        repository: JudgeRepository,
        languages: LanguageRegistry,
        runner: SandboxRunner,
        workspace_root: Path,
        compile_timeout: float = 30.0,
    ):
        self.repository = repository
        self.languages = languages
        self.runner = runner
        self.workspace_root = Path(workspace_root)
        self.compile_timeout = compile_timeout

    @classmethod
    def from_settings(
        cls, settings: Settings, repository: JudgeRepository
    ) -> "JudgingPipeline":
        return cls(
            repository=repository,
            languages=LanguageRegistry.default(settings),
            runner=SandboxRunner.from_settings(settings),
            workspace_root=settings.workspace_root,
            compile_timeout=settings.compile_timeout_seconds,
        )

    def workspace_path(self, submission_id: int) -> Path:
        return self.workspace_root / f"submission_{submission_id}"

    @contextmanager
    def workspace(self, submission_id: int) -> Iterator[Path]:
        """Submission-scoped directory, removed on every exit path."""
        path = self.workspace_path(submission_id)
        try:
            if path.exists():
                # Left over from an interrupted earlier attempt
                shutil.rmtree(path)
            path.mkdir(parents=True)
        except OSError as e:
            raise WorkspaceError(f"Cannot create workspace {path}: {e}") from e

        try:
            yield path
        finally:
            try:
                shutil.rmtree(path)
            except OSError as e:
                logger.warning("Failed to remove workspace %s: %s", path, e)

    async def evaluate(self, event: SubmissionEvent) -> Optional[Verdict]:
        """
        Judge one submission.

        Args:
            event: Submission payload from the queue

        Returns:
            The verdict recorded, or None if the submission was skipped

        Raises:
            WorkspaceError: The workspace could not be prepared
            OSError: A test run could not be spawned
        """
        current = await self.repository.get_submission_status(event.id)
        if current is None:
            logger.warning("Submission %d not found, skipping", event.id)
            return None
        if current.is_terminal:
            logger.info("Submission %d already judged (%s), skipping", event.id, current.value)
            return None

        logger.info(
            "Judging submission %d (problem=%d, language=%s)",
            event.id,
            event.problem_id,
            event.language,
        )

        try:
            adapter = self.languages.get(event.language)
        except UnsupportedLanguage as e:
            logger.warning("Submission %d: %s", event.id, e)
            await self._record(event.id, Verdict.COMPILATION_ERROR, error=str(e))
            return Verdict.COMPILATION_ERROR

        with self.workspace(event.id) as workspace:
            source_path = workspace / adapter.source_file_name
            try:
                source_path.write_text(event.code, encoding="utf-8")
            except OSError as e:
                raise WorkspaceError(f"Cannot write {source_path}: {e}") from e

            try:
                artifact = await adapter.compile(source_path, self.compile_timeout)
            except CompilationError as e:
                logger.info("Submission %d failed to compile", event.id)
                await self._record(event.id, Verdict.COMPILATION_ERROR, error=e.diagnostic)
                return Verdict.COMPILATION_ERROR

            limits = await self.repository.load_problem_limits(event.problem_id)
            test_cases = await self.repository.load_test_cases(event.problem_id)
            results = await self._run_test_cases(
                event.id, adapter.run_command(artifact), test_cases, limits
            )

        await self.repository.save_results(results)

        if not results:
            logger.warning("Problem %d has no test cases", event.problem_id)
            await self._record(event.id, Verdict.ACCEPTED)
            return Verdict.ACCEPTED

        last = results[-1]
        await self._record(
            event.id,
            last.status,
            time_used=last.time_used,
            memory_used=last.memory_used,
            error=last.error,
        )
        logger.info(
            "Submission %d judged: %s after %d/%d test cases",
            event.id,
            last.status.value,
            len(results),
            len(test_cases),
        )
        return last.status

    async def _run_test_cases(
        self,
        submission_id: int,
        command: RunCommand,
        test_cases: list[TestCaseData],
        limits: ProblemLimits,
    ) -> list[JudgeResultSchema]:
        results = []
        for test_case in test_cases:
            outcome = await self.runner.run(
                command,
                stdin=test_case.input,
                expected_output=test_case.output,
                time_limit_ms=limits.time_limit_ms,
                memory_limit_mb=limits.memory_limit_mb,
            )
            results.append(
                JudgeResultSchema(
                    submission_id=submission_id,
                    test_case_id=test_case.id,
                    status=outcome.status,
                    time_used=outcome.time_used_ms,
                    memory_used=outcome.memory_used_kb,
                    error=outcome.error,
                )
            )
            logger.debug(
                "Submission %d test case %d: %s (%dms)",
                submission_id,
                test_case.id,
                outcome.status.value,
                outcome.time_used_ms,
            )

            if outcome.status is not Verdict.ACCEPTED:
                break
        return results

    async def _record(
        self,
        submission_id: int,
        status: Verdict,
        time_used: int = 0,
        memory_used: int = 0,
        error: Optional[str] = None,
    ) -> None:
        updated = await self.repository.update_submission_status(
            submission_id,
            status,
            time_used=time_used,
            memory_used=memory_used,
            error=error,
        )
        if not updated:
            logger.warning(
                "Submission %d was no longer pending; verdict %s not recorded",
                submission_id,
                status.value,
            )
