"""Persistence collaborator used by the judging pipeline."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from onlinejudge.core.verdict import Verdict
from onlinejudge.models.problem import Problem, TestCase
from onlinejudge.models.submission import JudgeResult, Submission
from onlinejudge.schemas.submission import JudgeResultSchema


@dataclass(frozen=True)
class ProblemLimits:
    """Resource limits declared by a problem."""

    time_limit_ms: int
    memory_limit_mb: int


@dataclass(frozen=True)
class TestCaseData:
    """Detached copy of a test case row."""

    __test__ = False  # not a pytest class

    id: int
    input: str
    output: str
    is_sample: bool = False


class JudgeRepository:
    """Reads test cases and writes verdicts. Each call uses its own session."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_submission_status(self, submission_id: int) -> Optional[Verdict]:
        """Current status of a submission, or None if it does not exist."""
        async with self.session_factory() as db:
            query = select(Submission.status).where(Submission.id == submission_id)
            result = await db.execute(query)
            status = result.scalar_one_or_none()
        return Verdict(status) if status is not None else None

    async def load_problem_limits(self, problem_id: int) -> ProblemLimits:
        async with self.session_factory() as db:
            query = select(Problem.time_limit, Problem.memory_limit).where(
                Problem.id == problem_id
            )
            row = (await db.execute(query)).one_or_none()

        if row is None:
            raise LookupError(f"Problem not found: {problem_id}")
        return ProblemLimits(time_limit_ms=row.time_limit, memory_limit_mb=row.memory_limit)

    async def load_test_cases(self, problem_id: int) -> list[TestCaseData]:
        """Test cases of a problem in evaluation order (ascending id)."""
        async with self.session_factory() as db:
            query = (
                select(TestCase)
                .where(TestCase.problem_id == problem_id)
                .order_by(TestCase.id)
            )
            result = await db.execute(query)
            return [
                TestCaseData(
                    id=tc.id,
                    input=tc.input,
                    output=tc.output,
                    is_sample=tc.is_sample,
                )
                for tc in result.scalars().all()
            ]

    async def save_result(self, result: JudgeResultSchema) -> None:
        await self.save_results([result])

    async def save_results(self, results: Iterable[JudgeResultSchema]) -> None:
        """Append judge results in the given order, in one transaction."""
        async with self.session_factory() as db:
            for result in results:
                db.add(
                    JudgeResult(
                        submission_id=result.submission_id,
                        test_case_id=result.test_case_id,
                        status=result.status.value,
                        time_used=result.time_used,
                        memory_used=result.memory_used,
                        error=result.error,
                    )
                )
                # Flush per row so ids follow test case order
                await db.flush()
            await db.commit()

    async def update_submission_status(
        self,
        submission_id: int,
        status: Verdict,
        time_used: int = 0,
        memory_used: int = 0,
        error: Optional[str] = None,
    ) -> bool:
        """
        Record a terminal verdict on a pending submission.

        The update is conditional on the row still being pending, so a
        terminal status is never overwritten.

        Returns:
            True if the submission was updated
        """
        if not Verdict.PENDING.can_transition(status):
            raise ValueError(f"Not a terminal status: {status}")

        async with self.session_factory() as db:
            stmt = (
                update(Submission)
                .where(
                    Submission.id == submission_id,
                    Submission.status == Verdict.PENDING.value,
                )
                .values(
                    status=status.value,
                    time_used=time_used,
                    memory_used=memory_used,
                    error=error,
                    judged_at=datetime.now(timezone.utc),
                )
            )
            result = await db.execute(stmt)
            await db.commit()
        return result.rowcount == 1
