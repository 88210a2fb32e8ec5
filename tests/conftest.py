"""Pytest configuration and fixtures."""

import sys
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from onlinejudge.core.languages import InterpretedAdapter, LanguageRegistry
from onlinejudge.core.sandbox import SandboxRunner
from onlinejudge.db.database import Base, create_session_factory, init_db
from onlinejudge.main import app
from onlinejudge.models import JudgeResult, Problem, Submission, TestCase
from onlinejudge.schemas.submission import SubmissionEvent
from onlinejudge.services.judge_service import JudgingPipeline
from onlinejudge.services.repository import JudgeRepository

# Test database URL (use in-memory SQLite for tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine sharing one in-memory database."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False,
    )

    await init_db(engine)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(test_engine)


@pytest.fixture
def repository(session_factory) -> JudgeRepository:
    return JudgeRepository(session_factory)


@pytest.fixture
def python_adapter() -> InterpretedAdapter:
    """Python adapter bound to the interpreter running the tests."""
    return InterpretedAdapter("python", "main.py", interpreter=sys.executable)


@pytest.fixture
def languages(python_adapter) -> LanguageRegistry:
    return LanguageRegistry([python_adapter])


@pytest.fixture
def runner() -> SandboxRunner:
    return SandboxRunner(kill_grace_seconds=2.0)


@pytest.fixture
def pipeline(repository, languages, runner, tmp_path) -> JudgingPipeline:
    return JudgingPipeline(
        repository=repository,
        languages=languages,
        runner=runner,
        workspace_root=tmp_path / "workspaces",
        compile_timeout=10,
    )


@pytest.fixture
def make_problem(session_factory):
    """Factory creating a problem with ``(input, output)`` test cases."""

    async def _make_problem(
        cases: list[tuple[str, str]],
        time_limit: int = 1000,
        memory_limit: int = 256,
    ) -> Problem:
        async with session_factory() as db:
            problem = Problem(title="A + B", time_limit=time_limit, memory_limit=memory_limit)
            db.add(problem)
            await db.flush()
            for index, (stdin, expected) in enumerate(cases):
                db.add(
                    TestCase(
                        problem_id=problem.id,
                        input=stdin,
                        output=expected,
                        is_sample=index == 0,
                    )
                )
                await db.flush()
            await db.commit()
            return problem

    return _make_problem


@pytest.fixture
def make_submission(session_factory):
    """Factory inserting a pending submission and returning its queue event."""

    async def _make_submission(
        problem: Problem,
        code: str,
        language: str = "python",
        contest_id: Optional[int] = None,
    ) -> SubmissionEvent:
        async with session_factory() as db:
            submission = Submission(
                user_id=1,
                problem_id=problem.id,
                contest_id=contest_id,
                language=language,
                code=code,
            )
            db.add(submission)
            await db.commit()
            await db.refresh(submission)
            return SubmissionEvent(
                id=submission.id,
                user_id=submission.user_id,
                problem_id=submission.problem_id,
                contest_id=submission.contest_id,
                language=submission.language,
                code=submission.code,
            )

    return _make_submission


@pytest.fixture
def fetch_submission(session_factory):
    async def _fetch(submission_id: int) -> Submission:
        async with session_factory() as db:
            result = await db.execute(select(Submission).where(Submission.id == submission_id))
            return result.scalar_one()

    return _fetch


@pytest.fixture
def fetch_results(session_factory):
    async def _fetch(submission_id: int) -> list[JudgeResult]:
        async with session_factory() as db:
            result = await db.execute(
                select(JudgeResult)
                .where(JudgeResult.submission_id == submission_id)
                .order_by(JudgeResult.id)
            )
            return list(result.scalars().all())

    return _fetch


@pytest_asyncio.fixture(scope="function")
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client (lifespan is not run)."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac
