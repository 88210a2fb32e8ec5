"""Submission schemas for queue payloads and judge results."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from onlinejudge.core.verdict import Verdict


class SubmissionEvent(BaseModel):
    """Payload of a submission-evaluation message."""

    model_config = ConfigDict(extra="ignore")

    id: int
    user_id: int
    problem_id: int
    contest_id: Optional[int] = None
    language: str = Field(..., min_length=1, max_length=20)
    code: str = Field(..., max_length=100000)


class JudgeResultSchema(BaseModel):
    """Outcome of one test case, before it is persisted."""

    submission_id: int
    test_case_id: int
    status: Verdict
    time_used: int = 0
    memory_used: int = 0
    error: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
