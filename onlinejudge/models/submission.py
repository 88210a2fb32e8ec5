"""Submission and judge result models."""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Integer, Text, DateTime, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from onlinejudge.core.verdict import Verdict
from onlinejudge.db.database import Base


class Submission(Base):
    """Submission model for tracking code submissions."""

    __tablename__ = "submissions"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )
    # Users and contests are managed outside the judge
    user_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        index=True,
    )
    problem_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("problems.id"),
        nullable=False,
        index=True,
    )
    contest_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        index=True,
    )
    language: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )
    code: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default=Verdict.PENDING.value,
        nullable=False,
        index=True,
    )  # pending, accepted, wrong_answer, time_limit, runtime_error, compilation_error
    time_used: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )  # milliseconds
    memory_used: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )  # kilobytes
    error: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    judged_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )

    results: Mapped[list["JudgeResult"]] = relationship(
        back_populates="submission",
        order_by="JudgeResult.id",
    )

    def __repr__(self) -> str:
        return f"<Submission {self.id} status={self.status}>"


class JudgeResult(Base):
    """Outcome of one submission against one test case. Append-only."""

    __tablename__ = "judge_results"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )
    submission_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("submissions.id"),
        nullable=False,
        index=True,
    )
    test_case_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("test_cases.id"),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )
    time_used: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    memory_used: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    error: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    submission: Mapped[Submission] = relationship(back_populates="results")

    def __repr__(self) -> str:
        return f"<JudgeResult {self.id} submission={self.submission_id} status={self.status}>"
