"""Problem and test case models."""

from datetime import datetime

from sqlalchemy import String, Integer, Text, Boolean, DateTime, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from onlinejudge.db.database import Base


class Problem(Base):
    """Problem model. Only the resource limits are read by the judge."""

    __tablename__ = "problems"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )
    title: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )
    time_limit: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )  # milliseconds
    memory_limit: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )  # megabytes
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    test_cases: Mapped[list["TestCase"]] = relationship(
        back_populates="problem",
        order_by="TestCase.id",
    )

    def __repr__(self) -> str:
        return f"<Problem {self.id} {self.title}>"


class TestCase(Base):
    """Input/expected-output pair belonging to a problem."""

    __tablename__ = "test_cases"
    __test__ = False  # not a pytest class

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )
    problem_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("problems.id"),
        nullable=False,
        index=True,
    )
    input: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    output: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    is_sample: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    problem: Mapped[Problem] = relationship(back_populates="test_cases")

    def __repr__(self) -> str:
        return f"<TestCase {self.id} problem={self.problem_id}>"
