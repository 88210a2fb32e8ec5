"""Verdict values shared by the sandbox, the pipeline and storage."""

from enum import Enum


class Verdict(str, Enum):
    """Outcome of judging a submission against one or all test cases."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    WRONG_ANSWER = "wrong_answer"
    TIME_LIMIT = "time_limit"
    RUNTIME_ERROR = "runtime_error"
    COMPILATION_ERROR = "compilation_error"

    @property
    def is_terminal(self) -> bool:
        return self is not Verdict.PENDING

    def can_transition(self, target: "Verdict") -> bool:
        """Statuses only move forward: pending to a terminal verdict, once."""
        return self is Verdict.PENDING and target.is_terminal

