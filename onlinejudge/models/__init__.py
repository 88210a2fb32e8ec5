"""Database models package."""

from onlinejudge.models.problem import Problem, TestCase
from onlinejudge.models.submission import Submission, JudgeResult

__all__ = ["Problem", "TestCase", "Submission", "JudgeResult"]
