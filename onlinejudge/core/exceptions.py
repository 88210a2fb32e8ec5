"""Exceptions raised by the judging engine.

Failures of the submitted program itself (wrong output, crash, timeout) are
not exceptions; they are reported as a :class:`~onlinejudge.core.verdict.Verdict`.
"""


class JudgeError(Exception):
    """Base class for judging engine errors."""

    pass


class UnsupportedLanguage(JudgeError):
    """Exception raised when no adapter is registered for a language tag."""

    def __init__(self, language: str):
        self.language = language
        super().__init__(f"unsupported language: {language}")


class CompilationError(JudgeError):
    """Exception raised when the toolchain rejects the source."""

    def __init__(self, diagnostic: str):
        self.diagnostic = diagnostic
        super().__init__(diagnostic)


class WorkspaceError(JudgeError):
    """Exception raised when the submission workspace cannot be prepared."""

    pass
