# Core module
from .exceptions import CompilationError, JudgeError, UnsupportedLanguage, WorkspaceError
from .languages import (
    BytecodeAdapter,
    CompiledArtifact,
    InterpretedAdapter,
    LanguageAdapter,
    LanguageRegistry,
    NativeAdapter,
    RunCommand,
)
from .process import ProcessOutcome, run_process
from .sandbox import SandboxResult, SandboxRunner
from .verdict import Verdict

__all__ = [
    "CompilationError",
    "JudgeError",
    "UnsupportedLanguage",
    "WorkspaceError",
    "BytecodeAdapter",
    "CompiledArtifact",
    "InterpretedAdapter",
    "LanguageAdapter",
    "LanguageRegistry",
    "NativeAdapter",
    "RunCommand",
    "ProcessOutcome",
    "run_process",
    "SandboxResult",
    "SandboxRunner",
    "Verdict",
]
