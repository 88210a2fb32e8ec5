"""
Language adapters.

Each adapter knows the canonical source file name for its language, how to
turn that source into something runnable, and how to invoke the result.
The pipeline only talks to :class:`LanguageAdapter`; supporting a new language
means registering one more adapter.

Variants:
    NativeAdapter      - compiler produces a binary that is executed directly (C, C++)
    BytecodeAdapter    - compiler produces classes run by a launcher (Java)
    InterpretedAdapter - interpreter runs the source file, no compile step (Python)
"""

import shlex
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Sequence

from onlinejudge.config import Settings
from onlinejudge.core.exceptions import CompilationError, UnsupportedLanguage
from onlinejudge.core.process import run_process


@dataclass
class CompiledArtifact:
    """Runnable product of a compile step."""

    workspace: Path
    path: Path


@dataclass
class RunCommand:
    """Invocation descriptor handed to the sandbox runner."""

    program: str
    args: list[str] = field(default_factory=list)
    cwd: Optional[Path] = None

    @property
    def argv(self) -> list[str]:
        return [self.program, *self.args]


class LanguageAdapter(ABC):
    """Compile/run strategy for one language."""

    name: str
    source_file_name: str

    @abstractmethod
    async def compile(self, source_path: Path, timeout: float) -> CompiledArtifact:
        """Build the source, raising CompilationError on failure."""

    @abstractmethod
    def run_command(self, artifact: CompiledArtifact) -> RunCommand:
        """Describe how to execute a compiled artifact."""

    async def _run_toolchain(self, argv: Sequence[str], cwd: Path, timeout: float) -> None:
        try:
            outcome = await run_process(argv, timeout=timeout, cwd=cwd)
        except OSError as e:
            raise CompilationError(f"{argv[0]}: {e}") from e

        if outcome.timed_out:
            raise CompilationError(f"Compilation timed out after {timeout:g}s")
        if outcome.returncode != 0:
            # Diagnostics are passed through untouched.
            diagnostic = outcome.stderr or outcome.stdout
            raise CompilationError(diagnostic.decode("utf-8", errors="replace"))

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class NativeAdapter(LanguageAdapter):
    """Languages compiled to a native executable."""

    def __init__(
        self,
        name: str,
        source_file_name: str,
        compiler: str,
        flags: Sequence[str] = (),
        link_flags: Sequence[str] = (),
    ):
        self.name = name
        self.source_file_name = source_file_name
        self.compiler = compiler
        self.flags = list(flags)
        self.link_flags = list(link_flags)

    async def compile(self, source_path: Path, timeout: float) -> CompiledArtifact:
        binary = source_path.with_name(source_path.name + ".out")
        await self._run_toolchain(
            [self.compiler, *self.flags, source_path.name, "-o", binary.name, *self.link_flags],
            cwd=source_path.parent,
            timeout=timeout,
        )
        return CompiledArtifact(workspace=source_path.parent, path=binary)

    def run_command(self, artifact: CompiledArtifact) -> RunCommand:
        return RunCommand(program=str(artifact.path), cwd=artifact.workspace)


class BytecodeAdapter(LanguageAdapter):
    """Languages compiled to bytecode and started through a runtime launcher."""

    def __init__(
        self,
        name: str,
        source_file_name: str,
        compiler: str,
        runtime: str,
        runtime_flags: Sequence[str] = (),
    ):
        self.name = name
        self.source_file_name = source_file_name
        self.compiler = compiler
        self.runtime = runtime
        self.runtime_flags = list(runtime_flags)

    async def compile(self, source_path: Path, timeout: float) -> CompiledArtifact:
        await self._run_toolchain(
            [self.compiler, source_path.name],
            cwd=source_path.parent,
            timeout=timeout,
        )
        return CompiledArtifact(
            workspace=source_path.parent,
            path=source_path.with_suffix(".class"),
        )

    def run_command(self, artifact: CompiledArtifact) -> RunCommand:
        # The class name is the file stem: Main.class -> Main
        return RunCommand(
            program=self.runtime,
            args=[*self.runtime_flags, "-cp", str(artifact.workspace), artifact.path.stem],
            cwd=artifact.workspace,
        )


class InterpretedAdapter(LanguageAdapter):
    """Languages whose interpreter executes the source file directly."""

    def __init__(self, name: str, source_file_name: str, interpreter: str):
        self.name = name
        self.source_file_name = source_file_name
        self.interpreter = interpreter

    async def compile(self, source_path: Path, timeout: float) -> CompiledArtifact:
        return CompiledArtifact(workspace=source_path.parent, path=source_path)

    def run_command(self, artifact: CompiledArtifact) -> RunCommand:
        return RunCommand(
            program=self.interpreter,
            args=[str(artifact.path)],
            cwd=artifact.workspace,
        )


class LanguageRegistry:
    """Table of language tag -> adapter."""

    def __init__(self, adapters: Iterable[LanguageAdapter] = ()):
        self._adapters: dict[str, LanguageAdapter] = {}
        for adapter in adapters:
            self.register(adapter)

    def register(self, adapter: LanguageAdapter) -> None:
        self._adapters[adapter.name] = adapter

    def get(self, language: str) -> LanguageAdapter:
        """Look up an adapter, raising UnsupportedLanguage for unknown tags."""
        try:
            return self._adapters[language]
        except KeyError:
            raise UnsupportedLanguage(language) from None

    def source_file_name(self, language: str) -> str:
        return self.get(language).source_file_name

    @property
    def languages(self) -> list[str]:
        return sorted(self._adapters)

    def __contains__(self, language: str) -> bool:
        return language in self._adapters

    @classmethod
    def default(cls, settings: Settings) -> "LanguageRegistry":
        """Registry with the toolchains configured in settings."""
        return cls(
            [
                NativeAdapter(
                    "cpp",
                    "main.cpp",
                    compiler=settings.cpp_compiler,
                    flags=shlex.split(settings.cpp_flags),
                ),
                NativeAdapter(
                    "c",
                    "main.c",
                    compiler=settings.c_compiler,
                    flags=shlex.split(settings.c_flags),
                    link_flags=["-lm"],
                ),
                BytecodeAdapter(
                    "java",
                    "Main.java",
                    compiler=settings.java_compiler,
                    runtime=settings.java_runtime,
                ),
                InterpretedAdapter(
                    "python",
                    "main.py",
                    interpreter=settings.python_interpreter,
                ),
            ]
        )
