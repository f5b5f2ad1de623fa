"""Synchronous runner for host management tools."""

from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable

from .utils import sanitize_environment


class CommandRunnerError(RuntimeError):
    """Base class for command runner errors."""


class CommandNotFoundError(CommandRunnerError):
    """Raised when a host tool cannot be located."""


@dataclass(slots=True)
class CommandResult:
    """Holds the outcome of a host tool invocation."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @classmethod
    def failure(cls, args: Iterable[str], message: str) -> "CommandResult":
        return cls(args=tuple(args), returncode=-1, stdout="", stderr=message)

    @classmethod
    def success(cls, args: Iterable[str], message: str = "") -> "CommandResult":
        return cls(args=tuple(args), returncode=0, stdout=message, stderr="")

    def describe(self) -> str:
        text = (self.stderr.strip() or self.stdout.strip()).splitlines()
        summary = text[-1] if text else "no output"
        return f"exit {self.returncode}: {summary}"


class CommandRunner:
    """Execute host tools, converting launch failures into result values."""

    def __init__(self, *, timeout: float = 60.0) -> None:
        self._timeout = timeout

    @staticmethod
    def resolve(name: str) -> Path:
        candidate = Path(name)
        if candidate.is_absolute():
            if candidate.exists() and candidate.is_file():
                return candidate
            raise CommandNotFoundError(f"Executable not found at {candidate}")

        binary = shutil.which(name)
        if binary is None:
            raise CommandNotFoundError(f"{name} executable not found on PATH")
        return Path(binary)

    def run(self, *args: str) -> CommandResult:
        try:
            process = subprocess.run(
                list(args),
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                env=sanitize_environment(),
                timeout=self._timeout,
                check=False,
            )
        except subprocess.TimeoutExpired:
            return CommandResult.failure(args, f"timed out after {self._timeout:g}s")
        except OSError as exc:
            return CommandResult.failure(args, str(exc))
        return CommandResult(
            args=tuple(args),
            returncode=process.returncode,
            stdout=process.stdout or "",
            stderr=process.stderr or "",
        )


class FakeCommandRunner(CommandRunner):
    """Test double that replays canned results or delegates to a handler."""

    def __init__(
        self,
        responses: Iterable[CommandResult] | None = None,
        *,
        handler: Callable[[tuple[str, ...]], CommandResult] | None = None,
    ) -> None:  # type: ignore[override]
        self._responses = list(responses or [])
        self._handler = handler
        self._invocations: list[tuple[str, ...]] = []
        self._timeout = 0.0

    def run(self, *args: str) -> CommandResult:  # type: ignore[override]
        self._invocations.append(tuple(args))
        if self._handler is not None:
            return self._handler(tuple(args))
        if self._responses:
            return self._responses.pop(0)
        return CommandResult(args=tuple(args), returncode=0, stdout="", stderr="")

    @property
    def invocations(self) -> list[tuple[str, ...]]:
        return self._invocations


__all__ = [
    "CommandNotFoundError",
    "CommandResult",
    "CommandRunner",
    "CommandRunnerError",
    "FakeCommandRunner",
]
