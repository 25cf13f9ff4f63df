"""
gatekeeper — checker contract and command runner.

File: src/gatekeeper/verification_plane/checkers/base.py

Purpose
- A checker receives a ``CheckerContext`` (merged workspace, files the branch
  touched, a command executor) and returns one ``CheckResult``.
- ``LocalSubprocessExecutor`` runs validation commands asynchronously and kills
  them once their deadline passes.

Findings are ordered by location so two runs over the same tree render the same
errors and warnings.
"""

from __future__ import annotations

import asyncio
import os
import time
from collections.abc import Iterable, Mapping
from contextlib import suppress
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Protocol, runtime_checkable

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

_TEXT_LIMIT = 8192
_CODE_LIMIT = 128


class CheckStatus(StrEnum):
    PASS = "pass"
    FAIL = "fail"
    WARN = "warn"
    ERROR = "error"
    TIMEOUT = "timeout"
    SKIP = "skip"


def _required_text(value: object, owner: str, *, limit: int = _TEXT_LIMIT) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{owner}: expected string, got {type(value).__name__}")
    text = value.strip()
    if not text:
        raise ValueError(f"{owner}: must not be empty")
    return text[:limit]


@dataclass(slots=True)
class Violation:
    """One finding; ``path`` and ``line`` locate it when the tool reported a location."""

    code: str
    message: str
    severity: str = "error"
    path: str | None = None
    line: int | None = None

    def __post_init__(self) -> None:
        self.code = _required_text(self.code, "Violation.code", limit=_CODE_LIMIT)
        self.message = _required_text(self.message, "Violation.message")
        self.severity = _required_text(self.severity, "Violation.severity", limit=_CODE_LIMIT)
        if self.line is not None and (isinstance(self.line, bool) or self.line < 1):
            raise ValueError("Violation.line: must be a positive integer")

    def sort_key(self) -> tuple[str, int, str, str]:
        return (self.path or "", -1 if self.line is None else self.line, self.code, self.message)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "code": self.code,
            "line": self.line,
            "message": self.message,
            "path": self.path,
            "severity": self.severity,
        }


def normalize_violations(violations: Iterable[Violation]) -> tuple[Violation, ...]:
    """Sort findings by path, line, code and message."""

    items = tuple(violations)
    for position, item in enumerate(items):
        if not isinstance(item, Violation):
            raise ValueError(
                f"violations[{position}]: expected Violation, got {type(item).__name__}"
            )
    return tuple(sorted(items, key=Violation.sort_key))


@dataclass(slots=True)
class CheckResult:
    status: CheckStatus
    violations: tuple[Violation, ...] = ()
    duration_ms: int = 0
    metadata: dict[str, JSONValue] = field(default_factory=dict)
    checker_id: str = ""
    stage: str = ""

    def __post_init__(self) -> None:
        self.status = CheckStatus(self.status)
        self.violations = normalize_violations(self.violations)
        if self.duration_ms < 0:
            raise ValueError("CheckResult.duration_ms: must be >= 0")

    @property
    def detail(self) -> str:
        """Message of the first finding, or an empty string."""

        return self.violations[0].message if self.violations else ""

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "checker_id": self.checker_id,
            "duration_ms": self.duration_ms,
            "metadata": self.metadata,
            "stage": self.stage,
            "status": str(self.status),
            "violations": [item.to_dict() for item in self.violations],
        }


@dataclass(slots=True)
class CommandSpec:
    """What to run, where, and how long to wait for it."""

    argv: tuple[str, ...]
    cwd: str | None = None
    env: Mapping[str, str] = field(default_factory=dict)
    timeout_seconds: float | None = None
    allowed_exit_codes: tuple[int, ...] = (0,)

    def __post_init__(self) -> None:
        self.argv = tuple(self.argv)
        if not self.argv or not all(isinstance(part, str) and part for part in self.argv):
            raise ValueError("CommandSpec.argv: must be a non-empty sequence of non-empty strings")
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError("CommandSpec.timeout_seconds: must be > 0")

    def build_env(self) -> dict[str, str]:
        return {**os.environ, **self.env}


@dataclass(slots=True)
class CommandResult:
    """Captured outcome; ``exit_code`` is None when the process never finished."""

    argv: tuple[str, ...]
    exit_code: int | None
    stdout: str
    stderr: str
    duration_ms: int
    timed_out: bool = False
    error: str | None = None

    def __post_init__(self) -> None:
        if self.timed_out and self.exit_code is not None:
            raise ValueError("CommandResult.exit_code: must be None when timed_out is true")

    def is_success(self, spec: CommandSpec | None = None) -> bool:
        if self.timed_out or self.error is not None or self.exit_code is None:
            return False
        allowed = (0,) if spec is None else spec.allowed_exit_codes
        return self.exit_code in allowed


@runtime_checkable
class CommandExecutor(Protocol):
    async def run(self, spec: CommandSpec) -> CommandResult: ...


class _Deadline(Exception):
    def __init__(self, stdout: bytes, stderr: bytes) -> None:
        super().__init__("deadline exceeded")
        self.stdout = stdout
        self.stderr = stderr


class LocalSubprocessExecutor(CommandExecutor):
    """Runs commands on this machine; output is decoded, newline-normalized and capped."""

    def __init__(
        self,
        *,
        default_timeout_seconds: float | None = None,
        max_output_chars: int | None = 200_000,
    ) -> None:
        self._default_timeout_seconds = default_timeout_seconds
        self._max_output_chars = max_output_chars

    async def run(self, spec: CommandSpec) -> CommandResult:
        started = time.monotonic()
        deadline = spec.timeout_seconds or self._default_timeout_seconds
        try:
            process = await asyncio.create_subprocess_exec(
                *spec.argv,
                cwd=spec.cwd,
                env=spec.build_env(),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            return CommandResult(
                argv=spec.argv,
                exit_code=None,
                stdout="",
                stderr="",
                duration_ms=self._since(started),
                error=str(exc),
            )

        try:
            raw_out, raw_err = await self._collect(process, deadline)
        except _Deadline as expired:
            return CommandResult(
                argv=spec.argv,
                exit_code=None,
                stdout=self._text(expired.stdout),
                stderr=self._text(expired.stderr),
                duration_ms=self._since(started),
                timed_out=True,
                error=f"command timed out after {deadline or 0.0:.3f}s",
            )
        return CommandResult(
            argv=spec.argv,
            exit_code=process.returncode,
            stdout=self._text(raw_out),
            stderr=self._text(raw_err),
            duration_ms=self._since(started),
        )

    @staticmethod
    async def _collect(
        process: asyncio.subprocess.Process, deadline: float | None
    ) -> tuple[bytes, bytes]:
        try:
            return await asyncio.wait_for(process.communicate(), timeout=deadline)
        except TimeoutError:
            with suppress(ProcessLookupError):
                process.kill()
            raise _Deadline(*await process.communicate()) from None
        except asyncio.CancelledError:
            with suppress(ProcessLookupError):
                process.kill()
            await process.communicate()
            raise

    def _text(self, raw: bytes) -> str:
        text = raw.decode("utf-8", errors="replace").replace("\r\n", "\n").replace("\r", "\n")
        cap = self._max_output_chars
        if cap is None or len(text) <= cap:
            return text
        return f"{text[:cap]}\n...[truncated {len(text) - cap} chars]"

    @staticmethod
    def _since(started: float) -> int:
        return max(int((time.monotonic() - started) * 1000), 0)


@dataclass(slots=True)
class CheckerContext:
    workspace_path: str
    changed_files: tuple[str, ...] = ()
    command_executor: CommandExecutor | None = None

    def __post_init__(self) -> None:
        self.workspace_path = _required_text(self.workspace_path, "CheckerContext.workspace_path")
        self.changed_files = tuple(sorted(set(self.changed_files)))

    def require_executor(self) -> CommandExecutor:
        if self.command_executor is None:
            raise ValueError("CheckerContext.command_executor: command executor is required")
        return self.command_executor


@runtime_checkable
class BaseChecker(Protocol):
    """Implemented by every validation step the gate runs."""

    checker_id: str
    stage: str

    async def check(self, context: CheckerContext) -> CheckResult: ...


__all__ = [
    "BaseChecker",
    "CheckResult",
    "CheckStatus",
    "CheckerContext",
    "CommandExecutor",
    "CommandResult",
    "CommandSpec",
    "JSONValue",
    "LocalSubprocessExecutor",
    "Violation",
    "normalize_violations",
]
