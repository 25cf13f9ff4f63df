"""
Command-backed checkers and the build step.

``CommandChecker`` runs one configured command in the merged workspace and maps
its outcome onto a ``CheckStatus``. An empty command turns the step off.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from pathlib import PurePosixPath
from typing import Final

from gatekeeper.verification_plane.checkers.base import (
    BaseChecker,
    CheckerContext,
    CheckResult,
    CheckStatus,
    CommandResult,
    CommandSpec,
    JSONValue,
    Violation,
)

# compiler style: path:line[:col]: message
_LOCATED_RE: Final[re.Pattern[str]] = re.compile(
    r"^(?P<path>[^:\s][^:]*?):(?P<line>\d+)(?::\d+)?:\s*(?P<message>.+)$"
)
_FAILURE_MARKERS: Final[tuple[str, ...]] = ("FAILED", "FAIL", "ERROR", "error", "Error")
_SILENT_FAILURE: Final[str] = "command failed with non-zero exit code"
_EXCERPT_CHARS: Final[int] = 500


def _workspace_relative(raw: str) -> str | None:
    pure = PurePosixPath(raw.strip().replace("\\", "/"))
    parts = [part for part in pure.parts if part not in {"", "."}]
    if not parts or parts[0] == "/" or ".." in parts:
        return None
    return "/".join(parts)


def parse_common_violations(
    *, stdout: str, stderr: str, fallback_code: str
) -> tuple[Violation, ...]:
    """Pull located diagnostics and error-marked lines out of tool output.

    When nothing recognizable was printed, the first output line (or a generic
    message for silent tools) becomes the single finding.
    """

    lines = [text for text in (raw.strip() for raw in f"{stdout}\n{stderr}".splitlines()) if text]
    seen: dict[tuple[str, int | None, str], Violation] = {}
    for text in lines:
        located = _LOCATED_RE.match(text)
        if located is not None:
            item = Violation(
                code=fallback_code,
                message=located["message"].strip(),
                path=_workspace_relative(located["path"]),
                line=int(located["line"]) or None,
            )
        elif text.startswith(_FAILURE_MARKERS):
            item = Violation(code=fallback_code, message=text)
        else:
            continue
        seen.setdefault((item.path or "", item.line, item.message), item)

    if not seen:
        return (Violation(code=fallback_code, message=lines[0] if lines else _SILENT_FAILURE),)
    return tuple(sorted(seen.values(), key=Violation.sort_key))


class CommandChecker(BaseChecker):
    checker_id: str = "command_checker"
    stage: str = "build"
    default_command: tuple[str, ...] = ()
    default_timeout_seconds: float = 60.0

    def __init__(
        self,
        *,
        command: Sequence[str] | None = None,
        timeout_seconds: float | None = None,
        allowed_exit_codes: Sequence[int] = (0,),
    ) -> None:
        self.command = self.default_command if command is None else tuple(command)
        self.timeout_seconds = (
            self.default_timeout_seconds if timeout_seconds is None else timeout_seconds
        )
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self.allowed_exit_codes = tuple(sorted(set(allowed_exit_codes))) or (0,)

    def parse_failures(self, result: CommandResult) -> tuple[Violation, ...]:
        return parse_common_violations(
            stdout=result.stdout,
            stderr=result.stderr,
            fallback_code=f"{self.checker_id}.failure",
        )

    def _classify(
        self, spec: CommandSpec, result: CommandResult
    ) -> tuple[CheckStatus, tuple[Violation, ...]]:
        if result.timed_out:
            message = f"timed out after {self.timeout_seconds:g}s: {' '.join(self.command)}"
            return CheckStatus.TIMEOUT, (Violation(f"{self.checker_id}.timeout", message),)
        if result.error is not None:
            return CheckStatus.ERROR, (Violation(f"{self.checker_id}.error", result.error),)
        if result.is_success(spec):
            return CheckStatus.PASS, ()
        return CheckStatus.FAIL, self.parse_failures(result)

    async def check(self, context: CheckerContext) -> CheckResult:
        if not self.command:
            return CheckResult(
                status=CheckStatus.SKIP,
                metadata={"reason": "command disabled"},
                checker_id=self.checker_id,
                stage=self.stage,
            )

        spec = CommandSpec(
            argv=self.command,
            cwd=context.workspace_path,
            timeout_seconds=self.timeout_seconds,
            allowed_exit_codes=self.allowed_exit_codes,
        )
        result = await context.require_executor().run(spec)
        status, violations = self._classify(spec, result)
        metadata: dict[str, JSONValue] = {
            "command": list(self.command),
            "exit_code": result.exit_code,
            "timed_out": result.timed_out,
            "stdout_excerpt": result.stdout[:_EXCERPT_CHARS],
            "stderr_excerpt": result.stderr[:_EXCERPT_CHARS],
        }
        return CheckResult(
            status=status,
            violations=violations,
            duration_ms=result.duration_ms,
            metadata=metadata,
            checker_id=self.checker_id,
            stage=self.stage,
        )


class BuildChecker(CommandChecker):
    """A failing build is the only validation finding that blocks integration."""

    checker_id = "build_checker"
    stage = "build"
    default_command = ("npm", "run", "build")
    default_timeout_seconds = 600.0


__all__ = [
    "BuildChecker",
    "CommandChecker",
    "parse_common_violations",
]
