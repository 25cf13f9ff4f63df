"""
gatekeeper — validation gate

File: src/gatekeeper/verification_plane/gate.py

Purpose
- Turns the checker results for one merged workspace into a ``ValidationResult``.

Functional requirements
- Build, test, lint and the secret scan all run; no step short-circuits another.
- Only a failing build is fatal. Test, lint and security findings are warnings.
- A timeout in any command step (build, test or lint) marks the result
  ``timed_out``; the orchestrator rolls such attempts back even when
  validation failures are overridden.

Non-functional requirements
- Deterministic: identical workspace contents and configuration produce an
  identical result.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import structlog

from gatekeeper.domain.models import ValidationResult
from gatekeeper.verification_plane.checkers import (
    BuildChecker,
    CheckerContext,
    CheckResult,
    CheckStatus,
    CommandExecutor,
    LintChecker,
    LocalSubprocessExecutor,
    SecurityChecker,
    TestChecker,
)

if TYPE_CHECKING:
    from gatekeeper.config.settings import ValidationSettings

_FAILED_STATUSES = frozenset({CheckStatus.FAIL, CheckStatus.ERROR, CheckStatus.TIMEOUT})


@runtime_checkable
class Validator(Protocol):
    """Anything able to judge a merged workspace."""

    async def validate(
        self, workspace: Path, changed_files: Sequence[str]
    ) -> ValidationResult: ...


class ValidationGate:
    """Reference validator composed of build, test, lint and secret-scan checkers."""

    def __init__(
        self,
        settings: ValidationSettings,
        *,
        executor: CommandExecutor | None = None,
        logger: Any | None = None,
    ) -> None:
        self._executor = executor if executor is not None else LocalSubprocessExecutor()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self.build = BuildChecker(
            command=settings.build_command, timeout_seconds=settings.build_timeout_seconds
        )
        self.test = TestChecker(
            command=settings.test_command, timeout_seconds=settings.test_timeout_seconds
        )
        self.lint = LintChecker(
            command=settings.lint_command, timeout_seconds=settings.lint_timeout_seconds
        )
        self.security = SecurityChecker(scan_extensions=settings.scan_extensions)

    async def validate(self, workspace: Path, changed_files: Sequence[str]) -> ValidationResult:
        context = CheckerContext(
            workspace_path=str(workspace),
            changed_files=tuple(changed_files),
            command_executor=self._executor,
        )

        errors: list[str] = []
        warnings: list[str] = []

        build = await self.build.check(context)
        self._log_step(build)
        if build.status in _FAILED_STATUSES:
            errors.append(f"Build failed: {build.detail or build.status.value}")

        test = await self.test.check(context)
        self._log_step(test)
        if test.status is CheckStatus.FAIL:
            warnings.append("Some tests failed")
        elif test.status in (CheckStatus.ERROR, CheckStatus.TIMEOUT):
            warnings.append(f"Tests could not run: {test.detail}")

        lint = await self.lint.check(context)
        self._log_step(lint)
        if lint.status is CheckStatus.FAIL:
            warnings.append("Linting issues found")
        elif lint.status in (CheckStatus.ERROR, CheckStatus.TIMEOUT):
            warnings.append(f"Lint could not run: {lint.detail}")

        timed_out = any(step.status is CheckStatus.TIMEOUT for step in (build, test, lint))

        security = await self.security.check(context)
        self._log_step(security)
        for violation in security.violations:
            warnings.append(
                f"Security concern in {violation.path}:{violation.line} ({violation.code})"
            )

        return ValidationResult(
            passed=not errors,
            errors=tuple(errors),
            warnings=tuple(warnings),
            timed_out=timed_out,
        )

    def _log_step(self, result: CheckResult) -> None:
        self._logger.info(
            "validation_step_finished",
            stage=result.stage,
            status=result.status.value,
            duration_ms=result.duration_ms,
            findings=len(result.violations),
        )


__all__ = ["ValidationGate", "Validator"]
