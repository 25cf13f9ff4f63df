"""Checkers run by the validation gate."""

from gatekeeper.verification_plane.checkers.base import (
    BaseChecker,
    CheckerContext,
    CheckResult,
    CheckStatus,
    CommandExecutor,
    CommandResult,
    CommandSpec,
    LocalSubprocessExecutor,
    Violation,
)
from gatekeeper.verification_plane.checkers.build_checker import BuildChecker, CommandChecker
from gatekeeper.verification_plane.checkers.lint_checker import LintChecker
from gatekeeper.verification_plane.checkers.security_checker import (
    DEFAULT_SECRET_PATTERNS,
    SecretPattern,
    SecurityChecker,
)
from gatekeeper.verification_plane.checkers.test_checker import TestChecker

__all__ = [
    "DEFAULT_SECRET_PATTERNS",
    "BaseChecker",
    "BuildChecker",
    "CheckResult",
    "CheckStatus",
    "CheckerContext",
    "CommandChecker",
    "CommandExecutor",
    "CommandResult",
    "CommandSpec",
    "LintChecker",
    "LocalSubprocessExecutor",
    "SecretPattern",
    "SecurityChecker",
    "TestChecker",
    "Violation",
]
