"""
Test Checker — verification stage.

Functional requirements:
- Runs the configured test command in the merged workspace.
- Failures are advisory: the gate reports them as warnings.
"""

from __future__ import annotations

import re
from typing import Final

from gatekeeper.verification_plane.checkers.base import CommandResult, Violation
from gatekeeper.verification_plane.checkers.build_checker import (
    CommandChecker,
    parse_common_violations,
)

_SUMMARY_RE: Final[re.Pattern[str]] = re.compile(
    r"(?i)\b(?P<count>\d+)\s+(?:failed|failing|failures?)\b"
)


class TestChecker(CommandChecker):
    """Test step with a failed-count summary when the runner prints one."""

    __test__ = False

    checker_id = "test_checker"
    stage = "test"
    default_command = ("npm", "test")
    default_timeout_seconds = 900.0

    def parse_failures(self, result: CommandResult) -> tuple[Violation, ...]:
        parsed = parse_common_violations(
            stdout=result.stdout,
            stderr=result.stderr,
            fallback_code="test_checker.failure",
        )
        match = _SUMMARY_RE.search(f"{result.stdout}\n{result.stderr}")
        if match is None:
            return parsed
        summary = Violation(
            code="test_checker.summary",
            message=f"{match.group('count')} test(s) failed",
        )
        return (summary, *parsed)


__all__ = ["TestChecker"]
