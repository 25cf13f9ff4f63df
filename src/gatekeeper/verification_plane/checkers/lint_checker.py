"""
Lint Checker — verification stage.

Functional requirements:
- Runs the configured lint command in the merged workspace.
- Findings are advisory: the gate reports them as warnings.
"""

from __future__ import annotations

import re
from typing import Final

from gatekeeper.verification_plane.checkers.base import CommandResult, Violation
from gatekeeper.verification_plane.checkers.build_checker import CommandChecker

_FORMAT_RE: Final[re.Pattern[str]] = re.compile(
    r"^(?:Would reformat|would reformat)\s+(?P<path>.+)$"
)


class LintChecker(CommandChecker):
    """Lint/format checker; formatter drift lines become per-file findings."""

    checker_id = "lint_checker"
    stage = "lint"
    default_command = ("npm", "run", "lint")
    default_timeout_seconds = 300.0

    def parse_failures(self, result: CommandResult) -> tuple[Violation, ...]:
        parsed = list(super().parse_failures(result))

        for line in f"{result.stdout}\n{result.stderr}".splitlines():
            match = _FORMAT_RE.match(line.strip())
            if match is None:
                continue
            parsed.append(
                Violation(
                    code="lint.format_mismatch",
                    message="file does not match formatter output",
                    path=match.group("path").replace("\\", "/").strip(),
                    severity="warning",
                )
            )

        deduped = {(item.code, item.path, item.line, item.message): item for item in parsed}
        return tuple(sorted(deduped.values(), key=lambda item: item.sort_key()))


__all__ = ["LintChecker"]
