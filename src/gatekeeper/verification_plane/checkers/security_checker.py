"""
Security Checker — verification stage.

Functional requirements:
- Scan the files touched by an integration for hard-coded secret patterns.
- Only files whose extension is in the configured scan list are read.
- Deterministic: no external tools, findings ordered by path, line and code.
"""

from __future__ import annotations

import asyncio
import re
import time
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from gatekeeper.verification_plane.checkers.base import (
    BaseChecker,
    CheckerContext,
    CheckResult,
    CheckStatus,
    Violation,
)

_MAX_FILE_SIZE_BYTES: Final[int] = 1_048_576


@dataclass(frozen=True, slots=True)
class SecretPattern:
    code: str
    regex: re.Pattern[str]
    description: str


DEFAULT_SECRET_PATTERNS: Final[tuple[SecretPattern, ...]] = (
    SecretPattern(
        code="security.secret.logged_password",
        regex=re.compile(r"(?i)console\.log.*password"),
        description="password written to console output",
    ),
    SecretPattern(
        code="security.secret.api_key",
        regex=re.compile(r"""(?i)api[_-]?key\s*[:=]\s*["']"""),
        description="possible hard-coded API key",
    ),
    SecretPattern(
        code="security.secret.secret",
        regex=re.compile(r"""(?i)secret\s*[:=]\s*["']"""),
        description="possible hard-coded secret",
    ),
    SecretPattern(
        code="security.secret.password",
        regex=re.compile(r"""(?i)password\s*[:=]\s*["']"""),
        description="possible hard-coded password",
    ),
)


class SecurityChecker(BaseChecker):
    """Regex secret scan over touched files."""

    checker_id = "security_checker"
    stage = "security"

    def __init__(
        self,
        *,
        scan_extensions: Sequence[str] = (".ts", ".tsx", ".js", ".jsx", ".py"),
        patterns: Sequence[SecretPattern] = DEFAULT_SECRET_PATTERNS,
        max_file_size_bytes: int = _MAX_FILE_SIZE_BYTES,
    ) -> None:
        self.scan_extensions = tuple(scan_extensions)
        self.patterns = tuple(patterns)
        self.max_file_size_bytes = max_file_size_bytes

    async def check(self, context: CheckerContext) -> CheckResult:
        started = time.monotonic_ns()
        # file reads run off the event loop so cancellation stays responsive
        violations, scanned = await asyncio.to_thread(
            self._scan, Path(context.workspace_path), context.changed_files
        )
        return CheckResult(
            status=CheckStatus.WARN if violations else CheckStatus.PASS,
            violations=tuple(violations),
            duration_ms=(time.monotonic_ns() - started) // 1_000_000,
            metadata={
                "patterns": [item.code for item in self.patterns],
                "scanned_files": sorted(scanned),
            },
            checker_id=self.checker_id,
            stage=self.stage,
        )

    def _scan(
        self, workspace: Path, changed_files: Sequence[str]
    ) -> tuple[list[Violation], list[str]]:
        workspace_root = workspace.resolve()
        violations: list[Violation] = []
        scanned: list[str] = []
        for relative in changed_files:
            if not relative.endswith(self.scan_extensions):
                continue
            file_path = (workspace_root / relative).resolve(strict=False)
            if not file_path.is_relative_to(workspace_root) or not file_path.is_file():
                # Deleted by the merge, or escaping the workspace.
                continue
            if file_path.stat().st_size > self.max_file_size_bytes:
                continue

            text = file_path.read_text(encoding="utf-8", errors="replace")
            scanned.append(relative)
            for line_no, line in enumerate(text.splitlines(), start=1):
                for pattern in self.patterns:
                    if pattern.regex.search(line) is None:
                        continue
                    violations.append(
                        Violation(
                            code=pattern.code,
                            message=pattern.description,
                            severity="warning",
                            path=relative,
                            line=line_no,
                        )
                    )
        return violations, scanned


__all__ = ["DEFAULT_SECRET_PATTERNS", "SecretPattern", "SecurityChecker"]
