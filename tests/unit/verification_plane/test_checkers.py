"""
gatekeeper — test suite for verification checkers.

File: tests/unit/verification_plane/test_checkers.py

Purpose
- Command checkers map executor outcomes onto statuses and parsed findings.
- The secret scan only reads touched files with scanned extensions.
"""

from __future__ import annotations

import sys
import threading
from pathlib import Path

import pytest

from gatekeeper.verification_plane.checkers import (
    BuildChecker,
    CheckerContext,
    CheckStatus,
    CommandResult,
    CommandSpec,
    LintChecker,
    LocalSubprocessExecutor,
    SecurityChecker,
    TestChecker,
)
from gatekeeper.verification_plane.checkers.build_checker import parse_common_violations


class ScriptedExecutor:
    """Returns a canned ``CommandResult`` and records every spec."""

    def __init__(self, result: CommandResult) -> None:
        self.result = result
        self.specs: list[CommandSpec] = []

    async def run(self, spec: CommandSpec) -> CommandResult:
        self.specs.append(spec)
        return self.result


def completed(exit_code: int, stdout: str = "", stderr: str = "") -> CommandResult:
    return CommandResult(
        argv=("tool",), exit_code=exit_code, stdout=stdout, stderr=stderr, duration_ms=3
    )


def context(
    tmp_path: Path, executor: object | None = None, files: tuple[str, ...] = ()
) -> CheckerContext:
    return CheckerContext(
        workspace_path=str(tmp_path),
        changed_files=files,
        command_executor=executor,  # type: ignore[arg-type]
    )


@pytest.mark.asyncio
async def test_build_checker_passes_on_zero_exit(tmp_path: Path) -> None:
    executor = ScriptedExecutor(completed(0, stdout="built"))
    result = await BuildChecker(command=("make", "build")).check(context(tmp_path, executor))

    assert result.status is CheckStatus.PASS
    assert result.stage == "build"
    assert executor.specs[0].argv == ("make", "build")
    assert executor.specs[0].cwd == str(tmp_path)
    assert executor.specs[0].timeout_seconds == 600.0


@pytest.mark.asyncio
async def test_build_checker_parses_compiler_errors(tmp_path: Path) -> None:
    output = "src/app.ts:12:5: error TS2322: Type 'string' is not assignable\n"
    executor = ScriptedExecutor(completed(2, stdout=output))

    result = await BuildChecker().check(context(tmp_path, executor))

    assert result.status is CheckStatus.FAIL
    assert result.violations[0].path == "src/app.ts"
    assert result.violations[0].line == 12
    assert result.detail.startswith("error TS2322")
    assert result.metadata["exit_code"] == 2


@pytest.mark.asyncio
async def test_timeout_and_spawn_errors_have_distinct_statuses(tmp_path: Path) -> None:
    timed_out = CommandResult(
        argv=("tool",), exit_code=None, stdout="", stderr="", duration_ms=9, timed_out=True
    )
    missing = CommandResult(
        argv=("tool",), exit_code=None, stdout="", stderr="", duration_ms=1, error="not found"
    )

    first = await BuildChecker().check(context(tmp_path, ScriptedExecutor(timed_out)))
    second = await BuildChecker().check(context(tmp_path, ScriptedExecutor(missing)))

    assert first.status is CheckStatus.TIMEOUT
    assert second.status is CheckStatus.ERROR
    assert second.detail == "not found"


@pytest.mark.asyncio
async def test_empty_command_skips(tmp_path: Path) -> None:
    result = await LintChecker(command=()).check(context(tmp_path))
    assert result.status is CheckStatus.SKIP


@pytest.mark.asyncio
async def test_test_checker_adds_failed_count_summary(tmp_path: Path) -> None:
    executor = ScriptedExecutor(completed(1, stdout="Tests: 3 failed, 10 passed"))

    result = await TestChecker().check(context(tmp_path, executor))

    assert result.status is CheckStatus.FAIL
    messages = [item.message for item in result.violations]
    assert "3 test(s) failed" in messages


@pytest.mark.asyncio
async def test_lint_checker_reports_formatter_drift(tmp_path: Path) -> None:
    executor = ScriptedExecutor(completed(1, stdout="Would reformat src/a.py\n"))

    result = await LintChecker().check(context(tmp_path, executor))

    drift = [item for item in result.violations if item.code == "lint.format_mismatch"]
    assert [item.path for item in drift] == ["src/a.py"]


def test_parse_common_violations_falls_back_to_first_line() -> None:
    violations = parse_common_violations(stdout="", stderr="boom\nmore", fallback_code="x")
    assert [item.message for item in violations] == ["boom"]

    silent = parse_common_violations(stdout="", stderr="", fallback_code="x")
    assert silent[0].message == "command failed with non-zero exit code"


@pytest.mark.asyncio
async def test_security_checker_flags_secrets_in_touched_files(tmp_path: Path) -> None:
    (tmp_path / "src").mkdir()
    (tmp_path / "src/config.ts").write_text(
        'const apiKey = "abc";\nconst ok = 1;\nconsole.log("password", pw);\n',
        encoding="utf-8",
    )
    (tmp_path / "src/untouched.ts").write_text('const secret = "x";\n', encoding="utf-8")
    (tmp_path / "notes.md").write_text('password = "hunter2"\n', encoding="utf-8")

    result = await SecurityChecker().check(
        context(tmp_path, files=("src/config.ts", "notes.md", "src/deleted.ts"))
    )

    assert result.status is CheckStatus.WARN
    found = [(item.path, item.line, item.code) for item in result.violations]
    assert found == [
        ("src/config.ts", 1, "security.secret.api_key"),
        ("src/config.ts", 3, "security.secret.logged_password"),
    ]
    assert result.metadata["scanned_files"] == ["src/config.ts"]


@pytest.mark.asyncio
async def test_security_checker_ignores_paths_outside_workspace(tmp_path: Path) -> None:
    workspace = tmp_path / "ws"
    workspace.mkdir()
    (tmp_path / "leak.ts").write_text('const secret = "x";\n', encoding="utf-8")

    result = await SecurityChecker().check(context(workspace, files=("../leak.ts",)))

    assert result.status is CheckStatus.PASS


@pytest.mark.asyncio
async def test_security_checker_reads_files_off_the_event_loop(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    (tmp_path / "app.py").write_text("x = 1\n", encoding="utf-8")
    scan = SecurityChecker._scan
    threads: list[int] = []

    def recording_scan(self: SecurityChecker, *args: object) -> object:
        threads.append(threading.get_ident())
        return scan(self, *args)  # type: ignore[arg-type]

    monkeypatch.setattr(SecurityChecker, "_scan", recording_scan)

    result = await SecurityChecker().check(context(tmp_path, files=("app.py",)))

    assert result.status is CheckStatus.PASS
    assert threads and threads[0] != threading.get_ident()


@pytest.mark.asyncio
async def test_local_executor_runs_and_times_out(tmp_path: Path) -> None:
    executor = LocalSubprocessExecutor()

    ok = await executor.run(
        CommandSpec(argv=(sys.executable, "-c", "print('hi')"), cwd=str(tmp_path))
    )
    slow = await executor.run(
        CommandSpec(
            argv=(sys.executable, "-c", "import time; time.sleep(5)"),
            cwd=str(tmp_path),
            timeout_seconds=0.2,
        )
    )

    assert ok.exit_code == 0
    assert ok.stdout.strip() == "hi"
    assert slow.timed_out is True
    assert slow.exit_code is None
