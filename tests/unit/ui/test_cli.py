"""
gatekeeper — CLI routing and exit-code tests.

File: tests/unit/ui/test_cli.py

Purpose
- Commands route through ``cli_entrypoint`` against a throw-away repository.
- Exit codes: 0 success, 1 validation or rollback, 2 config, 3 VCS.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from gatekeeper.main import ExitCode, cli_entrypoint

if TYPE_CHECKING:
    from pathlib import Path

    from conftest import GitSandbox

CONFIG_TOML = """
[paths]
state_dir = "state"
log_dir = "logs"

[validation]
build_command = []
test_command = []
lint_command = []

[[contributors]]
key = "frontend"
branch_prefix = "frontend/"
allowed_paths = ["src/frontend/"]

[[contributors]]
key = "backend"
branch_prefix = "backend/"
allowed_paths = ["src/backend/"]
"""


@pytest.fixture
def cli_args(sandbox: GitSandbox) -> list[str]:
    config_path = sandbox.root / "gatekeeper.toml"
    config_path.write_text(CONFIG_TOML, encoding="utf-8")
    return ["--repo-root", str(sandbox.repo), "--config", str(config_path), "--no-color"]


def run(command: list[str], common: list[str]) -> int:
    return cli_entrypoint([*command[:1], *common, *command[1:]])


def test_config_prints_effective_json(
    cli_args: list[str], sandbox: GitSandbox, capsys: pytest.CaptureFixture[str]
) -> None:
    assert run(["config"], cli_args) == ExitCode.SUCCESS

    payload = json.loads(capsys.readouterr().out)
    assert [item["key"] for item in payload["contributors"]] == ["frontend", "backend"]
    assert payload["paths"]["state_dir"] == (sandbox.root.resolve() / "state").as_posix()


def test_init_reports_branches(
    cli_args: list[str], capsys: pytest.CaptureFixture[str]
) -> None:
    assert run(["init"], cli_args) == ExitCode.SUCCESS

    out = capsys.readouterr().out
    assert "Integration branch" in out
    assert "integration" in out


def test_status_json(
    cli_args: list[str], sandbox: GitSandbox, capsys: pytest.CaptureFixture[str]
) -> None:
    assert run(["status", "--json"], cli_args) == ExitCode.SUCCESS

    payload = json.loads(capsys.readouterr().out)
    assert payload["main_head"] == sandbox.head("main")
    assert payload["pending_reviews"] == []
    assert payload["last_integration"] is None


def test_review_then_integrate_with_yes(
    cli_args: list[str], sandbox: GitSandbox, capsys: pytest.CaptureFixture[str]
) -> None:
    sandbox.commit("frontend/task1", {"src/frontend/app.tsx": "export const app = 1;\n"})

    assert run(["review", "frontend/task1", "--no-fetch", "--json"], cli_args) == 0
    reviews = json.loads(capsys.readouterr().out)["reviews"]
    assert [(item["branch"], item["risk_level"]) for item in reviews] == [
        ("frontend/task1", "low")
    ]

    assert run(["integrate", "frontend/task1", "--yes", "--json"], cli_args) == 0
    outcome = json.loads(capsys.readouterr().out)
    assert outcome["state"] == "integrated"
    assert outcome["record"]["pushed_to_main"] is True
    sandbox.git("merge-base", "--is-ancestor", sandbox.head("integration"), "main")


def test_integrate_unreviewed_branch_exits_one(
    cli_args: list[str], sandbox: GitSandbox, capsys: pytest.CaptureFixture[str]
) -> None:
    sandbox.commit("backend/task2", {"src/backend/api.ts": "export {};\n"})

    assert run(["integrate", "backend/task2", "--json"], cli_args) == ExitCode.VALIDATION_FAILURE
    outcome = json.loads(capsys.readouterr().out)
    assert outcome["error_kind"] == "review_missing"


def test_validate_dry_run(cli_args: list[str], sandbox: GitSandbox) -> None:
    sandbox.commit("backend/task3", {"src/backend/api.ts": "export {};\n"})
    main_before = sandbox.head("main")

    assert run(["validate", "backend/task3"], cli_args) == ExitCode.SUCCESS
    assert sandbox.head("main") == main_before


def test_check_boundaries_exit_codes(
    cli_args: list[str], capsys: pytest.CaptureFixture[str]
) -> None:
    assert run(["check-boundaries", "frontend", "src/frontend/a.tsx"], cli_args) == 0
    assert run(["check-boundaries", "frontend", "src/backend/db.ts"], cli_args) == 1
    assert "Boundary violation: src/backend/db.ts outside frontend scope" in (
        capsys.readouterr().out
    )
    assert run(["check-boundaries", "mobile", "a.ts"], cli_args) == ExitCode.CONFIG_ERROR


def test_override_opens_branch(cli_args: list[str], sandbox: GitSandbox) -> None:
    assert run(["override", "hotfix-1", "--reason", "prod down"], cli_args) == 0
    assert sandbox.engine.branch_exists("override/hotfix-1")


def test_monitor_rejects_bad_interval_and_cycles(
    cli_args: list[str], capsys: pytest.CaptureFixture[str]
) -> None:
    assert run(["monitor", "--interval", "soon"], cli_args) == ExitCode.CONFIG_ERROR
    assert "error:" in capsys.readouterr().err
    assert run(["monitor", "--max-cycles", "0"], cli_args) == ExitCode.CONFIG_ERROR


def test_monitor_single_cycle(cli_args: list[str], capsys: pytest.CaptureFixture[str]) -> None:
    assert run(["monitor", "--max-cycles", "1"], cli_args) == 0
    assert "cycle 1" in capsys.readouterr().out


def test_missing_config_file_is_config_error(sandbox: GitSandbox, tmp_path: Path) -> None:
    argv = ["status", "--repo-root", str(sandbox.repo), "--config", str(tmp_path / "nope.toml")]
    assert cli_entrypoint(argv) == ExitCode.CONFIG_ERROR
