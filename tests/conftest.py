"""
gatekeeper — shared test fixtures.

File: tests/conftest.py

Purpose
- Isolate git from the developer's global configuration.
- Provide throw-away repositories with contributor branches and a settings
  factory pointing all state into ``tmp_path``.
"""

from __future__ import annotations

import asyncio
import os
import subprocess
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import pytest

from gatekeeper.config import GatekeeperSettings, default_config, merge_config
from gatekeeper.domain.models import ValidationResult
from gatekeeper.integration_plane.git_engine import GitEngine

FRONTEND = {
    "key": "frontend",
    "branch_prefix": "frontend/",
    "allowed_paths": ["src/frontend/"],
    "excluded_paths": ["src/frontend/secrets/"],
}
BACKEND = {
    "key": "backend",
    "branch_prefix": "backend/",
    "allowed_paths": ["src/backend/", "schema/"],
}


def run_git(cwd: Path, *args: str, check: bool = True) -> subprocess.CompletedProcess[str]:
    env = os.environ.copy()
    env["GIT_TERMINAL_PROMPT"] = "0"
    env.setdefault("GIT_CONFIG_NOSYSTEM", "1")
    completed = subprocess.run(
        ["git", *args],
        cwd=cwd,
        env=env,
        text=True,
        capture_output=True,
        check=False,
    )
    if check and completed.returncode != 0:
        msg = (
            f"git command failed: git {' '.join(args)}\n"
            f"stdout:\n{completed.stdout}\nstderr:\n{completed.stderr}"
        )
        raise AssertionError(msg)
    return completed


@pytest.fixture(autouse=True)
def isolated_git_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    home = tmp_path / "home"
    xdg = tmp_path / "xdg"
    home.mkdir()
    xdg.mkdir()

    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(xdg))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_TERMINAL_PROMPT", "0")
    monkeypatch.delenv("NO_COLOR", raising=False)
    for name in list(os.environ):
        if name.startswith("GATEKEEPER_"):
            monkeypatch.delenv(name)


class GitSandbox:
    """A repository on ``main`` plus helpers to grow contributor branches."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.repo = root / "repo"
        self.state_dir = root / "state"
        self.log_dir = root / "logs"
        self.engine = GitEngine(self.repo)
        self.engine.init_or_open()

    def git(self, *args: str, check: bool = True) -> subprocess.CompletedProcess[str]:
        return run_git(self.repo, *args, check=check)

    def head(self, ref: str) -> str:
        return self.git("rev-parse", ref).stdout.strip()

    def commit(
        self,
        branch: str,
        files: Mapping[str, str],
        message: str = "change",
        *,
        base: str = "main",
    ) -> str:
        """Commit ``files`` on ``branch`` (created from ``base`` when missing)."""

        if self.engine.branch_exists(branch):
            self.git("checkout", "-q", branch)
        else:
            self.git("checkout", "-q", "-b", branch, base)
        try:
            for rel_path, content in files.items():
                path = self.repo / rel_path
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text(content, encoding="utf-8")
            self.git("add", "--all")
            self.git("commit", "-q", "-m", message)
            return self.head("HEAD")
        finally:
            self.git("checkout", "-q", "main")

    def sync_integration(self) -> None:
        """Fast-forward the integration branch to main."""

        self.git("branch", "-f", "integration", "main")

    def add_bare_remote(self, name: str = "origin") -> Path:
        remote = self.root / f"{name}.git"
        run_git(self.root, "init", "--bare", "-q", str(remote))
        self.git("remote", "add", name, str(remote))
        self.git("push", "-q", name, "main", "integration")
        return remote

    def settings(self, overlay: Mapping[str, Any] | None = None) -> GatekeeperSettings:
        base: dict[str, Any] = {
            "contributors": [FRONTEND, BACKEND],
            "paths": {"state_dir": str(self.state_dir), "log_dir": str(self.log_dir)},
            "validation": {"build_command": [], "test_command": [], "lint_command": []},
        }
        config = merge_config(default_config(), base)
        if overlay:
            config = merge_config(config, overlay)
        return GatekeeperSettings.from_config(config, repo_root=self.repo)


@pytest.fixture
def sandbox(tmp_path: Path) -> GitSandbox:
    return GitSandbox(tmp_path)


class FakeValidator:
    """Validator returning a canned result, optionally after a delay."""

    def __init__(
        self,
        result: ValidationResult | None = None,
        *,
        delay_seconds: float = 0.0,
    ) -> None:
        self.result = result if result is not None else ValidationResult(passed=True)
        self.delay_seconds = delay_seconds
        self.calls: list[tuple[Path, tuple[str, ...]]] = []

    async def validate(self, workspace: Path, changed_files: Sequence[str]) -> ValidationResult:
        self.calls.append((workspace, tuple(changed_files)))
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        return self.result


@pytest.fixture
def passing_validator() -> FakeValidator:
    return FakeValidator()


@pytest.fixture
def make_validator() -> type[FakeValidator]:
    return FakeValidator
