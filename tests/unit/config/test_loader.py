"""
gatekeeper — test suite for config loading.

File: tests/unit/config/test_loader.py

Purpose
- Precedence is CLI > environment > file > defaults.
- Path fields resolve against the config file location.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from gatekeeper.config import (
    ConfigLoadError,
    ConfigValidationError,
    GatekeeperSettings,
    dump_effective_config,
    load_config,
)


def write_config(path: Path, body: str) -> Path:
    path.write_text(body, encoding="utf-8")
    return path


def test_defaults_apply_without_a_config_file(tmp_path: Path) -> None:
    config = load_config(repo_root=tmp_path, environ={})

    assert config["git"]["main_branch"] == "main"
    assert config["git"]["integration_branch"] == "integration"
    assert config["automation"]["auto_push"] is False
    assert config["paths"]["state_dir"] == (tmp_path.resolve() / ".gatekeeper").as_posix()


def test_file_env_and_cli_precedence(tmp_path: Path) -> None:
    write_config(
        tmp_path / "gatekeeper.toml",
        """
[meta]
schema_version = 1

[git]
remote = "upstream"
command_timeout_seconds = 30

[automation]
auto_push = true
auto_approve = true

[observability]
log_level = "WARNING"
""",
    )
    environ = {
        "GATEKEEPER_AUTOMATION_AUTO_PUSH": "false",
        "GATEKEEPER_OBSERVABILITY_LOG_LEVEL": "ERROR",
    }

    config = load_config(
        repo_root=tmp_path,
        environ=environ,
        cli_overrides={"observability.log_level": "DEBUG"},
    )

    assert config["git"]["remote"] == "upstream"
    assert config["git"]["command_timeout_seconds"] == 30.0
    assert config["automation"]["auto_approve"] is True
    assert config["automation"]["auto_push"] is False
    assert config["observability"]["log_level"] == "DEBUG"


def test_contributors_load_into_settings(tmp_path: Path) -> None:
    write_config(
        tmp_path / "gatekeeper.toml",
        """
[[contributors]]
key = "frontend"
branch_prefix = "frontend/"
allowed_paths = ["src/frontend/"]
excluded_paths = ["src/frontend/secrets/"]

[validation]
build_command = "make build --jobs 2"
""",
    )

    config = load_config(repo_root=tmp_path, environ={})
    settings = GatekeeperSettings.from_config(config, repo_root=tmp_path)

    profile = settings.contributor("frontend")
    assert profile is not None
    assert profile.excluded_paths == ("src/frontend/secrets/",)
    assert settings.contributor_for_branch("frontend/task1") == profile
    assert settings.contributor_for_branch("backend/task1") is None
    assert settings.validation.build_command == ("make", "build", "--jobs", "2")


def test_relative_paths_resolve_against_config_file(tmp_path: Path) -> None:
    conf_dir = tmp_path / "conf"
    conf_dir.mkdir()
    path = write_config(conf_dir / "custom.toml", '[paths]\nstate_dir = "state"\n')

    config = load_config(path, repo_root=tmp_path, environ={})

    assert config["paths"]["state_dir"] == (conf_dir.resolve() / "state").as_posix()


def test_explicit_missing_config_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError, match="config file not found"):
        load_config(tmp_path / "absent.toml", repo_root=tmp_path, environ={})


def test_invalid_toml_is_a_load_error(tmp_path: Path) -> None:
    write_config(tmp_path / "gatekeeper.toml", "[git\n")
    with pytest.raises(ConfigLoadError, match="invalid TOML"):
        load_config(repo_root=tmp_path, environ={})


def test_bad_env_boolean_is_a_load_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError, match="must be a boolean"):
        load_config(repo_root=tmp_path, environ={"GATEKEEPER_AUTOMATION_AUTO_PUSH": "maybe"})


def test_unknown_keys_fail_validation(tmp_path: Path) -> None:
    write_config(tmp_path / "gatekeeper.toml", "[git]\nmain = \"trunk\"\n")
    with pytest.raises(ConfigValidationError, match="git.main"):
        load_config(repo_root=tmp_path, environ={})


def test_dump_effective_config_is_sorted_json(tmp_path: Path) -> None:
    config = load_config(repo_root=tmp_path, environ={})
    dumped = dump_effective_config(config)

    assert json.loads(dumped) == config
    assert dumped.index('"automation"') < dumped.index('"git"')
