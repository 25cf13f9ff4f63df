"""
gatekeeper — configuration schema and validation.

File: src/gatekeeper/config/schema.py

``DEFAULT_CONFIG`` is the complete set of built-in settings; every other layer
(``gatekeeper.toml``, environment, CLI) is deep-merged onto it and then checked
here. Validation never stops at the first problem: each issue carries the dotted
path of the offending field so ``gatekeeper config`` can list all of them.

A contributor profile with no allowed paths is rejected here, before any
branch or worktree is touched.
"""

from __future__ import annotations

import copy
import math
import re
import shlex
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, NotRequired, TypedDict

from gatekeeper.constants import (
    CONFIG_SCHEMA_VERSION,
    DEFAULT_INTEGRATION_BRANCH,
    DEFAULT_MAIN_BRANCH,
    DEFAULT_REMOTE,
    LOG_DIR,
    OVERRIDE_BRANCH_PREFIX,
    STATE_DIR,
)

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION

INTERVAL_PATTERN: Final[re.Pattern[str]] = re.compile(r"^(\d+)([smhd])$")
_BRANCH_TEXT_PATTERN = re.compile(r"^[A-Za-z0-9._/-]+$")
_CONFLICT_STRATEGIES: Final[tuple[str, ...]] = ("ours", "theirs")
_LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")

# Config paths that should be normalized relative to config file location.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("paths", "state_dir"),
    ("paths", "log_dir"),
)


class MetaConfig(TypedDict):
    schema_version: int


class GitConfig(TypedDict):
    main_branch: str
    integration_branch: str
    remote: str
    command_timeout_seconds: float


class ContributorConfig(TypedDict):
    key: str
    branch_prefix: str
    allowed_paths: list[str]
    excluded_paths: NotRequired[list[str]]


class RiskPatternConfig(TypedDict):
    pattern: str
    tag: str


class ConflictRuleConfig(TypedDict):
    pattern: str
    strategy: Literal["ours", "theirs"]


class AutomationConfig(TypedDict):
    auto_approve: bool
    auto_push: bool
    auto_delete_merged_branch: bool
    override_on_validation_failure: bool


class ValidationConfig(TypedDict):
    build_command: list[str]
    test_command: list[str]
    lint_command: list[str]
    build_timeout_seconds: float
    test_timeout_seconds: float
    lint_timeout_seconds: float
    scan_extensions: list[str]


class MonitorConfig(TypedDict):
    interval: str
    stale_threshold_hours: float


class PathsConfig(TypedDict):
    state_dir: str
    log_dir: str


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_to_stdout: bool


class GatekeeperConfig(TypedDict):
    meta: MetaConfig
    git: GitConfig
    contributors: list[ContributorConfig]
    risk_patterns: list[RiskPatternConfig]
    conflict_rules: list[ConflictRuleConfig]
    automation: AutomationConfig
    validation: ValidationConfig
    monitor: MonitorConfig
    paths: PathsConfig
    observability: ObservabilityConfig


DEFAULT_CONFIG: Final[GatekeeperConfig] = {
    "meta": {
        "schema_version": ConfigSchemaVersion,
    },
    "git": {
        "main_branch": DEFAULT_MAIN_BRANCH,
        "integration_branch": DEFAULT_INTEGRATION_BRANCH,
        "remote": DEFAULT_REMOTE,
        "command_timeout_seconds": 120.0,
    },
    "contributors": [],
    "risk_patterns": [
        {"pattern": r"schema\.prisma|(^|/)migrations?/|\.sql$", "tag": "database-change"},
        {"pattern": r"(^|/)\.env", "tag": "environment-change"},
        {"pattern": r"auth", "tag": "security-sensitive"},
        {"pattern": r"(^|/)api/", "tag": "api-change"},
    ],
    "conflict_rules": [
        {"pattern": "package-lock.json", "strategy": "ours"},
        {"pattern": "yarn.lock", "strategy": "ours"},
        {"pattern": "pnpm-lock.yaml", "strategy": "ours"},
        {"pattern": "poetry.lock", "strategy": "ours"},
        {"pattern": "Cargo.lock", "strategy": "ours"},
        {"pattern": "uv.lock", "strategy": "ours"},
        {"pattern": "*", "strategy": "theirs"},
    ],
    "automation": {
        "auto_approve": False,
        "auto_push": False,
        "auto_delete_merged_branch": False,
        "override_on_validation_failure": False,
    },
    "validation": {
        "build_command": ["npm", "run", "build"],
        "test_command": ["npm", "test"],
        "lint_command": ["npm", "run", "lint"],
        "build_timeout_seconds": 600.0,
        "test_timeout_seconds": 900.0,
        "lint_timeout_seconds": 300.0,
        "scan_extensions": [".ts", ".tsx", ".js", ".jsx", ".py"],
    },
    "monitor": {
        "interval": "1h",
        "stale_threshold_hours": 24.0,
    },
    "paths": {
        "state_dir": STATE_DIR.as_posix(),
        "log_dir": LOG_DIR.as_posix(),
    },
    "observability": {
        "log_level": "INFO",
        "log_to_stdout": False,
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Validation result with normalized config when no issues were found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_config() -> GatekeeperConfig:
    """Return a deep copy of deterministic built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    """Return deterministic migration guidance for schema version mismatch."""

    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade gatekeeper.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade the gatekeeper runtime"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Return ``base`` with ``overlay`` deep-merged on top; neither input is mutated."""

    merged: dict[str, Any] = _detached(base)
    _overlay(merged, overlay)
    return merged


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Validate config and return structured issues with deterministic paths."""

    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=issues.items())

    normalized = _validate_root(root, issues)
    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def parse_interval(value: str) -> float:
    """Convert ``<n><s|m|h|d>`` into seconds."""

    match = INTERVAL_PATTERN.fullmatch(value.strip())
    if match is None:
        raise ValueError(f"invalid interval {value!r}; expected <number><s|m|h|d>")
    amount = int(match.group(1))
    if amount <= 0:
        raise ValueError(f"invalid interval {value!r}; must be > 0")
    multiplier = {"s": 1, "m": 60, "h": 3600, "d": 86400}[match.group(2)]
    return float(amount * multiplier)


def _validate_root(payload: Mapping[str, object], issues: _IssueCollector) -> dict[str, Any]:
    sections = {
        "meta": _validate_meta,
        "git": _validate_git,
        "automation": _validate_automation,
        "validation": _validate_validation,
        "monitor": _validate_monitor,
        "paths": _validate_paths,
        "observability": _validate_observability,
    }
    list_sections = {
        "contributors": _validate_contributors,
        "risk_patterns": _validate_risk_patterns,
        "conflict_rules": _validate_conflict_rules,
    }
    _reject_unknown_keys(payload, set(sections) | set(list_sections), "", issues)
    _require_keys(payload, set(sections) | set(list_sections), "", issues)

    out: dict[str, Any] = {}
    for key, validator in sections.items():
        raw = payload.get(key)
        if raw is None:
            continue
        section = _as_object(raw, key, issues)
        if section is not None:
            out[key] = validator(section, key, issues)

    for key, list_validator in list_sections.items():
        raw = payload.get(key)
        if raw is None:
            continue
        items = _as_list(raw, key, issues)
        if items is not None:
            out[key] = list_validator(items, key, issues)

    git = out.get("git", {})
    if git.get("main_branch") is not None and git.get("main_branch") == git.get(
        "integration_branch"
    ):
        issues.add("git.integration_branch", "must differ from git.main_branch")
    return out


def _validate_meta(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"schema_version"}, path, issues)
    _require_keys(payload, {"schema_version"}, path, issues)

    out: dict[str, Any] = {}
    if "schema_version" in payload:
        parsed = _as_int(
            payload["schema_version"], _join(path, "schema_version"), issues, minimum=1
        )
        if parsed is not None:
            out["schema_version"] = parsed
            if parsed != ConfigSchemaVersion:
                issues.add(_join(path, "schema_version"), migration_guidance(parsed))
    return out


def _validate_git(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"main_branch", "integration_branch", "remote", "command_timeout_seconds"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    for key in ("main_branch", "integration_branch", "remote"):
        if key in payload:
            parsed = _as_branch_text(payload[key], _join(path, key), issues)
            if parsed is not None:
                out[key] = parsed
    if "command_timeout_seconds" in payload:
        timeout = _as_float(
            payload["command_timeout_seconds"],
            _join(path, "command_timeout_seconds"),
            issues,
            exclusive_minimum=0.0,
        )
        if timeout is not None:
            out["command_timeout_seconds"] = timeout
    return out


def _validate_contributors(
    items: Sequence[object], path: str, issues: _IssueCollector
) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    seen_keys: set[str] = set()
    seen_prefixes: set[str] = set()

    for index, raw in enumerate(items):
        item_path = f"{path}[{index}]"
        entry = _as_object(raw, item_path, issues)
        if entry is None:
            continue
        _reject_unknown_keys(
            entry, {"key", "branch_prefix", "allowed_paths", "excluded_paths"}, item_path, issues
        )
        _require_keys(entry, {"key", "branch_prefix", "allowed_paths"}, item_path, issues)

        key = _as_str(entry["key"], _join(item_path, "key"), issues) if "key" in entry else None
        prefix = (
            _as_branch_text(entry["branch_prefix"], _join(item_path, "branch_prefix"), issues)
            if "branch_prefix" in entry
            else None
        )
        allowed_paths = (
            _as_path_list(
                entry["allowed_paths"],
                _join(item_path, "allowed_paths"),
                issues,
                require_non_empty=True,
            )
            if "allowed_paths" in entry
            else None
        )
        excluded_paths = _as_path_list(
            entry.get("excluded_paths", []),
            _join(item_path, "excluded_paths"),
            issues,
            require_non_empty=False,
        )

        if key is not None:
            if key in seen_keys:
                issues.add(_join(item_path, "key"), f"duplicate contributor key {key!r}")
            seen_keys.add(key)
        if prefix is not None:
            if prefix in seen_prefixes:
                issues.add(
                    _join(item_path, "branch_prefix"), f"duplicate branch prefix {prefix!r}"
                )
            seen_prefixes.add(prefix)
            if f"{OVERRIDE_BRANCH_PREFIX}/".startswith(prefix) or prefix.startswith(
                f"{OVERRIDE_BRANCH_PREFIX}/"
            ):
                issues.add(
                    _join(item_path, "branch_prefix"),
                    f"{prefix!r} overlaps the reserved {OVERRIDE_BRANCH_PREFIX}/ namespace",
                )

        if key is None or prefix is None or allowed_paths is None or excluded_paths is None:
            continue
        out.append(
            {
                "key": key,
                "branch_prefix": prefix,
                "allowed_paths": allowed_paths,
                "excluded_paths": excluded_paths,
            }
        )
    return out


def _validate_risk_patterns(
    items: Sequence[object], path: str, issues: _IssueCollector
) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for index, raw in enumerate(items):
        item_path = f"{path}[{index}]"
        entry = _as_object(raw, item_path, issues)
        if entry is None:
            continue
        _reject_unknown_keys(entry, {"pattern", "tag"}, item_path, issues)
        _require_keys(entry, {"pattern", "tag"}, item_path, issues)
        if "pattern" not in entry or "tag" not in entry:
            continue

        pattern = _as_str(entry["pattern"], _join(item_path, "pattern"), issues)
        tag = _as_str(entry["tag"], _join(item_path, "tag"), issues)
        if pattern is not None:
            try:
                re.compile(pattern)
            except re.error as exc:
                issues.add(_join(item_path, "pattern"), f"invalid regular expression: {exc}")
                pattern = None
        if pattern is not None and tag is not None:
            out.append({"pattern": pattern, "tag": tag})
    return out


def _validate_conflict_rules(
    items: Sequence[object], path: str, issues: _IssueCollector
) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for index, raw in enumerate(items):
        item_path = f"{path}[{index}]"
        entry = _as_object(raw, item_path, issues)
        if entry is None:
            continue
        _reject_unknown_keys(entry, {"pattern", "strategy"}, item_path, issues)
        _require_keys(entry, {"pattern", "strategy"}, item_path, issues)
        if "pattern" not in entry or "strategy" not in entry:
            continue

        pattern = _as_str(entry["pattern"], _join(item_path, "pattern"), issues)
        strategy = _as_enum(
            entry["strategy"],
            _join(item_path, "strategy"),
            issues,
            allowed_values=_CONFLICT_STRATEGIES,
        )
        if pattern is not None and strategy is not None:
            out.append({"pattern": pattern, "strategy": strategy})
    return out


def _validate_automation(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {
        "auto_approve",
        "auto_push",
        "auto_delete_merged_branch",
        "override_on_validation_failure",
    }
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    for key in sorted(allowed):
        if key in payload:
            parsed = _as_bool(payload[key], _join(path, key), issues)
            if parsed is not None:
                out[key] = parsed
    return out


def _validate_validation(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    commands = ("build_command", "test_command", "lint_command")
    timeouts = ("build_timeout_seconds", "test_timeout_seconds", "lint_timeout_seconds")
    allowed = {*commands, *timeouts, "scan_extensions"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    for key in commands:
        if key in payload:
            parsed_command = _as_command(payload[key], _join(path, key), issues)
            if parsed_command is not None:
                out[key] = parsed_command
    for key in timeouts:
        if key in payload:
            parsed_timeout = _as_float(
                payload[key], _join(path, key), issues, exclusive_minimum=0.0
            )
            if parsed_timeout is not None:
                out[key] = parsed_timeout

    if "scan_extensions" in payload:
        raw_extensions = _as_list(
            payload["scan_extensions"], _join(path, "scan_extensions"), issues
        )
        if raw_extensions is not None:
            extensions: list[str] = []
            for index, item in enumerate(raw_extensions):
                item_path = f"{_join(path, 'scan_extensions')}[{index}]"
                parsed_extension = _as_str(item, item_path, issues)
                if parsed_extension is None:
                    continue
                if not parsed_extension.startswith("."):
                    issues.add(item_path, "must start with '.'")
                    continue
                if parsed_extension not in extensions:
                    extensions.append(parsed_extension)
            out["scan_extensions"] = extensions
    return out


def _validate_monitor(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"interval", "stale_threshold_hours"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "interval" in payload:
        interval = _as_str(payload["interval"], _join(path, "interval"), issues)
        if interval is not None:
            try:
                parse_interval(interval)
            except ValueError as exc:
                issues.add(_join(path, "interval"), str(exc))
            else:
                out["interval"] = interval
    if "stale_threshold_hours" in payload:
        threshold = _as_float(
            payload["stale_threshold_hours"],
            _join(path, "stale_threshold_hours"),
            issues,
            exclusive_minimum=0.0,
        )
        if threshold is not None:
            out["stale_threshold_hours"] = threshold
    return out


def _validate_paths(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"state_dir", "log_dir"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    for key in sorted(allowed):
        if key in payload:
            parsed = _as_path_text(payload[key], _join(path, key), issues)
            if parsed is not None:
                out[key] = parsed
    return out


def _validate_observability(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"log_level", "log_to_stdout"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "log_level" in payload:
        raw_level = payload["log_level"]
        level = raw_level.strip().upper() if isinstance(raw_level, str) else raw_level
        parsed_level = _as_enum(
            level, _join(path, "log_level"), issues, allowed_values=_LOG_LEVELS
        )
        if parsed_level is not None:
            out["log_level"] = parsed_level
    if "log_to_stdout" in payload:
        parsed_stdout = _as_bool(payload["log_to_stdout"], _join(path, "log_to_stdout"), issues)
        if parsed_stdout is not None:
            out["log_to_stdout"] = parsed_stdout
    return out


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_list(value: object, path: str, issues: _IssueCollector) -> list[object] | None:
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        issues.add(path, f"expected array, got {type(value).__name__}")
        return None
    return list(value)


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_path_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if "\x00" in parsed:
        issues.add(path, "must not contain NUL bytes")
        return None
    return parsed


def _as_branch_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if ".." in parsed or parsed.startswith("-") or not _BRANCH_TEXT_PATTERN.fullmatch(parsed):
        issues.add(path, f"invalid branch name {parsed!r}")
        return None
    return parsed


def _as_path_list(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    require_non_empty: bool,
) -> list[str] | None:
    items = _as_list(value, path, issues)
    if items is None:
        return None
    if require_non_empty and not items:
        issues.add(path, "must list at least one path prefix")
        return None

    out: list[str] = []
    valid = True
    for index, item in enumerate(items):
        parsed = _as_path_text(item, f"{path}[{index}]", issues)
        if parsed is None:
            valid = False
            continue
        if parsed.startswith("/"):
            issues.add(f"{path}[{index}]", "must be a repository-relative prefix")
            valid = False
            continue
        if parsed not in out:
            out.append(parsed)
    return out if valid else None


def _as_command(value: object, path: str, issues: _IssueCollector) -> list[str] | None:
    if isinstance(value, str):
        try:
            return shlex.split(value)
        except ValueError as exc:
            issues.add(path, f"invalid command line: {exc}")
            return None
    items = _as_list(value, path, issues)
    if items is None:
        return None
    out: list[str] = []
    for index, item in enumerate(items):
        parsed = _as_str(item, f"{path}[{index}]", issues)
        if parsed is None:
            return None
        out.append(parsed)
    return out


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: int | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return value


def _as_float(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    exclusive_minimum: float | None = None,
) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed):
        issues.add(path, "must be finite")
        return None
    if exclusive_minimum is not None and parsed <= exclusive_minimum:
        issues.add(path, f"must be > {exclusive_minimum}")
        return None
    return parsed


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key not in allowed:
            issues.add(_join(path, key), "unknown field")


def _require_keys(
    payload: Mapping[str, object],
    required: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(required):
        if key not in payload:
            issues.add(_join(path, key), "missing required field")


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _overlay(target: dict[str, Any], layer: Mapping[str, object]) -> None:
    # tables merge key by key; arrays and scalars from the layer win outright
    for key, value in layer.items():
        current = target.get(key)
        if isinstance(value, Mapping) and isinstance(current, dict):
            _overlay(current, value)
        else:
            target[key] = _detached(value)


def _detached(value: object) -> Any:
    if isinstance(value, Mapping):
        return {key: _detached(item) for key, item in value.items() if isinstance(key, str)}
    if isinstance(value, (list, tuple)):
        return [_detached(item) for item in value]
    return copy.deepcopy(value)


__all__ = [
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "GatekeeperConfig",
    "INTERVAL_PATTERN",
    "PATH_FIELDS",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "migration_guidance",
    "parse_interval",
    "validate_config",
]
