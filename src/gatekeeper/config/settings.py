"""Typed, immutable settings built once from the validated config mapping.

Every component receives the pieces of ``GatekeeperSettings`` it needs
explicitly; nothing reads configuration from module-level state.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from gatekeeper.config.schema import assert_valid_config, parse_interval

ConflictStrategy = Literal["ours", "theirs"]


@dataclass(frozen=True, slots=True)
class ContributorProfile:
    """Declared workspace boundary of one contributor."""

    key: str
    branch_prefix: str
    allowed_paths: tuple[str, ...]
    excluded_paths: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.key.strip():
            raise ValueError("contributor key must not be empty")
        if not self.branch_prefix.strip():
            raise ValueError(f"contributor {self.key!r} needs a branch prefix")
        if not self.allowed_paths:
            raise ValueError(f"contributor {self.key!r} must declare allowed_paths")

    def owns(self, branch: str) -> bool:
        return branch.startswith(self.branch_prefix)


@dataclass(frozen=True, slots=True)
class RiskPattern:
    pattern: str
    tag: str
    regex: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "regex", re.compile(self.pattern))

    def matches(self, path: str) -> bool:
        return self.regex.search(path) is not None


@dataclass(frozen=True, slots=True)
class ConflictRule:
    pattern: str
    strategy: ConflictStrategy


@dataclass(frozen=True, slots=True)
class GitSettings:
    main_branch: str = "main"
    integration_branch: str = "integration"
    remote: str = "origin"
    command_timeout_seconds: float = 120.0


@dataclass(frozen=True, slots=True)
class AutomationPolicy:
    auto_approve: bool = False
    auto_push: bool = False
    auto_delete_merged_branch: bool = False
    override_on_validation_failure: bool = False


@dataclass(frozen=True, slots=True)
class ValidationSettings:
    build_command: tuple[str, ...] = ("npm", "run", "build")
    test_command: tuple[str, ...] = ("npm", "test")
    lint_command: tuple[str, ...] = ("npm", "run", "lint")
    build_timeout_seconds: float = 600.0
    test_timeout_seconds: float = 900.0
    lint_timeout_seconds: float = 300.0
    scan_extensions: tuple[str, ...] = (".ts", ".tsx", ".js", ".jsx", ".py")

    @property
    def total_timeout_seconds(self) -> float:
        return self.build_timeout_seconds + self.test_timeout_seconds + self.lint_timeout_seconds


@dataclass(frozen=True, slots=True)
class MonitorSettings:
    interval: str = "1h"
    stale_threshold_hours: float = 24.0

    @property
    def interval_seconds(self) -> float:
        return parse_interval(self.interval)


@dataclass(frozen=True, slots=True)
class GatekeeperSettings:
    """Explicit configuration struct passed to every gatekeeper component."""

    repo_root: Path
    state_dir: Path
    log_dir: Path
    git: GitSettings = field(default_factory=GitSettings)
    contributors: tuple[ContributorProfile, ...] = ()
    risk_patterns: tuple[RiskPattern, ...] = ()
    conflict_rules: tuple[ConflictRule, ...] = ()
    automation: AutomationPolicy = field(default_factory=AutomationPolicy)
    validation: ValidationSettings = field(default_factory=ValidationSettings)
    monitor: MonitorSettings = field(default_factory=MonitorSettings)
    log_level: str = "INFO"
    log_to_stdout: bool = False

    def contributor_for_branch(self, branch: str) -> ContributorProfile | None:
        """Return the contributor whose branch prefix matches, longest prefix first."""

        matches = [profile for profile in self.contributors if profile.owns(branch)]
        if not matches:
            return None
        return max(matches, key=lambda profile: len(profile.branch_prefix))

    def contributor(self, key: str) -> ContributorProfile | None:
        for profile in self.contributors:
            if profile.key == key:
                return profile
        return None

    @classmethod
    def from_config(
        cls, config: Mapping[str, Any], *, repo_root: Path | str
    ) -> GatekeeperSettings:
        validated = assert_valid_config(config)
        git = validated["git"]
        validation = validated["validation"]
        monitor = validated["monitor"]
        root = Path(repo_root).expanduser().resolve()

        return cls(
            repo_root=root,
            state_dir=_resolve(validated["paths"]["state_dir"], root),
            log_dir=_resolve(validated["paths"]["log_dir"], root),
            git=GitSettings(
                main_branch=git["main_branch"],
                integration_branch=git["integration_branch"],
                remote=git["remote"],
                command_timeout_seconds=git["command_timeout_seconds"],
            ),
            contributors=tuple(
                ContributorProfile(
                    key=item["key"],
                    branch_prefix=item["branch_prefix"],
                    allowed_paths=tuple(item["allowed_paths"]),
                    excluded_paths=tuple(item.get("excluded_paths", ())),
                )
                for item in validated["contributors"]
            ),
            risk_patterns=tuple(
                RiskPattern(pattern=item["pattern"], tag=item["tag"])
                for item in validated["risk_patterns"]
            ),
            conflict_rules=tuple(
                ConflictRule(pattern=item["pattern"], strategy=item["strategy"])
                for item in validated["conflict_rules"]
            ),
            automation=AutomationPolicy(**validated["automation"]),
            validation=ValidationSettings(
                build_command=tuple(validation["build_command"]),
                test_command=tuple(validation["test_command"]),
                lint_command=tuple(validation["lint_command"]),
                build_timeout_seconds=validation["build_timeout_seconds"],
                test_timeout_seconds=validation["test_timeout_seconds"],
                lint_timeout_seconds=validation["lint_timeout_seconds"],
                scan_extensions=tuple(validation["scan_extensions"]),
            ),
            monitor=MonitorSettings(
                interval=monitor["interval"],
                stale_threshold_hours=monitor["stale_threshold_hours"],
            ),
            log_level=validated["observability"]["log_level"],
            log_to_stdout=validated["observability"]["log_to_stdout"],
        )


def _resolve(raw: str, root: Path) -> Path:
    candidate = Path(raw).expanduser()
    if not candidate.is_absolute():
        candidate = root / candidate
    return candidate


__all__ = [
    "AutomationPolicy",
    "ConflictRule",
    "ConflictStrategy",
    "ContributorProfile",
    "GatekeeperSettings",
    "GitSettings",
    "MonitorSettings",
    "RiskPattern",
    "ValidationSettings",
]
