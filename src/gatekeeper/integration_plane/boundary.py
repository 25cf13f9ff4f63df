"""
gatekeeper — boundary enforcer

File: src/gatekeeper/integration_plane/boundary.py

Purpose
- Decide whether changed paths stay inside a contributor's declared workspace.

Functional requirements
- A path is allowed iff it starts with at least one allowed prefix and with no
  excluded prefix. Exclusion always wins.
- The boundary declaration artifact itself is always allowed.
- Pure functions: callers decide whether to block a commit or record issues.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

from gatekeeper.constants import BOUNDARY_FILE

if TYPE_CHECKING:
    from collections.abc import Iterable

    from gatekeeper.config.settings import ContributorProfile


@dataclass(frozen=True, slots=True)
class BoundaryReport:
    """Result of checking a batch of paths for one contributor."""

    contributor: str
    checked: tuple[str, ...]
    violations: tuple[str, ...]

    @property
    def allowed(self) -> bool:
        return not self.violations

    def issues(self) -> tuple[str, ...]:
        return tuple(boundary_issue(path, self.contributor) for path in self.violations)


def normalize_path(path: str) -> str:
    """Normalize to a POSIX repository-relative form without a leading ``./``."""

    normalized = PurePosixPath(path.replace("\\", "/")).as_posix()
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized


def is_path_allowed(path: str, profile: ContributorProfile) -> bool:
    normalized = normalize_path(path)
    if normalized == BOUNDARY_FILE:
        return True
    if any(normalized.startswith(prefix) for prefix in profile.excluded_paths):
        return False
    return any(normalized.startswith(prefix) for prefix in profile.allowed_paths)


def find_violations(profile: ContributorProfile, paths: Iterable[str]) -> tuple[str, ...]:
    """Return the violating paths in input order, without duplicates."""

    seen: set[str] = set()
    violations: list[str] = []
    for path in paths:
        normalized = normalize_path(path)
        if normalized in seen:
            continue
        seen.add(normalized)
        if not is_path_allowed(normalized, profile):
            violations.append(normalized)
    return tuple(violations)


def check_paths(profile: ContributorProfile, paths: Iterable[str]) -> BoundaryReport:
    checked = tuple(normalize_path(path) for path in paths)
    return BoundaryReport(
        contributor=profile.key,
        checked=checked,
        violations=find_violations(profile, checked),
    )


def boundary_issue(path: str, contributor: str) -> str:
    return f"Boundary violation: {path} outside {contributor} scope"


__all__ = [
    "BoundaryReport",
    "boundary_issue",
    "check_paths",
    "find_violations",
    "is_path_allowed",
    "normalize_path",
]
