"""
gatekeeper — deterministic conflict resolution policy.

File: src/gatekeeper/integration_plane/conflict_resolution.py

Purpose
- Resolve files left conflicted by a ``--no-ff`` merge using a per-file rule table.
- Finalize a fully resolved merge with a synthetic commit naming the source branch.

Functional requirements
- Rules are glob patterns matched against the full path and its basename; the
  first matching rule wins.
- ``ours`` keeps the integration branch version, ``theirs`` takes the incoming one.
- Files with no matching rule, or whose side cannot be checked out, stay
  unresolved and are reported back. The caller must treat them as a failed attempt.

Non-functional requirements
- Deterministic ordering of resolved/unresolved paths.
- Internal audit log of every decision.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum
from fnmatch import fnmatchcase
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Any

import structlog

from gatekeeper.constants import RESOLUTION_MESSAGE_PREFIX
from gatekeeper.integration_plane.git_engine import GitCommandError

if TYPE_CHECKING:
    from gatekeeper.config.settings import ConflictRule, ConflictStrategy
    from gatekeeper.integration_plane.git_engine import GitEngine


class ResolutionStatus(StrEnum):
    RESOLVED = "resolved"
    UNRESOLVED = "unresolved"


@dataclass(frozen=True, slots=True)
class ResolvedFile:
    path: str
    strategy: ConflictStrategy


@dataclass(frozen=True, slots=True)
class ConflictResolutionResult:
    """Outcome of one resolution pass over the conflicted files of a merge."""

    status: ResolutionStatus
    resolved: tuple[ResolvedFile, ...]
    unresolved: tuple[str, ...]
    commit: str | None = None

    @property
    def resolved_paths(self) -> tuple[str, ...]:
        return tuple(item.path for item in self.resolved)


@dataclass(frozen=True, slots=True)
class ConflictAuditEntry:
    path: str
    rule: str | None
    strategy: str | None
    outcome: str


def select_strategy(path: str, rules: Sequence[ConflictRule]) -> ConflictRule | None:
    """Return the first rule whose pattern matches ``path`` or its basename."""

    normalized = PurePosixPath(path).as_posix()
    basename = PurePosixPath(normalized).name
    for rule in rules:
        if fnmatchcase(normalized, rule.pattern) or fnmatchcase(basename, rule.pattern):
            return rule
    return None


class ConflictResolver:
    """Apply the configured rule table to a merge in progress."""

    def __init__(
        self,
        *,
        git: GitEngine,
        rules: Sequence[ConflictRule],
        logger: Any | None = None,
    ) -> None:
        self._git = git
        self._rules = tuple(rules)
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._audit: list[ConflictAuditEntry] = []

    @property
    def audit_log(self) -> tuple[ConflictAuditEntry, ...]:
        return tuple(self._audit)

    def resolve(
        self,
        worktree: Path,
        conflicts: Sequence[str],
        *,
        branch: str,
        integration_id: str,
    ) -> ConflictResolutionResult:
        resolved: list[ResolvedFile] = []
        unresolved: list[str] = []

        for path in sorted(set(conflicts)):
            rule = select_strategy(path, self._rules)
            if rule is None:
                unresolved.append(path)
                self._record(path, None, "no_rule")
                continue
            try:
                self._git.checkout_side(worktree, path, rule.strategy)
                self._git.stage(worktree, [path])
            except GitCommandError as exc:
                unresolved.append(path)
                self._record(path, rule, "checkout_failed")
                self._logger.warning(
                    "conflict_checkout_failed",
                    path=path,
                    strategy=rule.strategy,
                    error=str(exc),
                )
                continue
            resolved.append(ResolvedFile(path=path, strategy=rule.strategy))
            self._record(path, rule, "resolved")

        if unresolved:
            self._logger.warning(
                "conflicts_unresolved",
                branch=branch,
                unresolved=unresolved,
                resolved=[item.path for item in resolved],
            )
            return ConflictResolutionResult(
                status=ResolutionStatus.UNRESOLVED,
                resolved=tuple(resolved),
                unresolved=tuple(unresolved),
            )

        commit = self._git.commit_merge(
            worktree, f"{RESOLUTION_MESSAGE_PREFIX} {branch} [{integration_id}]"
        )
        self._logger.info(
            "conflicts_resolved",
            branch=branch,
            commit=commit,
            resolved=[f"{item.path}={item.strategy}" for item in resolved],
        )
        return ConflictResolutionResult(
            status=ResolutionStatus.RESOLVED,
            resolved=tuple(resolved),
            unresolved=(),
            commit=commit,
        )

    def _record(self, path: str, rule: ConflictRule | None, outcome: str) -> None:
        self._audit.append(
            ConflictAuditEntry(
                path=path,
                rule=rule.pattern if rule is not None else None,
                strategy=rule.strategy if rule is not None else None,
                outcome=outcome,
            )
        )


__all__ = [
    "ConflictAuditEntry",
    "ConflictResolutionResult",
    "ConflictResolver",
    "ResolutionStatus",
    "ResolvedFile",
    "select_strategy",
]
