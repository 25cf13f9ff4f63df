"""Risk classification of contributor branches.

The analyzer combines three signals into one ``BranchReview``:

- sensitive-path patterns matched against every changed file,
- a non-destructive merge probe against the integration branch,
- boundary violations for the contributor owning the branch prefix.

Any signal marks the branch ``high`` risk. Given the same changed files, merge
probe outcome and configuration, the verdict is identical on every run.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog

from gatekeeper.domain.models import BranchReview, RiskLevel
from gatekeeper.integration_plane.boundary import boundary_issue, find_violations

if TYPE_CHECKING:
    from gatekeeper.config.settings import GatekeeperSettings, RiskPattern
    from gatekeeper.integration_plane.git_engine import GitEngine

Clock = Callable[[], datetime]


def classify_changes(
    changed_files: Sequence[str],
    risk_patterns: Sequence[RiskPattern],
) -> tuple[RiskLevel, tuple[str, ...]]:
    """Return the pattern-driven risk level and ``"<tag>: <path>"`` issues.

    A file may trigger several tags; each (tag, path) pair is reported once.
    """

    issues: list[str] = []
    seen: set[tuple[str, str]] = set()
    for path in changed_files:
        for risk_pattern in risk_patterns:
            if not risk_pattern.matches(path):
                continue
            key = (risk_pattern.tag, path)
            if key in seen:
                continue
            seen.add(key)
            issues.append(f"{risk_pattern.tag}: {path}")
    level = RiskLevel.HIGH if issues else RiskLevel.LOW
    return level, tuple(issues)


class RiskAnalyzer:
    """Produce ``BranchReview`` verdicts for branches relative to the integration branch."""

    def __init__(
        self,
        *,
        git: GitEngine,
        settings: GatekeeperSettings,
        clock: Clock | None = None,
        logger: Any | None = None,
    ) -> None:
        self._git = git
        self._settings = settings
        self._clock = clock if clock is not None else _utc_now
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def review(self, branch: str) -> BranchReview:
        source_ref = self._git.resolve_ref(branch)
        target_ref = f"refs/heads/{self._settings.git.integration_branch}"
        head_commit = self._git.rev_parse(source_ref)
        changed_files = self._git.changed_files(target_ref, source_ref)
        probe = self._git.probe_merge(target_ref, source_ref)

        return self.assess(
            branch,
            changed_files,
            conflict_files=probe.conflicts,
            conflicts_detected=not probe.clean,
            head_commit=head_commit,
        )

    def assess(
        self,
        branch: str,
        changed_files: Sequence[str],
        *,
        conflict_files: Sequence[str] = (),
        conflicts_detected: bool = False,
        head_commit: str | None = None,
    ) -> BranchReview:
        """Build a review from already-collected facts. Performs no git calls."""

        ordered_files = tuple(sorted(set(changed_files)))
        risk_level, pattern_issues = classify_changes(ordered_files, self._settings.risk_patterns)
        issues = list(pattern_issues)

        profile = self._settings.contributor_for_branch(branch)
        if profile is not None:
            violations = find_violations(profile, ordered_files)
            issues.extend(boundary_issue(path, profile.key) for path in violations)
            if violations:
                risk_level = RiskLevel.HIGH

        if conflicts_detected:
            risk_level = RiskLevel.HIGH

        review = BranchReview(
            branch=branch,
            changed_files=ordered_files,
            risk_level=risk_level,
            issues=tuple(issues),
            conflicts_detected=conflicts_detected,
            conflict_files=tuple(sorted(set(conflict_files))),
            reviewed_at=self._clock(),
            head_commit=head_commit,
            contributor=profile.key if profile is not None else None,
        )
        self._logger.info(
            "branch_reviewed",
            branch=branch,
            contributor=review.contributor,
            risk_level=review.risk_level.value,
            issue_count=len(review.issues),
            conflicts_detected=review.conflicts_detected,
            files_changed=len(review.changed_files),
        )
        return review


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


__all__ = ["Clock", "RiskAnalyzer", "classify_changes"]
