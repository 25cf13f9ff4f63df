"""Conflict rule table: first match wins, basenames match, no rule means unresolved."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from gatekeeper.config.settings import ConflictRule
from gatekeeper.integration_plane.conflict_resolution import (
    ConflictResolver,
    ResolutionStatus,
    select_strategy,
)

if TYPE_CHECKING:
    from conftest import GitSandbox

RULES = (
    ConflictRule(pattern="package-lock.json", strategy="ours"),
    ConflictRule(pattern="docs/*", strategy="ours"),
    ConflictRule(pattern="*.ts", strategy="theirs"),
)


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("package-lock.json", "ours"),
        ("web/package-lock.json", "ours"),
        ("docs/guide.md", "ours"),
        ("src/app.ts", "theirs"),
        ("README.md", None),
    ],
)
def test_select_strategy(path: str, expected: str | None) -> None:
    rule = select_strategy(path, RULES)
    assert (rule.strategy if rule is not None else None) == expected


def test_first_matching_rule_wins() -> None:
    rules = (
        ConflictRule(pattern="*.json", strategy="theirs"),
        ConflictRule(pattern="package-lock.json", strategy="ours"),
    )
    rule = select_strategy("package-lock.json", rules)
    assert rule is not None
    assert rule.strategy == "theirs"


def _conflicting_merge(sandbox: GitSandbox) -> None:
    sandbox.commit("main", {"package-lock.json": "{}\n", "notes.md": "base\n"})
    sandbox.sync_integration()
    sandbox.commit("integration", {"package-lock.json": '{"v": 1}\n', "notes.md": "ours\n"})
    sandbox.commit("backend/b", {"package-lock.json": '{"v": 2}\n', "notes.md": "theirs\n"})


def test_resolver_leaves_merge_unresolved_when_a_file_has_no_rule(sandbox: GitSandbox) -> None:
    _conflicting_merge(sandbox)
    engine = sandbox.engine
    resolver = ConflictResolver(git=engine, rules=RULES[:1])

    with engine.branch_worktree("integration") as worktree:
        attempt = engine.merge_no_ff(worktree, "refs/heads/backend/b", "merge")
        result = resolver.resolve(
            worktree, attempt.conflicts, branch="backend/b", integration_id="t"
        )
        engine.reset_hard(worktree, attempt.pre_merge_head)

    assert result.status is ResolutionStatus.UNRESOLVED
    assert result.resolved_paths == ("package-lock.json",)
    assert result.unresolved == ("notes.md",)
    assert [entry.outcome for entry in resolver.audit_log] == ["no_rule", "resolved"]


def test_resolver_commits_when_every_file_is_resolved(sandbox: GitSandbox) -> None:
    _conflicting_merge(sandbox)
    engine = sandbox.engine
    rules = (*RULES[:1], ConflictRule(pattern="*", strategy="theirs"))
    resolver = ConflictResolver(git=engine, rules=rules)

    with engine.branch_worktree("integration") as worktree:
        attempt = engine.merge_no_ff(worktree, "refs/heads/backend/b", "merge")
        result = resolver.resolve(
            worktree, attempt.conflicts, branch="backend/b", integration_id="t"
        )

    assert result.status is ResolutionStatus.RESOLVED
    assert result.commit == sandbox.head("integration")
    assert sandbox.git("show", "integration:package-lock.json").stdout == '{"v": 1}\n'
    assert sandbox.git("show", "integration:notes.md").stdout == "theirs\n"
