"""
gatekeeper — integration plane

Purpose
- Review contributor branches, merge them into the shared integration branch,
  and promote validated changes to main with rollback on failure.
"""

from gatekeeper.integration_plane.boundary import (
    BoundaryReport,
    check_paths,
    find_violations,
    is_path_allowed,
)
from gatekeeper.integration_plane.conflict_resolution import (
    ConflictResolutionResult,
    ConflictResolver,
    ResolutionStatus,
    select_strategy,
)
from gatekeeper.integration_plane.git_engine import (
    GitCommandError,
    GitEngine,
    GitEngineError,
    GitTimeoutError,
    MergeAttempt,
    MergeProbe,
)
from gatekeeper.integration_plane.ledger import (
    IntegrationHistory,
    LedgerError,
    OverrideLedger,
    ReviewLedger,
)
from gatekeeper.integration_plane.orchestrator import (
    IntegrationLockError,
    IntegrationOrchestrator,
    MonitorCycle,
    ReviewCycle,
    StatusReport,
    UnknownContributorError,
)
from gatekeeper.integration_plane.risk_analyzer import RiskAnalyzer, classify_changes

__all__ = [
    "BoundaryReport",
    "ConflictResolutionResult",
    "ConflictResolver",
    "GitCommandError",
    "GitEngine",
    "GitEngineError",
    "GitTimeoutError",
    "IntegrationHistory",
    "IntegrationLockError",
    "IntegrationOrchestrator",
    "LedgerError",
    "MergeAttempt",
    "MergeProbe",
    "MonitorCycle",
    "OverrideLedger",
    "ResolutionStatus",
    "ReviewCycle",
    "ReviewLedger",
    "RiskAnalyzer",
    "StatusReport",
    "UnknownContributorError",
    "check_paths",
    "classify_changes",
    "find_violations",
    "is_path_allowed",
    "select_strategy",
]
