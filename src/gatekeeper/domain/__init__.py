"""
gatekeeper — domain types

File: src/gatekeeper/domain/__init__.py

Purpose
- Domain values shared across planes: BranchReview, ValidationResult,
  IntegrationRecord, OverrideRecord, StateTransition and IntegrationOutcome.

Functional requirements
- Domain objects are immutable and serialize to canonical JSON-compatible dicts.
- The domain layer performs no IO.
"""

from gatekeeper.domain.ids import (
    generate_integration_id,
    generate_override_id,
    generate_run_id,
    validate_prefixed_id,
)
from gatekeeper.domain.models import (
    BranchReview,
    DomainValidationError,
    ErrorKind,
    IntegrationOutcome,
    IntegrationRecord,
    IntegrationState,
    OverrideRecord,
    RiskLevel,
    StateTransition,
    ValidationResult,
)

__all__ = [
    "BranchReview",
    "DomainValidationError",
    "ErrorKind",
    "IntegrationOutcome",
    "IntegrationRecord",
    "IntegrationState",
    "OverrideRecord",
    "RiskLevel",
    "StateTransition",
    "ValidationResult",
    "generate_integration_id",
    "generate_override_id",
    "generate_run_id",
    "validate_prefixed_id",
]
