"""Dataclass domain models with strict validation and canonical serialization."""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, StrEnum
from typing import NoReturn, TypeVar

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

TEnum = TypeVar("TEnum", bound=Enum)

_MAX_TEXT = 8192


class RiskLevel(StrEnum):
    LOW = "low"
    HIGH = "high"


class IntegrationState(StrEnum):
    PENDING_REVIEW = "pending_review"
    REVIEWED = "reviewed"
    MERGING = "merging"
    CONFLICT_RESOLUTION = "conflict_resolution"
    VALIDATING = "validating"
    DECIDING_PUSH = "deciding_push"
    INTEGRATED = "integrated"
    FAILED_ROLLED_BACK = "failed_rolled_back"

    @property
    def is_terminal(self) -> bool:
        return self in {IntegrationState.INTEGRATED, IntegrationState.FAILED_ROLLED_BACK}


class ErrorKind(StrEnum):
    """Why an attempt did not reach a clean ``INTEGRATED`` + pushed outcome."""

    NONE = "none"
    REVIEW_MISSING = "review_missing"
    REVIEW_STALE = "review_stale"
    UNRESOLVED_CONFLICT = "unresolved_conflict"
    VALIDATION_FAILED = "validation_failed"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    VCS_ERROR = "vcs_error"
    PUSH_FAILED = "push_failed"
    INTERNAL = "internal"


class DomainValidationError(ValueError):
    """Raised when a persisted or constructed model violates its contract."""


@dataclass(frozen=True, slots=True)
class BranchReview:
    """Risk Analyzer verdict for one branch at one head commit."""

    branch: str
    changed_files: tuple[str, ...]
    risk_level: RiskLevel
    issues: tuple[str, ...] = ()
    conflicts_detected: bool = False
    conflict_files: tuple[str, ...] = ()
    reviewed_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    head_commit: str | None = None
    contributor: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "branch", _as_str(self.branch, "BranchReview.branch"))
        object.__setattr__(
            self, "changed_files", _as_str_tuple(self.changed_files, "BranchReview.changed_files")
        )
        object.__setattr__(
            self, "risk_level", _as_enum(RiskLevel, self.risk_level, "BranchReview.risk_level")
        )
        object.__setattr__(self, "issues", _as_str_tuple(self.issues, "BranchReview.issues"))
        object.__setattr__(
            self,
            "conflict_files",
            _as_str_tuple(self.conflict_files, "BranchReview.conflict_files"),
        )
        object.__setattr__(
            self, "reviewed_at", _as_datetime(self.reviewed_at, "BranchReview.reviewed_at")
        )

    @property
    def auto_approvable(self) -> bool:
        """Low risk, conflict-free and without any issue, boundary violations included."""

        return self.risk_level is RiskLevel.LOW and not self.conflicts_detected and not self.issues

    @property
    def boundary_violations(self) -> tuple[str, ...]:
        return tuple(issue for issue in self.issues if issue.startswith("Boundary violation:"))

    def verdict(self) -> tuple[object, ...]:
        """Everything except ``reviewed_at``; equal verdicts mean an equivalent review."""

        return (
            self.branch,
            self.changed_files,
            self.risk_level,
            self.issues,
            self.conflicts_detected,
            self.conflict_files,
            self.head_commit,
            self.contributor,
        )

    def is_equivalent(self, other: BranchReview) -> bool:
        return self.verdict() == other.verdict()

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "branch": self.branch,
            "changed_files": list(self.changed_files),
            "risk_level": self.risk_level.value,
            "issues": list(self.issues),
            "conflicts_detected": self.conflicts_detected,
            "conflict_files": list(self.conflict_files),
            "reviewed_at": _datetime_to_iso8601z(self.reviewed_at),
            "head_commit": self.head_commit,
            "contributor": self.contributor,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> BranchReview:
        parsed = _expect_object(
            data,
            "BranchReview",
            required={"branch", "changed_files", "risk_level", "issues", "reviewed_at"},
            optional={"conflicts_detected", "conflict_files", "head_commit", "contributor"},
        )
        return cls(
            branch=_as_str(parsed["branch"], "BranchReview.branch"),
            changed_files=_as_str_tuple(parsed["changed_files"], "BranchReview.changed_files"),
            risk_level=_as_enum(RiskLevel, parsed["risk_level"], "BranchReview.risk_level"),
            issues=_as_str_tuple(parsed["issues"], "BranchReview.issues"),
            conflicts_detected=_as_bool(
                parsed.get("conflicts_detected", False), "BranchReview.conflicts_detected"
            ),
            conflict_files=_as_str_tuple(
                parsed.get("conflict_files", []), "BranchReview.conflict_files"
            ),
            reviewed_at=_as_datetime(parsed["reviewed_at"], "BranchReview.reviewed_at"),
            head_commit=_as_optional_str(parsed.get("head_commit"), "BranchReview.head_commit"),
            contributor=_as_optional_str(parsed.get("contributor"), "BranchReview.contributor"),
        )


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Validation Gate verdict. Only ``errors`` are fatal; ``warnings`` are advisory."""

    passed: bool
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    timed_out: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "errors", _as_str_tuple(self.errors, "ValidationResult.errors"))
        object.__setattr__(
            self, "warnings", _as_str_tuple(self.warnings, "ValidationResult.warnings")
        )
        if self.passed and self.errors:
            _fail("ValidationResult.passed", "cannot be true while errors are present")

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "passed": self.passed,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "timed_out": self.timed_out,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> ValidationResult:
        parsed = _expect_object(
            data,
            "ValidationResult",
            required={"passed", "errors", "warnings"},
            optional={"timed_out"},
        )
        return cls(
            passed=_as_bool(parsed["passed"], "ValidationResult.passed"),
            errors=_as_str_tuple(parsed["errors"], "ValidationResult.errors"),
            warnings=_as_str_tuple(parsed["warnings"], "ValidationResult.warnings"),
            timed_out=_as_bool(parsed.get("timed_out", False), "ValidationResult.timed_out"),
        )


@dataclass(frozen=True, slots=True)
class IntegrationRecord:
    """Audit entry written once per integration attempt, successful or not.

    ``validation`` is ``None`` when the attempt ended before the gate ran.
    """

    integration_id: str
    branch: str
    integrated_at: datetime
    state: IntegrationState
    validation: ValidationResult | None = None
    files_changed: int = 0
    pushed_to_main: bool = False
    error_kind: ErrorKind = ErrorKind.NONE
    resolved_conflicts: tuple[str, ...] = ()
    overridden: bool = False
    notes: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "integration_id", _as_str(self.integration_id, "IntegrationRecord.integration_id")
        )
        object.__setattr__(self, "branch", _as_str(self.branch, "IntegrationRecord.branch"))
        object.__setattr__(
            self,
            "integrated_at",
            _as_datetime(self.integrated_at, "IntegrationRecord.integrated_at"),
        )
        state = _as_enum(IntegrationState, self.state, "IntegrationRecord.state")
        if not state.is_terminal:
            _fail("IntegrationRecord.state", f"must be terminal, got {state.value!r}")
        object.__setattr__(self, "state", state)
        object.__setattr__(
            self, "error_kind", _as_enum(ErrorKind, self.error_kind, "IntegrationRecord.error_kind")
        )
        if self.files_changed < 0:
            _fail("IntegrationRecord.files_changed", "must be >= 0")
        if self.pushed_to_main and state is not IntegrationState.INTEGRATED:
            _fail("IntegrationRecord.pushed_to_main", "only integrated attempts can be pushed")
        object.__setattr__(
            self,
            "resolved_conflicts",
            _as_str_tuple(self.resolved_conflicts, "IntegrationRecord.resolved_conflicts"),
        )
        object.__setattr__(self, "notes", _as_str_tuple(self.notes, "IntegrationRecord.notes"))

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "integration_id": self.integration_id,
            "branch": self.branch,
            "integrated_at": _datetime_to_iso8601z(self.integrated_at),
            "state": self.state.value,
            "validation": self.validation.to_dict() if self.validation is not None else None,
            "files_changed": self.files_changed,
            "pushed_to_main": self.pushed_to_main,
            "error_kind": self.error_kind.value,
            "resolved_conflicts": list(self.resolved_conflicts),
            "overridden": self.overridden,
            "notes": list(self.notes),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> IntegrationRecord:
        parsed = _expect_object(
            data,
            "IntegrationRecord",
            required={"integration_id", "branch", "integrated_at", "state"},
            optional={
                "validation",
                "files_changed",
                "pushed_to_main",
                "error_kind",
                "resolved_conflicts",
                "overridden",
                "notes",
            },
        )
        raw_validation = parsed.get("validation")
        validation = (
            None
            if raw_validation is None
            else ValidationResult.from_dict(_expect_mapping(raw_validation, "validation"))
        )
        return cls(
            integration_id=_as_str(parsed["integration_id"], "IntegrationRecord.integration_id"),
            branch=_as_str(parsed["branch"], "IntegrationRecord.branch"),
            integrated_at=_as_datetime(parsed["integrated_at"], "IntegrationRecord.integrated_at"),
            state=_as_enum(IntegrationState, parsed["state"], "IntegrationRecord.state"),
            validation=validation,
            files_changed=_as_int(
                parsed.get("files_changed", 0), "IntegrationRecord.files_changed", minimum=0
            ),
            pushed_to_main=_as_bool(
                parsed.get("pushed_to_main", False), "IntegrationRecord.pushed_to_main"
            ),
            error_kind=_as_enum(
                ErrorKind, parsed.get("error_kind", ErrorKind.NONE.value), "error_kind"
            ),
            resolved_conflicts=_as_str_tuple(
                parsed.get("resolved_conflicts", []), "IntegrationRecord.resolved_conflicts"
            ),
            overridden=_as_bool(parsed.get("overridden", False), "IntegrationRecord.overridden"),
            notes=_as_str_tuple(parsed.get("notes", []), "IntegrationRecord.notes"),
        )


@dataclass(frozen=True, slots=True)
class OverrideRecord:
    """Operator-opened unrestricted workspace, kept for audit."""

    override_id: str
    task_id: str
    branch: str
    base_commit: str
    opened_at: datetime
    reason: str = "emergency fix"

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "override_id": self.override_id,
            "task_id": self.task_id,
            "branch": self.branch,
            "base_commit": self.base_commit,
            "opened_at": _datetime_to_iso8601z(self.opened_at),
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> OverrideRecord:
        parsed = _expect_object(
            data,
            "OverrideRecord",
            required={"override_id", "task_id", "branch", "base_commit", "opened_at"},
            optional={"reason"},
        )
        return cls(
            override_id=_as_str(parsed["override_id"], "OverrideRecord.override_id"),
            task_id=_as_str(parsed["task_id"], "OverrideRecord.task_id"),
            branch=_as_str(parsed["branch"], "OverrideRecord.branch"),
            base_commit=_as_str(parsed["base_commit"], "OverrideRecord.base_commit"),
            opened_at=_as_datetime(parsed["opened_at"], "OverrideRecord.opened_at"),
            reason=_as_str(parsed.get("reason", "emergency fix"), "OverrideRecord.reason"),
        )


@dataclass(frozen=True, slots=True)
class StateTransition:
    """One state change of an integration attempt, published on the event bus."""

    integration_id: str
    branch: str
    previous: IntegrationState | None
    current: IntegrationState
    at: datetime
    detail: str = ""

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "integration_id": self.integration_id,
            "branch": self.branch,
            "previous": self.previous.value if self.previous is not None else None,
            "current": self.current.value,
            "at": _datetime_to_iso8601z(self.at),
            "detail": self.detail,
        }


@dataclass(frozen=True, slots=True)
class IntegrationOutcome:
    """Explicit result of ``integrate``: callers branch on ``error_kind``."""

    state: IntegrationState
    record: IntegrationRecord
    error_kind: ErrorKind = ErrorKind.NONE
    detail: str = ""
    transitions: tuple[StateTransition, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.state is IntegrationState.INTEGRATED

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "state": self.state.value,
            "error_kind": self.error_kind.value,
            "detail": self.detail,
            "record": self.record.to_dict(),
            "transitions": [item.to_dict() for item in self.transitions],
        }


def canonical_json(payload: JSONValue) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _fail(path: str, message: str) -> NoReturn:
    raise DomainValidationError(f"{path}: {message}")


def _expect_mapping(value: object, path: str) -> Mapping[str, object]:
    if not isinstance(value, Mapping):
        _fail(path, f"expected object, got {type(value).__name__}")
    return value


def _expect_object(
    value: object,
    path: str,
    *,
    required: set[str],
    optional: set[str] | None = None,
) -> dict[str, object]:
    if not isinstance(value, Mapping):
        _fail(path, f"expected object, got {type(value).__name__}")

    parsed: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            _fail(path, f"object keys must be strings, got {type(key).__name__}")
        parsed[key] = item

    allowed = required | (optional or set())
    unknown = sorted(key for key in parsed if key not in allowed)
    if unknown:
        _fail(path, f"unexpected fields: {unknown}")

    missing = sorted(key for key in required if key not in parsed)
    if missing:
        _fail(path, f"missing required fields: {missing}")

    return parsed


def _as_str(value: object, path: str, *, max_len: int = _MAX_TEXT) -> str:
    if not isinstance(value, str):
        _fail(path, f"expected string, got {type(value).__name__}")
    normalized = value.strip()
    if not normalized:
        _fail(path, "must not be empty")
    if len(normalized) > max_len:
        _fail(path, f"must be <= {max_len} characters")
    return normalized


def _as_optional_str(value: object, path: str) -> str | None:
    if value is None:
        return None
    return _as_str(value, path)


def _as_bool(value: object, path: str) -> bool:
    if isinstance(value, bool):
        return value
    _fail(path, f"expected boolean, got {type(value).__name__}")


def _as_int(value: object, path: str, *, minimum: int | None = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        _fail(path, f"expected integer, got {type(value).__name__}")
    if minimum is not None and value < minimum:
        _fail(path, f"must be >= {minimum}")
    return value


def _as_str_tuple(value: object, path: str) -> tuple[str, ...]:
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        _fail(path, f"expected array, got {type(value).__name__}")
    return tuple(_as_str(item, f"{path}[{index}]") for index, item in enumerate(value))


def _as_datetime(value: object, path: str) -> datetime:
    parsed: datetime
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            _fail(path, f"invalid ISO-8601 datetime: {value!r} ({exc})")
    else:
        _fail(path, f"expected datetime or ISO-8601 string, got {type(value).__name__}")

    if parsed.tzinfo is None or parsed.utcoffset() is None:
        _fail(path, "datetime must be timezone-aware UTC")
    return parsed.astimezone(UTC)


def _datetime_to_iso8601z(value: datetime) -> str:
    normalized = _as_datetime(value, "datetime")
    return normalized.isoformat(timespec="microseconds").replace("+00:00", "Z")


def _as_enum(enum_type: type[TEnum], value: object, path: str) -> TEnum:
    if isinstance(value, enum_type):
        return value
    if not isinstance(value, str):
        _fail(path, f"expected string enum value, got {type(value).__name__}")
    try:
        return enum_type(value)
    except ValueError:
        allowed = ", ".join(sorted(str(item.value) for item in enum_type))
        _fail(path, f"invalid value {value!r}; expected one of: {allowed}")


__all__ = [
    "BranchReview",
    "DomainValidationError",
    "ErrorKind",
    "IntegrationOutcome",
    "IntegrationRecord",
    "IntegrationState",
    "JSONValue",
    "OverrideRecord",
    "RiskLevel",
    "StateTransition",
    "ValidationResult",
    "canonical_json",
]
