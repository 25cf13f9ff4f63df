"""
gatekeeper — review ledger and integration history

File: src/gatekeeper/integration_plane/ledger.py

Purpose
- Persist branch reviews (keyed by branch), the append-only integration history
  and the override audit trail under the state directory.

Functional requirements
- Every read-modify-write happens under an exclusive file lock and lands through
  an atomic replace, so concurrent gatekeeper processes never lose updates.
- Payloads carry ``schema_version`` and are rendered with sorted keys.
- Malformed files raise ``LedgerError``; they are never silently reset.
- History entries are only ever appended, and ``integrated_at`` never goes
  backwards for one branch.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable, Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Final, TypeVar

from gatekeeper.constants import (
    HISTORY_SCHEMA_VERSION,
    INTEGRATION_HISTORY_FILE,
    LEDGER_SCHEMA_VERSION,
    OVERRIDE_LEDGER_FILE,
    REVIEW_LEDGER_FILE,
)
from gatekeeper.domain.models import (
    BranchReview,
    DomainValidationError,
    IntegrationRecord,
    OverrideRecord,
)
from gatekeeper.utils.fs import atomic_write_json
from gatekeeper.utils.locking import FileLock, LockAcquisitionError

_LOCK_TIMEOUT_SECONDS: Final[float] = 30.0

T = TypeVar("T")


class LedgerError(RuntimeError):
    """A state file is unreadable, malformed or its update was refused."""


class _JsonStateFile:
    """One JSON document guarded by a sidecar ``<name>.lock`` file."""

    def __init__(self, path: Path, *, schema_version: int) -> None:
        self.path = Path(path)
        self.schema_version = schema_version
        self._lock = FileLock(self.path.with_name(f"{self.path.name}.lock"))

    @contextmanager
    def locked(self) -> Iterator[None]:
        try:
            with self._lock.hold(timeout=_LOCK_TIMEOUT_SECONDS):
                yield
        except LockAcquisitionError as exc:
            raise LedgerError(str(exc)) from exc

    def read(self) -> dict[str, object]:
        if not self.path.exists():
            return {"schema_version": self.schema_version}
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise LedgerError(f"{self.path}: unreadable state file: {exc}") from exc
        if not isinstance(payload, dict):
            raise LedgerError(f"{self.path}: payload must be a JSON object")
        version = payload.get("schema_version")
        if version != self.schema_version:
            raise LedgerError(
                f"{self.path}: unsupported schema_version {version!r};"
                f" expected {self.schema_version}"
            )
        return payload

    def write(self, payload: Mapping[str, object]) -> None:
        document = dict(payload)
        document["schema_version"] = self.schema_version
        atomic_write_json(self.path, document)


def _parse(factory: Callable[[Mapping[str, object]], T], item: object, where: str) -> T:
    if not isinstance(item, Mapping):
        raise LedgerError(f"{where}: expected object, got {type(item).__name__}")
    try:
        return factory(item)
    except DomainValidationError as exc:
        raise LedgerError(f"{where}: {exc}") from exc


class ReviewLedger:
    """Most recent ``BranchReview`` per branch (``reviews.json``)."""

    def __init__(self, state_dir: Path) -> None:
        self._file = _JsonStateFile(
            Path(state_dir) / REVIEW_LEDGER_FILE, schema_version=LEDGER_SCHEMA_VERSION
        )

    @property
    def path(self) -> Path:
        return self._file.path

    def _load(self) -> dict[str, BranchReview]:
        raw = self._file.read().get("reviews", {})
        if not isinstance(raw, dict):
            raise LedgerError(f"{self.path}: 'reviews' must be an object")
        reviews: dict[str, BranchReview] = {}
        for branch, item in raw.items():
            review = _parse(BranchReview.from_dict, item, f"{self.path}: reviews.{branch}")
            if review.branch != branch:
                raise LedgerError(f"{self.path}: reviews.{branch} holds branch {review.branch!r}")
            reviews[branch] = review
        return reviews

    def _store(self, reviews: Mapping[str, BranchReview]) -> None:
        self._file.write(
            {"reviews": {branch: reviews[branch].to_dict() for branch in sorted(reviews)}}
        )

    def upsert(self, review: BranchReview) -> bool:
        """Store ``review`` as the branch's current entry.

        Returns ``False`` when an equivalent review (same verdict, same head) was
        already stored; the file is then left untouched.
        """

        with self._file.locked():
            reviews = self._load()
            existing = reviews.get(review.branch)
            if existing is not None and existing.is_equivalent(review):
                return False
            reviews[review.branch] = review
            self._store(reviews)
            return True

    def get(self, branch: str) -> BranchReview | None:
        with self._file.locked():
            return self._load().get(branch)

    def consume(self, branch: str) -> BranchReview | None:
        """Remove and return the entry for ``branch``."""

        with self._file.locked():
            reviews = self._load()
            review = reviews.pop(branch, None)
            if review is not None:
                self._store(reviews)
            return review

    def retain(self, branches: Iterable[str]) -> tuple[str, ...]:
        """Drop every entry whose branch is not in ``branches``; return the dropped names."""

        keep = set(branches)
        with self._file.locked():
            reviews = self._load()
            dropped = tuple(sorted(branch for branch in reviews if branch not in keep))
            if dropped:
                self._store({branch: reviews[branch] for branch in reviews if branch in keep})
            return dropped

    def all(self) -> tuple[BranchReview, ...]:
        with self._file.locked():
            reviews = self._load()
        return tuple(reviews[branch] for branch in sorted(reviews))


class IntegrationHistory:
    """Append-only list of ``IntegrationRecord`` (``integration-history.json``)."""

    def __init__(self, state_dir: Path) -> None:
        self._file = _JsonStateFile(
            Path(state_dir) / INTEGRATION_HISTORY_FILE, schema_version=HISTORY_SCHEMA_VERSION
        )

    @property
    def path(self) -> Path:
        return self._file.path

    def _load(self) -> list[IntegrationRecord]:
        raw = self._file.read().get("integrations", [])
        if not isinstance(raw, list):
            raise LedgerError(f"{self.path}: 'integrations' must be an array")
        return [
            _parse(IntegrationRecord.from_dict, item, f"{self.path}: integrations[{index}]")
            for index, item in enumerate(raw)
        ]

    def append(self, record: IntegrationRecord) -> None:
        with self._file.locked():
            records = self._load()
            if any(item.integration_id == record.integration_id for item in records):
                raise LedgerError(f"integration {record.integration_id} is already recorded")
            previous = _last_for_branch(records, record.branch)
            if previous is not None and record.integrated_at < previous.integrated_at:
                raise LedgerError(
                    f"integrated_at for {record.branch} would go backwards:"
                    f" {record.integrated_at.isoformat()} < {previous.integrated_at.isoformat()}"
                )
            records.append(record)
            self._file.write({"integrations": [item.to_dict() for item in records]})

    def all(self) -> tuple[IntegrationRecord, ...]:
        with self._file.locked():
            return tuple(self._load())

    def last(self, branch: str | None = None) -> IntegrationRecord | None:
        with self._file.locked():
            records = self._load()
        if branch is None:
            return records[-1] if records else None
        return _last_for_branch(records, branch)

    def latest_timestamp(self, branch: str) -> datetime | None:
        record = self.last(branch)
        return record.integrated_at if record is not None else None


class OverrideLedger:
    """Audit trail of opened override workspaces (``overrides.json``)."""

    def __init__(self, state_dir: Path) -> None:
        self._file = _JsonStateFile(
            Path(state_dir) / OVERRIDE_LEDGER_FILE, schema_version=LEDGER_SCHEMA_VERSION
        )

    @property
    def path(self) -> Path:
        return self._file.path

    def _load(self) -> list[OverrideRecord]:
        raw = self._file.read().get("overrides", [])
        if not isinstance(raw, list):
            raise LedgerError(f"{self.path}: 'overrides' must be an array")
        return [
            _parse(OverrideRecord.from_dict, item, f"{self.path}: overrides[{index}]")
            for index, item in enumerate(raw)
        ]

    def append(self, record: OverrideRecord) -> None:
        with self._file.locked():
            records = self._load()
            records.append(record)
            self._file.write({"overrides": [item.to_dict() for item in records]})

    def all(self) -> tuple[OverrideRecord, ...]:
        with self._file.locked():
            return tuple(self._load())


def _last_for_branch(
    records: list[IntegrationRecord], branch: str
) -> IntegrationRecord | None:
    for record in reversed(records):
        if record.branch == branch:
            return record
    return None


__all__ = ["IntegrationHistory", "LedgerError", "OverrideLedger", "ReviewLedger"]
