"""
gatekeeper — integration orchestrator

File: src/gatekeeper/integration_plane/orchestrator.py

Purpose
- Drive one contributor branch at a time through review, merge, conflict
  resolution, validation, push decision and cleanup.
- Expose the operator surface: review cycles, status, override workspaces,
  monitoring and commit-time boundary checks.

Functional requirements
- Every attempt appends exactly one ``IntegrationRecord``, whatever its outcome.
- A failed attempt leaves the integration branch tip where it was before it.
- Timeouts and cancellation force ``FAILED_ROLLED_BACK`` even when validation
  failures are overridden.
- Source branch cleanup runs only after a successful push with auto-delete on.
- Attempts are serialized in-process (``asyncio.Lock``) and across processes
  (``integration.lock``).

Non-functional requirements
- Git calls run in worker threads so validation timeouts and cancellation stay
  responsive; every git command carries its own subprocess timeout.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable, Sequence
from contextlib import ExitStack
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final, TypeVar

import structlog

from gatekeeper.constants import (
    INTEGRATION_LOCK_FILE,
    MERGE_MESSAGE_PREFIX,
    OVERRIDE_BRANCH_PREFIX,
    PROMOTION_MESSAGE_PREFIX,
)
from gatekeeper.domain.ids import generate_integration_id, generate_override_id
from gatekeeper.domain.models import (
    BranchReview,
    ErrorKind,
    IntegrationOutcome,
    IntegrationRecord,
    IntegrationState,
    JSONValue,
    OverrideRecord,
    StateTransition,
    ValidationResult,
)
from gatekeeper.integration_plane.boundary import BoundaryReport, check_paths
from gatekeeper.integration_plane.conflict_resolution import ConflictResolver, ResolutionStatus
from gatekeeper.integration_plane.git_engine import (
    GitEngine,
    GitEngineError,
    GitTimeoutError,
    RepoInitResult,
    validate_branch_name,
)
from gatekeeper.integration_plane.ledger import IntegrationHistory, OverrideLedger, ReviewLedger
from gatekeeper.integration_plane.risk_analyzer import Clock, RiskAnalyzer
from gatekeeper.observability.events import EventBus
from gatekeeper.observability.logging import correlation_scope
from gatekeeper.utils.concurrency import CancellationToken, run_with_timeout, sleep_or_cancel
from gatekeeper.utils.locking import FileLock, LockAcquisitionError
from gatekeeper.verification_plane.gate import ValidationGate

if TYPE_CHECKING:
    from gatekeeper.config.settings import GatekeeperSettings
    from gatekeeper.verification_plane.gate import Validator

T = TypeVar("T")

ConfirmPush = Callable[[str, ValidationResult], bool | Awaitable[bool]]

_LOCK_TIMEOUT_SECONDS: Final[float] = 60.0

_State = IntegrationState
_ALLOWED_TRANSITIONS: Final[dict[IntegrationState | None, frozenset[IntegrationState]]] = {
    None: frozenset({_State.PENDING_REVIEW}),
    _State.PENDING_REVIEW: frozenset({_State.REVIEWED, _State.FAILED_ROLLED_BACK}),
    _State.REVIEWED: frozenset({_State.MERGING, _State.FAILED_ROLLED_BACK}),
    _State.MERGING: frozenset(
        {_State.CONFLICT_RESOLUTION, _State.VALIDATING, _State.FAILED_ROLLED_BACK}
    ),
    _State.CONFLICT_RESOLUTION: frozenset({_State.VALIDATING, _State.FAILED_ROLLED_BACK}),
    _State.VALIDATING: frozenset({_State.DECIDING_PUSH, _State.FAILED_ROLLED_BACK}),
    _State.DECIDING_PUSH: frozenset({_State.INTEGRATED, _State.FAILED_ROLLED_BACK}),
}


class IntegrationLockError(RuntimeError):
    """Another process holds the integration lock."""


class UnknownContributorError(LookupError):
    """No contributor profile is configured under the requested key."""


@dataclass(frozen=True, slots=True)
class ReviewCycle:
    """Result of one ``review_all`` pass."""

    reviews: tuple[BranchReview, ...] = ()
    skipped: tuple[str, ...] = ()
    integrations: tuple[IntegrationOutcome, ...] = ()

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "reviews": [item.to_dict() for item in self.reviews],
            "skipped": list(self.skipped),
            "integrations": [item.to_dict() for item in self.integrations],
        }


@dataclass(frozen=True, slots=True)
class MonitorCycle:
    cycle: int
    started_at: datetime
    review: ReviewCycle | None
    stale_branches: tuple[str, ...] = ()
    error: str | None = None


@dataclass(frozen=True, slots=True)
class StatusReport:
    """Snapshot for the ``status`` command."""

    current_branch: str | None
    main_head: str | None
    integration_head: str | None
    pending_reviews: tuple[BranchReview, ...]
    last_integration: IntegrationRecord | None

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "current_branch": self.current_branch,
            "main_head": self.main_head,
            "integration_head": self.integration_head,
            "pending_reviews": [item.to_dict() for item in self.pending_reviews],
            "last_integration": (
                self.last_integration.to_dict() if self.last_integration is not None else None
            ),
        }


class _Attempt:
    """Mutable bookkeeping for the attempt in flight."""

    def __init__(
        self,
        *,
        integration_id: str,
        branch: str,
        event_bus: EventBus,
        clock: Clock,
        logger: Any,
    ) -> None:
        self.integration_id = integration_id
        self.branch = branch
        self.state: IntegrationState | None = None
        self.transitions: list[StateTransition] = []
        self.worktree: Path | None = None
        self.pre_merge_head: str | None = None
        self.published_head: str | None = None
        self.validation: ValidationResult | None = None
        self.files_changed = 0
        self.resolved_conflicts: tuple[str, ...] = ()
        self.overridden = False
        self.pushed = False
        self.notes: list[str] = []
        self._event_bus = event_bus
        self._clock = clock
        self._logger = logger

    async def advance(self, state: IntegrationState, detail: str = "") -> None:
        if state not in _ALLOWED_TRANSITIONS.get(self.state, frozenset()):
            previous = self.state.value if self.state is not None else None
            raise RuntimeError(f"illegal integration transition {previous} -> {state.value}")

        transition = StateTransition(
            integration_id=self.integration_id,
            branch=self.branch,
            previous=self.state,
            current=state,
            at=self._clock(),
            detail=detail,
        )
        self.transitions.append(transition)
        self.state = state
        self._logger.info(
            "integration_state_changed",
            previous=transition.previous.value if transition.previous is not None else None,
            state=state.value,
            detail=detail,
        )
        for error in await self._event_bus.publish(transition):
            self._logger.warning(
                "state_subscriber_failed",
                target=error.target,
                error_type=error.error_type,
                error=error.message,
            )


class IntegrationOrchestrator:
    """Integration gatekeeper for one repository."""

    def __init__(
        self,
        settings: GatekeeperSettings,
        *,
        git: GitEngine | None = None,
        validator: Validator | None = None,
        event_bus: EventBus | None = None,
        clock: Clock | None = None,
        id_factory: Callable[[], str] | None = None,
        lock_timeout_seconds: float = _LOCK_TIMEOUT_SECONDS,
        logger: Any | None = None,
    ) -> None:
        self._settings = settings
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._git = (
            git
            if git is not None
            else GitEngine(
                settings.repo_root,
                main_branch=settings.git.main_branch,
                integration_branch=settings.git.integration_branch,
                remote=settings.git.remote,
                command_timeout_seconds=settings.git.command_timeout_seconds,
            )
        )
        self._validator = (
            validator if validator is not None else ValidationGate(settings.validation)
        )
        self.events = event_bus if event_bus is not None else EventBus()
        self._clock = clock if clock is not None else _utc_now
        self._id_factory = id_factory if id_factory is not None else generate_integration_id
        self._lock_timeout_seconds = lock_timeout_seconds
        self._analyzer = RiskAnalyzer(
            git=self._git, settings=settings, clock=self._clock, logger=self._logger
        )
        self.reviews = ReviewLedger(settings.state_dir)
        self.history = IntegrationHistory(settings.state_dir)
        self.overrides = OverrideLedger(settings.state_dir)
        self._attempt_lock = asyncio.Lock()
        self._integration_lock = FileLock(settings.state_dir / INTEGRATION_LOCK_FILE)

    @property
    def git(self) -> GitEngine:
        return self._git

    @property
    def settings(self) -> GatekeeperSettings:
        return self._settings

    def init_repository(self) -> RepoInitResult:
        """Open or create the repository with its main and integration branches."""

        result = self._git.init_or_open()
        self._settings.state_dir.mkdir(parents=True, exist_ok=True)
        self._logger.info(
            "repository_initialized",
            repo=str(result.repo_path),
            repo_created=result.created,
            main_branch=result.main_branch,
            integration_branch=result.integration_branch,
        )
        return result

    # Review.

    async def review_branch(self, branch: str) -> BranchReview:
        """Review one branch against the integration branch and store the verdict."""

        validate_branch_name(branch)
        review = await self._git_call(self._analyzer.review, branch)
        replaced = self.reviews.upsert(review)
        self._logger.info(
            "review_stored",
            branch=branch,
            risk_level=review.risk_level.value,
            changed=replaced,
        )
        return review

    async def review_all(
        self,
        *,
        fetch: bool = True,
        branches: Sequence[str] = (),
    ) -> ReviewCycle:
        """Review every outstanding contributor branch plus ``branches``.

        Branches already contained in the integration branch are skipped, and review
        entries for branches that are no longer outstanding are dropped. With
        ``auto_approve`` on, auto-approvable reviews are integrated one by one.
        """

        if fetch:
            await self._git_call(self._git.fetch)

        prefixes = [profile.branch_prefix for profile in self._settings.contributors]
        discovered = await self._git_call(self._git.list_branches, prefixes)
        requested = {validate_branch_name(branch) for branch in branches}
        integration_ref = f"refs/heads/{self._settings.git.integration_branch}"

        reviews: list[BranchReview] = []
        skipped: list[str] = []
        for branch in sorted(set(discovered) | requested):
            head = await self._git_call(self._git.head_commit, branch)
            if await self._git_call(self._git.is_ancestor, head, integration_ref):
                skipped.append(branch)
                continue
            reviews.append(await self.review_branch(branch))
        pruned = self.reviews.retain(review.branch for review in reviews)

        integrations: list[IntegrationOutcome] = []
        if self._settings.automation.auto_approve:
            for review in reviews:
                if not review.auto_approvable:
                    continue
                self._logger.info("auto_approved", branch=review.branch)
                integrations.append(await self.integrate(review.branch))

        self._logger.info(
            "review_cycle_finished",
            reviewed=len(reviews),
            skipped=len(skipped),
            pruned=len(pruned),
            integrated=len(integrations),
        )
        return ReviewCycle(
            reviews=tuple(reviews),
            skipped=tuple(skipped),
            integrations=tuple(integrations),
        )

    # Integration.

    async def integrate(
        self,
        branch: str,
        *,
        confirm: ConfirmPush | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> IntegrationOutcome:
        """Run one integration attempt for a reviewed branch.

        Without ``auto_push`` the promotion to main happens only when ``confirm``
        returns true; otherwise the merge stays on the integration branch.
        """

        validate_branch_name(branch)
        token = cancel_token if cancel_token is not None else CancellationToken()
        integration_id = self._id_factory()

        async with self._attempt_lock:
            with correlation_scope(integration_id=integration_id, branch=branch):
                await self._acquire_integration_lock()
                try:
                    return await self._run_attempt(integration_id, branch, confirm, token)
                finally:
                    self._integration_lock.release()

    async def _run_attempt(
        self,
        integration_id: str,
        branch: str,
        confirm: ConfirmPush | None,
        token: CancellationToken,
    ) -> IntegrationOutcome:
        attempt = _Attempt(
            integration_id=integration_id,
            branch=branch,
            event_bus=self.events,
            clock=self._clock,
            logger=self._logger,
        )
        automation = self._settings.automation
        stack = ExitStack()
        try:
            await attempt.advance(IntegrationState.PENDING_REVIEW, "integration requested")

            review = self.reviews.consume(branch)
            if review is None:
                return await self._fail(
                    attempt, ErrorKind.REVIEW_MISSING, f"{branch} has not been reviewed"
                )
            head = await self._git_call(self._git.head_commit, branch)
            if review.head_commit != head:
                return await self._fail(
                    attempt,
                    ErrorKind.REVIEW_STALE,
                    f"review of {branch} covers {review.head_commit}, branch is at {head}",
                )
            await attempt.advance(IntegrationState.REVIEWED, f"risk={review.risk_level.value}")

            if token.is_cancelled:
                return await self._fail(attempt, ErrorKind.CANCELLED, "cancelled before merge")
            await attempt.advance(IntegrationState.MERGING)
            integration = self._settings.git.integration_branch
            await self._git_call(self._git.assert_publishable, integration)
            source_ref = await self._git_call(self._git.resolve_ref, branch)
            worktree = await self._git_call(
                stack.enter_context,
                self._git.detached_worktree(f"refs/heads/{integration}"),
            )
            attempt.worktree = worktree
            attempt.pre_merge_head = await self._git_call(self._git.head, worktree)
            merge = await self._git_call(
                self._git.merge_no_ff,
                worktree,
                source_ref,
                f"{MERGE_MESSAGE_PREFIX}: {branch} [{integration_id}]",
            )

            if not merge.clean:
                await attempt.advance(
                    IntegrationState.CONFLICT_RESOLUTION,
                    f"{len(merge.conflicts)} conflicted file(s)",
                )
                resolver = ConflictResolver(
                    git=self._git, rules=self._settings.conflict_rules, logger=self._logger
                )
                resolution = await self._git_call(
                    resolver.resolve,
                    worktree,
                    merge.conflicts,
                    branch=branch,
                    integration_id=integration_id,
                )
                attempt.resolved_conflicts = resolution.resolved_paths
                if resolution.status is ResolutionStatus.UNRESOLVED:
                    return await self._fail(
                        attempt,
                        ErrorKind.UNRESOLVED_CONFLICT,
                        "unresolved conflicts: " + ", ".join(resolution.unresolved),
                    )

            if token.is_cancelled:
                return await self._fail(attempt, ErrorKind.CANCELLED, "cancelled before validation")
            await attempt.advance(IntegrationState.VALIDATING)
            merged_head = await self._git_call(self._git.head, worktree)
            touched = await self._git_call(
                self._git.changed_files, attempt.pre_merge_head, merged_head
            )
            attempt.files_changed = len(touched)

            budget = self._settings.validation.total_timeout_seconds
            try:
                validation = await run_with_timeout(
                    self._validator.validate(worktree, touched), budget, token
                )
            except TimeoutError:
                attempt.validation = ValidationResult(
                    passed=False,
                    errors=(f"Validation timed out after {budget:g}s",),
                    timed_out=True,
                )
                return await self._fail(attempt, ErrorKind.TIMEOUT, "validation timed out")
            except asyncio.CancelledError:
                if token.is_cancelled:
                    return await self._fail(
                        attempt, ErrorKind.CANCELLED, "cancelled during validation"
                    )
                await self._fail(attempt, ErrorKind.CANCELLED, "integration task cancelled")
                raise

            attempt.validation = validation
            if validation.timed_out:
                return await self._fail(attempt, ErrorKind.TIMEOUT, "validation step timed out")
            if not validation.passed:
                if not automation.override_on_validation_failure:
                    return await self._fail(
                        attempt, ErrorKind.VALIDATION_FAILED, "; ".join(validation.errors)
                    )
                attempt.overridden = True
                attempt.notes.append("validation failure overridden")
                self._logger.warning("validation_overridden", errors=list(validation.errors))

            await self._git_call(
                self._git.move_branch, integration, merged_head, expected=attempt.pre_merge_head
            )
            attempt.published_head = merged_head
            await attempt.advance(
                IntegrationState.DECIDING_PUSH, f"warnings={len(validation.warnings)}"
            )
            push = await self._decide_push(branch, validation, confirm)
            if token.is_cancelled:
                return await self._fail(attempt, ErrorKind.CANCELLED, "cancelled before push")
            if not push:
                attempt.notes.append("promotion to main not confirmed")
                return await self._finish(attempt, ErrorKind.NONE, "merged into integration branch")

            push_error = await self._promote(attempt)
            if push_error is not None:
                return await self._finish(attempt, ErrorKind.PUSH_FAILED, push_error)
            attempt.pushed = True

            if automation.auto_delete_merged_branch:
                await self._cleanup(attempt)
            return await self._finish(attempt, ErrorKind.NONE, "integrated and pushed to main")
        except GitTimeoutError as exc:
            return await self._fail(attempt, ErrorKind.TIMEOUT, str(exc))
        except GitEngineError as exc:
            return await self._fail(attempt, ErrorKind.VCS_ERROR, str(exc))
        except Exception as exc:
            if attempt.state is None or not attempt.state.is_terminal:
                self._logger.exception("integration_attempt_crashed")
                try:
                    await self._fail(
                        attempt, ErrorKind.INTERNAL, f"{type(exc).__name__}: {exc}"
                    )
                except Exception:
                    # the original error is the one worth surfacing
                    self._logger.exception("integration_record_failed")
            raise
        finally:
            attempt.worktree = None
            await self._git_call(stack.close)

    async def _decide_push(
        self,
        branch: str,
        validation: ValidationResult,
        confirm: ConfirmPush | None,
    ) -> bool:
        if self._settings.automation.auto_push:
            return True
        if confirm is None:
            return False
        decision = confirm(branch, validation)
        if inspect.isawaitable(decision):
            decision = await decision
        return bool(decision)

    async def _promote(self, attempt: _Attempt) -> str | None:
        """Merge integration into main and push it. Returns an error detail on failure."""

        main = self._settings.git.main_branch
        previous_main = await self._git_call(self._git.rev_parse, f"refs/heads/{main}")
        try:
            promotion = await self._git_call(
                self._git.advance_main,
                f"{PROMOTION_MESSAGE_PREFIX} {attempt.branch} [{attempt.integration_id}]",
            )
            if await self._git_call(self._git.has_remote):
                await self._git_call(self._git.push, main)
            else:
                remote = self._settings.git.remote
                attempt.notes.append(f"no remote {remote!r}; main advanced locally")
        except GitEngineError as exc:
            self._logger.error("push_failed", error=str(exc))
            await self._restore_main(attempt, previous_main)
            return f"push to {main} failed: {exc}"

        self._logger.info(
            "main_promoted", previous_main=promotion.previous_main, new_main=promotion.new_main
        )
        return None

    async def _restore_main(self, attempt: _Attempt, previous_main: str) -> None:
        main = self._settings.git.main_branch
        try:
            current = await self._git_call(self._git.rev_parse, f"refs/heads/{main}")
            if current != previous_main:
                await self._git_call(self._git.reset_branch, main, previous_main)
        except GitEngineError as exc:
            attempt.notes.append(f"could not restore {main}: {exc}")
            self._logger.error("main_restore_failed", error=str(exc), target=previous_main)
            return
        attempt.notes.append(f"{main} restored to {previous_main}")

    async def _cleanup(self, attempt: _Attempt) -> None:
        branch = attempt.branch
        try:
            if await self._git_call(self._git.remote_branch_exists, branch):
                await self._git_call(self._git.delete_remote_branch, branch)
            await self._git_call(self._git.delete_branch, branch)
        except GitEngineError as exc:
            attempt.notes.append(f"branch cleanup failed: {exc}")
            self._logger.warning("branch_cleanup_failed", error=str(exc))
            return
        attempt.notes.append(f"deleted merged branch {branch}")
        self._logger.info("branch_deleted", branch=branch)

    async def _rollback(self, attempt: _Attempt) -> None:
        """Discard the merge; move the integration branch back only if it was published."""

        target = attempt.pre_merge_head
        if target is None:
            return
        try:
            if attempt.worktree is not None:
                await self._git_call(self._git.reset_hard, attempt.worktree, target)
            if attempt.published_head is not None:
                await self._git_call(
                    self._git.move_branch,
                    self._settings.git.integration_branch,
                    target,
                    expected=attempt.published_head,
                )
                attempt.published_head = None
        except GitEngineError as exc:
            attempt.notes.append(f"rollback failed: {exc}")
            self._logger.error("rollback_failed", error=str(exc), target=target)
            return
        attempt.notes.append(f"integration branch reset to {target}")
        self._logger.info("integration_rolled_back", target=target)

    async def _fail(
        self, attempt: _Attempt, error_kind: ErrorKind, detail: str
    ) -> IntegrationOutcome:
        await self._rollback(attempt)
        await attempt.advance(IntegrationState.FAILED_ROLLED_BACK, detail)
        return self._record(attempt, error_kind, detail)

    async def _finish(
        self, attempt: _Attempt, error_kind: ErrorKind, detail: str
    ) -> IntegrationOutcome:
        await attempt.advance(IntegrationState.INTEGRATED, detail)
        return self._record(attempt, error_kind, detail)

    def _record(
        self, attempt: _Attempt, error_kind: ErrorKind, detail: str
    ) -> IntegrationOutcome:
        state = attempt.state
        if state is None or not state.is_terminal:
            raise RuntimeError("attempt recorded before reaching a terminal state")

        record = IntegrationRecord(
            integration_id=attempt.integration_id,
            branch=attempt.branch,
            integrated_at=self._next_timestamp(attempt.branch),
            state=state,
            validation=attempt.validation,
            files_changed=attempt.files_changed,
            pushed_to_main=attempt.pushed,
            error_kind=error_kind,
            resolved_conflicts=attempt.resolved_conflicts,
            overridden=attempt.overridden,
            notes=tuple(attempt.notes),
        )
        self.history.append(record)
        log = self._logger.info if error_kind is ErrorKind.NONE else self._logger.warning
        log(
            "integration_recorded",
            state=state.value,
            error_kind=error_kind.value,
            pushed_to_main=record.pushed_to_main,
            files_changed=record.files_changed,
            detail=detail,
        )
        return IntegrationOutcome(
            state=state,
            record=record,
            error_kind=error_kind,
            detail=detail,
            transitions=tuple(attempt.transitions),
        )

    def _next_timestamp(self, branch: str) -> datetime:
        now = self._clock()
        latest = self.history.latest_timestamp(branch)
        if latest is not None and latest > now:
            return latest
        return now

    async def _acquire_integration_lock(self) -> None:
        try:
            await asyncio.to_thread(
                self._integration_lock.acquire, timeout=self._lock_timeout_seconds
            )
        except LockAcquisitionError as exc:
            raise IntegrationLockError(
                f"another integration holds {self._integration_lock.lock_path}"
            ) from exc

    # Dry validation.

    async def validate_branch(
        self,
        branch: str,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> ValidationResult:
        """Validate ``branch`` merged onto the integration tip in a throw-away worktree.

        No branch ref moves; the merge commit only exists in the detached worktree.
        """

        source_ref = await self._git_call(self._git.resolve_ref, branch)
        integration_ref = f"refs/heads/{self._settings.git.integration_branch}"
        stack = ExitStack()
        try:
            worktree = await self._git_call(
                stack.enter_context, self._git.detached_worktree(integration_ref)
            )
            base = await self._git_call(self._git.head, worktree)
            merge = await self._git_call(
                self._git.merge_no_ff,
                worktree,
                source_ref,
                f"{MERGE_MESSAGE_PREFIX}: {branch} [dry-run]",
            )
            if not merge.clean:
                resolver = ConflictResolver(
                    git=self._git, rules=self._settings.conflict_rules, logger=self._logger
                )
                resolution = await self._git_call(
                    resolver.resolve,
                    worktree,
                    merge.conflicts,
                    branch=branch,
                    integration_id="dry-run",
                )
                if resolution.status is ResolutionStatus.UNRESOLVED:
                    return ValidationResult(
                        passed=False,
                        errors=("Unresolved conflicts: " + ", ".join(resolution.unresolved),),
                    )

            merged = await self._git_call(self._git.head, worktree)
            touched = await self._git_call(self._git.changed_files, base, merged)
            budget = self._settings.validation.total_timeout_seconds
            try:
                return await run_with_timeout(
                    self._validator.validate(worktree, touched), budget, cancel_token
                )
            except TimeoutError:
                return ValidationResult(
                    passed=False,
                    errors=(f"Validation timed out after {budget:g}s",),
                    timed_out=True,
                )
        finally:
            await self._git_call(stack.close)

    # Operator surface.

    def status(self) -> StatusReport:
        git = self._settings.git
        return StatusReport(
            current_branch=self._git.current_branch(),
            main_head=self._optional_head(git.main_branch),
            integration_head=self._optional_head(git.integration_branch),
            pending_reviews=self.reviews.all(),
            last_integration=self.history.last(),
        )

    def open_override(self, task_id: str, reason: str = "emergency fix") -> OverrideRecord:
        """Create ``override/<task_id>`` from main and record it for audit.

        Override branches never match a contributor prefix, so boundary checks
        do not apply to them.
        """

        branch = validate_branch_name(f"{OVERRIDE_BRANCH_PREFIX}/{task_id}", field="task_id")
        created = self._git.create_branch(branch, f"refs/heads/{self._settings.git.main_branch}")
        record = OverrideRecord(
            override_id=generate_override_id(),
            task_id=task_id,
            branch=branch,
            base_commit=created.head,
            opened_at=self._clock(),
            reason=reason,
        )
        self.overrides.append(record)
        self._logger.warning(
            "override_opened",
            override_id=record.override_id,
            branch=branch,
            base_commit=record.base_commit,
            reason=reason,
        )
        return record

    def check_boundaries(
        self, contributor_key: str, paths: Sequence[str] | None = None
    ) -> BoundaryReport:
        """Check ``paths`` (default: staged files) against a contributor's boundary."""

        profile = self._settings.contributor(contributor_key)
        if profile is None:
            raise UnknownContributorError(f"unknown contributor {contributor_key!r}")
        candidates = tuple(paths) if paths is not None else self._git.staged_files()
        report = check_paths(profile, candidates)
        if not report.allowed:
            self._logger.warning(
                "boundary_violations",
                contributor=profile.key,
                violations=list(report.violations),
            )
        return report

    async def monitor(
        self,
        *,
        interval_seconds: float | None = None,
        max_cycles: int | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> tuple[MonitorCycle, ...]:
        """Poll: fetch and review, then report stale contributor branches."""

        interval = (
            interval_seconds
            if interval_seconds is not None
            else self._settings.monitor.interval_seconds
        )
        token = cancel_token if cancel_token is not None else CancellationToken()
        cycles: list[MonitorCycle] = []
        cycle = 0
        while not token.is_cancelled:
            cycle += 1
            started_at = self._clock()
            try:
                review = await self.review_all(fetch=True)
                stale = await self._stale_branches()
            except GitEngineError as exc:
                self._logger.error("monitor_cycle_failed", cycle=cycle, error=str(exc))
                cycles.append(
                    MonitorCycle(cycle=cycle, started_at=started_at, review=None, error=str(exc))
                )
            else:
                cycles.append(
                    MonitorCycle(
                        cycle=cycle, started_at=started_at, review=review, stale_branches=stale
                    )
                )
                self._logger.info(
                    "monitor_cycle_finished",
                    cycle=cycle,
                    reviewed=len(review.reviews),
                    stale=len(stale),
                )

            if max_cycles is not None and cycle >= max_cycles:
                break
            if await sleep_or_cancel(interval, token):
                break
        return tuple(cycles)

    async def _stale_branches(self) -> tuple[str, ...]:
        threshold = timedelta(hours=self._settings.monitor.stale_threshold_hours)
        now = self._clock()
        prefixes = [profile.branch_prefix for profile in self._settings.contributors]
        stale: list[str] = []
        for branch in await self._git_call(self._git.list_branches, prefixes):
            ref = await self._git_call(self._git.resolve_ref, branch)
            last_commit = await self._git_call(self._git.last_commit_time, ref)
            age = now - last_commit
            if age <= threshold:
                continue
            stale.append(branch)
            self._logger.warning(
                "stale_branch",
                branch=branch,
                last_commit=last_commit.isoformat(),
                age_hours=round(age.total_seconds() / 3600, 1),
            )
        return tuple(stale)

    def _optional_head(self, branch: str) -> str | None:
        if not self._git.branch_exists(branch):
            return None
        return self._git.rev_parse(f"refs/heads/{branch}")

    async def _git_call(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        return await asyncio.to_thread(func, *args, **kwargs)


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


__all__ = [
    "ConfirmPush",
    "IntegrationLockError",
    "IntegrationOrchestrator",
    "MonitorCycle",
    "ReviewCycle",
    "StatusReport",
    "UnknownContributorError",
]
