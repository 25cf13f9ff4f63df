"""Command-line interface router for gatekeeper."""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from collections.abc import Iterator, Sequence
from contextlib import contextmanager, suppress
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from gatekeeper.config import (
    GatekeeperSettings,
    dump_effective_config,
    load_config,
    parse_interval,
)
from gatekeeper.domain.ids import generate_run_id
from gatekeeper.domain.models import (
    BranchReview,
    ErrorKind,
    IntegrationOutcome,
    RiskLevel,
    ValidationResult,
)
from gatekeeper.integration_plane.orchestrator import ConfirmPush, IntegrationOrchestrator
from gatekeeper.observability.logging import setup_logging
from gatekeeper.ui.render import CLIRenderer, create_renderer
from gatekeeper.utils.concurrency import CancellationToken

_VCS_ERROR_KINDS: Final[frozenset[ErrorKind]] = frozenset(
    {ErrorKind.VCS_ERROR, ErrorKind.PUSH_FAILED}
)


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True, slots=True)
class _Session:
    settings: GatekeeperSettings
    orchestrator: IntegrationOrchestrator
    renderer: CLIRenderer


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router."""

    parser = argparse.ArgumentParser(
        prog="gatekeeper",
        description=(
            "gatekeeper: review, merge and promote contributor branches.\n\n"
            "Common workflows:\n"
            "  gatekeeper init                  Prepare main + integration branches\n"
            "  gatekeeper review                Review all outstanding contributor branches\n"
            "  gatekeeper integrate BRANCH      Merge, validate and promote one branch\n"
            "  gatekeeper status                Show branches, pending reviews, last run\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--repo-root",
        default=".",
        help="Repository root directory (default: current working directory).",
    )
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to the TOML config (default: ./gatekeeper.toml if present).",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show detailed output and log at DEBUG level.",
    )
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser(
        "init", parents=[common], help="Open or initialize the repository"
    )
    init_parser.set_defaults(handler=_cmd_init)

    review_parser = subparsers.add_parser(
        "review",
        parents=[common],
        help="Review contributor branches",
        description=(
            "Without BRANCH arguments every branch matching a contributor prefix is\n"
            "reviewed; with auto_approve enabled, clean low-risk branches are integrated.\n\n"
            "Examples:\n"
            "  gatekeeper review\n"
            "  gatekeeper review frontend/task1 --no-fetch\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    review_parser.add_argument("branches", nargs="*", metavar="BRANCH")
    review_parser.add_argument(
        "--no-fetch", action="store_true", help="Do not fetch the remote first"
    )
    review_parser.add_argument("--json", action="store_true", help="Emit JSON output")
    review_parser.set_defaults(handler=_cmd_review)

    integrate_parser = subparsers.add_parser(
        "integrate",
        parents=[common],
        help="Integrate one reviewed branch",
        description=(
            "Merge BRANCH into the integration branch, validate it and, when confirmed\n"
            "or auto_push is enabled, promote it to main.\n\n"
            "Examples:\n"
            "  gatekeeper integrate backend/task3\n"
            "  gatekeeper integrate backend/task3 --yes\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    integrate_parser.add_argument("branch", metavar="BRANCH")
    integrate_parser.add_argument(
        "--yes", "-y", action="store_true", help="Confirm the push to main without prompting"
    )
    integrate_parser.add_argument("--json", action="store_true", help="Emit JSON output")
    integrate_parser.set_defaults(handler=_cmd_integrate)

    validate_parser = subparsers.add_parser(
        "validate",
        parents=[common],
        help="Dry-run the validation gate for a branch",
    )
    validate_parser.add_argument("branch", metavar="BRANCH")
    validate_parser.add_argument("--json", action="store_true", help="Emit JSON output")
    validate_parser.set_defaults(handler=_cmd_validate)

    status_parser = subparsers.add_parser(
        "status", parents=[common], help="Show branch heads, pending reviews, last integration"
    )
    status_parser.add_argument("--json", action="store_true", help="Emit JSON output")
    status_parser.set_defaults(handler=_cmd_status)

    override_parser = subparsers.add_parser(
        "override",
        parents=[common],
        help="Open an unrestricted override branch for an emergency fix",
    )
    override_parser.add_argument("task_id", metavar="TASK_ID")
    override_parser.add_argument("--reason", default="emergency fix", help="Audit reason")
    override_parser.set_defaults(handler=_cmd_override)

    monitor_parser = subparsers.add_parser(
        "monitor",
        parents=[common],
        help="Periodically review branches and report stale ones",
    )
    monitor_parser.add_argument(
        "--interval", default=None, help="Polling interval such as 30m or 1h"
    )
    monitor_parser.add_argument(
        "--max-cycles", type=int, default=None, help="Stop after N cycles"
    )
    monitor_parser.set_defaults(handler=_cmd_monitor)

    boundaries_parser = subparsers.add_parser(
        "check-boundaries",
        parents=[common],
        help="Check staged (or given) paths against a contributor boundary",
        description=(
            "Meant for a pre-commit hook; exits non-zero when a path is outside\n"
            "the contributor's allowed paths.\n\n"
            "Examples:\n"
            "  gatekeeper check-boundaries frontend\n"
            "  gatekeeper check-boundaries backend src/backend/api.ts\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    boundaries_parser.add_argument("contributor", metavar="CONTRIBUTOR")
    boundaries_parser.add_argument("paths", nargs="*", metavar="PATH")
    boundaries_parser.set_defaults(handler=_cmd_check_boundaries)

    config_parser = subparsers.add_parser(
        "config", parents=[common], help="Print the effective configuration as JSON"
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_init(args: argparse.Namespace) -> int:
    with _session(args) as session:
        result = session.orchestrator.init_repository()
        renderer = session.renderer
        renderer.kv("Repository", result.repo_path)
        renderer.kv("Created", str(result.created).lower())
        renderer.kv("Main branch", result.main_branch)
        renderer.kv("Integration branch", result.integration_branch)
        renderer.next_steps(["gatekeeper review"])
    return 0


def _cmd_review(args: argparse.Namespace) -> int:
    with _session(args) as session:
        orchestrator = session.orchestrator
        renderer = session.renderer
        branches = tuple(args.branches)
        if branches:
            reviews = asyncio.run(_review_selected(orchestrator, branches, fetch=not args.no_fetch))
            skipped: tuple[str, ...] = ()
            outcomes: tuple[IntegrationOutcome, ...] = ()
        else:
            cycle = asyncio.run(orchestrator.review_all(fetch=not args.no_fetch))
            reviews, skipped, outcomes = cycle.reviews, cycle.skipped, cycle.integrations

        if args.json:
            renderer.json(
                {
                    "reviews": [item.to_dict() for item in reviews],
                    "skipped": list(skipped),
                    "integrations": [item.to_dict() for item in outcomes],
                }
            )
            return 0

        if not reviews:
            renderer.text("No branches to review.")
        renderer.table(
            ("Branch", "Contributor", "Risk", "Conflicts", "Issues"),
            [
                (
                    review.branch,
                    review.contributor or "-",
                    review.risk_level.value,
                    "yes" if review.conflicts_detected else "no",
                    str(len(review.issues)),
                )
                for review in reviews
            ],
            title="Reviews:",
        )
        for review in reviews:
            if review.issues and (renderer.verbose or review.risk_level is RiskLevel.HIGH):
                renderer.section(f"{review.branch}:")
                renderer.items(list(review.issues))
        if skipped:
            renderer.section("Already integrated:")
            renderer.items(list(skipped))
        for outcome in outcomes:
            _render_outcome(renderer, outcome)
    return 0


async def _review_selected(
    orchestrator: IntegrationOrchestrator, branches: Sequence[str], *, fetch: bool
) -> tuple[BranchReview, ...]:
    if fetch:
        await asyncio.to_thread(orchestrator.git.fetch)
    return tuple([await orchestrator.review_branch(branch) for branch in branches])


def _cmd_integrate(args: argparse.Namespace) -> int:
    with _session(args) as session:
        renderer = session.renderer
        confirm = _confirmation(args, renderer)
        outcome = asyncio.run(session.orchestrator.integrate(args.branch, confirm=confirm))
        if args.json:
            renderer.json(outcome.to_dict())
        else:
            _render_outcome(renderer, outcome)
    return _exit_code_for(outcome)


def _cmd_validate(args: argparse.Namespace) -> int:
    with _session(args) as session:
        result = asyncio.run(session.orchestrator.validate_branch(args.branch))
        renderer = session.renderer
        if args.json:
            renderer.json(result.to_dict())
        else:
            _render_validation(renderer, result)
    return 0 if result.passed else 1


def _cmd_status(args: argparse.Namespace) -> int:
    with _session(args) as session:
        report = session.orchestrator.status()
        renderer = session.renderer
        if args.json:
            renderer.json(report.to_dict())
            return 0

        renderer.kv("Current branch", report.current_branch or "(detached)")
        renderer.kv("Main", report.main_head or "(missing)")
        renderer.kv("Integration", report.integration_head or "(missing)")
        renderer.kv("Pending reviews", len(report.pending_reviews))
        renderer.table(
            ("Branch", "Risk", "Reviewed at"),
            [
                (item.branch, item.risk_level.value, item.reviewed_at.isoformat())
                for item in report.pending_reviews
            ],
        )
        last = report.last_integration
        if last is None:
            renderer.kv("Last integration", "none")
        else:
            renderer.kv(
                "Last integration",
                f"{last.integration_id} {last.branch} {last.state.value}"
                f" ({last.error_kind.value}, pushed={str(last.pushed_to_main).lower()})",
            )
    return 0


def _cmd_override(args: argparse.Namespace) -> int:
    with _session(args) as session:
        record = session.orchestrator.open_override(args.task_id, args.reason)
        renderer = session.renderer
        renderer.kv("Override", record.override_id)
        renderer.kv("Branch", record.branch)
        renderer.kv("Base commit", record.base_commit)
        renderer.warning("boundary checks do not apply to override branches")
        renderer.next_steps([f"git checkout {record.branch}"])
    return 0


def _cmd_monitor(args: argparse.Namespace) -> int:
    interval: float | None = None
    if args.interval is not None:
        try:
            interval = parse_interval(args.interval)
        except ValueError as exc:
            raise CLIError(str(exc), exit_code=2) from exc
    if args.max_cycles is not None and args.max_cycles <= 0:
        raise CLIError("--max-cycles must be > 0", exit_code=2)

    with _session(args) as session:
        cycles = asyncio.run(
            _monitor_until_interrupted(session.orchestrator, interval, args.max_cycles)
        )
        renderer = session.renderer
        failed = 0
        for cycle in cycles:
            if cycle.error is not None:
                failed += 1
                renderer.fail(f"cycle {cycle.cycle}: {cycle.error}")
                continue
            reviewed = len(cycle.review.reviews) if cycle.review is not None else 0
            renderer.ok(f"cycle {cycle.cycle}: reviewed {reviewed} branch(es)")
            for branch in cycle.stale_branches:
                renderer.warning(f"stale branch {branch}")
    return 3 if cycles and failed == len(cycles) else 0


async def _monitor_until_interrupted(
    orchestrator: IntegrationOrchestrator,
    interval: float | None,
    max_cycles: int | None,
) -> tuple:
    token = CancellationToken()
    loop = asyncio.get_running_loop()
    with suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, token.cancel)
        loop.add_signal_handler(signal.SIGTERM, token.cancel)
    return await orchestrator.monitor(
        interval_seconds=interval, max_cycles=max_cycles, cancel_token=token
    )


def _cmd_check_boundaries(args: argparse.Namespace) -> int:
    with _session(args) as session:
        paths = tuple(args.paths) if args.paths else None
        report = session.orchestrator.check_boundaries(args.contributor, paths)
        renderer = session.renderer
        if report.allowed:
            renderer.ok(f"{len(report.checked)} path(s) inside {report.contributor} scope")
            return 0
        for issue in report.issues():
            renderer.fail(issue)
    return 1


def _cmd_config(args: argparse.Namespace) -> int:
    repo_root = Path(args.repo_root).expanduser().resolve()
    config = load_config(args.config_path, repo_root=repo_root)
    print(dump_effective_config(config))
    return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@contextmanager
def _session(args: argparse.Namespace) -> Iterator[_Session]:
    repo_root = Path(args.repo_root).expanduser().resolve()
    overrides: dict[str, object] = {}
    if args.verbose:
        overrides["observability.log_level"] = "DEBUG"
    config = load_config(args.config_path, repo_root=repo_root, cli_overrides=overrides)
    settings = GatekeeperSettings.from_config(config, repo_root=repo_root)

    settings.log_dir.mkdir(parents=True, exist_ok=True)
    handle = setup_logging(
        run_id=generate_run_id(),
        log_dir=settings.log_dir,
        level=settings.log_level,
        log_to_stdout=settings.log_to_stdout,
    )
    try:
        yield _Session(
            settings=settings,
            orchestrator=IntegrationOrchestrator(settings),
            renderer=create_renderer(no_color=args.no_color, verbose=args.verbose),
        )
    finally:
        handle.shutdown()


def _confirmation(args: argparse.Namespace, renderer: CLIRenderer) -> ConfirmPush | None:
    if args.yes:
        return lambda _branch, _validation: True
    if not sys.stdin.isatty():
        return None

    def _prompt(branch: str, validation: ValidationResult) -> bool:
        for warning in validation.warnings:
            renderer.warning(warning)
        answer = input(f"Push {branch} to main? [y/N] ")
        return answer.strip().lower() in {"y", "yes"}

    return _prompt


def _exit_code_for(outcome: IntegrationOutcome) -> int:
    if outcome.error_kind is ErrorKind.NONE:
        return 0
    if outcome.error_kind in _VCS_ERROR_KINDS:
        return 3
    return 1


def _render_outcome(renderer: CLIRenderer, outcome: IntegrationOutcome) -> None:
    record = outcome.record
    renderer.section(f"Integration {record.integration_id} ({record.branch}):")
    renderer.kv("State", outcome.state.value)
    renderer.kv("Result", outcome.error_kind.value)
    if outcome.detail:
        renderer.kv("Detail", outcome.detail)
    renderer.kv("Files changed", record.files_changed)
    renderer.kv("Pushed to main", str(record.pushed_to_main).lower())
    if record.resolved_conflicts:
        renderer.kv("Resolved conflicts", ", ".join(record.resolved_conflicts))
    if record.validation is not None:
        _render_validation(renderer, record.validation)
    if record.notes:
        renderer.section("Notes:")
        renderer.items(list(record.notes))
    if renderer.verbose:
        renderer.section("Transitions:")
        renderer.items(
            [
                f"{item.previous.value if item.previous else '-'} -> {item.current.value}"
                for item in outcome.transitions
            ]
        )


def _render_validation(renderer: CLIRenderer, result: ValidationResult) -> None:
    if result.passed:
        renderer.ok("validation passed")
    else:
        renderer.fail("validation failed")
    if result.errors:
        renderer.section("Errors:")
        renderer.items(list(result.errors))
    for warning in result.warnings:
        renderer.warning(warning)


__all__ = ["CLIError", "build_parser", "run_cli"]
