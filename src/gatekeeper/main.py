"""Process entrypoint: runs the CLI and turns exceptions into exit codes."""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


class ExitCode(IntEnum):
    SUCCESS = 0
    VALIDATION_FAILURE = 1
    CONFIG_ERROR = 2
    VCS_ERROR = 3
    INTERNAL_ERROR = 4


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Used by ``python -m gatekeeper`` and the ``gatekeeper`` console script."""

    try:
        from gatekeeper.ui.cli import run_cli

        return _coerce_exit_code(run_cli(argv))
    except SystemExit as exc:  # pragma: no cover - argparse exits on --help and usage errors
        return _coerce_exit_code(exc.code)
    except BaseException as exc:  # noqa: BLE001 - last line before the process exits
        code = _classify(exc)
        if code is ExitCode.INTERNAL_ERROR:
            traceback.print_exception(type(exc), exc, exc.__traceback__, file=sys.stderr)
        else:
            _say(str(exc).strip() or type(exc).__name__)
        return int(code)


def _coerce_exit_code(raw: object) -> int:
    if raw is None:
        return int(ExitCode.SUCCESS)
    if isinstance(raw, int) and raw in {member.value for member in ExitCode}:
        return raw
    if isinstance(raw, str) and raw.strip():
        _say(raw.strip())
    return int(ExitCode.INTERNAL_ERROR)


def _classify(exc: BaseException) -> ExitCode:
    from gatekeeper.config.loader import ConfigLoadError
    from gatekeeper.config.schema import ConfigValidationError
    from gatekeeper.integration_plane.git_engine import GitEngineError
    from gatekeeper.integration_plane.orchestrator import (
        IntegrationLockError,
        UnknownContributorError,
    )

    config_errors = (
        ConfigLoadError,
        ConfigValidationError,
        UnknownContributorError,
        FileNotFoundError,
        NotADirectoryError,
        PermissionError,
    )
    for link in _causes(exc):
        if isinstance(link, (GitEngineError, IntegrationLockError)):
            return ExitCode.VCS_ERROR
        if isinstance(link, config_errors):
            return ExitCode.CONFIG_ERROR
    return ExitCode.INTERNAL_ERROR


def _causes(exc: BaseException) -> Iterator[BaseException]:
    """Walk explicit causes, then unsuppressed implicit context, stopping on cycles."""

    visited: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in visited:
        visited.add(id(current))
        yield current
        if current.__cause__ is not None:
            current = current.__cause__
        elif not current.__suppress_context__:
            current = current.__context__
        else:
            current = None


def _say(message: str) -> None:
    sys.stderr.write(message.rstrip("\n") + "\n")


__all__ = ["ExitCode", "cli_entrypoint"]
