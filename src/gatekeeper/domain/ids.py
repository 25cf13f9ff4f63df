"""Identifier generation for integration attempts and runs."""

from __future__ import annotations

import re
import secrets
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Final

INTEGRATION_ID_PREFIX: Final[str] = "int"
RUN_ID_PREFIX: Final[str] = "run"
OVERRIDE_ID_PREFIX: Final[str] = "ovr"

_TOKEN_BYTES: Final[int] = 4
_PREFIX_RE: Final[re.Pattern[str]] = re.compile(r"^[a-z][a-z0-9]{1,15}$")
_TOKEN_RE: Final[re.Pattern[str]] = re.compile(r"^[a-z][a-z0-9]{1,15}-[0-9a-f]{8}$")

_RandBytes = Callable[[int], bytes]

__all__ = [
    "INTEGRATION_ID_PREFIX",
    "OVERRIDE_ID_PREFIX",
    "RUN_ID_PREFIX",
    "generate_integration_id",
    "generate_override_id",
    "generate_prefixed_id",
    "generate_run_id",
    "validate_prefixed_id",
]


def generate_prefixed_id(prefix: str, *, randbytes: _RandBytes | None = None) -> str:
    """Generate ``<prefix>-<8 hex chars>`` from 4 random bytes."""
    if not _PREFIX_RE.fullmatch(prefix):
        raise ValueError(f"invalid id prefix {prefix!r}")
    source = randbytes if randbytes is not None else secrets.token_bytes
    raw = source(_TOKEN_BYTES)
    if len(raw) != _TOKEN_BYTES:
        raise ValueError(f"randbytes must return {_TOKEN_BYTES} bytes, got {len(raw)}")
    return f"{prefix}-{raw.hex()}"


def validate_prefixed_id(id_str: str, expected_prefix: str) -> None:
    if not isinstance(id_str, str) or not _TOKEN_RE.fullmatch(id_str):
        raise ValueError(f"malformed id {id_str!r}")
    if not id_str.startswith(f"{expected_prefix}-"):
        raise ValueError(f"expected prefix '{expected_prefix}-' in {id_str!r}")


def generate_integration_id(*, randbytes: _RandBytes | None = None) -> str:
    return generate_prefixed_id(INTEGRATION_ID_PREFIX, randbytes=randbytes)


def generate_override_id(*, randbytes: _RandBytes | None = None) -> str:
    return generate_prefixed_id(OVERRIDE_ID_PREFIX, randbytes=randbytes)


def generate_run_id(*, now: datetime | None = None, randbytes: _RandBytes | None = None) -> str:
    """Run ids sort by start time: ``run-<UTC timestamp>-<token>``."""
    moment = (now or datetime.now(tz=UTC)).astimezone(UTC)
    token = generate_prefixed_id(RUN_ID_PREFIX, randbytes=randbytes)
    return f"{RUN_ID_PREFIX}-{moment.strftime('%Y%m%dT%H%M%SZ')}-{token.split('-', 1)[1]}"
