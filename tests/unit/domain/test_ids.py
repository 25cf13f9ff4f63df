"""Unit tests for prefixed identifier helpers."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from gatekeeper.domain import ids


def _fixed_bytes(size: int) -> bytes:
    return bytes(range(0xA0, 0xA0 + size))


def test_integration_ids_do_not_collide() -> None:
    generated = {ids.generate_integration_id() for _ in range(2_000)}
    assert len(generated) == 2_000


def test_prefixed_ids_are_deterministic_with_injected_bytes() -> None:
    assert ids.generate_integration_id(randbytes=_fixed_bytes) == "int-a0a1a2a3"
    assert ids.generate_override_id(randbytes=_fixed_bytes) == "ovr-a0a1a2a3"


def test_run_id_embeds_utc_start_time() -> None:
    now = datetime(2026, 3, 4, 5, 6, 7, tzinfo=UTC)
    assert ids.generate_run_id(now=now, randbytes=_fixed_bytes) == "run-20260304T050607Z-a0a1a2a3"


def test_validate_prefixed_id() -> None:
    ids.validate_prefixed_id("int-0123abcd", "int")

    with pytest.raises(ValueError, match="expected prefix"):
        ids.validate_prefixed_id("ovr-0123abcd", "int")
    for malformed in ["int-0123", "INT-0123abcd", "int_0123abcd", "int-0123abcg"]:
        with pytest.raises(ValueError, match="malformed id"):
            ids.validate_prefixed_id(malformed, "int")


def test_rejects_bad_prefix_and_short_randbytes() -> None:
    with pytest.raises(ValueError, match="invalid id prefix"):
        ids.generate_prefixed_id("Bad")
    with pytest.raises(ValueError, match="must return 4 bytes"):
        ids.generate_prefixed_id("int", randbytes=lambda size: b"\x00")
