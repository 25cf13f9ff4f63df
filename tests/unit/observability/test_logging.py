"""
gatekeeper — unit tests for observability logging

File: tests/unit/observability/test_logging.py

Purpose
- JSON-lines output lands under ``<log_dir>/<run_id>/gatekeeper.jsonl``.
- Secrets are redacted from messages and nested fields.
- Correlation fields propagate from ``correlation_scope`` and structlog kwargs.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING
from uuid import uuid4

import pytest
import structlog

from gatekeeper.observability.logging import (
    LoggingConfig,
    correlation_scope,
    default_log_redactor,
    get_active_logging_handle,
    get_correlation_context,
    setup_logging,
    setup_structured_logging,
    shutdown_logging,
)

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture(autouse=True)
def _cleanup_logging() -> Iterator[None]:
    yield
    shutdown_logging()


def _read_json_lines(path: Path) -> list[dict[str, object]]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def test_redacts_secrets_and_keeps_correlation(tmp_path: Path) -> None:
    logger_name = f"gatekeeper.tests.{uuid4().hex}"
    handle = setup_structured_logging(
        LoggingConfig(run_id="run-redaction", base_log_dir=tmp_path, logger_name=logger_name)
    )
    logger = logging.getLogger(logger_name)

    with correlation_scope(integration_id="int-0000abcd", branch="frontend/task1"):
        logger.info(
            "push with token=tok-FAKE and Bearer abc.def",
            extra={"nested": {"password": "hunter2", "safe": "ok"}},
        )
    shutdown_logging(handle)

    assert handle.log_path == tmp_path / "run-redaction" / "gatekeeper.jsonl"
    [event] = _read_json_lines(handle.log_path)
    assert event["run_id"] == "run-redaction"
    assert event["integration_id"] == "int-0000abcd"
    assert event["branch"] == "frontend/task1"
    assert "tok-FAKE" not in str(event["message"])
    assert "abc.def" not in str(event["message"])
    assert event["fields"] == {"nested": {"password": "***REDACTED***", "safe": "ok"}}


def test_structlog_events_reach_the_run_log(tmp_path: Path) -> None:
    handle = setup_logging(run_id="run-structlog", log_dir=tmp_path, level="DEBUG")
    logger = structlog.get_logger("gatekeeper.tests.structlog")

    logger.info("integration_started", branch="backend/api", files_changed=3)
    logger.debug("scan_done", api_key="sk-FAKE")
    shutdown_logging(handle)

    events = _read_json_lines(tmp_path / "run-structlog" / "gatekeeper.jsonl")
    assert [event["message"] for event in events] == ["integration_started", "scan_done"]
    assert events[0]["branch"] == "backend/api"
    assert events[0]["fields"] == {"files_changed": 3}
    assert events[1]["fields"] == {"api_key": "***REDACTED***"}


def test_structlog_fields_may_share_names_with_record_attributes(tmp_path: Path) -> None:
    handle = setup_logging(run_id="run-reserved", log_dir=tmp_path)
    logger = structlog.get_logger("gatekeeper.tests.reserved")

    logger.info("repository_initialized", created=True, name="repo", msg="hello", args=2)
    shutdown_logging(handle)

    [event] = _read_json_lines(handle.log_path)
    assert event["message"] == "repository_initialized"
    assert event["fields"] == {"args": 2, "created": True, "msg": "hello", "name": "repo"}


def test_level_filters_lower_records(tmp_path: Path) -> None:
    handle = setup_logging(run_id="run-level", log_dir=tmp_path, level="WARNING")
    logger = structlog.get_logger("gatekeeper.tests.level")

    logger.info("ignored")
    logger.warning("kept")
    shutdown_logging(handle)

    events = _read_json_lines(handle.log_path)
    assert [event["message"] for event in events] == ["kept"]
    assert events[0]["level"] == "WARNING"


def test_setup_replaces_previous_handle(tmp_path: Path) -> None:
    first = setup_logging(run_id="run-one", log_dir=tmp_path)
    second = setup_logging(run_id="run-two", log_dir=tmp_path)

    assert first.is_shutdown is True
    assert get_active_logging_handle() is second

    shutdown_logging()
    assert second.is_shutdown is True
    assert get_active_logging_handle() is None


def test_correlation_scope_nests_and_restores() -> None:
    with correlation_scope(integration_id="int-00000001"):
        with correlation_scope(branch="frontend/a", integration_id=None):
            assert get_correlation_context() == {"branch": "frontend/a"}
        assert get_correlation_context() == {"integration_id": "int-00000001"}
    assert get_correlation_context() == {}


def test_default_redactor_walks_lists_and_assignments() -> None:
    redacted = default_log_redactor(
        {"items": ["password=abc", {"client_secret": "x"}], "note": "fine"}
    )
    assert redacted == {
        "items": ["password=***REDACTED***", {"client_secret": "***REDACTED***"}],
        "note": "fine",
    }


@pytest.mark.parametrize(
    ("config", "message"),
    [
        (LoggingConfig(run_id=" "), "run_id must not be empty"),
        (LoggingConfig(run_id="run-x", queue_size=0), "queue_size"),
        (LoggingConfig(run_id="run-x", log_filename="a/b.jsonl"), "path separators"),
        (LoggingConfig(run_id="run-x", level="CHATTY"), "unsupported logging level"),
    ],
)
def test_invalid_logging_config(tmp_path: Path, config: LoggingConfig, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        setup_structured_logging(
            LoggingConfig(
                run_id=config.run_id,
                base_log_dir=tmp_path,
                level=config.level,
                queue_size=config.queue_size,
                log_filename=config.log_filename,
            )
        )
