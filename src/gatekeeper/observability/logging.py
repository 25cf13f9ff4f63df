"""Per-run structured logging: structlog events written as JSON lines.

Every ``gatekeeper`` invocation gets a run id and one log file,
``<log_dir>/<run_id>/gatekeeper.jsonl``. Records are put on a bounded queue by
the emitting thread and written by a ``QueueListener``. When the queue is full
a record is dropped and counted; logging never blocks an integration attempt.
"""

from __future__ import annotations

import atexit
import contextvars
import json
import logging
import logging.handlers
import math
import queue
import re
import threading
import time
from collections.abc import Iterator, Mapping, MutableMapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Final

import structlog

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

_REDACTED: Final[str] = "***REDACTED***"
_LOG_FILENAME: Final[str] = "gatekeeper.jsonl"
_ROOT_LOGGER: Final[str] = "gatekeeper"
_QUEUE_SIZE: Final[int] = 4096

# Promoted to top-level JSON keys instead of being nested under ``fields``.
_CORRELATION_KEYS: Final[frozenset[str]] = frozenset({"run_id", "integration_id", "branch"})

_SECRET_KEY_FRAGMENTS: Final[tuple[str, ...]] = (
    "secret",
    "token",
    "password",
    "passphrase",
    "api_key",
    "apikey",
    "authorization",
    "credential",
    "private_key",
)
_SECRET_ASSIGNMENT: Final[re.Pattern[str]] = re.compile(
    r"(?i)\b(api[_-]?key|token|password|secret|client_secret|authorization)\b\s*([:=])\s*([^\s,;]+)"
)
_BEARER: Final[re.Pattern[str]] = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*")

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RECORD_ATTRIBUTES: Final[frozenset[str]] = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime", "correlation"}

# structlog event fields travel under this one record attribute so keys such as
# ``created`` or ``name`` never collide with LogRecord attributes.
_EVENT_FIELDS: Final[str] = "_event_fields"

_correlation: contextvars.ContextVar[tuple[tuple[str, str], ...]] = contextvars.ContextVar(
    "gatekeeper_log_correlation", default=()
)

_active_lock = threading.Lock()
_active: StructuredLoggingHandle | None = None
_atexit_hooked = False


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Where and how one run logs."""

    run_id: str
    base_log_dir: Path | str = Path(".gatekeeper/logs")
    logger_name: str = _ROOT_LOGGER
    level: int | str = "INFO"
    queue_size: int = _QUEUE_SIZE
    log_filename: str = _LOG_FILENAME
    log_to_stdout: bool = False


class _RunQueueHandler(logging.handlers.QueueHandler):
    def __init__(self, log_queue: queue.Queue[logging.LogRecord]) -> None:
        super().__init__(log_queue)
        self._dropped = 0
        self._dropped_lock = threading.Lock()

    @property
    def dropped(self) -> int:
        with self._dropped_lock:
            return self._dropped

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        # The listener thread cannot see this thread's contextvars.
        bound = get_correlation_context()
        if bound:
            record.correlation = bound
        return super().prepare(record)  # type: ignore[no-any-return]

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            with self._dropped_lock:
                self._dropped += 1


class _JsonLinesFormatter(logging.Formatter):
    def __init__(self, run_id: str) -> None:
        super().__init__()
        self._run_id = run_id

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, JSONValue] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": _redact_text(record.getMessage()),
        }
        line.update(sorted(_correlation_for(record, self._run_id).items()))

        extras = {
            key: _to_json(value)
            for key, value in _record_extras(record)
            if key not in _CORRELATION_KEYS
        }
        if extras:
            line["fields"] = default_log_redactor(extras)
        if record.exc_info is not None:
            line["exception"] = _redact_text(self.formatException(record.exc_info))
        return json.dumps(line, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class StructuredLoggingHandle:
    """Owns the queue listener and file sink of one run."""

    def __init__(
        self,
        *,
        logger: logging.Logger,
        run_id: str,
        log_path: Path,
        handler: _RunQueueHandler,
        listener: logging.handlers.QueueListener,
        sinks: tuple[logging.Handler, ...],
    ) -> None:
        self.logger = logger
        self.run_id = run_id
        self.log_path = log_path
        self._handler = handler
        self._listener = listener
        self._sinks = sinks
        self._lock = threading.Lock()
        self._closed = False

    @property
    def dropped_records(self) -> int:
        return self._handler.dropped

    @property
    def is_shutdown(self) -> bool:
        return self._closed

    def flush(self, *, timeout_seconds: float = 2.0) -> None:
        pending = self._handler.queue
        deadline = time.monotonic() + max(timeout_seconds, 0.0)
        while getattr(pending, "unfinished_tasks", 0) and time.monotonic() < deadline:
            time.sleep(0.01)
        for sink in self._sinks:
            sink.flush()

    def shutdown(self, *, timeout_seconds: float = 2.0) -> None:
        with self._lock:
            if self._closed:
                return
            self.flush(timeout_seconds=timeout_seconds)
            self._listener.stop()
            self.logger.removeHandler(self._handler)
            self._handler.close()
            for sink in self._sinks:
                sink.close()
            self._closed = True


def setup_logging(
    *,
    run_id: str,
    log_dir: Path | str,
    level: int | str = "INFO",
    log_to_stdout: bool = False,
) -> StructuredLoggingHandle:
    """Configure stdlib logging plus structlog for one gatekeeper run.

    Parameters
    ----------
    run_id:
        Correlation identifier; logs land in ``<log_dir>/<run_id>/gatekeeper.jsonl``.
    log_dir:
        Base directory for per-run log directories.
    level:
        Minimum level for both sinks.
    log_to_stdout:
        Mirror JSON lines to stderr in addition to the file.
    """

    handle = setup_structured_logging(
        LoggingConfig(
            run_id=run_id,
            base_log_dir=log_dir,
            level=level,
            log_to_stdout=log_to_stdout,
        )
    )
    configure_structlog()
    return handle


def configure_structlog() -> None:
    """Route ``structlog.get_logger(__name__)`` calls into stdlib logging.

    Event names become the record message and bound keyword fields become
    one record extra, which the JSON formatter unpacks under ``fields``.
    """

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.format_exc_info,
            _to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def setup_structured_logging(config: LoggingConfig) -> StructuredLoggingHandle:
    """Start the queue-backed JSON-lines pipeline, replacing any active one."""

    global _active

    shutdown_logging()

    run_id = _non_empty(config.run_id, "run_id")
    if config.queue_size <= 0:
        raise ValueError("queue_size must be > 0")
    filename = _non_empty(config.log_filename, "log_filename")
    if Path(filename).name != filename:
        raise ValueError("log_filename must not include path separators")
    level = _level_number(config.level)

    log_path = Path(config.base_log_dir) / run_id / filename
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = _JsonLinesFormatter(run_id)
    sinks: list[logging.Handler] = [logging.FileHandler(log_path, encoding="utf-8")]
    if config.log_to_stdout:
        sinks.append(logging.StreamHandler())
    for sink in sinks:
        sink.setLevel(level)
        sink.setFormatter(formatter)

    logger = logging.getLogger(_non_empty(config.logger_name, "logger_name"))
    logger.setLevel(level)
    logger.propagate = False
    for stale in list(logger.handlers):
        logger.removeHandler(stale)
        stale.close()

    log_queue: queue.Queue[logging.LogRecord] = queue.Queue(maxsize=config.queue_size)
    handler = _RunQueueHandler(log_queue)
    handler.setLevel(level)
    listener = logging.handlers.QueueListener(log_queue, *sinks, respect_handler_level=True)
    listener.start()
    logger.addHandler(handler)

    handle = StructuredLoggingHandle(
        logger=logger,
        run_id=run_id,
        log_path=log_path,
        handler=handler,
        listener=listener,
        sinks=tuple(sinks),
    )
    with _active_lock:
        _active = handle
    _hook_atexit()
    return handle


def flush_logging(
    handle: StructuredLoggingHandle | None = None,
    *,
    timeout_seconds: float = 2.0,
) -> None:
    target = handle if handle is not None else get_active_logging_handle()
    if target is not None:
        target.flush(timeout_seconds=timeout_seconds)


def shutdown_logging(
    handle: StructuredLoggingHandle | None = None,
    *,
    timeout_seconds: float = 2.0,
) -> None:
    """Stop ``handle`` (default: the active one) and close its sinks."""

    global _active

    target = handle if handle is not None else get_active_logging_handle()
    if target is None:
        return
    target.shutdown(timeout_seconds=timeout_seconds)
    with _active_lock:
        if _active is target:
            _active = None


def get_active_logging_handle() -> StructuredLoggingHandle | None:
    with _active_lock:
        return _active


def get_correlation_context() -> dict[str, str]:
    return dict(_correlation.get())


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Bind correlation fields such as ``integration_id`` and ``branch`` in scope.

    A ``None`` value unbinds the field for the duration of the scope.
    """

    bound = get_correlation_context()
    for key, value in fields.items():
        name = _non_empty(key, "correlation key")
        if value is None:
            bound.pop(name, None)
        else:
            bound[name] = _non_empty(value, "correlation value")
    token = _correlation.set(tuple(bound.items()))
    try:
        yield
    finally:
        _correlation.reset(token)


def default_log_redactor(value: JSONValue) -> JSONValue:
    """Redact values under secret-looking keys and secret assignments in text."""

    if isinstance(value, str):
        return _redact_text(value)
    if isinstance(value, list):
        return [default_log_redactor(item) for item in value]
    if isinstance(value, dict):
        return {
            key: _REDACTED if _is_secret_key(key) else default_log_redactor(item)
            for key, item in value.items()
        }
    return value


def _hook_atexit() -> None:
    global _atexit_hooked
    if not _atexit_hooked:
        atexit.register(shutdown_logging)
        _atexit_hooked = True


def _non_empty(value: str, name: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a string, got {type(value).__name__}")
    stripped = value.strip()
    if not stripped:
        raise ValueError(f"{name} must not be empty")
    return stripped


def _level_number(value: int | str) -> int:
    if isinstance(value, int):
        return value
    number = logging.getLevelName(value.strip().upper())
    if not isinstance(number, int):
        raise ValueError(f"unsupported logging level {value!r}")
    return number


def _to_log_kwargs(
    _logger: object, _method_name: str, event_dict: MutableMapping[str, Any]
) -> dict[str, Any]:
    kwargs: dict[str, Any] = {"msg": event_dict.pop("event", "")}
    for key in ("exc_info", "stack_info", "stacklevel"):
        if key in event_dict:
            kwargs[key] = event_dict.pop(key)
    kwargs["extra"] = {_EVENT_FIELDS: dict(event_dict)}
    return kwargs


def _record_extras(record: logging.LogRecord) -> Iterator[tuple[str, object]]:
    for key, value in record.__dict__.items():
        if key not in _RECORD_ATTRIBUTES and not key.startswith("_"):
            yield key, value
    event_fields = record.__dict__.get(_EVENT_FIELDS)
    if isinstance(event_fields, Mapping):
        yield from event_fields.items()


def _correlation_for(record: logging.LogRecord, run_id: str) -> dict[str, str]:
    merged = {"run_id": run_id}
    captured = getattr(record, "correlation", None)
    if isinstance(captured, Mapping):
        merged.update(
            (key, value.strip())
            for key, value in captured.items()
            if isinstance(key, str) and isinstance(value, str) and value.strip()
        )
    # structlog kwargs such as ``branch=...`` arrive with the event fields.
    event_fields = dict(_record_extras(record))
    for key in _CORRELATION_KEYS:
        value = event_fields.get(key)
        if isinstance(value, str) and value.strip():
            merged[key] = value.strip()
    return merged


def _to_json(value: object) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else repr(value)
    if isinstance(value, datetime):
        aware = value if value.tzinfo is not None else value.replace(tzinfo=UTC)
        return aware.astimezone(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, Mapping):
        return {str(key): _to_json(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_json(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_to_json(item) for item in value), key=json.dumps)
    return repr(value)


def _is_secret_key(key: str) -> bool:
    lowered = key.lower()
    return any(fragment in lowered for fragment in _SECRET_KEY_FRAGMENTS)


def _redact_text(text: str) -> str:
    text = _SECRET_ASSIGNMENT.sub(lambda match: f"{match[1]}{match[2]}{_REDACTED}", text)
    return _BEARER.sub(f"Bearer {_REDACTED}", text)


__all__ = [
    "JSONScalar",
    "JSONValue",
    "LoggingConfig",
    "StructuredLoggingHandle",
    "configure_structlog",
    "correlation_scope",
    "default_log_redactor",
    "flush_logging",
    "get_active_logging_handle",
    "get_correlation_context",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
