"""In-process event bus carrying integration state transitions."""

from __future__ import annotations

import inspect
import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import Final

from gatekeeper.domain.models import IntegrationState, StateTransition

Subscriber = Callable[[StateTransition], object]

_DEFAULT_ERROR_BUFFER: Final[int] = 1024


@dataclass(frozen=True, slots=True)
class DispatchError:
    """Subscriber failure captured without interrupting the publisher."""

    integration_id: str
    target: str
    error_type: str
    message: str


@dataclass(frozen=True, slots=True)
class _Subscription:
    token: int
    state: IntegrationState | None
    callback: Subscriber


class EventBus:
    """Publish/subscribe channel for ``StateTransition`` events.

    Subscribers may be plain callables or coroutine functions. Exceptions raised
    by a subscriber are recorded as ``DispatchError`` values; publishing never
    raises on subscriber failure, so an integration attempt is not aborted by a
    faulty consumer.
    """

    def __init__(self, *, buffer_size: int = 512) -> None:
        if not isinstance(buffer_size, int):
            raise ValueError(f"buffer_size must be an integer, got {type(buffer_size).__name__}")
        if buffer_size <= 0:
            raise ValueError("buffer_size must be > 0")

        self._buffer = deque[StateTransition](maxlen=buffer_size)
        self._subscriptions: dict[int, _Subscription] = {}
        self._dispatch_errors = deque[DispatchError](maxlen=_DEFAULT_ERROR_BUFFER)
        self._next_token = 1
        self._lock = threading.RLock()

    def subscribe(self, callback: Subscriber, *, state: IntegrationState | None = None) -> int:
        """Subscribe to transitions into ``state``, or to all transitions when ``None``."""

        if not callable(callback):
            raise ValueError("callback must be callable")

        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._subscriptions[token] = _Subscription(token=token, state=state, callback=callback)
        return token

    def unsubscribe(self, token: int) -> bool:
        with self._lock:
            return self._subscriptions.pop(token, None) is not None

    async def publish(self, event: StateTransition) -> tuple[DispatchError, ...]:
        """Publish from async code, awaiting async subscribers in subscription order."""

        if not isinstance(event, StateTransition):
            raise ValueError(f"event must be StateTransition, got {type(event).__name__}")
        with self._lock:
            self._buffer.append(event)
            subscriptions = tuple(self._subscriptions.values())

        errors: list[DispatchError] = []
        for subscription in subscriptions:
            if subscription.state is not None and subscription.state is not event.current:
                continue
            try:
                result = subscription.callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:  # noqa: BLE001 - subscriber isolation.
                errors.append(
                    DispatchError(
                        integration_id=event.integration_id,
                        target=_callback_name(subscription.callback),
                        error_type=exc.__class__.__name__,
                        message=str(exc),
                    )
                )

        if errors:
            with self._lock:
                self._dispatch_errors.extend(errors)
        return tuple(errors)

    def replay(
        self,
        *,
        integration_id: str | None = None,
        limit: int | None = None,
    ) -> tuple[StateTransition, ...]:
        """Replay buffered transitions in publish order."""

        with self._lock:
            events = tuple(self._buffer)
        if integration_id is not None:
            events = tuple(item for item in events if item.integration_id == integration_id)
        if limit is not None:
            if limit <= 0:
                return ()
            events = events[-limit:]
        return events

    def dispatch_errors(self) -> tuple[DispatchError, ...]:
        with self._lock:
            return tuple(self._dispatch_errors)


def _callback_name(callback: object) -> str:
    name = getattr(callback, "__name__", None)
    if isinstance(name, str) and name:
        return name
    return callback.__class__.__name__


__all__ = ["DispatchError", "EventBus", "Subscriber"]
