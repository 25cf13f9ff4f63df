"""Event bus: filtered delivery, async subscribers and subscriber isolation."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from gatekeeper.domain.models import IntegrationState, StateTransition
from gatekeeper.observability.events import EventBus


def transition(
    current: IntegrationState,
    *,
    previous: IntegrationState | None = None,
    integration_id: str = "int-00000001",
) -> StateTransition:
    return StateTransition(
        integration_id=integration_id,
        branch="frontend/task1",
        previous=previous,
        current=current,
        at=datetime(2026, 1, 1, tzinfo=UTC),
    )


@pytest.mark.asyncio
async def test_state_filter_and_async_subscribers() -> None:
    bus = EventBus()
    everything: list[IntegrationState] = []
    merged: list[IntegrationState] = []

    async def on_merge(event: StateTransition) -> None:
        merged.append(event.current)

    bus.subscribe(lambda event: everything.append(event.current))
    bus.subscribe(on_merge, state=IntegrationState.MERGING)

    await bus.publish(transition(IntegrationState.REVIEWED))
    await bus.publish(transition(IntegrationState.MERGING, previous=IntegrationState.REVIEWED))

    assert everything == [IntegrationState.REVIEWED, IntegrationState.MERGING]
    assert merged == [IntegrationState.MERGING]


@pytest.mark.asyncio
async def test_faulty_subscriber_is_isolated() -> None:
    bus = EventBus()
    seen: list[str] = []

    def explode(event: StateTransition) -> None:
        raise RuntimeError("dashboard offline")

    bus.subscribe(explode)
    bus.subscribe(lambda event: seen.append(event.integration_id))

    errors = await bus.publish(transition(IntegrationState.VALIDATING))

    assert seen == ["int-00000001"]
    assert [(item.target, item.error_type, item.message) for item in errors] == [
        ("explode", "RuntimeError", "dashboard offline")
    ]
    assert bus.dispatch_errors() == errors


@pytest.mark.asyncio
async def test_unsubscribe_and_replay() -> None:
    bus = EventBus(buffer_size=2)
    calls: list[IntegrationState] = []
    token = bus.subscribe(lambda event: calls.append(event.current))

    await bus.publish(transition(IntegrationState.REVIEWED))
    assert bus.unsubscribe(token) is True
    assert bus.unsubscribe(token) is False
    await bus.publish(transition(IntegrationState.MERGING, integration_id="int-00000002"))
    await bus.publish(transition(IntegrationState.VALIDATING, integration_id="int-00000002"))

    assert calls == [IntegrationState.REVIEWED]
    assert [item.current for item in bus.replay()] == [
        IntegrationState.MERGING,
        IntegrationState.VALIDATING,
    ]
    assert bus.replay(integration_id="int-00000001") == ()
    assert [item.current for item in bus.replay(limit=1)] == [IntegrationState.VALIDATING]


@pytest.mark.asyncio
async def test_publish_rejects_non_transitions() -> None:
    with pytest.raises(ValueError, match="StateTransition"):
        await EventBus().publish("reviewed")  # type: ignore[arg-type]


def test_invalid_buffer_size() -> None:
    with pytest.raises(ValueError, match="buffer_size"):
        EventBus(buffer_size=0)
