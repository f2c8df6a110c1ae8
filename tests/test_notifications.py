"""Tests for notification adapters."""

import pytest

from factories import RecordingEmitter
from matchmaking.models.enums import InterestDirection, InterestEventKind
from matchmaking.modules.matching.domain import InterestEvent
from matchmaking.modules.matching.notifications import (
    CompositeEmitter,
    LogNotificationEmitter,
    NotificationBroker,
    NotificationEmitter,
)

pytestmark = pytest.mark.anyio

EVENT = InterestEvent(
    kind=InterestEventKind.MUTUAL_INTEREST,
    investor_id="inv_1",
    sme_id="sme_1",
    direction=InterestDirection.SME_TO_INVESTOR,
    message="private note",
)


class TestNotificationBroker:
    async def test_both_parties_receive_the_event(self) -> None:
        broker = NotificationBroker()
        investor_queue = broker.subscribe("inv_1")
        sme_queue = broker.subscribe("sme_1")
        bystander = broker.subscribe("inv_2")

        await broker.notify(EVENT)

        assert investor_queue.get_nowait() is EVENT
        assert sme_queue.get_nowait() is EVENT
        assert bystander.empty()

    async def test_unsubscribe_stops_delivery(self) -> None:
        broker = NotificationBroker()
        queue = broker.subscribe("inv_1")
        broker.unsubscribe("inv_1", queue)
        await broker.notify(EVENT)
        assert queue.empty()


class TestCompositeEmitter:
    async def test_failing_emitter_does_not_block_others(self) -> None:
        class Broken:
            async def notify(self, event: InterestEvent) -> None:
                raise ConnectionError("smtp unreachable")

        recorder = RecordingEmitter()
        composite = CompositeEmitter([Broken(), LogNotificationEmitter(), recorder])
        await composite.notify(EVENT)
        assert recorder.events == [EVENT]


def test_event_payload_omits_message() -> None:
    payload = EVENT.to_dict()
    assert payload == {
        "kind": "MUTUAL_INTEREST",
        "investor_id": "inv_1",
        "sme_id": "sme_1",
        "direction": "SME_TO_INVESTOR",
    }


def test_adapters_satisfy_protocol() -> None:
    assert isinstance(LogNotificationEmitter(), NotificationEmitter)
    assert isinstance(NotificationBroker(), NotificationEmitter)
    assert isinstance(RecordingEmitter(), NotificationEmitter)
