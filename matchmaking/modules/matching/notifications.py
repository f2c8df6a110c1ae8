"""Interest notifications: the emitter interface and in-process adapters.

Delivery transport (push, poll, email) lives outside this service; adapters
here only log or hand events to in-process subscribers.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Protocol, runtime_checkable

import structlog

from matchmaking.modules.matching.domain import InterestEvent

logger = structlog.get_logger()


@runtime_checkable
class NotificationEmitter(Protocol):
    async def notify(self, event: InterestEvent) -> None: ...


class LogNotificationEmitter:
    """Default emitter: records every interest event in the structured log."""

    async def notify(self, event: InterestEvent) -> None:
        logger.info("interest_event", **event.to_dict())


class NotificationBroker:
    """Fans interest events out to per-party asyncio queues.

    Both parties of the pair (investor id and SME id) receive the event.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[asyncio.Queue]] = {}

    def subscribe(self, party_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.setdefault(party_id, []).append(queue)
        logger.info(
            "notification_subscribed",
            party_id=party_id,
            total=len(self._subscribers[party_id]),
        )
        return queue

    def unsubscribe(self, party_id: str, queue: asyncio.Queue) -> None:
        queues = self._subscribers.get(party_id)
        if queues and queue in queues:
            queues.remove(queue)
            if not queues:
                del self._subscribers[party_id]
        logger.info("notification_unsubscribed", party_id=party_id)

    async def notify(self, event: InterestEvent) -> None:
        for party_id in (event.investor_id, event.sme_id):
            for queue in self._subscribers.get(party_id, []):
                await queue.put(event)


class CompositeEmitter:
    """Delivers to several emitters; one failing does not stop the others."""

    def __init__(self, emitters: Sequence[NotificationEmitter]) -> None:
        self._emitters = list(emitters)

    async def notify(self, event: InterestEvent) -> None:
        results = await asyncio.gather(
            *(emitter.notify(event) for emitter in self._emitters),
            return_exceptions=True,
        )
        for emitter, result in zip(self._emitters, results):
            if isinstance(result, Exception):
                logger.warning(
                    "notification_emitter_failed",
                    emitter=type(emitter).__name__,
                    error=str(result),
                    **event.to_dict(),
                )
