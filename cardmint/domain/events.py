"""In-process notifications for issuance and fulfillment."""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Awaitable, Callable, DefaultDict, Iterable, Mapping

EventPayload = Mapping[str, Any]
EventListener = Callable[[EventPayload], Awaitable[None]]

# Names published by the services.
PACK_OPENED = "pack.opened"
PURCHASE_FULFILLED = "purchase.fulfilled"
PURCHASE_FAILED = "purchase.failed"
LEDGER_RESET = "admin.ledger.reset"


class EventBus:
    """Async pub-sub used to notify collaborators (UI, image queue, audit)."""

    def __init__(self) -> None:
        self._listeners: DefaultDict[str, list[EventListener]] = defaultdict(list)

    def subscribe(self, event_name: str, listener: EventListener) -> None:
        self._listeners[event_name].append(listener)

    def unsubscribe(self, event_name: str, listener: EventListener) -> None:
        listeners = self._listeners.get(event_name)
        if listeners and listener in listeners:
            listeners.remove(listener)

    async def publish(self, event_name: str, payload: EventPayload) -> None:
        for listener in list(self._listeners.get(event_name, ())):
            await listener(payload)

    def clear(self) -> None:
        self._listeners.clear()

    def listeners(self, event_name: str) -> Iterable[EventListener]:
        return tuple(self._listeners.get(event_name, ()))
