"""Request data channel: the boundary to the persistent request store.

Real deployments talk to a hosted database; the workflow core only
needs load/save and, optionally, change notification. Implementations
may raise or return (value, error) pairs; the resilience layer accepts
both.
"""

from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Protocol

from sipandai.models.request import ServiceRequest

ChangeCallback = Callable[[ServiceRequest], None]


class RequestChannel(Protocol):
    def load_request(self, request_id: str) -> Awaitable[Any]:
        ...

    def save_request(self, request: ServiceRequest) -> Awaitable[Any]:
        ...


class InMemoryRequestChannel:
    """Reference channel holding records as plain dicts.

    Records are copied on the way in and out, so callers never share
    state with the store. save_request assigns updated_utc (and
    created_utc on first save), like a server would.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._records: dict[str, dict[str, Any]] = {}
        self._subscribers: list[ChangeCallback] = []
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def load_request(self, request_id: str) -> ServiceRequest:
        data = self._records.get(request_id)
        if data is None:
            raise LookupError(f"Request not found: {request_id}")
        return ServiceRequest.from_dict(data)

    async def save_request(self, request: ServiceRequest) -> ServiceRequest:
        stored = copy.deepcopy(request)
        now = self._clock()
        if stored.created_utc is None:
            stored.created_utc = now
        stored.updated_utc = now
        self._records[stored.request_id] = stored.to_dict()

        saved = ServiceRequest.from_dict(self._records[stored.request_id])
        for callback in list(self._subscribers):
            callback(copy.deepcopy(saved))
        return saved

    def subscribe(self, callback: ChangeCallback) -> Callable[[], None]:
        """Register a change listener. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    @property
    def count(self) -> int:
        return len(self._records)
