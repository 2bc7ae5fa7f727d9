"""Message bus interface used to publish integration events."""

from __future__ import annotations

from typing import Any, Dict, Protocol


class IEventBus(Protocol):
    """Event bus interface.

    Implementations deliver at-least-once; a ``publish`` that raises means
    the event was not handed over and must be retried by the caller.
    """

    def publish(self, event_name: str, payload: Dict[str, Any]) -> None: ...
