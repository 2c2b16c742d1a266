"""Event routing utilities for MQTT payloads."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

LOGGER = logging.getLogger("redirector.event_router")


@dataclass
class InboundEvent:
    type: str
    actor: Optional[str] = None
    text: Optional[str] = None
    source: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


Handler = Callable[[InboundEvent], None]


class EventRouter:
    def __init__(
        self,
        on_message: Handler,
        on_join: Handler,
        on_list: Handler,
        on_health: Handler,
    ) -> None:
        self._on_message = on_message
        self._on_join = on_join
        self._on_list = on_list
        self._on_health = on_health

    def dispatch(self, payload: Dict[str, Any]) -> None:
        if not isinstance(payload, dict):
            LOGGER.error("event payload must be a dict")
            return
        event_type = str(payload.get("type") or "").upper()
        event = InboundEvent(
            type=event_type,
            actor=payload.get("gamertag") or payload.get("actor"),
            text=payload.get("message") or payload.get("text"),
            source=payload.get("source"),
            raw=payload,
        )
        if event_type == "MESSAGE":
            self._on_message(event)
        elif event_type in {"PLAYER_JOIN", "JOIN"}:
            self._on_join(event)
        elif event_type == "LIST_PENDING":
            self._on_list(event)
        elif event_type == "HEALTH":
            self._on_health(event)
        else:
            LOGGER.info("ignoring unsupported event", extra={"type": event_type})


__all__ = ["EventRouter", "InboundEvent"]
