"""Session event system for broadcasting engine state changes.

Provides event types, event data structures, and an event emitter for
decoupled communication between BreathingSessionEngine and UI, audio and
logging consumers.

Usage:
    emitter = SessionEventEmitter()
    emitter.subscribe(SessionEventType.PHASE_CHANGE, lambda evt: print(evt.data["phase"]))
    emitter.emit(SessionEvent(SessionEventType.PHASE_CHANGE, data={"phase": 1}))
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Callable, Optional


class SessionEventType(Enum):
    """Types of events that can occur during a breathing session."""

    # Session lifecycle
    SESSION_START = auto()     # Session started (or restarted)
    SESSION_PAUSE = auto()     # Ordinary pause
    SESSION_RESUME = auto()    # Resumed from pause or hold
    SESSION_END = auto()       # Session ended and summary produced

    # Progression
    PHASE_CHANGE = auto()      # Phase advanced (payload: phase, cycle, countdown)
    CYCLE_COMPLETE = auto()    # Phase index wrapped back to 0
    ELAPSED_TICK = auto()      # Elapsed seconds recomputed (1 s ticker)
    GOAL_REACHED = auto()      # Breath or duration goal met; session ends next

    # Holds
    HOLD_START = auto()
    HOLD_TICK = auto()         # Hold sampler refreshed current_hold_time
    HOLD_END = auto()

    # Errors
    PERSIST_FAILED = auto()    # Summary could not be saved


@dataclass
class SessionEvent:
    """Represents a session event with optional payload data.

    Attributes:
        event_type: Type of event that occurred
        data: Optional dictionary with event-specific data
        timestamp: Optional timestamp (set by emitter when missing)
    """
    event_type: SessionEventType
    data: Optional[dict[str, Any]] = None
    timestamp: Optional[float] = None

    def __str__(self) -> str:
        if self.data:
            data_str = ", ".join(f"{k}={v}" for k, v in self.data.items())
            return f"SessionEvent({self.event_type.name}, {data_str})"
        return f"SessionEvent({self.event_type.name})"


class SessionEventEmitter:
    """Event bus for session state changes.

    Multiple subscribers per event type are supported. A subscriber that
    raises is logged and skipped; it never interrupts the engine or the
    remaining subscribers.
    """

    def __init__(self):
        self._subscribers: dict[SessionEventType, list[Callable[[SessionEvent], None]]] = {}
        self.logger = logging.getLogger(__name__)

    def subscribe(
        self,
        event_type: SessionEventType,
        callback: Callable[[SessionEvent], None]
    ) -> None:
        """Subscribe to a specific event type.

        Args:
            event_type: Type of event to listen for
            callback: Function to call when event occurs (receives SessionEvent)
        """
        callbacks = self._subscribers.setdefault(event_type, [])
        if callback not in callbacks:
            callbacks.append(callback)
            self.logger.debug(f"[events] Subscribed to {event_type.name} (total={len(callbacks)})")

    def unsubscribe(
        self,
        event_type: SessionEventType,
        callback: Callable[[SessionEvent], None]
    ) -> None:
        callbacks = self._subscribers.get(event_type)
        if callbacks and callback in callbacks:
            callbacks.remove(callback)
            self.logger.debug(f"[events] Unsubscribed from {event_type.name} (total={len(callbacks)})")

    def emit(self, event: SessionEvent) -> None:
        """Emit an event to all subscribed callbacks."""
        if event.timestamp is None:
            event.timestamp = time.time()

        if event.event_type not in (SessionEventType.HOLD_TICK, SessionEventType.ELAPSED_TICK):
            self.logger.debug(f"[events] Emitting: {event}")

        for callback in list(self._subscribers.get(event.event_type, ())):
            try:
                callback(event)
            except Exception as e:
                self.logger.error(f"[events] Callback error for {event.event_type.name}: {e}", exc_info=True)

    def clear_all(self) -> None:
        """Remove all event subscribers (useful for testing/cleanup)."""
        self._subscribers.clear()
        self.logger.debug("[events] Cleared all subscribers")
