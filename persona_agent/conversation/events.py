"""
Conversation Events

A small async event bus that lets front ends observe a turn while it runs
(typing indicators, live transcripts) without the orchestrator knowing who
is listening.

Event Types:
- MessageInProgressEvent: A raw fragment arrived from the model
- SentenceReadyEvent: The chunker completed a sentence
- SessionStateEvent: A voice session changed state
"""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Type

from persona_agent.logger import get_logger

logger = get_logger(__name__)

EventHandler = Callable[["Event"], Awaitable[None]]


@dataclass
class Event:
    """Base event class for all conversation events."""
    channel_id: str = ""
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    timestamp: float = field(default_factory=time.time)

    @property
    def age_ms(self) -> float:
        """Get event age in milliseconds."""
        return (time.time() - self.timestamp) * 1000


# ============================================================================
# Turn Events
# ============================================================================

@dataclass
class MessageInProgressEvent(Event):
    """A generation fragment, published as soon as it is received."""
    fragment: str = ""
    accumulated_text: str = ""

    @property
    def is_last(self) -> bool:
        return not self.fragment


@dataclass
class SentenceReadyEvent(Event):
    """A completed sentence handed to the stream sink."""
    sentence: str = ""
    index: int = 0


# ============================================================================
# Session Events
# ============================================================================

@dataclass
class SessionStateEvent(Event):
    """Voice session state transition."""
    state: str = ""
    previous_state: str = ""


# ============================================================================
# Event Bus
# ============================================================================

class EventBus:
    """
    Async publish/subscribe with direct dispatch.

    Handlers run in subscription order and are awaited before publish
    returns, so observers see fragments in the order the model produced
    them. A failing handler is logged and does not break the turn.
    """

    def __init__(self):
        self._handlers: Dict[Type[Event], List[EventHandler]] = {}
        self._event_count = 0

    def subscribe(self, event_type: Type[Event], handler: EventHandler) -> None:
        """Subscribe to events of a specific type."""
        handlers = self._handlers.setdefault(event_type, [])
        if handler not in handlers:
            handlers.append(handler)

    def unsubscribe(self, event_type: Type[Event], handler: EventHandler) -> None:
        """Unsubscribe a handler from an event type."""
        if event_type in self._handlers:
            self._handlers[event_type] = [
                h for h in self._handlers[event_type] if h != handler
            ]

    def has_subscribers(self, event_type: Type[Event]) -> bool:
        return any(
            issubclass(event_type, registered) and handlers
            for registered, handlers in self._handlers.items()
        )

    async def publish(self, event: Event) -> None:
        """Dispatch an event to every handler registered for its type."""
        self._event_count += 1

        handlers: List[EventHandler] = []
        for registered_type, type_handlers in self._handlers.items():
            if isinstance(event, registered_type):
                handlers.extend(type_handlers)

        for handler in handlers:
            try:
                await handler(event)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Handler error for {type(event).__name__}: {e}")

    @property
    def event_count(self) -> int:
        return self._event_count
