"""
Event System Module

Publish/subscribe dispatcher for ledger and settlement events, and a
per-user notification inbox that the presentation layer drains to show
messages such as cheque clearing results.
"""

from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Deque, Dict, List
import logging
import uuid
from threading import RLock


class DomainEvent(Enum):
    """Events raised by the ATM ledger"""

    # Account events
    ACCOUNT_CREATED = "account.created"
    PIN_CHANGED = "account.pin_changed"
    LOW_BALANCE = "account.low_balance"

    # Ledger events
    DEPOSITED = "ledger.deposited"
    WITHDRAWN = "ledger.withdrawn"
    WITHDRAWAL_REJECTED = "ledger.withdrawal_rejected"

    # Cheque events
    CHEQUE_SCHEDULED = "cheque.scheduled"
    CHEQUE_CLEARED = "cheque.cleared"
    CHEQUE_ABORTED = "cheque.aborted"


@dataclass
class EventPayload:
    """Payload for domain events"""
    event_type: DomainEvent
    username: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            'event_type': self.event_type.value,
            'username': self.username,
            'message': self.message,
            'data': self.data,
            'timestamp': self.timestamp.isoformat(),
            'event_id': self.event_id
        }


class EventDispatcher:
    """Central event dispatcher, publish/subscribe pattern"""

    def __init__(self):
        self._handlers: Dict[DomainEvent, List[Callable]] = {}
        self._lock = RLock()
        self.logger = logging.getLogger("atm.events")

    def subscribe(self, event_type: DomainEvent, handler: Callable) -> None:
        """Subscribe to a specific event type"""
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)

    def publish(self, event: EventPayload) -> None:
        """Publish event to all subscribers"""
        with self._lock:
            handlers = list(self._handlers.get(event.event_type, []))

        self.logger.debug(f"Publishing event {event.event_type.value} for {event.username}")
        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                # Log but don't break the main operation
                self.logger.error(f"Error in event handler {getattr(handler, '__name__', repr(handler))} for {event.event_type.value}: {e}")


class NotificationInbox:
    """
    Bounded per-user message queue fed by the dispatcher.

    Only events that carry a user-facing message are kept; the oldest
    messages are dropped once ``max_per_user`` is reached.
    """

    USER_FACING = (
        DomainEvent.CHEQUE_CLEARED,
        DomainEvent.CHEQUE_ABORTED,
        DomainEvent.LOW_BALANCE,
    )

    def __init__(self, max_per_user: int = 50):
        self._messages: Dict[str, Deque[EventPayload]] = defaultdict(lambda: deque(maxlen=max_per_user))
        self._lock = RLock()

    def attach(self, dispatcher: EventDispatcher) -> None:
        for event_type in self.USER_FACING:
            dispatcher.subscribe(event_type, self.deliver)

    def deliver(self, event: EventPayload) -> None:
        with self._lock:
            self._messages[event.username].append(event)

    def peek(self, username: str) -> List[EventPayload]:
        with self._lock:
            return list(self._messages.get(username, ()))

    def drain(self, username: str) -> List[EventPayload]:
        """Return and remove all pending messages for ``username``"""
        with self._lock:
            pending = self._messages.pop(username, None)
            return list(pending) if pending else []
