"""
Auction notifications.

Each accepted operation appends one or more AuctionEvent records to an
ordered log. Sequence numbers are assigned by the log. Events of an
operation that is rolled back are dropped before any listener sees them.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from escrow_auction.utils.logger import get_logger

logger = get_logger("events")


class EventType(str, Enum):
    """Kinds of notification emitted by the auction."""
    AUCTION_CREATED = "AuctionCreated"
    DEPOSIT_MADE = "DepositMade"
    BID_PLACED = "BidPlaced"
    AUCTION_ENDED = "AuctionEnded"
    DEPOSIT_RETURNED = "DepositReturned"


@dataclass(frozen=True)
class AuctionEvent:
    """A single notification."""
    sequence: int
    event_type: EventType
    timestamp: int
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "sequence": self.sequence,
            "event_type": self.event_type.value,
            "timestamp": self.timestamp,
            "data": dict(self.data),
        }

    @classmethod
    def from_dict(cls, raw: dict) -> "AuctionEvent":
        return cls(
            sequence=raw["sequence"],
            event_type=EventType(raw["event_type"]),
            timestamp=raw["timestamp"],
            data=dict(raw.get("data", {})),
        )


Listener = Callable[[AuctionEvent], None]


class EventLog:
    """
    Ordered notification log with optional listeners.

    Listeners run once the event is published. A listener that raises is
    logged and skipped; it cannot undo the state change that produced the
    event.
    """

    def __init__(self, events: Optional[List[AuctionEvent]] = None):
        self._events: List[AuctionEvent] = list(events or [])
        self._listeners: List[Listener] = []

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self):
        return iter(list(self._events))

    @property
    def events(self) -> List[AuctionEvent]:
        return list(self._events)

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def record(self, event_type: EventType, timestamp: int, **data) -> AuctionEvent:
        """Append an event without telling listeners yet."""
        event = AuctionEvent(
            sequence=len(self._events) + 1,
            event_type=event_type,
            timestamp=timestamp,
            data=data,
        )
        self._events.append(event)
        logger.debug(f"Event #{event.sequence} {event_type.value}: {data}")
        return event

    def since(self, length: int) -> List[AuctionEvent]:
        return self._events[length:]

    def truncate(self, length: int) -> None:
        """Drop unpublished events recorded after the first ``length``."""
        del self._events[length:]

    def publish(self, events: List[AuctionEvent]) -> None:
        for event in events:
            for listener in list(self._listeners):
                try:
                    listener(event)
                except Exception:
                    logger.exception(f"Listener {listener!r} failed on {event.event_type.value}")

    def of_type(self, event_type: EventType) -> List[AuctionEvent]:
        return [e for e in self._events if e.event_type == event_type]
