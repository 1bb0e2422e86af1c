"""
Transport-agnostic state-change events.

Write operations return an ordered list of MarketplaceEvent; the
notification service maps them onto WebSocket channels and FCM topics.
"""
import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone


class EventType(str, enum.Enum):
    BID_SUBMITTED = "bidSubmitted"
    BID_UPDATED = "bidUpdated"
    BID_WITHDRAWN = "bidWithdrawn"
    BID_ACCEPTED = "bidAccepted"
    BID_REJECTED = "bidRejected"
    REQUEST_CLOSED = "requestClosed"


@dataclass(frozen=True)
class MarketplaceEvent:
    type: EventType
    request_id: uuid.UUID
    business_id: uuid.UUID
    status: str
    bid_id: uuid.UUID | None = None
    retailer_id: uuid.UUID | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))

    @property
    def is_bid_event(self) -> bool:
        return self.bid_id is not None

    def to_message(self) -> dict:
        message = {
            "type": self.type.value,
            "request_id": str(self.request_id),
            "status": self.status,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.bid_id is not None:
            message["bid_id"] = str(self.bid_id)
        return message


def request_closed(request) -> MarketplaceEvent:
    return MarketplaceEvent(
        type=EventType.REQUEST_CLOSED,
        request_id=request.id,
        business_id=request.business_id,
        status=request.status.value,
    )


def bid_event(event_type: EventType, request, bid, status: str | None = None) -> MarketplaceEvent:
    return MarketplaceEvent(
        type=event_type,
        request_id=request.id,
        business_id=request.business_id,
        status=status or bid.status.value,
        bid_id=bid.id,
        retailer_id=bid.retailer_id,
    )
