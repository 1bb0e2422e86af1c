"""
Notification service: WebSocket broadcasts + Firebase Cloud Messaging push.

WebSocket (via ConnectionManager) is the primary real-time channel for all
connected clients. Firebase FCM adds push notifications for mobile/web
clients that may not have an active WebSocket connection.

Routing: every event goes to the owning business; bid-level events also go
to the retailer who owns the bid. Delivery is best-effort: a client that
missed a message re-fetches on reconnect.

FCM setup:
  1. Download your Firebase service account JSON from:
     Firebase Console → Project Settings → Service Accounts → Generate new key
  2. Save it as firebase-credentials.json in the project root directory
  3. Set FCM_PROJECT_NUMBER in .env to match your Firebase project number
"""
import asyncio
import logging
from collections.abc import Iterable
from pathlib import Path

from bidmarket.config import settings
from bidmarket.services.events import EventType, MarketplaceEvent
from bidmarket.ws.manager import business_channel, manager, retailer_channel

logger = logging.getLogger(__name__)

_FCM_CREDENTIALS_PATH = Path(__file__).parent.parent.parent / "firebase-credentials.json"
_firebase_app = None
_firebase_init_attempted = False

_PUSH_TEXT: dict[EventType, tuple[str, str]] = {
    EventType.BID_SUBMITTED: ("New Bid Received", "A retailer has bid on your input request."),
    EventType.BID_UPDATED:   ("Bid Updated",      "A retailer has revised their bid."),
    EventType.BID_WITHDRAWN: ("Bid Withdrawn",    "A bid on your input request was withdrawn."),
    EventType.BID_ACCEPTED:  ("Bid Accepted",     "Your bid was accepted."),
    EventType.BID_REJECTED:  ("Bid Not Selected", "The buyer accepted another bid."),
    EventType.REQUEST_CLOSED: ("Request Closed",  "The input request is no longer taking bids."),
}


def _get_firebase_app():
    """
    Lazily initialise Firebase Admin SDK on first use.
    Returns the app instance or None if credentials are missing or invalid.
    Initialization is attempted only once to avoid repeated failure logs.
    """
    global _firebase_app, _firebase_init_attempted
    if _firebase_init_attempted:
        return _firebase_app

    _firebase_init_attempted = True

    if not settings.FCM_PROJECT_NUMBER:
        return None

    if not _FCM_CREDENTIALS_PATH.exists():
        logger.info(
            "firebase-credentials.json not found at %s. "
            "FCM push notifications disabled; WebSocket only.",
            _FCM_CREDENTIALS_PATH,
        )
        return None

    try:
        import firebase_admin  # type: ignore[import-untyped]
        from firebase_admin import credentials  # type: ignore[import-untyped]

        cred = credentials.Certificate(str(_FCM_CREDENTIALS_PATH))
        _firebase_app = firebase_admin.initialize_app(cred)
        logger.info(
            "Firebase Admin SDK initialised (project: %s)", settings.FCM_PROJECT_NUMBER
        )
    except Exception as exc:
        logger.warning("Firebase Admin SDK init failed (%s)", type(exc).__name__)
        _firebase_app = None

    return _firebase_app


async def _send_fcm_push(
    title: str,
    body: str,
    data: dict[str, str],
    topic: str,
) -> None:
    """
    Send a Firebase push notification to a topic channel.
    Silently skips if Firebase is not configured or the send fails.

    Clients subscribe to 'business_{id}' or 'retailer_{id}' to receive push
    updates while they are not connected via WebSocket.
    """
    if _get_firebase_app() is None:
        return

    try:
        from firebase_admin import messaging  # type: ignore[import-untyped]

        message = messaging.Message(
            notification=messaging.Notification(title=title, body=body),
            data=data,  # FCM data values must all be str
            topic=topic,
        )
        # send() is a blocking HTTP call
        response = await asyncio.to_thread(messaging.send, message)
        logger.debug("FCM sent to topic '%s': %s", topic, response)
    except Exception as exc:
        logger.warning("FCM push failed for topic '%s' (%s)", topic, type(exc).__name__)


def recipients(event: MarketplaceEvent) -> list[str]:
    """WebSocket channels an event is delivered to, business first."""
    channels = [business_channel(event.business_id)]
    if event.is_bid_event and event.retailer_id is not None:
        channels.append(retailer_channel(event.retailer_id))
    return channels


def _fcm_data(event: MarketplaceEvent) -> dict[str, str]:
    data = {
        "type": event.type.value,
        "request_id": str(event.request_id),
        "status": event.status,
    }
    if event.bid_id is not None:
        data["bid_id"] = str(event.bid_id)
    return data


# ── Public notification functions ──────────────────────────────────────────


async def notify(event: MarketplaceEvent) -> None:
    """One event to every connected session of each recipient, plus FCM push."""
    message = event.to_message()
    for channel in recipients(event):
        await manager.broadcast(channel, message)

    title, body = _PUSH_TEXT.get(event.type, ("Marketplace Update", event.type.value))
    data = _fcm_data(event)
    # The business hears about everything; the retailer push is only for its own bid
    if event.type in (EventType.BID_SUBMITTED, EventType.BID_UPDATED,
                      EventType.BID_WITHDRAWN, EventType.REQUEST_CLOSED):
        await _send_fcm_push(title, body, data, topic=f"business_{event.business_id}")
    if event.is_bid_event and event.retailer_id is not None:
        await _send_fcm_push(title, body, data, topic=f"retailer_{event.retailer_id}")


async def publish(events: Iterable[MarketplaceEvent]) -> None:
    """Deliver events in the order the write produced them."""
    for event in events:
        await notify(event)
