"""
Offer Store: retailer bids against an OPEN bid request.

Each write here touches a single bid (plus its line prices) and needs no
cross-row transaction. `submit_bid` re-reads the request status inside the
inserting transaction so a close or acceptance that lands first wins.
"""
import logging
import uuid
from collections.abc import Iterable, Mapping
from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy import exc as sa_exc
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from bidmarket.models.bid_request import BidRequest, BidRequestItem, BidRequestStatus
from bidmarket.models.retailer_bid import BidItem, RetailerBid, RetailerBidStatus
from bidmarket.services import access_gate, events
from bidmarket.services.actor import Actor
from bidmarket.services.audit import record_transition
from bidmarket.services.errors import (
    InvalidStateError,
    NotAuthorizedError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)


async def _get_request(db: AsyncSession, request_id: uuid.UUID, lock: bool = False) -> BidRequest:
    stmt = select(BidRequest).where(BidRequest.id == request_id)
    if lock:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    request = (await db.execute(stmt)).scalar_one_or_none()
    if request is None:
        raise NotFoundError(f"Bid request {request_id} not found")
    return request


async def _get_bid(db: AsyncSession, bid_id: uuid.UUID, lock: bool = False) -> RetailerBid:
    stmt = select(RetailerBid).where(RetailerBid.id == bid_id)
    if lock:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    bid = (await db.execute(stmt)).scalar_one_or_none()
    if bid is None:
        raise NotFoundError(f"Bid {bid_id} not found")
    return bid


async def _current_request_status(db: AsyncSession, request_id: uuid.UUID) -> BidRequestStatus | None:
    """Fresh status read, row-locked where the backend supports it."""
    stmt = (
        select(BidRequest.status)
        .where(BidRequest.id == request_id)
        .with_for_update()
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def _find_existing_bid(
    db: AsyncSession, request_id: uuid.UUID, retailer_id: uuid.UUID
) -> RetailerBid | None:
    stmt = select(RetailerBid).where(
        RetailerBid.bid_request_id == request_id,
        RetailerBid.retailer_id == retailer_id,
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def _validate_line_offers(
    db: AsyncSession, request_id: uuid.UUID, line_offers: list[Mapping]
) -> list[BidItem]:
    item_ids = set(
        (
            await db.execute(
                select(BidRequestItem.id).where(BidRequestItem.bid_request_id == request_id)
            )
        ).scalars().all()
    )

    seen: set[uuid.UUID] = set()
    built: list[BidItem] = []
    for raw in line_offers:
        item_id = raw.get("bid_request_item_id")
        if isinstance(item_id, str):
            try:
                item_id = uuid.UUID(item_id)
            except ValueError:
                raise ValidationError(f"Invalid item reference '{item_id}'")
        if item_id not in item_ids:
            raise ValidationError(f"Item {item_id} does not belong to this bid request")
        if item_id in seen:
            raise ValidationError(f"Item {item_id} is priced more than once")
        seen.add(item_id)

        price = raw.get("price_per_unit")
        if price is None or price <= 0:
            raise ValidationError(f"Item {item_id}: price per unit must be positive")
        built.append(BidItem(bid_request_item_id=item_id, price_per_unit=float(price)))
    return built


# --------------------------------------------------------------------------- #
#  Submit                                                                      #
# --------------------------------------------------------------------------- #


async def submit_bid(
    db: AsyncSession,
    retailer_id: uuid.UUID,
    request_id: uuid.UUID,
    total_delivered_price: float,
    guaranteed_delivery_date: datetime,
    line_offers: Iterable[Mapping] = (),
    notes: str | None = None,
    terms_acknowledged: bool = True,
    expiration_date: datetime | None = None,
) -> tuple[RetailerBid, list[events.MarketplaceEvent]]:
    """
    Creates a PENDING bid with its line prices.

    Checks, in order: request exists, access gate grants "inputs", request
    is OPEN, payload is valid, retailer has no bid yet. The OPEN status is
    read again right before the insert.
    """
    request = await _get_request(db, request_id)

    if not await access_gate.has_access(db, retailer_id, request.business_id, "inputs"):
        raise NotAuthorizedError("Retailer does not have inputs access to this business")

    if request.status != BidRequestStatus.OPEN:
        raise InvalidStateError("Bid request is closed and not accepting new bids")

    if not terms_acknowledged:
        raise ValidationError("Terms must be acknowledged before submitting a bid")
    if total_delivered_price is None or total_delivered_price <= 0:
        raise ValidationError("Total delivered price must be positive")
    if guaranteed_delivery_date is None:
        raise ValidationError("Guaranteed delivery date is required")

    bid_items = await _validate_line_offers(db, request_id, list(line_offers))

    if await _find_existing_bid(db, request_id, retailer_id) is not None:
        raise InvalidStateError(
            "Retailer already has a bid on this request; update it instead"
        )

    # Re-check inside the inserting transaction: a close or acceptance may have committed
    if await _current_request_status(db, request_id) != BidRequestStatus.OPEN:
        raise InvalidStateError("Bid request is closed and not accepting new bids")

    bid = RetailerBid(
        bid_request_id=request_id,
        retailer_id=retailer_id,
        status=RetailerBidStatus.PENDING,
        total_delivered_price=float(total_delivered_price),
        guaranteed_delivery_date=guaranteed_delivery_date,
        terms_acknowledged=True,
        expiration_date=expiration_date,
        notes=notes,
        items=bid_items,
    )
    db.add(bid)
    try:
        await db.flush()
    except sa_exc.IntegrityError:
        # Lost a race with the same retailer submitting twice
        raise InvalidStateError(
            "Retailer already has a bid on this request; update it instead"
        )

    record_transition(
        db,
        bid_request_id=request_id,
        retailer_bid_id=bid.id,
        entity="bid",
        to_status=RetailerBidStatus.PENDING.value,
        actor_type="retailer",
        actor_id=retailer_id,
        reason="bid_submitted",
        metadata={"total_delivered_price": bid.total_delivered_price},
    )
    await db.flush()
    logger.info("Bid %s submitted by retailer %s on request %s", bid.id, retailer_id, request_id)
    return bid, [events.bid_event(events.EventType.BID_SUBMITTED, request, bid)]


# --------------------------------------------------------------------------- #
#  Update / withdraw                                                           #
# --------------------------------------------------------------------------- #


async def update_bid(
    db: AsyncSession,
    bid_id: uuid.UUID,
    retailer_id: uuid.UUID,
    total_delivered_price: float | None = None,
    guaranteed_delivery_date: datetime | None = None,
    notes: str | None = None,
    expiration_date: datetime | None = None,
) -> tuple[RetailerBid, list[events.MarketplaceEvent]]:
    """Header fields only; line prices are fixed once submitted."""
    bid = await _get_bid(db, bid_id)
    if bid.retailer_id != retailer_id:
        raise NotAuthorizedError("Only the submitting retailer can edit this bid")

    # Request row first, then the bid: same lock order as acceptance
    request = await _get_request(db, bid.bid_request_id, lock=True)
    bid = await _get_bid(db, bid_id, lock=True)
    if request.status != BidRequestStatus.OPEN or bid.status != RetailerBidStatus.PENDING:
        raise InvalidStateError("Only pending bids on open requests can be edited")

    if total_delivered_price is not None:
        if total_delivered_price <= 0:
            raise ValidationError("Total delivered price must be positive")
        bid.total_delivered_price = float(total_delivered_price)
    if guaranteed_delivery_date is not None:
        bid.guaranteed_delivery_date = guaranteed_delivery_date
    if expiration_date is not None:
        bid.expiration_date = expiration_date
    if notes is not None:
        bid.notes = notes
    await db.flush()
    return bid, [events.bid_event(events.EventType.BID_UPDATED, request, bid)]


async def withdraw_bid(
    db: AsyncSession, bid_id: uuid.UUID, actor: Actor
) -> list[events.MarketplaceEvent]:
    """
    Hard-deletes a PENDING bid on an OPEN request.
    Allowed for the owning business and for the submitting retailer.
    """
    bid = await _get_bid(db, bid_id)
    request = await _get_request(db, bid.bid_request_id, lock=True)
    bid = await _get_bid(db, bid_id, lock=True)

    is_owner = actor.is_business and request.business_id == actor.id
    is_submitter = actor.is_retailer and bid.retailer_id == actor.id
    if not (is_owner or is_submitter):
        raise NotAuthorizedError("Not allowed to withdraw this bid")

    if request.status != BidRequestStatus.OPEN or bid.status != RetailerBidStatus.PENDING:
        raise InvalidStateError("Only pending bids on open requests can be withdrawn")

    await db.execute(
        delete(BidItem)
        .where(BidItem.retailer_bid_id == bid_id)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(
        delete(RetailerBid)
        .where(RetailerBid.id == bid_id, RetailerBid.status == RetailerBidStatus.PENDING)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        # Decided by a concurrent acceptance between our read and the delete
        raise InvalidStateError("Only pending bids on open requests can be withdrawn")

    event = events.bid_event(
        events.EventType.BID_WITHDRAWN, request, bid, status="WITHDRAWN"
    )
    db.expunge(bid)

    record_transition(
        db,
        bid_request_id=request.id,
        retailer_bid_id=bid_id,
        entity="bid",
        from_status=RetailerBidStatus.PENDING.value,
        to_status="WITHDRAWN",
        actor_type=actor.role,
        actor_id=actor.id,
        reason="bid_withdrawn",
    )
    await db.flush()
    logger.info("Bid %s withdrawn by %s %s", bid_id, actor.role, actor.id)
    return [event]


# --------------------------------------------------------------------------- #
#  Reads                                                                       #
# --------------------------------------------------------------------------- #


async def list_bids(
    db: AsyncSession, request_id: uuid.UUID, viewer: Actor
) -> list[RetailerBid]:
    """
    The owning business sees every bid; a retailer sees only its own.
    Lowest total delivered price first.
    """
    request = await _get_request(db, request_id)

    stmt = (
        select(RetailerBid)
        .where(RetailerBid.bid_request_id == request_id)
        .options(selectinload(RetailerBid.items))
        .order_by(RetailerBid.total_delivered_price.asc(), RetailerBid.submitted_at.asc())
    )
    if viewer.is_business:
        if request.business_id != viewer.id:
            raise NotAuthorizedError("Not your bid request")
    elif viewer.is_retailer:
        stmt = stmt.where(RetailerBid.retailer_id == viewer.id)
    else:
        raise NotAuthorizedError("Unknown viewer role")

    return list((await db.execute(stmt)).scalars().all())


async def list_retailer_bids(db: AsyncSession, retailer_id: uuid.UUID) -> list[RetailerBid]:
    stmt = (
        select(RetailerBid)
        .where(RetailerBid.retailer_id == retailer_id)
        .options(selectinload(RetailerBid.items))
        .order_by(RetailerBid.submitted_at.desc())
    )
    return list((await db.execute(stmt)).scalars().all())


async def load_bid(db: AsyncSession, bid_id: uuid.UUID) -> RetailerBid:
    """Bid with its line prices, read fresh for serialisation after a write."""
    stmt = (
        select(RetailerBid)
        .where(RetailerBid.id == bid_id)
        .options(selectinload(RetailerBid.items))
        .execution_options(populate_existing=True)
    )
    bid = (await db.execute(stmt)).scalar_one_or_none()
    if bid is None:
        raise NotFoundError(f"Bid {bid_id} not found")
    return bid
