"""
Bid Request Store: create, read, close and delete a buyer's call for quotes.

A request and its items are written together. After creation only `notes`
and the OPEN -> CLOSED status may change. CLOSED is a gate flag checked by
the offer store at write time; reads never lock request rows.
"""
import logging
import uuid
from collections.abc import Iterable, Mapping
from datetime import datetime

from sqlalchemy import case, delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from bidmarket.database import utcnow
from bidmarket.models.bid_request import (
    BidRequest,
    BidRequestItem,
    BidRequestStatus,
    CloseReason,
    ProductCategory,
)
from bidmarket.models.retailer_bid import BidItem, RetailerBid
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


def _build_items(items: Iterable[Mapping]) -> list[BidRequestItem]:
    built: list[BidRequestItem] = []
    for position, raw in enumerate(items):
        name = (raw.get("product_name") or "").strip()
        if not name:
            raise ValidationError(f"Item {position + 1}: product name is required")

        try:
            category = ProductCategory(raw.get("category"))
        except ValueError:
            raise ValidationError(
                f"Item {position + 1}: category must be one of "
                f"{', '.join(c.value for c in ProductCategory)}"
            )

        quantity = raw.get("quantity")
        if quantity is None or quantity <= 0:
            raise ValidationError(f"Item {position + 1}: quantity must be positive")

        unit = (raw.get("unit") or "").strip()
        if not unit:
            raise ValidationError(f"Item {position + 1}: unit is required")

        starting_price = raw.get("starting_price")
        if starting_price is not None and starting_price < 0:
            raise ValidationError(f"Item {position + 1}: starting price cannot be negative")

        built.append(
            BidRequestItem(
                position=position,
                category=category,
                product_id=raw.get("product_id"),
                product_name=name,
                quantity=float(quantity),
                unit=unit.upper(),
                starting_price=float(starting_price) if starting_price is not None else None,
            )
        )
    return built


async def create_request(
    db: AsyncSession,
    business_id: uuid.UUID,
    title: str,
    items: Iterable[Mapping],
    notes: str | None = None,
    desired_delivery_date: datetime | None = None,
    description: str | None = None,
) -> BidRequest:
    """
    Creates an OPEN request with all of its items in one flush.
    Raises ValidationError if items is empty or any line is malformed.
    """
    items = list(items)
    if not items:
        raise ValidationError("A bid request needs at least one item")
    if not title or not title.strip():
        raise ValidationError("Title is required")

    request = BidRequest(
        business_id=business_id,
        title=title.strip(),
        description=description,
        notes=notes,
        desired_delivery_date=desired_delivery_date,
        status=BidRequestStatus.OPEN,
        items=_build_items(items),
    )
    db.add(request)
    await db.flush()

    record_transition(
        db,
        bid_request_id=request.id,
        entity="request",
        to_status=BidRequestStatus.OPEN.value,
        actor_type="business",
        actor_id=business_id,
        reason="request_created",
        metadata={"item_count": len(request.items)},
    )
    await db.flush()
    logger.info("Bid request %s created by business %s", request.id, business_id)
    return request


async def _load_for_owner(
    db: AsyncSession, request_id: uuid.UUID, business_id: uuid.UUID, lock: bool = False
) -> BidRequest:
    stmt = select(BidRequest).where(BidRequest.id == request_id)
    if lock:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    request = (await db.execute(stmt)).scalar_one_or_none()
    if request is None:
        raise NotFoundError(f"Bid request {request_id} not found")
    if request.business_id != business_id:
        raise NotAuthorizedError("Only the owning business can modify this bid request")
    return request


async def get_request(db: AsyncSession, request_id: uuid.UUID, viewer: Actor) -> BidRequest:
    """Owner always; a retailer only with inputs access to the owning business."""
    stmt = (
        select(BidRequest)
        .where(BidRequest.id == request_id)
        .options(selectinload(BidRequest.items))
    )
    request = (await db.execute(stmt)).scalar_one_or_none()
    if request is None:
        raise NotFoundError(f"Bid request {request_id} not found")

    if viewer.is_business and request.business_id == viewer.id:
        return request
    if viewer.is_retailer and await access_gate.has_access(
        db, viewer.id, request.business_id, "inputs"
    ):
        return request
    raise NotAuthorizedError("Not allowed to view this bid request")


async def list_requests(
    db: AsyncSession,
    business_id: uuid.UUID,
    status: BidRequestStatus | None = None,
) -> list[BidRequest]:
    stmt = (
        select(BidRequest)
        .where(BidRequest.business_id == business_id)
        .options(selectinload(BidRequest.items))
    )
    if status is not None:
        stmt = stmt.where(BidRequest.status == status)
    # OPEN first, newest first
    stmt = stmt.order_by(
        case((BidRequest.status == BidRequestStatus.OPEN, 0), else_=1),
        BidRequest.created_at.desc(),
    )
    return list((await db.execute(stmt)).scalars().all())


async def list_open_requests_for_retailer(
    db: AsyncSession, retailer_id: uuid.UUID
) -> list[BidRequest]:
    business_ids = await access_gate.approved_business_ids(db, retailer_id, "inputs")
    if not business_ids:
        return []
    stmt = (
        select(BidRequest)
        .where(
            BidRequest.status == BidRequestStatus.OPEN,
            BidRequest.business_id.in_(business_ids),
        )
        .options(selectinload(BidRequest.items))
        .order_by(BidRequest.created_at.desc())
    )
    return list((await db.execute(stmt)).scalars().all())


async def update_request_notes(
    db: AsyncSession, request_id: uuid.UUID, business_id: uuid.UUID, notes: str | None
) -> BidRequest:
    request = await _load_for_owner(db, request_id, business_id, lock=True)
    if request.status != BidRequestStatus.OPEN:
        raise InvalidStateError("Notes can only be edited while the bid request is open")
    request.notes = notes
    await db.flush()
    return request


async def close_request(
    db: AsyncSession, request_id: uuid.UUID, business_id: uuid.UUID
) -> tuple[BidRequest, list[events.MarketplaceEvent]]:
    """
    OPEN -> CLOSED by the owning business.
    A second close raises InvalidStateError rather than succeeding silently.
    """
    request = await _load_for_owner(db, request_id, business_id, lock=True)
    if request.status == BidRequestStatus.CLOSED:
        raise InvalidStateError("Bid request is already closed")

    request.status = BidRequestStatus.CLOSED
    request.close_reason = CloseReason.MANUAL
    request.closed_at = utcnow()

    record_transition(
        db,
        bid_request_id=request.id,
        entity="request",
        from_status=BidRequestStatus.OPEN.value,
        to_status=BidRequestStatus.CLOSED.value,
        actor_type="business",
        actor_id=business_id,
        reason="closed_by_buyer",
    )
    await db.flush()
    logger.info("Bid request %s closed by business %s", request.id, business_id)
    return request, [events.request_closed(request)]


async def delete_request(
    db: AsyncSession, request_id: uuid.UUID, business_id: uuid.UUID
) -> None:
    """
    Deletes an OPEN request with every bid and bid item on it.
    CLOSED requests carry committed offers and are kept for audit.
    """
    request = await _load_for_owner(db, request_id, business_id, lock=True)
    if request.status != BidRequestStatus.OPEN:
        raise InvalidStateError("Closed bid requests cannot be deleted")

    bid_ids = select(RetailerBid.id).where(RetailerBid.bid_request_id == request_id)
    await db.execute(
        delete(BidItem)
        .where(BidItem.retailer_bid_id.in_(bid_ids))
        .execution_options(synchronize_session=False)
    )
    await db.execute(
        delete(RetailerBid)
        .where(RetailerBid.bid_request_id == request_id)
        .execution_options(synchronize_session=False)
    )
    await db.execute(
        delete(BidRequestItem)
        .where(BidRequestItem.bid_request_id == request_id)
        .execution_options(synchronize_session=False)
    )
    await db.execute(
        delete(BidRequest)
        .where(BidRequest.id == request_id)
        .execution_options(synchronize_session=False)
    )
    db.expunge(request)

    record_transition(
        db,
        bid_request_id=request_id,
        entity="request",
        from_status=BidRequestStatus.OPEN.value,
        to_status="DELETED",
        actor_type="business",
        actor_id=business_id,
        reason="deleted_by_buyer",
    )
    await db.flush()
    logger.info("Bid request %s deleted by business %s", request_id, business_id)


async def load_request(db: AsyncSession, request_id: uuid.UUID) -> BidRequest:
    """Request with its items, read fresh for serialisation after a write."""
    stmt = (
        select(BidRequest)
        .where(BidRequest.id == request_id)
        .options(selectinload(BidRequest.items))
        .execution_options(populate_existing=True)
    )
    request = (await db.execute(stmt)).scalar_one_or_none()
    if request is None:
        raise NotFoundError(f"Bid request {request_id} not found")
    return request
