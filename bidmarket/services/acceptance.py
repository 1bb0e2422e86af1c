"""
Acceptance coordinator: the buyer picks exactly one winning bid.

One transaction does all of it: accept the target, reject every PENDING
sibling, and close the request. Row locks (SELECT FOR UPDATE on the request,
then its bids) serialise concurrent accepts on PostgreSQL; the target update
is also conditional on `status = 'PENDING'` so a lost race shows up as zero
rows updated on any backend. A lost race is retried once from a fresh read,
then surfaced as ConflictError.

Unlike the single-row stores, this coordinator owns its commit: events are
published only after the transaction is durable.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import exc as sa_exc
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from bidmarket.database import utcnow
from bidmarket.models.bid_request import BidRequest, BidRequestStatus, CloseReason
from bidmarket.models.retailer_bid import RetailerBid, RetailerBidStatus
from bidmarket.services import events, notification_service
from bidmarket.services.events import MarketplaceEvent
from bidmarket.services.audit import record_transition
from bidmarket.services.errors import (
    ConflictError,
    IntegrityError,
    MarketplaceError,
    NotAuthorizedError,
    NotFoundError,
)

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 2

# PostgreSQL serialization_failure and deadlock_detected
_CONFLICT_SQLSTATES = {"40001", "40P01"}


class _WriteConflict(Exception):
    """A conditional write touched fewer rows than the snapshot promised."""


@dataclass
class AcceptanceResult:
    bid_id: uuid.UUID
    request_id: uuid.UUID
    status: RetailerBidStatus
    accepted_at: datetime
    rejected_bid_ids: list[uuid.UUID] = field(default_factory=list)
    events: list[MarketplaceEvent] = field(default_factory=list)


def _is_write_conflict(exc: sa_exc.DBAPIError) -> bool:
    # A second ACCEPTED row trips the partial unique index: another writer won
    if isinstance(exc, sa_exc.IntegrityError):
        return True
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in _CONFLICT_SQLSTATES:
        return True
    return "database is locked" in str(orig).lower()


async def _authorize(db: AsyncSession, bid_id: uuid.UUID, business_id: uuid.UUID) -> uuid.UUID:
    bid = (
        await db.execute(select(RetailerBid).where(RetailerBid.id == bid_id))
    ).scalar_one_or_none()
    if bid is None:
        raise NotFoundError(f"Bid {bid_id} not found")
    request = (
        await db.execute(select(BidRequest).where(BidRequest.id == bid.bid_request_id))
    ).scalar_one_or_none()
    if request is None:
        raise NotFoundError(f"Bid request {bid.bid_request_id} not found")
    if request.business_id != business_id:
        raise NotAuthorizedError("Only the business that owns the bid request can accept bids")
    return request.id


async def _apply_acceptance(
    db: AsyncSession,
    bid_id: uuid.UUID,
    request_id: uuid.UUID,
    business_id: uuid.UUID,
) -> AcceptanceResult:
    """Read-decide-write against a locked, freshly loaded snapshot. Flushes, never commits."""
    request = (
        await db.execute(
            select(BidRequest)
            .where(BidRequest.id == request_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if request is None:
        raise ConflictError("Bid request was deleted before the bid could be accepted")

    bids = (
        await db.execute(
            select(RetailerBid)
            .where(RetailerBid.bid_request_id == request_id)
            .order_by(RetailerBid.submitted_at.asc())
            .with_for_update()
            .execution_options(populate_existing=True)
        )
    ).scalars().all()

    target = next((b for b in bids if b.id == bid_id), None)
    if target is None:
        raise ConflictError("Bid was withdrawn before it could be accepted")

    # a. the target must still be undecided
    if target.status != RetailerBidStatus.PENDING:
        raise ConflictError(f"Bid already decided ({target.status.value})")

    siblings = [b for b in bids if b.id != bid_id]
    if any(b.status == RetailerBidStatus.ACCEPTED for b in siblings):
        raise ConflictError("Another bid on this request has already been accepted")

    # b. closed by an acceptance, yet nothing accepted: persisted state is broken
    if (
        request.status == BidRequestStatus.CLOSED
        and request.close_reason == CloseReason.BID_ACCEPTED
    ):
        logger.error(
            "Bid request %s is closed by acceptance but has no accepted bid", request.id
        )
        raise IntegrityError(
            f"Bid request {request.id} is closed by acceptance but has no accepted bid"
        )

    now = utcnow()

    # c. accept the target, conditional on it still being PENDING
    accepted = await db.execute(
        update(RetailerBid)
        .where(RetailerBid.id == bid_id, RetailerBid.status == RetailerBidStatus.PENDING)
        .values(
            status=RetailerBidStatus.ACCEPTED,
            accepted_at=now,
            accepted_by=business_id,
            updated_at=now,
        )
    )
    if accepted.rowcount != 1:
        raise _WriteConflict(f"bid {bid_id} changed under us")

    # d. reject every PENDING sibling in one statement
    pending_siblings = [b for b in siblings if b.status == RetailerBidStatus.PENDING]
    if pending_siblings:
        rejected = await db.execute(
            update(RetailerBid)
            .where(
                RetailerBid.bid_request_id == request_id,
                RetailerBid.id != bid_id,
                RetailerBid.status == RetailerBidStatus.PENDING,
            )
            .values(status=RetailerBidStatus.REJECTED, updated_at=now)
        )
        if rejected.rowcount != len(pending_siblings):
            raise _WriteConflict(f"siblings of bid {bid_id} changed under us")

    # e. close the request; already CLOSED (manual close) stays CLOSED
    from_status = request.status
    request.status = BidRequestStatus.CLOSED
    request.close_reason = CloseReason.BID_ACCEPTED
    if request.closed_at is None:
        request.closed_at = now

    record_transition(
        db,
        bid_request_id=request_id,
        retailer_bid_id=bid_id,
        entity="bid",
        from_status=RetailerBidStatus.PENDING.value,
        to_status=RetailerBidStatus.ACCEPTED.value,
        actor_type="business",
        actor_id=business_id,
        reason="bid_accepted",
        metadata={"total_delivered_price": target.total_delivered_price},
    )
    for sibling in pending_siblings:
        record_transition(
            db,
            bid_request_id=request_id,
            retailer_bid_id=sibling.id,
            entity="bid",
            from_status=RetailerBidStatus.PENDING.value,
            to_status=RetailerBidStatus.REJECTED.value,
            actor_type="system",
            reason="sibling_accepted",
            metadata={"accepted_bid_id": str(bid_id)},
        )
    record_transition(
        db,
        bid_request_id=request_id,
        entity="request",
        from_status=from_status.value,
        to_status=BidRequestStatus.CLOSED.value,
        actor_type="business",
        actor_id=business_id,
        reason="bid_accepted",
    )
    await db.flush()

    # Accept is logically first, then each reject, then the close
    ordered = [
        events.bid_event(
            events.EventType.BID_ACCEPTED, request, target, RetailerBidStatus.ACCEPTED.value
        )
    ]
    ordered.extend(
        events.bid_event(
            events.EventType.BID_REJECTED, request, sibling, RetailerBidStatus.REJECTED.value
        )
        for sibling in pending_siblings
    )
    ordered.append(events.request_closed(request))

    return AcceptanceResult(
        bid_id=bid_id,
        request_id=request_id,
        status=RetailerBidStatus.ACCEPTED,
        accepted_at=now,
        rejected_bid_ids=[b.id for b in pending_siblings],
        events=ordered,
    )


async def accept_bid(
    db: AsyncSession, bid_id: uuid.UUID, business_id: uuid.UUID
) -> AcceptanceResult:
    """
    Buyer accepts a bid:
    1. Checks the caller owns the bid's request (NotAuthorizedError).
    2. In one transaction: target PENDING -> ACCEPTED, PENDING siblings ->
       REJECTED, request -> CLOSED.
    3. Commits; on a conflicting concurrent writer, rolls back and retries
       once, then raises ConflictError.
    4. Publishes bidAccepted, bidRejected..., requestClosed.
    """
    request_id = await _authorize(db, bid_id, business_id)

    result: AcceptanceResult | None = None
    for attempt in range(1, MAX_ATTEMPTS + 1):
        try:
            result = await _apply_acceptance(db, bid_id, request_id, business_id)
            await db.commit()
            break
        except MarketplaceError:
            await db.rollback()
            raise
        except _WriteConflict as exc:
            await db.rollback()
            if attempt == MAX_ATTEMPTS:
                raise ConflictError("Bid was decided by a concurrent request") from exc
            logger.warning("Accept of bid %s lost a race (%s); retrying", bid_id, exc)
        except sa_exc.DBAPIError as exc:
            await db.rollback()
            if not _is_write_conflict(exc):
                raise
            if attempt == MAX_ATTEMPTS:
                raise ConflictError("Bid was decided by a concurrent request") from exc
            logger.warning(
                "Accept of bid %s hit a write conflict (%s); retrying",
                bid_id,
                type(exc.orig).__name__,
            )

    logger.info(
        "Bid %s accepted on request %s; %d sibling bid(s) rejected",
        bid_id,
        request_id,
        len(result.rejected_bid_ids),
    )
    await notification_service.publish(result.events)
    return result
