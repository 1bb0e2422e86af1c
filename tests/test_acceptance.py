"""Tests for the acceptance coordinator: single winner, sibling rejection, retry, races."""
import asyncio
import typing
import uuid
from datetime import datetime, timezone

import pytest
from sqlalchemy import exc as sa_exc
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from bidmarket.database import Base
from bidmarket.models.audit_log import AuditLog
from bidmarket.models.bid_request import BidRequest, BidRequestStatus, CloseReason
from bidmarket.models.retailer_bid import RetailerBid, RetailerBidStatus
from bidmarket.services import acceptance, bid_request_store, notification_service, offer_store, pricing
from bidmarket.services.actor import BUSINESS, Actor
from bidmarket.services.errors import (
    ConflictError,
    IntegrityError,
    InvalidStateError,
    NotAuthorizedError,
    NotFoundError,
)
from bidmarket.services.events import EventType, MarketplaceEvent

from .conftest import SCENARIO_ITEMS, delivery_date, grant_inputs, make_business, make_retailer


async def _submit(db, retailer, request, total):
    bid, _ = await offer_store.submit_bid(
        db, retailer.id, request.id, total_delivered_price=total, guaranteed_delivery_date=delivery_date()
    )
    await db.commit()
    return bid


async def _statuses(db, request_id) -> dict[uuid.UUID, RetailerBidStatus]:
    rows = (
        await db.execute(
            select(RetailerBid.id, RetailerBid.status).where(RetailerBid.bid_request_id == request_id)
        )
    ).all()
    return {bid_id: status for bid_id, status in rows}


async def _request_row(db, request_id):
    return (
        await db.execute(
            select(BidRequest.status, BidRequest.close_reason, BidRequest.closed_at).where(
                BidRequest.id == request_id
            )
        )
    ).one()


class TestScenario:
    async def test_full_cycle(self, db, business, retailer_x, retailer_y, open_request):
        bid_x = await _submit(db, retailer_x, open_request, 35.00)
        bid_y = await _submit(db, retailer_y, open_request, 33.00)

        request = await bid_request_store.load_request(db, open_request.id)
        bids = await offer_store.list_bids(db, request.id, Actor(role=BUSINESS, id=business.id))

        start = pricing.starting_total(request.items)
        assert start.amount == 40.00
        best = pricing.best_pending_offer(request, bids)
        assert best.id == bid_y.id
        savings = pricing.projected_savings(start, best)
        assert savings.amount == 7.00
        assert savings.percent == 17.5

        bid_x_id, bid_y_id = bid_x.id, bid_y.id

        # The buyer may pick any offer, not just the cheapest
        result = await acceptance.accept_bid(db, bid_x.id, business.id)
        assert result.bid_id == bid_x.id
        assert result.status == RetailerBidStatus.ACCEPTED
        assert result.rejected_bid_ids == [bid_y.id]

        assert await _statuses(db, open_request.id) == {
            bid_x.id: RetailerBidStatus.ACCEPTED,
            bid_y.id: RetailerBidStatus.REJECTED,
        }
        status, reason, closed_at = await _request_row(db, open_request.id)
        assert status == BidRequestStatus.CLOSED
        assert reason == CloseReason.BID_ACCEPTED
        assert closed_at is not None

        # Nobody can bid on the closed request any more. Rollback expires every
        # loaded instance, so only plain ids are used from here on.
        third = await make_retailer(db, "Late Ag Supply")
        await grant_inputs(db, business, third)
        request_id = open_request.id
        for retailer_id in (retailer_x.id, third.id):
            with pytest.raises(InvalidStateError):
                await offer_store.submit_bid(db, retailer_id, request_id, 30.0, delivery_date())
            await db.rollback()
        assert set(await _statuses(db, request_id)) == {bid_x_id, bid_y_id}

    async def test_accepted_bid_records_acceptor(self, db, business, retailer_x, open_request):
        bid = await _submit(db, retailer_x, open_request, 35.00)
        result = await acceptance.accept_bid(db, bid.id, business.id)

        loaded = await offer_store.load_bid(db, bid.id)
        assert loaded.accepted_by == business.id
        assert loaded.accepted_at is not None
        assert result.rejected_bid_ids == []


class TestEvents:
    def test_result_defaults_to_no_events(self):
        hints = typing.get_type_hints(acceptance.AcceptanceResult)
        assert hints["events"] == list[MarketplaceEvent]

        result = acceptance.AcceptanceResult(
            bid_id=uuid.uuid4(),
            request_id=uuid.uuid4(),
            status=RetailerBidStatus.ACCEPTED,
            accepted_at=datetime.now(tz=timezone.utc),
        )
        assert result.events == [] and result.rejected_bid_ids == []

    async def test_accept_then_rejects_in_submission_order_then_close(
        self, db, business, retailer_x, retailer_y, open_request
    ):
        third = await make_retailer(db, "Valley Agronomy")
        await grant_inputs(db, business, third)

        bid_x = await _submit(db, retailer_x, open_request, 35.00)
        bid_y = await _submit(db, retailer_y, open_request, 33.00)
        bid_z = await _submit(db, third, open_request, 39.00)

        result = await acceptance.accept_bid(db, bid_y.id, business.id)

        assert [(e.type, e.bid_id, e.status) for e in result.events] == [
            (EventType.BID_ACCEPTED, bid_y.id, "ACCEPTED"),
            (EventType.BID_REJECTED, bid_x.id, "REJECTED"),
            (EventType.BID_REJECTED, bid_z.id, "REJECTED"),
            (EventType.REQUEST_CLOSED, None, "CLOSED"),
        ]
        assert all(e.business_id == business.id for e in result.events)
        assert result.events[1].retailer_id == retailer_x.id

    async def test_events_published_only_after_commit(
        self, db, business, retailer_x, open_request, monkeypatch
    ):
        bid = await _submit(db, retailer_x, open_request, 35.00)
        seen = []

        async def capture(events):
            seen.append((db.in_transaction(), [e.type for e in events]))

        monkeypatch.setattr(notification_service, "publish", capture)
        await acceptance.accept_bid(db, bid.id, business.id)

        assert seen == [(False, [EventType.BID_ACCEPTED, EventType.REQUEST_CLOSED])]

    async def test_failed_accept_publishes_nothing(
        self, db, business, retailer_x, retailer_y, open_request, monkeypatch
    ):
        bid_x = await _submit(db, retailer_x, open_request, 35.00)
        bid_y = await _submit(db, retailer_y, open_request, 33.00)
        await acceptance.accept_bid(db, bid_x.id, business.id)

        published = []

        async def capture(events):
            published.extend(events)

        monkeypatch.setattr(notification_service, "publish", capture)
        with pytest.raises(ConflictError):
            await acceptance.accept_bid(db, bid_y.id, business.id)
        assert published == []


class TestAuthorization:
    async def test_only_owning_business_may_accept(
        self, db, other_business, retailer_x, open_request
    ):
        request_id = open_request.id
        bid_id = (await _submit(db, retailer_x, open_request, 35.00)).id
        with pytest.raises(NotAuthorizedError):
            await acceptance.accept_bid(db, bid_id, other_business.id)
        assert (await _statuses(db, request_id))[bid_id] == RetailerBidStatus.PENDING

    async def test_missing_bid(self, db, business):
        with pytest.raises(NotFoundError):
            await acceptance.accept_bid(db, uuid.uuid4(), business.id)


class TestSingleWinner:
    async def test_second_accept_on_sibling_conflicts(
        self, db, business, retailer_x, retailer_y, open_request
    ):
        request_id = open_request.id
        bid_x_id = (await _submit(db, retailer_x, open_request, 35.00)).id
        bid_y_id = (await _submit(db, retailer_y, open_request, 33.00)).id

        await acceptance.accept_bid(db, bid_x_id, business.id)
        with pytest.raises(ConflictError):
            await acceptance.accept_bid(db, bid_y_id, business.id)

        assert await _statuses(db, request_id) == {
            bid_x_id: RetailerBidStatus.ACCEPTED,
            bid_y_id: RetailerBidStatus.REJECTED,
        }

    async def test_accepting_same_bid_twice_conflicts(self, db, business, retailer_x, open_request):
        bid = await _submit(db, retailer_x, open_request, 35.00)
        await acceptance.accept_bid(db, bid.id, business.id)
        with pytest.raises(ConflictError):
            await acceptance.accept_bid(db, bid.id, business.id)

    async def test_stray_accepted_sibling_blocks_acceptance(
        self, db, business, retailer_x, retailer_y, open_request
    ):
        request_id = open_request.id
        bid_x_id = (await _submit(db, retailer_x, open_request, 35.00)).id
        bid_y_id = (await _submit(db, retailer_y, open_request, 33.00)).id
        # Persisted state a store bug could leave behind: accepted sibling, request still OPEN
        await db.execute(
            update(RetailerBid)
            .where(RetailerBid.id == bid_x_id)
            .values(status=RetailerBidStatus.ACCEPTED)
        )
        await db.commit()

        with pytest.raises(ConflictError):
            await acceptance.accept_bid(db, bid_y_id, business.id)
        assert (await _statuses(db, request_id))[bid_y_id] == RetailerBidStatus.PENDING


class TestClosedRequests:
    async def test_accept_on_manually_closed_request(
        self, db, business, retailer_x, retailer_y, open_request
    ):
        bid_x = await _submit(db, retailer_x, open_request, 35.00)
        bid_y = await _submit(db, retailer_y, open_request, 33.00)
        await bid_request_store.close_request(db, open_request.id, business.id)
        await db.commit()
        _, _, closed_at = await _request_row(db, open_request.id)

        result = await acceptance.accept_bid(db, bid_y.id, business.id)

        assert result.rejected_bid_ids == [bid_x.id]
        status, reason, still_closed_at = await _request_row(db, open_request.id)
        assert status == BidRequestStatus.CLOSED
        assert reason == CloseReason.BID_ACCEPTED
        assert still_closed_at == closed_at

    async def test_closed_by_acceptance_without_winner_is_integrity_error(
        self, db, business, retailer_x, open_request
    ):
        request_id = open_request.id
        bid_id = (await _submit(db, retailer_x, open_request, 35.00)).id
        await db.execute(
            update(BidRequest)
            .where(BidRequest.id == request_id)
            .values(status=BidRequestStatus.CLOSED, close_reason=CloseReason.BID_ACCEPTED)
        )
        await db.commit()

        with pytest.raises(IntegrityError):
            await acceptance.accept_bid(db, bid_id, business.id)
        assert (await _statuses(db, request_id))[bid_id] == RetailerBidStatus.PENDING


class TestRetry:
    async def test_lost_race_is_retried_once(self, db, business, retailer_x, open_request, monkeypatch):
        bid = await _submit(db, retailer_x, open_request, 35.00)
        original = acceptance._apply_acceptance
        calls = []

        async def flaky(*args, **kwargs):
            calls.append(1)
            if len(calls) == 1:
                raise acceptance._WriteConflict("simulated")
            return await original(*args, **kwargs)

        monkeypatch.setattr(acceptance, "_apply_acceptance", flaky)
        result = await acceptance.accept_bid(db, bid.id, business.id)

        assert len(calls) == 2
        assert result.status == RetailerBidStatus.ACCEPTED

    async def test_second_lost_race_surfaces_conflict(
        self, db, business, retailer_x, open_request, monkeypatch
    ):
        bid = await _submit(db, retailer_x, open_request, 35.00)
        calls = []

        async def always_loses(*args, **kwargs):
            calls.append(1)
            raise acceptance._WriteConflict("simulated")

        monkeypatch.setattr(acceptance, "_apply_acceptance", always_loses)
        with pytest.raises(ConflictError):
            await acceptance.accept_bid(db, bid.id, business.id)
        assert len(calls) == acceptance.MAX_ATTEMPTS

    async def test_locked_database_counts_as_conflict(
        self, db, business, retailer_x, open_request, monkeypatch
    ):
        bid_id = (await _submit(db, retailer_x, open_request, 35.00)).id
        original = acceptance._apply_acceptance
        calls = []

        async def locked_once(*args, **kwargs):
            calls.append(1)
            if len(calls) == 1:
                raise sa_exc.OperationalError("UPDATE retailer_bids", {}, Exception("database is locked"))
            return await original(*args, **kwargs)

        monkeypatch.setattr(acceptance, "_apply_acceptance", locked_once)
        result = await acceptance.accept_bid(db, bid_id, business.id)
        assert len(calls) == 2
        assert result.bid_id == bid_id

    async def test_other_database_errors_propagate(
        self, db, business, retailer_x, open_request, monkeypatch
    ):
        bid = await _submit(db, retailer_x, open_request, 35.00)

        async def broken(*args, **kwargs):
            raise sa_exc.OperationalError("SELECT 1", {}, Exception("disk I/O error"))

        monkeypatch.setattr(acceptance, "_apply_acceptance", broken)
        with pytest.raises(sa_exc.OperationalError):
            await acceptance.accept_bid(db, bid.id, business.id)

    async def test_domain_errors_are_not_retried(
        self, db, business, retailer_x, open_request, monkeypatch
    ):
        bid = await _submit(db, retailer_x, open_request, 35.00)
        calls = []

        async def already_decided(*args, **kwargs):
            calls.append(1)
            raise ConflictError("already decided")

        monkeypatch.setattr(acceptance, "_apply_acceptance", already_decided)
        with pytest.raises(ConflictError):
            await acceptance.accept_bid(db, bid.id, business.id)
        assert len(calls) == 1


class TestAudit:
    async def test_transitions_are_recorded(self, db, business, retailer_x, retailer_y, open_request):
        bid_x = await _submit(db, retailer_x, open_request, 35.00)
        bid_y = await _submit(db, retailer_y, open_request, 33.00)
        await acceptance.accept_bid(db, bid_x.id, business.id)

        rows = (
            await db.execute(
                select(AuditLog.retailer_bid_id, AuditLog.entity, AuditLog.to_status, AuditLog.reason)
                .where(AuditLog.bid_request_id == open_request.id, AuditLog.from_status.is_not(None))
            )
        ).all()
        assert {tuple(r) for r in rows} == {
            (bid_x.id, "bid", "ACCEPTED", "bid_accepted"),
            (bid_y.id, "bid", "REJECTED", "sibling_accepted"),
            (None, "request", "CLOSED", "bid_accepted"),
        }


class TestConcurrentAccepts:
    async def test_two_sessions_race_exactly_one_wins(self, tmp_path):
        """Two buyer tabs accept different bids at the same moment."""
        eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}")
        async with eng.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        factory = async_sessionmaker(eng, expire_on_commit=False, class_=AsyncSession)

        try:
            async with factory() as setup:
                business = await make_business(setup)
                retailer_x = await make_retailer(setup, "Prairie Ag Supply")
                retailer_y = await make_retailer(setup, "Heartland Coop")
                await grant_inputs(setup, business, retailer_x)
                await grant_inputs(setup, business, retailer_y)
                request = await bid_request_store.create_request(
                    setup, business.id, "Race", SCENARIO_ITEMS
                )
                await setup.commit()
                bid_x = await _submit(setup, retailer_x, request, 35.00)
                bid_y = await _submit(setup, retailer_y, request, 33.00)

            async def attempt(bid_id):
                async with factory() as session:
                    try:
                        await acceptance.accept_bid(session, bid_id, business.id)
                        return "accepted"
                    except ConflictError:
                        return "conflict"

            outcomes = await asyncio.gather(attempt(bid_x.id), attempt(bid_y.id))
            assert sorted(outcomes) == ["accepted", "conflict"]

            async with factory() as check:
                accepted = (
                    await check.execute(
                        select(func.count()).select_from(RetailerBid).where(
                            RetailerBid.bid_request_id == request.id,
                            RetailerBid.status == RetailerBidStatus.ACCEPTED,
                        )
                    )
                ).scalar_one()
                rejected = (
                    await check.execute(
                        select(func.count()).select_from(RetailerBid).where(
                            RetailerBid.bid_request_id == request.id,
                            RetailerBid.status == RetailerBidStatus.REJECTED,
                        )
                    )
                ).scalar_one()
                status, _, _ = await _request_row(check, request.id)

            assert accepted == 1
            assert rejected == 1
            assert status == BidRequestStatus.CLOSED
        finally:
            await eng.dispose()
