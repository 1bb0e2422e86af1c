"""Tests for the bid request store: create, read, notes, close, delete."""
import uuid

import pytest
from sqlalchemy import func, select

from bidmarket.models.audit_log import AuditLog
from bidmarket.models.bid_request import (
    BidRequest,
    BidRequestItem,
    BidRequestStatus,
    CloseReason,
)
from bidmarket.models.retailer_bid import BidItem, RetailerBid
from bidmarket.services import bid_request_store, offer_store
from bidmarket.services.actor import BUSINESS, RETAILER, Actor
from bidmarket.services.errors import (
    InvalidStateError,
    NotAuthorizedError,
    NotFoundError,
    ValidationError,
)
from bidmarket.services.events import EventType

from .conftest import SCENARIO_ITEMS, delivery_date


async def _count(db, model, *criteria) -> int:
    return (await db.execute(select(func.count()).select_from(model).where(*criteria))).scalar_one()


class TestCreateRequest:
    async def test_creates_open_request_with_items(self, db, business):
        request = await bid_request_store.create_request(
            db, business.id, title="Spring inputs", items=SCENARIO_ITEMS, notes="gate code 1234"
        )
        await db.commit()

        loaded = await bid_request_store.load_request(db, request.id)
        assert loaded.status == BidRequestStatus.OPEN
        assert loaded.notes == "gate code 1234"
        assert [i.product_name for i in loaded.items] == ["Product A", "Product B"]
        assert [i.position for i in loaded.items] == [0, 1]

    async def test_unit_is_stored_upper_case(self, db, business):
        items = [{"category": "SEED", "product_name": "Corn", "quantity": 3, "unit": "bag"}]
        request = await bid_request_store.create_request(db, business.id, "Seed", items)
        assert request.items[0].unit == "BAG"
        assert request.items[0].starting_price is None

    async def test_empty_items_rejected(self, db, business):
        with pytest.raises(ValidationError):
            await bid_request_store.create_request(db, business.id, "Nothing", [])

    @pytest.mark.parametrize("quantity", [0, -5])
    async def test_non_positive_quantity_rejected(self, db, business, quantity):
        items = [{"category": "CHEMICAL", "product_name": "X", "quantity": quantity, "unit": "GAL"}]
        with pytest.raises(ValidationError):
            await bid_request_store.create_request(db, business.id, "Bad", items)

    async def test_negative_starting_price_rejected(self, db, business):
        items = [
            {"category": "CHEMICAL", "product_name": "X", "quantity": 1, "unit": "GAL", "starting_price": -1}
        ]
        with pytest.raises(ValidationError):
            await bid_request_store.create_request(db, business.id, "Bad", items)

    async def test_unknown_category_rejected(self, db, business):
        items = [{"category": "GRAIN", "product_name": "Soybeans", "quantity": 1, "unit": "BU"}]
        with pytest.raises(ValidationError):
            await bid_request_store.create_request(db, business.id, "Bad", items)

    async def test_creation_is_audited(self, db, open_request):
        rows = (
            await db.execute(select(AuditLog).where(AuditLog.bid_request_id == open_request.id))
        ).scalars().all()
        assert [(r.entity, r.to_status, r.reason) for r in rows] == [
            ("request", "OPEN", "request_created")
        ]
        assert rows[0].extra_data == {"item_count": 2}


class TestReadRequests:
    async def test_owner_can_read(self, db, business, open_request):
        viewer = Actor(role=BUSINESS, id=business.id)
        request = await bid_request_store.get_request(db, open_request.id, viewer)
        assert request.id == open_request.id

    async def test_approved_retailer_can_read(self, db, retailer_x, open_request):
        viewer = Actor(role=RETAILER, id=retailer_x.id)
        request = await bid_request_store.get_request(db, open_request.id, viewer)
        assert len(request.items) == 2

    async def test_unapproved_retailer_cannot_read(self, db, outsider, open_request):
        with pytest.raises(NotAuthorizedError):
            await bid_request_store.get_request(
                db, open_request.id, Actor(role=RETAILER, id=outsider.id)
            )

    async def test_other_business_cannot_read(self, db, other_business, open_request):
        with pytest.raises(NotAuthorizedError):
            await bid_request_store.get_request(
                db, open_request.id, Actor(role=BUSINESS, id=other_business.id)
            )

    async def test_missing_request(self, db, business):
        with pytest.raises(NotFoundError):
            await bid_request_store.get_request(
                db, uuid.uuid4(), Actor(role=BUSINESS, id=business.id)
            )

    async def test_list_puts_open_first(self, db, business):
        first = await bid_request_store.create_request(db, business.id, "First", SCENARIO_ITEMS)
        second = await bid_request_store.create_request(db, business.id, "Second", SCENARIO_ITEMS)
        await db.commit()
        await bid_request_store.close_request(db, second.id, business.id)
        await db.commit()

        listed = await bid_request_store.list_requests(db, business.id)
        assert [r.id for r in listed] == [first.id, second.id]

        closed_only = await bid_request_store.list_requests(
            db, business.id, BidRequestStatus.CLOSED
        )
        assert [r.id for r in closed_only] == [second.id]

    async def test_open_requests_for_retailer_follow_access_gate(
        self, db, retailer_x, outsider, open_request
    ):
        visible = await bid_request_store.list_open_requests_for_retailer(db, retailer_x.id)
        assert [r.id for r in visible] == [open_request.id]
        assert await bid_request_store.list_open_requests_for_retailer(db, outsider.id) == []


class TestNotes:
    async def test_owner_updates_notes_while_open(self, db, business, open_request):
        request = await bid_request_store.update_request_notes(
            db, open_request.id, business.id, "use the south gate"
        )
        assert request.notes == "use the south gate"

    async def test_notes_frozen_after_close(self, db, business, open_request):
        await bid_request_store.close_request(db, open_request.id, business.id)
        await db.commit()
        with pytest.raises(InvalidStateError):
            await bid_request_store.update_request_notes(db, open_request.id, business.id, "late")

    async def test_other_business_cannot_edit(self, db, other_business, open_request):
        with pytest.raises(NotAuthorizedError):
            await bid_request_store.update_request_notes(
                db, open_request.id, other_business.id, "mine now"
            )


class TestCloseRequest:
    async def test_close_sets_manual_reason_and_emits_event(self, db, business, open_request):
        request, events = await bid_request_store.close_request(db, open_request.id, business.id)
        await db.commit()

        assert request.status == BidRequestStatus.CLOSED
        assert request.close_reason == CloseReason.MANUAL
        assert request.closed_at is not None
        assert [e.type for e in events] == [EventType.REQUEST_CLOSED]
        assert events[0].status == "CLOSED"

    async def test_second_close_raises_invalid_state(self, db, business, open_request):
        request_id, business_id = open_request.id, business.id
        await bid_request_store.close_request(db, request_id, business_id)
        await db.commit()

        with pytest.raises(InvalidStateError):
            await bid_request_store.close_request(db, request_id, business_id)
        await db.rollback()

        reloaded = await bid_request_store.load_request(db, request_id)
        assert reloaded.status == BidRequestStatus.CLOSED

    async def test_only_owner_can_close(self, db, other_business, open_request):
        with pytest.raises(NotAuthorizedError):
            await bid_request_store.close_request(db, open_request.id, other_business.id)


class TestDeleteRequest:
    async def test_delete_open_request_without_bids(self, db, business, open_request):
        await bid_request_store.delete_request(db, open_request.id, business.id)
        await db.commit()

        assert await _count(db, BidRequest, BidRequest.id == open_request.id) == 0
        assert await _count(
            db, BidRequestItem, BidRequestItem.bid_request_id == open_request.id
        ) == 0

    async def test_delete_cascades_to_bids_and_bid_items(
        self, db, business, retailer_x, open_request
    ):
        bid, _ = await offer_store.submit_bid(
            db,
            retailer_x.id,
            open_request.id,
            total_delivered_price=35.0,
            guaranteed_delivery_date=delivery_date(),
            line_offers=[
                {"bid_request_item_id": open_request.items[0].id, "price_per_unit": 1.9}
            ],
        )
        await db.commit()

        await bid_request_store.delete_request(db, open_request.id, business.id)
        await db.commit()

        assert await _count(db, RetailerBid, RetailerBid.id == bid.id) == 0
        assert await _count(db, BidItem, BidItem.retailer_bid_id == bid.id) == 0
        # Audit trail survives the delete
        assert await _count(
            db, AuditLog, AuditLog.bid_request_id == open_request.id, AuditLog.to_status == "DELETED"
        ) == 1

    async def test_delete_closed_request_raises_invalid_state(self, db, business, open_request):
        await bid_request_store.close_request(db, open_request.id, business.id)
        await db.commit()

        with pytest.raises(InvalidStateError):
            await bid_request_store.delete_request(db, open_request.id, business.id)

    async def test_only_owner_can_delete(self, db, other_business, open_request):
        with pytest.raises(NotAuthorizedError):
            await bid_request_store.delete_request(db, open_request.id, other_business.id)
