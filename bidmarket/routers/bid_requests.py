"""Bid requests router: a farm business asks its approved retailers for input quotes."""
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from bidmarket.database import get_db
from bidmarket.dependencies import (
    get_current_actor,
    get_current_business,
    get_current_retailer,
    to_http_exception,
)
from bidmarket.models.bid_request import BidRequestStatus
from bidmarket.models.business import Business
from bidmarket.models.retailer import Retailer
from bidmarket.schemas.bid_request import (
    BidRequestCreate,
    BidRequestNotesUpdate,
    BidRequestPublic,
)
from bidmarket.schemas.pricing import PricingSummary
from bidmarket.schemas.retailer_bid import RetailerBidPublic
from bidmarket.services import bid_request_store, notification_service, offer_store, pricing
from bidmarket.services.actor import BUSINESS, Actor
from bidmarket.services.errors import MarketplaceError

router = APIRouter(prefix="/bid-requests", tags=["bid-requests"])


@router.post("", response_model=BidRequestPublic, status_code=201)
async def create_bid_request(
    body: BidRequestCreate,
    business: Annotated[Business, Depends(get_current_business)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    try:
        request = await bid_request_store.create_request(
            db,
            business.id,
            title=body.title,
            items=[item.model_dump(mode="json") for item in body.items],
            notes=body.notes,
            desired_delivery_date=body.desired_delivery_date,
            description=body.description,
        )
        await db.commit()
    except MarketplaceError as exc:
        await db.rollback()
        raise to_http_exception(exc)
    return await bid_request_store.load_request(db, request.id)


@router.get("", response_model=list[BidRequestPublic])
async def list_my_bid_requests(
    business: Annotated[Business, Depends(get_current_business)],
    db: Annotated[AsyncSession, Depends(get_db)],
    status: BidRequestStatus | None = None,
):
    return await bid_request_store.list_requests(db, business.id, status)


@router.get("/open", response_model=list[BidRequestPublic])
async def list_open_bid_requests(
    retailer: Annotated[Retailer, Depends(get_current_retailer)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Open requests from every business that has approved this retailer for inputs."""
    return await bid_request_store.list_open_requests_for_retailer(db, retailer.id)


@router.get("/{request_id}", response_model=BidRequestPublic)
async def get_bid_request(
    request_id: uuid.UUID,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    try:
        return await bid_request_store.get_request(db, request_id, actor)
    except MarketplaceError as exc:
        raise to_http_exception(exc)


@router.get("/{request_id}/summary", response_model=PricingSummary)
async def get_pricing_summary(
    request_id: uuid.UUID,
    business: Annotated[Business, Depends(get_current_business)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Starting total, best pending offer, projected savings and per-line comparison."""
    viewer = Actor(role=BUSINESS, id=business.id)
    try:
        request = await bid_request_store.get_request(db, request_id, viewer)
        bids = await offer_store.list_bids(db, request_id, viewer)
    except MarketplaceError as exc:
        raise to_http_exception(exc)
    return pricing.summarize(request, bids)


@router.get("/{request_id}/bids", response_model=list[RetailerBidPublic])
async def list_bids_for_request(
    request_id: uuid.UUID,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """The owning business sees every bid; a retailer sees only its own."""
    try:
        return await offer_store.list_bids(db, request_id, actor)
    except MarketplaceError as exc:
        raise to_http_exception(exc)


@router.patch("/{request_id}/notes", response_model=BidRequestPublic)
async def update_bid_request_notes(
    request_id: uuid.UUID,
    body: BidRequestNotesUpdate,
    business: Annotated[Business, Depends(get_current_business)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    try:
        await bid_request_store.update_request_notes(db, request_id, business.id, body.notes)
        await db.commit()
    except MarketplaceError as exc:
        await db.rollback()
        raise to_http_exception(exc)
    return await bid_request_store.load_request(db, request_id)


@router.post("/{request_id}/close", response_model=BidRequestPublic)
async def close_bid_request(
    request_id: uuid.UUID,
    business: Annotated[Business, Depends(get_current_business)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    try:
        _, events = await bid_request_store.close_request(db, request_id, business.id)
        await db.commit()
    except MarketplaceError as exc:
        await db.rollback()
        raise to_http_exception(exc)
    await notification_service.publish(events)
    return await bid_request_store.load_request(db, request_id)


@router.delete("/{request_id}", status_code=204)
async def delete_bid_request(
    request_id: uuid.UUID,
    business: Annotated[Business, Depends(get_current_business)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    try:
        await bid_request_store.delete_request(db, request_id, business.id)
        await db.commit()
    except MarketplaceError as exc:
        await db.rollback()
        raise to_http_exception(exc)
