"""Bids router: submit, edit, withdraw and accept retailer bids."""
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
from bidmarket.models.business import Business
from bidmarket.models.retailer import Retailer
from bidmarket.schemas.retailer_bid import (
    AcceptBidResponse,
    RetailerBidCreate,
    RetailerBidPublic,
    RetailerBidUpdate,
)
from bidmarket.services import acceptance, notification_service, offer_store
from bidmarket.services.actor import Actor
from bidmarket.services.errors import MarketplaceError

router = APIRouter(prefix="/bids", tags=["bids"])


@router.post("", response_model=RetailerBidPublic, status_code=201)
async def submit_bid(
    body: RetailerBidCreate,
    retailer: Annotated[Retailer, Depends(get_current_retailer)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    try:
        bid, events = await offer_store.submit_bid(
            db,
            retailer.id,
            body.bid_request_id,
            total_delivered_price=body.total_delivered_price,
            guaranteed_delivery_date=body.guaranteed_delivery_date,
            line_offers=[item.model_dump() for item in body.items],
            notes=body.notes,
            terms_acknowledged=body.terms_acknowledged,
            expiration_date=body.expiration_date,
        )
        await db.commit()
    except MarketplaceError as exc:
        await db.rollback()
        raise to_http_exception(exc)
    await notification_service.publish(events)
    return await offer_store.load_bid(db, bid.id)


@router.get("/mine", response_model=list[RetailerBidPublic])
async def list_my_bids(
    retailer: Annotated[Retailer, Depends(get_current_retailer)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    return await offer_store.list_retailer_bids(db, retailer.id)


@router.patch("/{bid_id}", response_model=RetailerBidPublic)
async def update_bid(
    bid_id: uuid.UUID,
    body: RetailerBidUpdate,
    retailer: Annotated[Retailer, Depends(get_current_retailer)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    try:
        _, events = await offer_store.update_bid(
            db,
            bid_id,
            retailer.id,
            total_delivered_price=body.total_delivered_price,
            guaranteed_delivery_date=body.guaranteed_delivery_date,
            notes=body.notes,
            expiration_date=body.expiration_date,
        )
        await db.commit()
    except MarketplaceError as exc:
        await db.rollback()
        raise to_http_exception(exc)
    await notification_service.publish(events)
    return await offer_store.load_bid(db, bid_id)


@router.post("/{bid_id}/accept", response_model=AcceptBidResponse)
async def accept_bid(
    bid_id: uuid.UUID,
    business: Annotated[Business, Depends(get_current_business)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """
    Business accepts a bid:
    - Accepts the bid, rejects every other pending bid on the request.
    - Closes the request.
    - All in one transaction; a lost race answers 409.
    """
    try:
        result = await acceptance.accept_bid(db, bid_id, business.id)
    except MarketplaceError as exc:
        raise to_http_exception(exc)
    return AcceptBidResponse(
        bid_id=result.bid_id,
        request_id=result.request_id,
        status=result.status,
        accepted_at=result.accepted_at,
        rejected_bid_ids=result.rejected_bid_ids,
    )


@router.delete("/{bid_id}", status_code=204)
async def withdraw_bid(
    bid_id: uuid.UUID,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    try:
        events = await offer_store.withdraw_bid(db, bid_id, actor)
        await db.commit()
    except MarketplaceError as exc:
        await db.rollback()
        raise to_http_exception(exc)
    await notification_service.publish(events)
