import uuid
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from bidmarket.database import get_db
from bidmarket.dependencies import get_current_business, to_http_exception
from bidmarket.models.business import Business
from bidmarket.schemas.business import AccessDecision, BusinessPrivate, RetailerAccessPublic
from bidmarket.services import access_gate
from bidmarket.services.errors import MarketplaceError

router = APIRouter(prefix="/businesses", tags=["businesses"])


@router.get("/me", response_model=BusinessPrivate)
async def get_my_profile(
    business: Annotated[Business, Depends(get_current_business)],
):
    return business


@router.get("/me/retailer-access", response_model=list[RetailerAccessPublic])
async def list_retailer_access(
    business: Annotated[Business, Depends(get_current_business)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    return await access_gate.list_for_business(db, business.id)


@router.put("/me/retailer-access/{retailer_id}", response_model=RetailerAccessPublic)
async def set_retailer_access(
    retailer_id: uuid.UUID,
    body: AccessDecision,
    business: Annotated[Business, Depends(get_current_business)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Approve or deny a retailer for one capability. Denial applies to the retailer's next write."""
    try:
        record = await access_gate.set_access(
            db, business.id, retailer_id, body.capability, body.status
        )
        await db.commit()
        return record
    except MarketplaceError as exc:
        await db.rollback()
        raise to_http_exception(exc)
