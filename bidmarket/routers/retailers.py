import uuid
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from bidmarket.database import get_db
from bidmarket.dependencies import get_current_retailer, to_http_exception
from bidmarket.models.retailer import Retailer
from bidmarket.schemas.business import RetailerAccessPublic
from bidmarket.schemas.retailer import RetailerPrivate
from bidmarket.services import access_gate
from bidmarket.services.errors import MarketplaceError

router = APIRouter(prefix="/retailers", tags=["retailers"])


@router.get("/me", response_model=RetailerPrivate)
async def get_my_profile(
    retailer: Annotated[Retailer, Depends(get_current_retailer)],
):
    return retailer


@router.post(
    "/me/access-requests/{business_id}",
    response_model=RetailerAccessPublic,
    status_code=201,
)
async def request_business_access(
    business_id: uuid.UUID,
    retailer: Annotated[Retailer, Depends(get_current_retailer)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    try:
        record = await access_gate.request_access(db, retailer.id, business_id)
        await db.commit()
        return record
    except MarketplaceError as exc:
        await db.rollback()
        raise to_http_exception(exc)
