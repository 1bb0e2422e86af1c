"""
Access gate: may retailer R see and bid on business B's requests?

Backed by RetailerAccess rows. A missing row means no access.
"""
import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bidmarket.database import utcnow
from bidmarket.models.business import Business
from bidmarket.models.retailer import Retailer
from bidmarket.models.retailer_access import AccessStatus, RetailerAccess
from bidmarket.services.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

CAPABILITIES = ("inputs", "grain")


def _status_field(capability: str) -> str:
    if capability not in CAPABILITIES:
        raise ValidationError(f"Unknown capability '{capability}'")
    return f"{capability}_status"


async def _get_record(
    db: AsyncSession, retailer_id: uuid.UUID, business_id: uuid.UUID
) -> RetailerAccess | None:
    stmt = select(RetailerAccess).where(
        RetailerAccess.retailer_id == retailer_id,
        RetailerAccess.business_id == business_id,
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def _require(db: AsyncSession, model, entity_id: uuid.UUID, label: str) -> None:
    found = (await db.execute(select(model.id).where(model.id == entity_id))).scalar_one_or_none()
    if found is None:
        raise NotFoundError(f"{label} {entity_id} not found")


async def has_access(
    db: AsyncSession,
    retailer_id: uuid.UUID,
    business_id: uuid.UUID,
    capability: str = "inputs",
) -> bool:
    field_name = _status_field(capability)
    record = await _get_record(db, retailer_id, business_id)
    if record is None:
        return False
    return getattr(record, field_name) == AccessStatus.APPROVED


async def approved_business_ids(
    db: AsyncSession, retailer_id: uuid.UUID, capability: str = "inputs"
) -> list[uuid.UUID]:
    column = getattr(RetailerAccess, _status_field(capability))
    stmt = select(RetailerAccess.business_id).where(
        RetailerAccess.retailer_id == retailer_id,
        column == AccessStatus.APPROVED,
    )
    return list((await db.execute(stmt)).scalars().all())


async def request_access(
    db: AsyncSession, retailer_id: uuid.UUID, business_id: uuid.UUID
) -> RetailerAccess:
    """Create a PENDING record for the pair; an existing record is returned unchanged."""
    await _require(db, Business, business_id, "Business")
    record = await _get_record(db, retailer_id, business_id)
    if record is not None:
        return record
    record = RetailerAccess(
        retailer_id=retailer_id,
        business_id=business_id,
        inputs_status=AccessStatus.PENDING,
        grain_status=AccessStatus.PENDING,
    )
    db.add(record)
    await db.flush()
    return record


async def set_access(
    db: AsyncSession,
    business_id: uuid.UUID,
    retailer_id: uuid.UUID,
    capability: str,
    status: AccessStatus,
) -> RetailerAccess:
    """Business-side response to an access request. Revocation takes effect on the next write."""
    field_name = _status_field(capability)
    await _require(db, Retailer, retailer_id, "Retailer")
    record = await _get_record(db, retailer_id, business_id)
    if record is None:
        record = RetailerAccess(
            retailer_id=retailer_id,
            business_id=business_id,
            inputs_status=AccessStatus.PENDING,
            grain_status=AccessStatus.PENDING,
        )
        db.add(record)
    setattr(record, field_name, status)
    record.responded_at = utcnow()
    await db.flush()
    logger.info(
        "Access %s for retailer %s on business %s set to %s",
        capability,
        retailer_id,
        business_id,
        status.value,
    )
    return record


async def list_for_business(db: AsyncSession, business_id: uuid.UUID) -> list[RetailerAccess]:
    stmt = (
        select(RetailerAccess)
        .where(RetailerAccess.business_id == business_id)
        .order_by(RetailerAccess.created_at.desc())
    )
    return list((await db.execute(stmt)).scalars().all())
