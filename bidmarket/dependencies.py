"""
FastAPI dependency injection helpers: database session, JWT auth per role,
and the domain-error to HTTP mapping shared by every router.
"""
import logging
import uuid
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bidmarket.config import settings
from bidmarket.database import get_db
from bidmarket.models.business import Business
from bidmarket.models.retailer import Retailer
from bidmarket.services import errors
from bidmarket.services.actor import BUSINESS, RETAILER, Actor

logger = logging.getLogger(__name__)

_bearer = HTTPBearer(auto_error=True)

_CREDS_EXCEPTION = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Invalid or expired token",
    headers={"WWW-Authenticate": "Bearer"},
)

_ROLE_EXCEPTION = HTTPException(
    status_code=status.HTTP_403_FORBIDDEN,
    detail="Insufficient role",
)

_STATUS_FOR_ERROR: dict[type[errors.MarketplaceError], int] = {
    errors.ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    errors.NotAuthorizedError: status.HTTP_403_FORBIDDEN,
    errors.NotFoundError: status.HTTP_404_NOT_FOUND,
    errors.InvalidStateError: status.HTTP_409_CONFLICT,
    errors.ConflictError: status.HTTP_409_CONFLICT,
    errors.IntegrityError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def to_http_exception(exc: errors.MarketplaceError) -> HTTPException:
    code = _STATUS_FOR_ERROR.get(type(exc), status.HTTP_400_BAD_REQUEST)
    if code >= 500:
        logger.error("Marketplace integrity failure: %s", exc)
    return HTTPException(status_code=code, detail=str(exc))


def _decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise _CREDS_EXCEPTION


def _extract_sub_and_role(token: str) -> tuple[uuid.UUID, str]:
    payload = _decode_token(token)
    sub = payload.get("sub")
    role = payload.get("role")
    if sub is None or role is None:
        raise _CREDS_EXCEPTION
    try:
        return uuid.UUID(sub), role
    except ValueError:
        raise _CREDS_EXCEPTION


async def get_current_business(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(_bearer)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Business:
    user_id, role = _extract_sub_and_role(credentials.credentials)
    if role != BUSINESS:
        raise _ROLE_EXCEPTION
    business = (
        await db.execute(select(Business).where(Business.id == user_id))
    ).scalar_one_or_none()
    if business is None:
        raise _CREDS_EXCEPTION
    return business


async def get_current_retailer(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(_bearer)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Retailer:
    user_id, role = _extract_sub_and_role(credentials.credentials)
    if role != RETAILER:
        raise _ROLE_EXCEPTION
    retailer = (
        await db.execute(select(Retailer).where(Retailer.id == user_id))
    ).scalar_one_or_none()
    if retailer is None:
        raise _CREDS_EXCEPTION
    return retailer


async def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(_bearer)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Actor:
    """Either role, for endpoints both sides of the marketplace may call."""
    user_id, role = _extract_sub_and_role(credentials.credentials)
    if role == BUSINESS:
        model = Business
    elif role == RETAILER:
        model = Retailer
    else:
        raise _ROLE_EXCEPTION
    exists = (
        await db.execute(select(model.id).where(model.id == user_id))
    ).scalar_one_or_none()
    if exists is None:
        raise _CREDS_EXCEPTION
    return Actor(role=role, id=user_id)


def decode_ws_token(token: str) -> tuple[uuid.UUID, str]:
    """Used by WebSocket endpoints where headers cannot carry Bearer tokens."""
    return _extract_sub_and_role(token)
