"""
Auth router: register and login for farm businesses and input retailers.
Issues JWT tokens with role claims.
"""
import uuid
from datetime import datetime, timedelta, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from jose import jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bidmarket.config import settings
from bidmarket.database import get_db
from bidmarket.models.business import Business
from bidmarket.models.retailer import Retailer
from bidmarket.schemas.business import BusinessCreate, BusinessLogin, BusinessPrivate
from bidmarket.schemas.common import TokenResponse
from bidmarket.schemas.retailer import RetailerCreate, RetailerLogin, RetailerPrivate
from bidmarket.services.actor import BUSINESS, RETAILER

router = APIRouter(prefix="/auth", tags=["auth"])
_pwd = CryptContext(schemes=["bcrypt"], deprecated="auto")


def _hash(password: str) -> str:
    return _pwd.hash(password)


def _verify(plain: str, hashed: str) -> bool:
    return _pwd.verify(plain, hashed)


def _make_token(user_id: uuid.UUID, role: str) -> str:
    expire = datetime.now(tz=timezone.utc) + timedelta(
        minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
    )
    payload = {"sub": str(user_id), "role": role, "exp": expire}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


# --------------------------------------------------------------------------- #
#  Business                                                                    #
# --------------------------------------------------------------------------- #


@router.post("/business/register", response_model=BusinessPrivate, status_code=201)
async def register_business(
    body: BusinessCreate, db: Annotated[AsyncSession, Depends(get_db)]
):
    existing = (
        await db.execute(select(Business).where(Business.email == body.email))
    ).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")

    business = Business(
        name=body.name,
        email=body.email,
        phone=body.phone,
        hashed_password=_hash(body.password),
        city=body.city,
        state=body.state,
    )
    db.add(business)
    await db.commit()
    await db.refresh(business)
    return business


@router.post("/business/login", response_model=TokenResponse)
async def login_business(
    body: BusinessLogin, db: Annotated[AsyncSession, Depends(get_db)]
):
    business = (
        await db.execute(select(Business).where(Business.email == body.email))
    ).scalar_one_or_none()
    if business is None or not _verify(body.password, business.hashed_password):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return TokenResponse(access_token=_make_token(business.id, BUSINESS), role=BUSINESS)


# --------------------------------------------------------------------------- #
#  Retailer                                                                    #
# --------------------------------------------------------------------------- #


@router.post("/retailer/register", response_model=RetailerPrivate, status_code=201)
async def register_retailer(
    body: RetailerCreate, db: Annotated[AsyncSession, Depends(get_db)]
):
    existing = (
        await db.execute(select(Retailer).where(Retailer.email == body.email))
    ).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")

    retailer = Retailer(
        company_name=body.company_name,
        email=body.email,
        phone=body.phone,
        business_license=body.business_license,
        hashed_password=_hash(body.password),
    )
    db.add(retailer)
    await db.commit()
    await db.refresh(retailer)
    return retailer


@router.post("/retailer/login", response_model=TokenResponse)
async def login_retailer(
    body: RetailerLogin, db: Annotated[AsyncSession, Depends(get_db)]
):
    retailer = (
        await db.execute(select(Retailer).where(Retailer.email == body.email))
    ).scalar_one_or_none()
    if retailer is None or not _verify(body.password, retailer.hashed_password):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return TokenResponse(access_token=_make_token(retailer.id, RETAILER), role=RETAILER)
