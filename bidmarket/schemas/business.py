import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from bidmarket.models.retailer_access import AccessStatus


class BusinessCreate(BaseModel):
    name: str = Field(min_length=2, max_length=200)
    email: EmailStr
    password: str = Field(min_length=8)
    phone: str | None = Field(default=None, min_length=7, max_length=30)
    city: str | None = Field(default=None, max_length=120)
    state: str | None = Field(default=None, max_length=60)


class BusinessLogin(BaseModel):
    email: EmailStr
    password: str


class BusinessPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    city: str | None
    state: str | None
    created_at: datetime


class BusinessPrivate(BusinessPublic):
    email: str
    phone: str | None


class AccessDecision(BaseModel):
    capability: str = Field(default="inputs", pattern="^(inputs|grain)$")
    status: AccessStatus


class RetailerAccessPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    retailer_id: uuid.UUID
    business_id: uuid.UUID
    inputs_status: AccessStatus
    grain_status: AccessStatus
    responded_at: datetime | None
    created_at: datetime
