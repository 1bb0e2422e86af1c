import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class RetailerCreate(BaseModel):
    company_name: str = Field(min_length=2, max_length=200)
    email: EmailStr
    password: str = Field(min_length=8)
    phone: str | None = Field(default=None, min_length=7, max_length=30)
    business_license: str | None = Field(default=None, max_length=100)


class RetailerLogin(BaseModel):
    email: EmailStr
    password: str


class RetailerPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    company_name: str
    created_at: datetime


class RetailerPrivate(RetailerPublic):
    email: str
    phone: str | None
    business_license: str | None
