import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from bidmarket.models.bid_request import BidRequestStatus, CloseReason, ProductCategory


class BidRequestItemCreate(BaseModel):
    category: ProductCategory
    product_name: str = Field(min_length=1, max_length=200)
    product_id: str | None = Field(default=None, max_length=100)
    quantity: float = Field(gt=0)
    unit: str = Field(min_length=1, max_length=20)
    starting_price: float | None = Field(default=None, ge=0)


class BidRequestCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    notes: str | None = Field(default=None, max_length=2000)
    desired_delivery_date: datetime | None = None
    items: list[BidRequestItemCreate] = Field(min_length=1)


class BidRequestNotesUpdate(BaseModel):
    notes: str | None = Field(default=None, max_length=2000)


class BidRequestItemPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    position: int
    category: ProductCategory
    product_id: str | None
    product_name: str
    quantity: float
    unit: str
    starting_price: float | None


class BidRequestPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    business_id: uuid.UUID
    title: str
    description: str | None
    notes: str | None
    desired_delivery_date: datetime | None
    status: BidRequestStatus
    close_reason: CloseReason | None
    closed_at: datetime | None
    created_at: datetime
    items: list[BidRequestItemPublic] = []
