import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from bidmarket.models.retailer_bid import RetailerBidStatus


class BidItemCreate(BaseModel):
    bid_request_item_id: uuid.UUID
    price_per_unit: float = Field(gt=0)


class RetailerBidCreate(BaseModel):
    bid_request_id: uuid.UUID
    total_delivered_price: float = Field(gt=0)
    guaranteed_delivery_date: datetime
    expiration_date: datetime | None = None
    terms_acknowledged: bool
    notes: str | None = Field(default=None, max_length=2000)
    items: list[BidItemCreate] = []


class RetailerBidUpdate(BaseModel):
    total_delivered_price: float | None = Field(default=None, gt=0)
    guaranteed_delivery_date: datetime | None = None
    expiration_date: datetime | None = None
    notes: str | None = Field(default=None, max_length=2000)


class BidItemPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    bid_request_item_id: uuid.UUID
    price_per_unit: float


class RetailerBidPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    bid_request_id: uuid.UUID
    retailer_id: uuid.UUID
    status: RetailerBidStatus
    total_delivered_price: float
    guaranteed_delivery_date: datetime
    expiration_date: datetime | None = None
    notes: str | None
    accepted_at: datetime | None
    submitted_at: datetime
    items: list[BidItemPublic] = []


class AcceptBidResponse(BaseModel):
    bid_id: uuid.UUID
    request_id: uuid.UUID
    status: RetailerBidStatus
    accepted_at: datetime
    rejected_bid_ids: list[uuid.UUID]
