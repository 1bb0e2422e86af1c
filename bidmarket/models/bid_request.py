import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum as SQLEnum, Float, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bidmarket.database import Base, utcnow


class BidRequestStatus(str, enum.Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class CloseReason(str, enum.Enum):
    MANUAL = "MANUAL"
    BID_ACCEPTED = "BID_ACCEPTED"


class ProductCategory(str, enum.Enum):
    CHEMICAL = "CHEMICAL"
    FERTILIZER = "FERTILIZER"
    SEED = "SEED"


class BidRequest(Base):
    __tablename__ = "bid_requests"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    desired_delivery_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # OPEN -> CLOSED only. Checked at write time by the offer store, never locked on read.
    status: Mapped[BidRequestStatus] = mapped_column(
        SQLEnum(BidRequestStatus, name="bid_request_status_enum"),
        default=BidRequestStatus.OPEN,
        nullable=False,
        index=True,
    )
    close_reason: Mapped[CloseReason | None] = mapped_column(
        SQLEnum(CloseReason, name="close_reason_enum"), nullable=True
    )
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=utcnow, nullable=True
    )

    business: Mapped["Business"] = relationship("Business", back_populates="bid_requests")
    items: Mapped[list["BidRequestItem"]] = relationship(
        "BidRequestItem",
        back_populates="bid_request",
        order_by="BidRequestItem.position",
        passive_deletes=True,
    )
    bids: Mapped[list["RetailerBid"]] = relationship(
        "RetailerBid", back_populates="bid_request", passive_deletes=True
    )


class BidRequestItem(Base):
    """One requested line. Immutable after creation."""

    __tablename__ = "bid_request_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    bid_request_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("bid_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(default=0, nullable=False)

    category: Mapped[ProductCategory] = mapped_column(
        SQLEnum(ProductCategory, name="product_category_enum"), nullable=False
    )
    product_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    product_name: Mapped[str] = mapped_column(String(200), nullable=False)
    quantity: Mapped[float] = mapped_column(Float, nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False)
    # Buyer's target or last-known price per unit; advisory only
    starting_price: Mapped[float | None] = mapped_column(Float, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    bid_request: Mapped["BidRequest"] = relationship("BidRequest", back_populates="items")
