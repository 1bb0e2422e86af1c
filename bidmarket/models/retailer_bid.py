import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum as SQLEnum,
    Float,
    ForeignKey,
    Index,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bidmarket.database import Base, utcnow


class RetailerBidStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


class RetailerBid(Base):
    __tablename__ = "retailer_bids"
    __table_args__ = (
        UniqueConstraint("bid_request_id", "retailer_id", name="uq_retailer_bids_request_retailer"),
        # Last line of defence for the single-winner rule: one ACCEPTED row per request.
        Index(
            "uq_retailer_bids_one_accepted",
            "bid_request_id",
            unique=True,
            postgresql_where=text("status = 'ACCEPTED'"),
            sqlite_where=text("status = 'ACCEPTED'"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    bid_request_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("bid_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    retailer_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("retailers.id", ondelete="CASCADE"), nullable=False, index=True
    )

    status: Mapped[RetailerBidStatus] = mapped_column(
        SQLEnum(RetailerBidStatus, name="retailer_bid_status_enum"),
        default=RetailerBidStatus.PENDING,
        nullable=False,
        index=True,
    )

    # Seller-declared; may include logistics beyond the sum of line prices
    total_delivered_price: Mapped[float] = mapped_column(Float, nullable=False)
    guaranteed_delivery_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    terms_acknowledged: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # Informational; the bid stays PENDING past this date
    expiration_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    accepted_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=utcnow, nullable=True
    )

    bid_request: Mapped["BidRequest"] = relationship("BidRequest", back_populates="bids")
    retailer: Mapped["Retailer"] = relationship("Retailer", back_populates="bids")
    items: Mapped[list["BidItem"]] = relationship(
        "BidItem", back_populates="retailer_bid", passive_deletes=True
    )


class BidItem(Base):
    """One retailer's unit price for one requested line."""

    __tablename__ = "bid_items"
    __table_args__ = (
        UniqueConstraint("retailer_bid_id", "bid_request_item_id", name="uq_bid_items_bid_line"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    retailer_bid_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("retailer_bids.id", ondelete="CASCADE"), nullable=False, index=True
    )
    bid_request_item_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("bid_request_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    price_per_unit: Mapped[float] = mapped_column(Float, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    retailer_bid: Mapped["RetailerBid"] = relationship("RetailerBid", back_populates="items")
