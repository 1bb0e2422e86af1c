import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from bidmarket.database import Base, utcnow


class AuditLog(Base):
    """
    Lifecycle trail for requests and bids.
    No foreign key to bid_requests: rows outlive a deleted OPEN request.
    """

    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    bid_request_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    retailer_bid_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    entity: Mapped[str] = mapped_column(String(20), nullable=False)
    from_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    to_status: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    actor_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    extra_data: Mapped[dict | None] = mapped_column(JSON, nullable=True, name="metadata")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
