import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum as SQLEnum, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from bidmarket.database import Base, utcnow


class AccessStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DENIED = "DENIED"


class RetailerAccess(Base):
    """
    Per (retailer, business) visibility record consumed by the access gate.
    One status per capability: "inputs" (bid requests) and "grain".
    """

    __tablename__ = "retailer_access"
    __table_args__ = (
        UniqueConstraint("retailer_id", "business_id", name="uq_retailer_access_pair"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    retailer_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("retailers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    business_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True
    )

    inputs_status: Mapped[AccessStatus] = mapped_column(
        SQLEnum(AccessStatus, name="access_status_enum"),
        default=AccessStatus.PENDING,
        nullable=False,
    )
    grain_status: Mapped[AccessStatus] = mapped_column(
        SQLEnum(AccessStatus, name="access_status_enum"),
        default=AccessStatus.PENDING,
        nullable=False,
    )
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=utcnow, nullable=True
    )
