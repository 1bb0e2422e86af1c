# Import all models so Alembic autogenerate and SQLAlchemy can see them
from bidmarket.models.business import Business  # noqa: F401
from bidmarket.models.retailer import Retailer  # noqa: F401
from bidmarket.models.retailer_access import AccessStatus, RetailerAccess  # noqa: F401
from bidmarket.models.bid_request import (  # noqa: F401
    BidRequest,
    BidRequestItem,
    BidRequestStatus,
    CloseReason,
    ProductCategory,
)
from bidmarket.models.retailer_bid import BidItem, RetailerBid, RetailerBidStatus  # noqa: F401
from bidmarket.models.audit_log import AuditLog  # noqa: F401

__all__ = [
    "Business",
    "Retailer",
    "RetailerAccess",
    "AccessStatus",
    "BidRequest",
    "BidRequestItem",
    "BidRequestStatus",
    "CloseReason",
    "ProductCategory",
    "RetailerBid",
    "RetailerBidStatus",
    "BidItem",
    "AuditLog",
]
