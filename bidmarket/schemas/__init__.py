from bidmarket.schemas.common import TokenResponse, HealthResponse  # noqa: F401
from bidmarket.schemas.business import (  # noqa: F401
    BusinessCreate,
    BusinessLogin,
    BusinessPublic,
    BusinessPrivate,
    AccessDecision,
    RetailerAccessPublic,
)
from bidmarket.schemas.retailer import (  # noqa: F401
    RetailerCreate,
    RetailerLogin,
    RetailerPublic,
    RetailerPrivate,
)
from bidmarket.schemas.bid_request import (  # noqa: F401
    BidRequestCreate,
    BidRequestItemCreate,
    BidRequestItemPublic,
    BidRequestNotesUpdate,
    BidRequestPublic,
)
from bidmarket.schemas.retailer_bid import (  # noqa: F401
    AcceptBidResponse,
    BidItemCreate,
    BidItemPublic,
    RetailerBidCreate,
    RetailerBidPublic,
    RetailerBidUpdate,
)
from bidmarket.schemas.pricing import PricingSummary  # noqa: F401
