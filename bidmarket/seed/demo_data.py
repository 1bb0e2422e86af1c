"""
Seeds demo data on startup if the database is empty.
Inserts one demo farm business, two input retailers with inputs access,
and one open bid request.
"""
import logging
import uuid

from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bidmarket.database import AsyncSessionLocal
from bidmarket.models.bid_request import BidRequest, BidRequestItem, BidRequestStatus, ProductCategory
from bidmarket.models.business import Business
from bidmarket.models.retailer import Retailer
from bidmarket.models.retailer_access import AccessStatus, RetailerAccess

logger = logging.getLogger(__name__)
_pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

DEMO_PASSWORD = "demo1234"
DEMO_BUSINESS_ID = uuid.UUID("0b4c7f6e-2d2a-4a53-9f4e-3c1d5a0e0001")
DEMO_RETAILER_IDS = (
    uuid.UUID("0b4c7f6e-2d2a-4a53-9f4e-3c1d5a0e0101"),
    uuid.UUID("0b4c7f6e-2d2a-4a53-9f4e-3c1d5a0e0102"),
)

_RETAILERS = [
    {"company_name": "Prairie Ag Supply", "email": "bids@prairieag.com", "license": "IA-AG-20931"},
    {"company_name": "Heartland Co-op", "email": "agronomy@heartlandcoop.com", "license": "IA-AG-11874"},
]

_REQUEST_ITEMS = [
    {"category": ProductCategory.CHEMICAL, "product_name": "Glyphosate 5.4", "quantity": 250, "unit": "GAL", "starting_price": 21.50},
    {"category": ProductCategory.FERTILIZER, "product_name": "Anhydrous Ammonia 82-0-0", "quantity": 40, "unit": "TON", "starting_price": 735.00},
    {"category": ProductCategory.SEED, "product_name": "Corn hybrid P1185AM", "quantity": 120, "unit": "BAG", "starting_price": None},
]


async def seed_if_empty() -> None:
    """Called from app lifespan. Inserts demo data only if tables are empty."""
    async with AsyncSessionLocal() as db:
        try:
            existing = (await db.execute(select(Business))).scalars().first()
            if existing is not None:
                return  # Already seeded
            await _seed_all(db)
            await db.commit()
            logger.info("Demo data seeded successfully")
        except Exception as exc:
            await db.rollback()
            logger.warning("Demo seed skipped (DB may not be ready yet): %s", exc)


async def _seed_all(db: AsyncSession) -> None:
    hashed = _pwd_context.hash(DEMO_PASSWORD)

    # ----- Business -----
    business = Business(
        id=DEMO_BUSINESS_ID,
        name="Miller Family Farms",
        email="ops@millerfamilyfarms.com",
        phone="+15155550100",
        hashed_password=hashed,
        city="Ames",
        state="IA",
    )
    db.add(business)

    # ----- Retailers + inputs access -----
    for retailer_id, props in zip(DEMO_RETAILER_IDS, _RETAILERS):
        db.add(
            Retailer(
                id=retailer_id,
                company_name=props["company_name"],
                email=props["email"],
                business_license=props["license"],
                hashed_password=hashed,
            )
        )
    await db.flush()

    for retailer_id in DEMO_RETAILER_IDS:
        db.add(
            RetailerAccess(
                retailer_id=retailer_id,
                business_id=DEMO_BUSINESS_ID,
                inputs_status=AccessStatus.APPROVED,
                grain_status=AccessStatus.PENDING,
            )
        )

    # ----- Open bid request -----
    db.add(
        BidRequest(
            business_id=DEMO_BUSINESS_ID,
            title="Spring 2027 crop inputs",
            notes="Delivery to the north shop. Call ahead for anhydrous.",
            status=BidRequestStatus.OPEN,
            items=[
                BidRequestItem(position=i, **item) for i, item in enumerate(_REQUEST_ITEMS)
            ],
        )
    )
    await db.flush()
