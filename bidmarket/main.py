"""
BidMarket FastAPI application factory.

Startup sequence:
1. Demo data seed (DEMO_MODE only, if DB is empty)

All routers are mounted with /api/v1 prefix.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bidmarket.config import settings
from bidmarket.routers import auth, bid_requests, businesses, retailer_bids, retailers, ws
from bidmarket.schemas.common import HealthResponse
from bidmarket.seed.demo_data import seed_if_empty

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # ---- Startup ----
    logger.info("Starting BidMarket API...")
    if settings.DEMO_MODE:
        await seed_if_empty()
    logger.info("BidMarket API ready.")
    yield
    # ---- Shutdown ----
    logger.info("BidMarket API stopped.")


app = FastAPI(
    title="BidMarket API",
    description=(
        "Input bid marketplace: farm businesses request quotes on chemical, "
        "fertilizer and seed; approved retailers bid; the business accepts one."
    ),
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---- Register routers ----
_PREFIX = "/api/v1"

app.include_router(auth.router, prefix=_PREFIX)
app.include_router(businesses.router, prefix=_PREFIX)
app.include_router(retailers.router, prefix=_PREFIX)
app.include_router(bid_requests.router, prefix=_PREFIX)
app.include_router(retailer_bids.router, prefix=_PREFIX)
app.include_router(ws.router)  # No /api/v1 prefix; WebSocket paths are top-level


@app.get("/health", response_model=HealthResponse, tags=["admin"])
async def health_check():
    return HealthResponse(status="ok", service="bidmarket")


@app.get("/", tags=["admin"])
async def root():
    return {
        "service": "BidMarket API",
        "docs": "/docs",
        "version": "0.1.0",
    }
