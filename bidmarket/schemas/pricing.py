from pydantic import BaseModel


class SummaryItem(BaseModel):
    id: str
    product_name: str
    quantity: float
    unit: str
    base_quantity: float
    base_unit: str
    unit_converted: bool
    starting_price: float | None


class LineComparisonOut(BaseModel):
    bid_request_item_id: str
    product_name: str
    quantity: float
    unit: str
    base_quantity: float
    base_unit: str
    starting_price: float | None
    offered_price: float | None
    offered_price_per_base_unit: float | None
    starting_line_total: float | None
    offered_line_total: float | None
    savings_amount: float | None
    savings_percent: float | None


class BestUnitPriceOut(BaseModel):
    bid_id: str
    retailer_id: str
    price_per_unit: float


class PricingSummary(BaseModel):
    request_id: str
    status: str
    starting_total: float
    missing_starting_price_item_ids: list[str]
    pending_bid_count: int
    best_bid_id: str | None
    best_total_delivered_price: float | None
    savings_amount: float | None
    savings_percent: float | None
    accepted_bid_id: str | None
    items: list[SummaryItem]
    best_unit_prices: dict[str, BestUnitPriceOut]
    best_bid_lines: list[LineComparisonOut]
