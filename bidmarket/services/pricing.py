"""
Derived pricing views over a bid request and its bids.

Pure functions: nothing here reads the session or mutates a row, and nothing
here feeds back into the write path. Callers load the request (with items)
and the bids (with line prices) and pass them in.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TypedDict

from bidmarket.models.bid_request import BidRequestStatus
from bidmarket.models.retailer_bid import RetailerBidStatus
from bidmarket.services.units import price_to_base, to_base


@dataclass(frozen=True)
class StartingTotal:
    amount: float
    # Items with no starting price contribute zero; the caller is told which
    missing_item_ids: list[uuid.UUID] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return not self.missing_item_ids


@dataclass(frozen=True)
class Savings:
    amount: float
    percent: float | None


class LineComparison(TypedDict):
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


class BestUnitPrice(TypedDict):
    bid_id: str
    retailer_id: str
    price_per_unit: float


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; they were written as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _category(item) -> str | None:
    category = getattr(item, "category", None)
    return getattr(category, "value", category)


def _percent(saved: float, base: float) -> float | None:
    if base <= 0:
        return None
    return round(saved / base * 100, 2)


def starting_total(items) -> StartingTotal:
    amount = 0.0
    missing: list[uuid.UUID] = []
    for item in items:
        if item.starting_price is None:
            missing.append(item.id)
            continue
        amount += item.starting_price * item.quantity
    return StartingTotal(amount=round(amount, 2), missing_item_ids=missing)


def best_pending_offer(request, bids):
    """
    Lowest total delivered price among PENDING bids, earliest submission on a tie.
    None when the request is CLOSED or nothing is pending.
    """
    if request.status != BidRequestStatus.OPEN:
        return None
    pending = [b for b in bids if b.status == RetailerBidStatus.PENDING]
    if not pending:
        return None
    return min(pending, key=lambda b: (b.total_delivered_price, _as_utc(b.submitted_at)))


def projected_savings(start: StartingTotal, bid) -> Savings | None:
    """Advisory only. None when there is no offer to compare against."""
    if bid is None:
        return None
    saved = start.amount - bid.total_delivered_price
    return Savings(amount=round(saved, 2), percent=_percent(saved, start.amount))


def line_comparison(items, bid) -> list[LineComparison]:
    """Starting price vs offered price for each requested line of one bid."""
    offered = {bi.bid_request_item_id: bi.price_per_unit for bi in bid.items}
    rows: list[LineComparison] = []
    for item in items:
        category = _category(item)
        base_quantity, base_unit, _ = to_base(item.quantity, item.unit, category)
        price = offered.get(item.id)

        starting_line = (
            round(item.starting_price * item.quantity, 2)
            if item.starting_price is not None
            else None
        )
        offered_line = round(price * item.quantity, 2) if price is not None else None

        savings_amount = None
        savings_percent = None
        if starting_line is not None and offered_line is not None:
            savings_amount = round(starting_line - offered_line, 2)
            savings_percent = _percent(starting_line - offered_line, starting_line)

        rows.append(
            LineComparison(
                bid_request_item_id=str(item.id),
                product_name=item.product_name,
                quantity=item.quantity,
                unit=item.unit,
                base_quantity=round(base_quantity, 4),
                base_unit=base_unit,
                starting_price=item.starting_price,
                offered_price=price,
                offered_price_per_base_unit=(
                    round(price_to_base(price, item.unit, category)[0], 4)
                    if price is not None
                    else None
                ),
                starting_line_total=starting_line,
                offered_line_total=offered_line,
                savings_amount=savings_amount,
                savings_percent=savings_percent,
            )
        )
    return rows


def best_unit_prices(request, bids) -> dict[str, BestUnitPrice]:
    """Per item, the lowest unit price offered by any PENDING bid on an OPEN request."""
    if request.status != BidRequestStatus.OPEN:
        return {}

    best: dict[str, tuple[float, datetime, object]] = {}
    for bid in bids:
        if bid.status != RetailerBidStatus.PENDING:
            continue
        submitted = _as_utc(bid.submitted_at)
        for line in bid.items:
            key = str(line.bid_request_item_id)
            current = best.get(key)
            if current is None or (line.price_per_unit, submitted) < current[:2]:
                best[key] = (line.price_per_unit, submitted, bid)

    return {
        key: BestUnitPrice(
            bid_id=str(bid.id),
            retailer_id=str(bid.retailer_id),
            price_per_unit=price,
        )
        for key, (price, _, bid) in best.items()
    }


def summarize(request, bids) -> dict:
    """Everything the buyer's comparison screen needs, in one dict."""
    start = starting_total(request.items)
    best = best_pending_offer(request, bids)
    savings = projected_savings(start, best)
    accepted = next((b for b in bids if b.status == RetailerBidStatus.ACCEPTED), None)

    items = []
    for item in request.items:
        base_quantity, base_unit, converted = to_base(item.quantity, item.unit, _category(item))
        items.append(
            {
                "id": str(item.id),
                "product_name": item.product_name,
                "quantity": item.quantity,
                "unit": item.unit,
                "base_quantity": round(base_quantity, 4),
                "base_unit": base_unit,
                "unit_converted": converted,
                "starting_price": item.starting_price,
            }
        )

    return {
        "request_id": str(request.id),
        "status": request.status.value,
        "starting_total": start.amount,
        "missing_starting_price_item_ids": [str(i) for i in start.missing_item_ids],
        "pending_bid_count": sum(1 for b in bids if b.status == RetailerBidStatus.PENDING),
        "best_bid_id": str(best.id) if best is not None else None,
        "best_total_delivered_price": best.total_delivered_price if best is not None else None,
        "savings_amount": savings.amount if savings is not None else None,
        "savings_percent": savings.percent if savings is not None else None,
        "accepted_bid_id": str(accepted.id) if accepted is not None else None,
        "items": items,
        "best_unit_prices": best_unit_prices(request, bids),
        "best_bid_lines": line_comparison(request.items, best) if best is not None else [],
    }
