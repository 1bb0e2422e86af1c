"""
Unit normalisation for requested input quantities.

Liquid chemicals are compared per gallon, dry product per pound. Count units
(bags, units, each) pass through as-is. Unknown units are reported
unconverted so the caller can still show the stored value.

1 gallon = 4 quarts = 8 pints = 128 fl oz; 1 ton = 2000 lb.
"""
from __future__ import annotations

from typing import TypedDict


class UnitInfo(TypedDict):
    base: str       # GAL, LB or the count unit itself
    factor: float   # multiply a quantity in this unit by factor to get base units


UNITS: dict[str, UnitInfo] = {
    # volume -> GAL
    "GAL":   {"base": "GAL", "factor": 1.0},
    "QT":    {"base": "GAL", "factor": 0.25},
    "PT":    {"base": "GAL", "factor": 0.125},
    "FL OZ": {"base": "GAL", "factor": 1 / 128},
    "L":     {"base": "GAL", "factor": 0.264172},
    "ML":    {"base": "GAL", "factor": 0.000264172},
    # weight -> LB
    "LB":    {"base": "LB", "factor": 1.0},
    "OZ":    {"base": "LB", "factor": 0.0625},
    "KG":    {"base": "LB", "factor": 2.20462},
    "TON":   {"base": "LB", "factor": 2000.0},
    # count
    "BAG":   {"base": "BAG", "factor": 1.0},
    "UNIT":  {"base": "UNIT", "factor": 1.0},
    "EA":    {"base": "EA", "factor": 1.0},
}

_ALIASES: dict[str, str] = {
    "GALLON": "GAL", "GALLONS": "GAL", "GALS": "GAL",
    "QUART": "QT", "QUARTS": "QT",
    "PINT": "PT", "PINTS": "PT",
    "FLOZ": "FL OZ", "FL. OZ": "FL OZ", "FL.OZ": "FL OZ",
    "LITER": "L", "LITRE": "L", "LITERS": "L", "LITRES": "L",
    "LBS": "LB", "POUND": "LB", "POUNDS": "LB",
    "OUNCE": "OZ", "OUNCES": "OZ",
    "KGS": "KG", "KILOGRAM": "KG", "KILOGRAMS": "KG",
    "TONS": "TON",
    "BAGS": "BAG",
    "UNITS": "UNIT",
    "EACH": "EA",
}


def normalize_unit(unit: str, category: str | None = None) -> str:
    """
    Canonical unit code for a free-text unit.

    A bare OZ on a CHEMICAL line is a fluid ounce; everywhere else it is a
    weight ounce.
    """
    code = " ".join(unit.strip().upper().split())
    code = _ALIASES.get(code, code)
    if code == "OZ" and category == "CHEMICAL":
        return "FL OZ"
    return code


def to_base(quantity: float, unit: str, category: str | None = None) -> tuple[float, str, bool]:
    """
    Convert a quantity to its base unit.

    Returns (quantity, unit, converted). Unknown units come back unchanged
    with converted=False.
    """
    code = normalize_unit(unit, category)
    info = UNITS.get(code)
    if info is None:
        return quantity, unit, False
    return quantity * info["factor"], info["base"], True


def price_to_base(price_per_unit: float, unit: str, category: str | None = None) -> tuple[float, str, bool]:
    """A price per stored unit expressed per base unit (the inverse of to_base)."""
    code = normalize_unit(unit, category)
    info = UNITS.get(code)
    if info is None:
        return price_per_unit, unit, False
    return price_per_unit / info["factor"], info["base"], True
