"""
Fence cost estimation.

Area is the vertical surface of a rectangular enclosure (two long sides plus
two short sides, all at fence height). Material is priced per square foot
from the product's base rate, labor at a fixed rate, and transport as a flat
fee picked from the area tier.
"""
import math
from typing import Any, Optional

from errors import ValidationError
from schemas import CostBreakdown

LABOR_RATE = 20
TRANSPORT_TIERS = (
    (500, 2500),
    (1000, 4000),
)
TRANSPORT_MAX = 6000


def _number(name: str, value: Any) -> float:
    if value is None or (isinstance(value, str) and value.strip() == ""):
        raise ValidationError("Please fill in all fields")
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number")
    if math.isnan(number) or math.isinf(number):
        raise ValidationError(f"{name} must be a number")
    if number < 0:
        raise ValidationError(f"{name} cannot be negative")
    return number


def fence_area(length: float, width: float, height: float) -> float:
    return 2 * (length * height) + 2 * (width * height)


def transport_cost(area: float) -> float:
    for upper, fee in TRANSPORT_TIERS:
        if area <= upper:
            return float(fee)
    return float(TRANSPORT_MAX)


def estimate(length: Any, width: Any, height: Any, product_rate: Any) -> CostBreakdown:
    # all inputs are validated before any arithmetic happens
    length = _number("Length", length)
    width = _number("Width", width)
    height = _number("Height", height)
    rate = _number("Product rate", product_rate)
    return price_area(fence_area(length, width, height), rate)


def price_area(area: Any, product_rate: Any) -> CostBreakdown:
    area = _number("Area", area)
    rate = _number("Product rate", product_rate)
    material = area * rate
    labor = area * LABOR_RATE
    transport = transport_cost(area)
    return CostBreakdown(
        area=area,
        material_cost=material,
        labor_cost=labor,
        transport_cost=transport,
        grand_total=material + labor + transport,
    )


def breakdown_from_total(area: Any, grand_total: Any) -> CostBreakdown:
    """
    Rebuild an itemized breakdown for a quote that only stored its area and
    total. Labor and transport follow the formula; material is whatever is
    left of the total.
    """
    area = _number("Area", area)
    total = _number("Grand total", grand_total)
    labor = area * LABOR_RATE
    transport = transport_cost(area)
    return CostBreakdown(
        area=area,
        material_cost=total - labor - transport,
        labor_cost=labor,
        transport_cost=transport,
        grand_total=total,
    )


def rate_for(product: Optional[dict]) -> Any:
    if not product:
        return None
    # seeded catalog entries use the older basePrice key
    return product.get("base_rate", product.get("basePrice"))
