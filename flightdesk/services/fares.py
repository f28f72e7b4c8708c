from typing import Optional
from flightdesk.schemas.booking import Coupon, FareLine, PriceBreakdown

# Share of the adult base fare charged per passenger category
FARE_WEIGHTS = {
    "adult": 1.0,
    "child": 0.75,
    "infant": 0.10,
}


def compute_subtotal(base_price: float, adults: int, children: int, infants: int) -> float:
    return (
        base_price * adults
        + base_price * FARE_WEIGHTS["child"] * children
        + base_price * FARE_WEIGHTS["infant"] * infants
    )


def compute_total(base_price: float, adults: int, children: int, infants: int, coupon: Optional[Coupon] = None) -> float:
    """
    Total fare for a booking. Not rounded: call format_amount() for display
    so repeated recomputation stays stable.
    """
    total = compute_subtotal(base_price, adults, children, infants)
    if coupon:
        total = total * (1 - coupon.discount / 100)
    return max(total, 0.0)


def price_breakdown(base_price: float, adults: int, children: int, infants: int, coupon: Optional[Coupon] = None) -> PriceBreakdown:
    counts = {"adult": adults, "child": children, "infant": infants}
    lines = [
        FareLine(category=category, count=count, weight=FARE_WEIGHTS[category], amount=base_price * FARE_WEIGHTS[category] * count)
        for category, count in counts.items()
        if count > 0
    ]
    subtotal = compute_subtotal(base_price, adults, children, infants)
    total = compute_total(base_price, adults, children, infants, coupon)
    return PriceBreakdown(
        base_price=base_price,
        lines=lines,
        subtotal=subtotal,
        coupon=coupon,
        discount_amount=subtotal - total,
        total=total,
    )


def format_amount(amount: float) -> str:
    return f"{amount:,.2f}"
