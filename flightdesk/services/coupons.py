import logging
from typing import Optional, Sequence
from flightdesk.schemas.booking import Coupon

logger = logging.getLogger(__name__)

COUPON_CATALOG = (
    Coupon(code="FIRST10", discount=10, description="10% off your first booking"),
    Coupon(code="SUMMER25", discount=25, description="25% off summer flights"),
    Coupon(code="WELCOME15", discount=15, description="15% welcome discount"),
    Coupon(code="FLASH50", discount=50, description="50% flash sale discount"),
)


def resolve(code: str, catalog: Sequence[Coupon] = COUPON_CATALOG) -> Optional[Coupon]:
    """Case-insensitive lookup of a user-entered coupon code. Returns None on no match."""
    wanted = (code or "").lower()
    if not wanted.strip():
        return None
    for coupon in catalog:
        if coupon.code.lower() == wanted:
            return coupon
    logger.warning(f"Invalid coupon code entered: {code!r}")
    return None
