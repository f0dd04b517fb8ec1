# quoteforge/core/win_scoring.py
"""Deterministic likelihood-to-win score for a quote.

Components:
    Margin Health          0..40   linear between 10% and 30% GM
    Customer Relationship  +20/-10 existing customer with an accepted quote, or new
    Quote Velocity         +20..   quick turnaround bonus, -5 per started day past 24h
    Product Fit            +10/-10 mostly standard items, or many custom items
    Discount Depth         -10     thin margin without manager approval

The score is the sum of the impacts clamped to [0, 100].
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Mapping, Optional

from quoteforge.core.types import (
    CustomerHistory, FactorKind, Quote, QuoteLine, QuoteStatus, StockStatus, WinAnalysis, WinFactor
)
from quoteforge.utils.date_utils import age_in_hours, days_beyond
from quoteforge.utils.math_utils import HUNDRED, ZERO, clamp, round_to_int, to_decimal

logger = logging.getLogger(__name__)

MARGIN_FULL_SCORE_GM = Decimal("0.30")
MARGIN_ZERO_SCORE_GM = Decimal("0.10")
MARGIN_MAX_POINTS = 40

FAST_TURNAROUND_HOURS = 4.0
STANDARD_TURNAROUND_HOURS = 24.0
DELAY_PENALTY_PER_DAY = 5

STANDARD_SHARE_FOR_BONUS = Decimal("0.80")
CUSTOM_SHARE_FOR_PENALTY = Decimal("0.20")

# GM below this is treated as a discount of more than 5% off the 25% standard markup
DISCOUNT_GM_THRESHOLD = Decimal("0.20")

MIN_SCORE = 0
MAX_SCORE = 100


def margin_health(gm_percent) -> WinFactor:
    """Score the margin: 40 points at 30% GM or above, none at 10% or below."""
    gm = to_decimal(gm_percent, default=ZERO)
    if gm >= MARGIN_FULL_SCORE_GM:
        points = MARGIN_MAX_POINTS
    elif gm <= MARGIN_ZERO_SCORE_GM:
        points = 0
    else:
        span = MARGIN_FULL_SCORE_GM - MARGIN_ZERO_SCORE_GM
        points = round_to_int((gm - MARGIN_ZERO_SCORE_GM) / span * MARGIN_MAX_POINTS)

    return WinFactor(
        factor=FactorKind.MARGIN_HEALTH,
        impact=points,
        description=f"GM {round_to_int(gm * HUNDRED)}% yields {points}/{MARGIN_MAX_POINTS} points",
    )


def customer_relationship(quote: Quote, history: Optional[CustomerHistory]) -> Optional[WinFactor]:
    """Score the customer relationship.

    Returns None when the quote has no customer or the customer record is
    missing.
    """
    if not quote.customer_id or history is None:
        return None

    if history.accepted_excluding(quote.id) > 0:
        return WinFactor(FactorKind.CUSTOMER_RELATIONSHIP, 20, 'Existing customer with history')
    return WinFactor(FactorKind.CUSTOMER_RELATIONSHIP, -10, 'New customer (no history)')


def quote_velocity(created_at: Optional[datetime], now: datetime) -> WinFactor:
    """Score how long the quote has been open."""
    age_hours = age_in_hours(created_at, now) if created_at else 0.0

    if age_hours <= FAST_TURNAROUND_HOURS:
        return WinFactor(FactorKind.QUOTE_VELOCITY, 20, 'Turnaround within 4 hours')

    days_over = days_beyond(age_hours, STANDARD_TURNAROUND_HOURS)
    if days_over == 0:
        return WinFactor(FactorKind.QUOTE_VELOCITY, 0, 'Standard turnaround (>4h, <24h)')
    return WinFactor(
        FactorKind.QUOTE_VELOCITY,
        -DELAY_PENALTY_PER_DAY * days_over,
        f"Delayed by {days_over} day(s)",
    )


def product_fit(lines: Iterable[QuoteLine], catalog: Mapping[str, StockStatus]) -> Optional[WinFactor]:
    """Score the mix of standard and custom items.

    Only lines with a part number count. Parts missing from the catalog are
    treated as standard.
    """
    standard_count = 0
    custom_count = 0
    total_items = 0

    for line in lines:
        if not line.part_number:
            continue
        total_items += 1
        status = StockStatus(catalog.get(line.part_number, StockStatus.STANDARD))
        if status.is_standard:
            standard_count += 1
        elif status.is_custom:
            custom_count += 1

    if total_items == 0:
        return None

    standard_share = Decimal(standard_count) / Decimal(total_items)
    custom_share = Decimal(custom_count) / Decimal(total_items)

    if standard_share >= STANDARD_SHARE_FOR_BONUS:
        return WinFactor(FactorKind.PRODUCT_FIT, 10, 'High volume of standard items')
    if custom_share > CUSTOM_SHARE_FOR_PENALTY:
        return WinFactor(FactorKind.PRODUCT_FIT, -10, 'High volume of custom/special orders')
    return None


def discount_depth(gm_percent, status: QuoteStatus) -> Optional[WinFactor]:
    """Penalise a thin margin that no manager has signed off.

    GM stands in for the discount given; quotes do not record a list price.
    """
    gm = to_decimal(gm_percent, default=ZERO)
    if gm >= DISCOUNT_GM_THRESHOLD:
        return None
    if status in (QuoteStatus.APPROVED, QuoteStatus.ACCEPTED):
        return WinFactor(FactorKind.DISCOUNT_DEPTH, 0, 'High discount approved by manager')
    return WinFactor(FactorKind.DISCOUNT_DEPTH, -10, 'High discount without manager approval')


def score_quote(
    quote: Quote,
    lines: Optional[Iterable[QuoteLine]] = None,
    customer_history: Optional[CustomerHistory] = None,
    product_catalog: Optional[Mapping[str, StockStatus]] = None,
    now: Optional[datetime] = None
) -> WinAnalysis:
    """Calculate the win probability of a quote.

    Args:
        quote: Quote to score
        lines: Lines to classify (defaults to the quote's own lines)
        customer_history: Accepted quotes of the quote's customer, None if
            the customer record does not exist
        product_catalog: Stock status by part number
        now: Reference time for the velocity component

    Returns:
        WinAnalysis with the clamped score and every emitted factor
    """
    if now is None:
        raise ValueError("score_quote requires an explicit reference time")

    lines = list(quote.lines if lines is None else lines)
    gm = quote.overall_gm_percent

    factors: List[WinFactor] = [margin_health(gm)]
    for factor in (
        customer_relationship(quote, customer_history),
        quote_velocity(quote.created_at, now),
        product_fit(lines, product_catalog or {}),
        discount_depth(gm, quote.status),
    ):
        if factor is not None:
            factors.append(factor)

    score = clamp(sum(item.impact for item in factors), MIN_SCORE, MAX_SCORE)
    logger.debug(f"Quote {quote.quote_number} scored {score} from {len(factors)} factors")

    return WinAnalysis(score=score, factors=tuple(factors), calculated_at=now)
