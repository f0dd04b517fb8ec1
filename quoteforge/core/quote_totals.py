# quoteforge/core/quote_totals.py
from decimal import Decimal
from typing import Iterable, Optional

from quoteforge.core.types import ApprovalCheck, PricingSettings, QuoteLine, QuoteTotals
from quoteforge.utils.math_utils import (
    HUNDRED, TWO_DP, ZERO, decimal_sum, format_percent, round_half_up, round_money, round_rate, to_decimal
)


def calculate_gm_percent(total_selling_ex_vat: Decimal, total_landed_cost: Decimal) -> Decimal:
    """Calculate gross margin as a share of the selling price.

    GM% = (Selling Ex VAT - Landed Cost) / Selling Ex VAT. This is margin on
    revenue, not markup on cost: a 25% markup is a 20% margin.

    Args:
        total_selling_ex_vat: Selling price excluding VAT
        total_landed_cost: Landed cost

    Returns:
        Unrounded GM ratio, 0 when there are no sales
    """
    if total_selling_ex_vat <= ZERO:
        return ZERO
    return (total_selling_ex_vat - total_landed_cost) / total_selling_ex_vat


def aggregate(lines: Iterable[QuoteLine]) -> QuoteTotals:
    """Sum calculated lines into quote totals.

    Sums are exact Decimals, so the result does not depend on line order
    and repeated calls give identical totals.

    Args:
        lines: Calculated quote lines

    Returns:
        QuoteTotals with money fields at 2 dp and GM at 4 dp
    """
    lines = list(lines)
    if not lines:
        return QuoteTotals()

    total_landed_cost = decimal_sum(line.landed_cost * line.quantity for line in lines)
    total_markup = decimal_sum(line.markup_amount * line.quantity for line in lines)
    total_selling_ex_vat = decimal_sum(line.line_total_ex_vat for line in lines)
    total_vat = decimal_sum(line.vat_amount for line in lines)
    total_selling_inc_vat = decimal_sum(line.line_total_inc_vat for line in lines)

    gm_percent = calculate_gm_percent(total_selling_ex_vat, total_landed_cost)

    return QuoteTotals(
        total_landed_cost=round_money(total_landed_cost),
        total_markup=round_money(total_markup),
        total_selling_ex_vat=round_money(total_selling_ex_vat),
        total_vat=round_money(total_vat),
        total_selling_inc_vat=round_money(total_selling_inc_vat),
        overall_gm_percent=round_rate(gm_percent),
        line_count=len(lines),
    )


def check_approval_required(
    overall_gm_percent,
    settings: Optional[PricingSettings] = None
) -> ApprovalCheck:
    """Compare a quote's margin against the approval and warning thresholds.

    A margin exactly at the smart-approval floor does not need approval.

    Args:
        overall_gm_percent: Quote GM as a ratio
        settings: Thresholds in force (defaults when omitted)

    Returns:
        ApprovalCheck with flags and a warning message for thin margins
    """
    settings = settings or PricingSettings()
    gm = to_decimal(overall_gm_percent, default=ZERO)

    floor = settings.smart_approval_floor
    low = settings.low_gm_threshold
    critical = settings.critical_gm_threshold

    is_critical = gm < critical
    is_low = critical <= gm < low

    message = None
    if is_critical:
        message = f"Critical: GM is {format_percent(gm)} (below {format_percent(critical)})"
    elif is_low:
        message = f"Warning: GM is {format_percent(gm)} (below {format_percent(low)})"
    elif gm < floor:
        message = f"GM is {format_percent(gm)}, below the {format_percent(floor)} smart-approval floor"

    return ApprovalCheck(
        requires_approval=gm < floor,
        is_low_margin=is_low,
        is_critical_margin=is_critical,
        gm_percent=round_half_up(gm * HUNDRED, TWO_DP),
        floor=floor,
        message=message,
    )
