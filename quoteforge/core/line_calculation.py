# quoteforge/core/line_calculation.py
"""Landed cost and resale price of a single quote line.

Landed Cost        = BuyPrice x (1 + Freight) x ExchangeRate x (1 + Duty) x (1 + Handling)
Markup Amount      = LandedCost x MarkupPercent
Unit Sell Ex VAT   = LandedCost + MarkupAmount
Line Total Ex VAT  = UnitSellExVat x Quantity
VAT Amount         = LineTotalExVat x VATRate
Line Total Inc VAT = LineTotalExVat + VATAmount

Unit amounts and ratios round half-up to 4 dp, line totals to 2 dp. Each
step consumes the rounded value of the step before it, so the stored fields
always reconcile: ``inc == ex + vat`` and ``ex == round2(unit_sell x qty)``.
"""
import logging
from dataclasses import replace
from decimal import Decimal
from typing import Iterable, List

from quoteforge.core.types import LineBreakdown, LineInput, QuoteLine
from quoteforge.exceptions import InvalidInputError
from quoteforge.utils.math_utils import ONE, ZERO, round_money, round_rate, to_decimal
from quoteforge.utils.validation import validate_line_input

logger = logging.getLogger(__name__)


def resolve_markup_percent(line: LineInput, default_markup_percent=ZERO) -> Decimal:
    """Get the markup a line is priced at.

    The override wins, then the line's target, then the configured default.
    """
    override = to_decimal(line.override_markup_percent)
    if override is not None:
        return override
    return to_decimal(line.target_markup_percent, default=to_decimal(default_markup_percent, default=ZERO))


def calculate_line(line: LineInput, vat_rate, default_markup_percent=ZERO) -> LineBreakdown:
    """Calculate the cost and price breakdown of one quote line.

    Args:
        line: Raw line inputs
        vat_rate: VAT rate in force, as a ratio (0.125 for 12.5%)
        default_markup_percent: Markup for lines that give no target

    Returns:
        LineBreakdown with every derived field

    Raises:
        InvalidInputError if the buy price is missing or negative, the
        exchange rate is not positive, the quantity is below 1, or a
        cost rate is negative
    """
    errors = validate_line_input(line)
    if errors:
        raise InvalidInputError(
            f"Invalid quote line: {'; '.join(errors.values())}",
            details={'fields': errors, 'part_number': line.part_number},
        )

    try:
        vat = to_decimal(vat_rate)
    except ValueError:
        vat = None
    if vat is None or vat < ZERO:
        raise InvalidInputError("VAT rate must be a non-negative number", details={'vat_rate': vat_rate})

    buy_price = to_decimal(line.buy_price)
    exchange_rate = to_decimal(line.exchange_rate)
    quantity = int(to_decimal(line.quantity))
    freight_rate = to_decimal(line.freight_rate, default=ZERO)
    duty_rate = to_decimal(line.duty_rate, default=ZERO)
    handling_rate = to_decimal(line.handling_rate, default=ZERO)

    freight_multiplier = ONE + freight_rate
    landed_cost = round_rate(
        buy_price * freight_multiplier * exchange_rate * (ONE + duty_rate) * (ONE + handling_rate)
    )

    # Reporting only; not part of the landed cost chain
    freight_amount = round_rate(buy_price * freight_rate)
    duty_amount = round_rate(buy_price * exchange_rate * duty_rate)
    handling_amount = round_rate(buy_price * exchange_rate * handling_rate)

    markup_percent = round_rate(resolve_markup_percent(line, default_markup_percent))
    markup_amount = round_rate(landed_cost * markup_percent)
    unit_sell_ex_vat = round_rate(landed_cost + markup_amount)

    line_total_ex_vat = round_money(unit_sell_ex_vat * quantity)
    vat_amount = round_money(line_total_ex_vat * vat)
    line_total_inc_vat = round_money(line_total_ex_vat + vat_amount)

    return LineBreakdown(
        freight_amount=freight_amount,
        duty_amount=duty_amount,
        handling_amount=handling_amount,
        landed_cost=landed_cost,
        markup_percent=markup_percent,
        markup_amount=markup_amount,
        unit_sell_ex_vat=unit_sell_ex_vat,
        line_total_ex_vat=line_total_ex_vat,
        vat_amount=vat_amount,
        line_total_inc_vat=line_total_inc_vat,
    )


def price_line(line: LineInput, vat_rate, default_markup_percent=ZERO) -> QuoteLine:
    """Calculate a line and pair the breakdown with its inputs."""
    return QuoteLine(inputs=line, breakdown=calculate_line(line, vat_rate, default_markup_percent))


def calculate_lines(lines: Iterable[LineInput], vat_rate, default_markup_percent=ZERO) -> List[QuoteLine]:
    """Calculate every line of a quote.

    The batch is all-or-nothing: the first invalid line aborts the whole
    calculation and no partial result is returned.

    Args:
        lines: Raw line inputs in quote order
        vat_rate: VAT rate in force
        default_markup_percent: Markup for lines that give no target

    Returns:
        List of priced lines, numbered from 1 where no line number was given

    Raises:
        InvalidInputError naming the offending line index
    """
    priced = []
    for index, line in enumerate(lines):
        if line.line_number is None:
            line = _with_line_number(line, index + 1)
        try:
            priced.append(price_line(line, vat_rate, default_markup_percent))
        except InvalidInputError as e:
            details = dict(e.details or {})
            details['line_index'] = index
            details['line_number'] = line.line_number
            logger.warning(f"Line {line.line_number} rejected: {e.message}")
            raise InvalidInputError(
                f"Line {line.line_number}: {e.message}", details=details
            ) from e
    return priced


def _with_line_number(line: LineInput, number: int) -> LineInput:
    return replace(line, line_number=number)
