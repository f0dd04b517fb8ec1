# quoteforge/utils/validation.py
from typing import Dict

from quoteforge.utils.math_utils import ZERO, to_decimal


def _check_number(errors: Dict[str, str], name: str, value, required: bool = False):
    """Parse a numeric field, recording an error instead of raising."""
    try:
        parsed = to_decimal(value)
    except ValueError:
        errors[name] = f'{name} must be a number'
        return None
    if parsed is None and required:
        errors[name] = f'{name} is required'
    return parsed


def validate_line_input(line) -> Dict[str, str]:
    """Validate the raw inputs of a quote line.

    Args:
        line: LineInput to validate

    Returns:
        Dictionary with validation errors, empty when the line is valid
    """
    errors = {}

    buy_price = _check_number(errors, 'buy_price', line.buy_price, required=True)
    if buy_price is not None and buy_price < ZERO:
        errors['buy_price'] = 'Buy price must not be negative'

    exchange_rate = _check_number(errors, 'exchange_rate', line.exchange_rate, required=True)
    if exchange_rate is not None and exchange_rate <= ZERO:
        errors['exchange_rate'] = 'Exchange rate must be a positive number'

    quantity = line.quantity
    if isinstance(quantity, bool) or quantity is None:
        errors['quantity'] = 'Quantity must be a whole number'
    else:
        try:
            parsed_quantity = to_decimal(quantity)
        except ValueError:
            parsed_quantity = None
        if parsed_quantity is None or parsed_quantity != parsed_quantity.to_integral_value():
            errors['quantity'] = 'Quantity must be a whole number'
        elif parsed_quantity < 1:
            errors['quantity'] = 'Quantity must be at least 1'

    for name in ('freight_rate', 'duty_rate', 'handling_rate'):
        rate = _check_number(errors, name, getattr(line, name))
        if rate is not None and rate < ZERO:
            errors[name] = f'{name} must not be negative'

    _check_number(errors, 'target_markup_percent', line.target_markup_percent)
    _check_number(errors, 'override_markup_percent', line.override_markup_percent)

    if line.currency is not None and len(str(line.currency).strip()) != 3:
        errors['currency'] = 'Currency must be a 3-letter code'

    return errors
