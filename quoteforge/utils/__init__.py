from .date_utils import add_days, age_in_hours, days_beyond, utc_now, validity_window
from .math_utils import round_half_up, round_money, round_rate, to_decimal
from .validation import validate_line_input

__all__ = [
    'add_days',
    'age_in_hours',
    'days_beyond',
    'utc_now',
    'validity_window',
    'round_half_up',
    'round_money',
    'round_rate',
    'to_decimal',
    'validate_line_input'
]
