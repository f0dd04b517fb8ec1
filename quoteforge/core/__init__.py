from .types import (
    QuoteStatus, StockStatus, RelationshipType, FactorKind, EventKind, PricingSettings,
    LineInput, LineBreakdown, QuoteLine, QuoteTotals, ApprovalCheck, Quote,
    SubmissionResult, QuoteEvent, CustomerHistory, WinFactor, WinAnalysis
)
from .line_calculation import calculate_line, calculate_lines, price_line, resolve_markup_percent
from .quote_totals import aggregate, calculate_gm_percent, check_approval_required
from .approval import ApprovalEngine, amendment_number, base_quote_number
from .win_scoring import score_quote

__all__ = [
    'QuoteStatus',
    'StockStatus',
    'RelationshipType',
    'FactorKind',
    'EventKind',
    'PricingSettings',
    'LineInput',
    'LineBreakdown',
    'QuoteLine',
    'QuoteTotals',
    'ApprovalCheck',
    'Quote',
    'SubmissionResult',
    'QuoteEvent',
    'CustomerHistory',
    'WinFactor',
    'WinAnalysis',
    'calculate_line',
    'calculate_lines',
    'price_line',
    'resolve_markup_percent',
    'aggregate',
    'calculate_gm_percent',
    'check_approval_required',
    'ApprovalEngine',
    'amendment_number',
    'base_quote_number',
    'score_quote'
]
