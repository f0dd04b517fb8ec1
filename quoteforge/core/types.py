# quoteforge/core/types.py
"""Plain-data types shared by the pricing core.

Everything here is immutable. Workflow operations return new values built
with ``dataclasses.replace`` instead of mutating their inputs.
"""
import enum
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

from quoteforge.exceptions import ConfigError
from quoteforge.utils.math_utils import ONE, ZERO, to_decimal


class QuoteStatus(str, enum.Enum):
    """Quote lifecycle status."""
    DRAFT = 'draft'
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'
    ACCEPTED = 'accepted'

    def __str__(self):
        return self.value


class StockStatus(str, enum.Enum):
    """Catalog stock status of a product."""
    IN_STOCK = 'In Stock'
    STANDARD = 'Standard'
    CUSTOM = 'Custom'
    SPECIAL_ORDER = 'Special Order'

    def __str__(self):
        return self.value

    @property
    def is_standard(self) -> bool:
        return self in (StockStatus.IN_STOCK, StockStatus.STANDARD)

    @property
    def is_custom(self) -> bool:
        return self in (StockStatus.CUSTOM, StockStatus.SPECIAL_ORDER)


class RelationshipType(str, enum.Enum):
    """How a suggested product relates to one already on the quote."""
    ACCESSORY = 'accessory'
    SUBSTITUTE = 'substitute'
    UPSELL = 'upsell'

    def __str__(self):
        return self.value


class FactorKind(str, enum.Enum):
    """Components of the win-probability score."""
    MARGIN_HEALTH = 'Margin Health'
    CUSTOMER_RELATIONSHIP = 'Customer Relationship'
    QUOTE_VELOCITY = 'Quote Velocity'
    PRODUCT_FIT = 'Product Fit'
    DISCOUNT_DEPTH = 'Discount Depth'

    def __str__(self):
        return self.value


class EventKind(str, enum.Enum):
    """Workflow events sent to the quote creator."""
    APPROVED = 'approved'
    REJECTED = 'rejected'

    def __str__(self):
        return self.value


@dataclass(frozen=True)
class PricingSettings:
    """Configuration values the core reads at calculation and submission time.

    Attributes:
        vat_rate: VAT applied to ex-VAT line totals (0.125 = 12.5%)
        quote_validity_days: Days from the quote date to ``valid_until``
        low_gm_threshold: GM below this raises a low-margin warning
        critical_gm_threshold: GM below this raises a critical-margin warning
        smart_approval_floor: GM at or above this is approved without review
        base_currency: Currency that exchange rates convert into
        default_markup_percent: Markup used when a line gives no target
    """
    vat_rate: Decimal = Decimal("0.125")
    quote_validity_days: int = 14
    low_gm_threshold: Decimal = Decimal("0.08")
    critical_gm_threshold: Decimal = Decimal("0.05")
    smart_approval_floor: Decimal = Decimal("0.15")
    base_currency: str = 'FJD'
    default_markup_percent: Decimal = Decimal("0.25")

    def __post_init__(self):
        ratios = ('vat_rate', 'low_gm_threshold', 'critical_gm_threshold',
                  'smart_approval_floor', 'default_markup_percent')
        for name in ratios:
            try:
                value = to_decimal(getattr(self, name))
            except ValueError:
                raise ConfigError(f"{name} must be a number", details={name: getattr(self, name)})
            if value is None or value < ZERO or value > ONE:
                raise ConfigError(f"{name} must be between 0 and 1", details={name: str(value)})
            object.__setattr__(self, name, value)

        try:
            validity_days = int(self.quote_validity_days)
        except (TypeError, ValueError):
            raise ConfigError("quote_validity_days must be an integer",
                              details={'quote_validity_days': self.quote_validity_days})
        if validity_days < 1:
            raise ConfigError("quote_validity_days must be at least 1",
                              details={'quote_validity_days': validity_days})
        object.__setattr__(self, 'quote_validity_days', validity_days)

        if self.critical_gm_threshold > self.low_gm_threshold:
            raise ConfigError(
                "critical_gm_threshold cannot exceed low_gm_threshold",
                details={
                    'critical_gm_threshold': str(self.critical_gm_threshold),
                    'low_gm_threshold': str(self.low_gm_threshold),
                },
            )

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> 'PricingSettings':
        """Build settings from a loosely-typed mapping, ignoring unknown keys."""
        known = {name: values[name] for name in cls.__dataclass_fields__ if values.get(name) is not None}
        return cls(**known)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'vat_rate': str(self.vat_rate),
            'quote_validity_days': self.quote_validity_days,
            'low_gm_threshold': str(self.low_gm_threshold),
            'critical_gm_threshold': str(self.critical_gm_threshold),
            'smart_approval_floor': str(self.smart_approval_floor),
            'base_currency': self.base_currency,
            'default_markup_percent': str(self.default_markup_percent),
        }


@dataclass(frozen=True)
class LineInput:
    """Raw inputs of one quote line.

    ``exchange_rate`` is the number of base-currency units per ONE unit of
    the supplier currency. It is multiplied into the buy price, never
    inverted: an NZD price with ``exchange_rate=0.72`` is worth 0.72 of the
    base currency per NZD. Passing the inverse (1/0.72) does not fail; it
    silently produces a wrong landed cost.
    """
    buy_price: Any
    exchange_rate: Any
    quantity: Any = 1
    currency: str = 'NZD'
    freight_rate: Any = ZERO
    duty_rate: Any = ZERO
    handling_rate: Any = ZERO
    target_markup_percent: Any = None
    override_markup_percent: Any = None
    part_number: Optional[str] = None
    description: Optional[str] = None
    supplier_id: Optional[str] = None
    category_id: Optional[str] = None
    line_number: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'line_number': self.line_number,
            'part_number': self.part_number,
            'description': self.description,
            'supplier_id': self.supplier_id,
            'category_id': self.category_id,
            'quantity': self.quantity,
            'buy_price': _plain(self.buy_price),
            'currency': self.currency,
            'freight_rate': _plain(self.freight_rate),
            'exchange_rate': _plain(self.exchange_rate),
            'duty_rate': _plain(self.duty_rate),
            'handling_rate': _plain(self.handling_rate),
            'target_markup_percent': _plain(self.target_markup_percent),
            'override_markup_percent': _plain(self.override_markup_percent),
        }


@dataclass(frozen=True)
class LineBreakdown:
    """Derived cost and price fields of one quote line."""
    freight_amount: Decimal
    duty_amount: Decimal
    handling_amount: Decimal
    landed_cost: Decimal
    markup_percent: Decimal
    markup_amount: Decimal
    unit_sell_ex_vat: Decimal
    line_total_ex_vat: Decimal
    vat_amount: Decimal
    line_total_inc_vat: Decimal

    def to_dict(self) -> Dict[str, str]:
        return {name: str(getattr(self, name)) for name in self.__dataclass_fields__}


@dataclass(frozen=True)
class QuoteLine:
    """A priced line: the raw inputs plus the breakdown calculated from them."""
    inputs: LineInput
    breakdown: LineBreakdown

    @property
    def quantity(self) -> int:
        return int(to_decimal(self.inputs.quantity))

    @property
    def part_number(self) -> Optional[str]:
        return self.inputs.part_number

    @property
    def landed_cost(self) -> Decimal:
        return self.breakdown.landed_cost

    @property
    def markup_amount(self) -> Decimal:
        return self.breakdown.markup_amount

    @property
    def unit_sell_ex_vat(self) -> Decimal:
        return self.breakdown.unit_sell_ex_vat

    @property
    def line_total_ex_vat(self) -> Decimal:
        return self.breakdown.line_total_ex_vat

    @property
    def vat_amount(self) -> Decimal:
        return self.breakdown.vat_amount

    @property
    def line_total_inc_vat(self) -> Decimal:
        return self.breakdown.line_total_inc_vat

    def to_dict(self) -> Dict[str, Any]:
        data = self.inputs.to_dict()
        data.update(self.breakdown.to_dict())
        return data


@dataclass(frozen=True)
class QuoteTotals:
    """Quote-level rollup of its lines."""
    total_landed_cost: Decimal = ZERO
    total_markup: Decimal = ZERO
    total_selling_ex_vat: Decimal = ZERO
    total_vat: Decimal = ZERO
    total_selling_inc_vat: Decimal = ZERO
    overall_gm_percent: Decimal = ZERO
    line_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data = {name: str(getattr(self, name)) for name in self.__dataclass_fields__}
        data['line_count'] = self.line_count
        return data


@dataclass(frozen=True)
class ApprovalCheck:
    """Outcome of comparing a quote's margin against the thresholds."""
    requires_approval: bool
    is_low_margin: bool
    is_critical_margin: bool
    gm_percent: Decimal
    floor: Decimal
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'requires_approval': self.requires_approval,
            'is_low_margin': self.is_low_margin,
            'is_critical_margin': self.is_critical_margin,
            'gm_percent': str(self.gm_percent),
            'floor': str(self.floor),
            'message': self.message,
        }


@dataclass(frozen=True)
class Quote:
    """A quote and its ordered lines, as seen by the workflow core."""
    id: str
    quote_number: str
    creator_id: str
    client_name: str = ''
    status: QuoteStatus = QuoteStatus.DRAFT
    lines: Tuple[QuoteLine, ...] = ()
    totals: QuoteTotals = field(default_factory=QuoteTotals)
    customer_id: Optional[str] = None
    quote_date: Optional[date] = None
    valid_until: Optional[date] = None
    created_at: Optional[datetime] = None
    approver_id: Optional[str] = None
    approver_comments: Optional[str] = None
    accepted_at: Optional[datetime] = None
    accepted_by: Optional[str] = None
    revision_number: int = 1
    parent_quote_id: Optional[str] = None
    public_id: Optional[str] = None
    notes: Optional[str] = None
    footer_notes: Optional[str] = None
    is_template: bool = False
    win_probability: Optional[int] = None
    ai_analysis: Optional['WinAnalysis'] = None

    @property
    def overall_gm_percent(self) -> Decimal:
        return self.totals.overall_gm_percent

    @property
    def is_amendment(self) -> bool:
        return self.parent_quote_id is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'quote_number': self.quote_number,
            'client_name': self.client_name,
            'creator_id': self.creator_id,
            'customer_id': self.customer_id,
            'status': self.status.value,
            'quote_date': self.quote_date.isoformat() if self.quote_date else None,
            'valid_until': self.valid_until.isoformat() if self.valid_until else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'approver_id': self.approver_id,
            'approver_comments': self.approver_comments,
            'accepted_at': self.accepted_at.isoformat() if self.accepted_at else None,
            'accepted_by': self.accepted_by,
            'revision_number': self.revision_number,
            'parent_quote_id': self.parent_quote_id,
            'public_id': self.public_id,
            'notes': self.notes,
            'footer_notes': self.footer_notes,
            'is_template': self.is_template,
            'win_probability': self.win_probability,
            'ai_analysis': self.ai_analysis.to_dict() if self.ai_analysis else None,
            'totals': self.totals.to_dict(),
            'lines': [line.to_dict() for line in self.lines],
        }


@dataclass(frozen=True)
class SubmissionResult:
    """Result of submitting a quote for approval."""
    quote: Quote
    check: ApprovalCheck
    auto_approved: bool


@dataclass(frozen=True)
class QuoteEvent:
    """Notification raised for the quote creator on an approval decision."""
    kind: EventKind
    quote_id: str
    quote_number: str
    creator_id: str
    actor_id: Optional[str]
    comments: Optional[str]
    occurred_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind.value,
            'quote_id': self.quote_id,
            'quote_number': self.quote_number,
            'creator_id': self.creator_id,
            'actor_id': self.actor_id,
            'comments': self.comments,
            'occurred_at': self.occurred_at.isoformat(),
        }


@dataclass(frozen=True)
class CustomerHistory:
    """What the scorer needs to know about the quote's customer."""
    customer_id: str
    accepted_quote_ids: FrozenSet[str] = frozenset()

    def accepted_excluding(self, quote_id: Optional[str]) -> int:
        return len(self.accepted_quote_ids - {quote_id})


@dataclass(frozen=True)
class WinFactor:
    """One explained component of the win-probability score."""
    factor: FactorKind
    impact: int
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'factor': self.factor.value,
            'impact': self.impact,
            'description': self.description,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'WinFactor':
        return cls(
            factor=FactorKind(data['factor']),
            impact=int(data['impact']),
            description=str(data.get('description', '')),
        )


@dataclass(frozen=True)
class WinAnalysis:
    """Win-probability score with its explanation."""
    score: int
    factors: Tuple[WinFactor, ...]
    calculated_at: datetime

    def factor(self, kind: FactorKind) -> Optional[WinFactor]:
        for item in self.factors:
            if item.factor is kind:
                return item
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'score': self.score,
            'factors': [item.to_dict() for item in self.factors],
            'calculated_at': self.calculated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'WinAnalysis':
        return cls(
            score=int(data['score']),
            factors=tuple(WinFactor.from_dict(item) for item in data.get('factors', [])),
            calculated_at=datetime.fromisoformat(data['calculated_at']),
        )


def _plain(value: Any) -> Any:
    """Render numeric inputs as strings so Decimals survive JSON round trips."""
    if value is None or isinstance(value, str):
        return value
    return str(value)
