# quoteforge/services/intelligence_service.py
import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from quoteforge import models
from quoteforge.core.types import (
    CustomerHistory, QuoteLine, QuoteStatus, RelationshipType, StockStatus, WinAnalysis
)
from quoteforge.core.win_scoring import score_quote
from quoteforge.exceptions import DatabaseError, NotFoundError
from quoteforge.services.quote_service import quote_from_row
from quoteforge.utils.date_utils import utc_now
from quoteforge.utils.math_utils import HUNDRED, ONE, ZERO, round_to_int, to_decimal

logger = logging.getLogger(__name__)

# Flag lines priced more than 10% above the competitor
COMPETITOR_PRICE_TOLERANCE = Decimal("1.1")

BUNDLE_REASONS = {
    RelationshipType.ACCESSORY: 'Perfect accessory for your item',
}
DEFAULT_BUNDLE_REASON = 'Frequently bought together'


class IntelligenceService:
    """Service for win-probability scoring, bundle suggestions and market price checks."""

    def __init__(self, session: Session, clock=utc_now):
        """Initialize the intelligence service.

        Args:
            session: Database session
            clock: Returns the current time
        """
        self.session = session
        self.clock = clock

    def get_customer_history(self, customer_id: Optional[str]) -> Optional[CustomerHistory]:
        """Get the accepted quotes of a customer.

        Returns:
            CustomerHistory, or None if there is no such customer
        """
        if not customer_id:
            return None
        if self.session.get(models.Customer, customer_id) is None:
            return None

        rows = self.session.query(models.Quote.id).filter(
            models.Quote.customer_id == customer_id,
            models.Quote.status == QuoteStatus.ACCEPTED
        ).all()
        return CustomerHistory(customer_id=customer_id, accepted_quote_ids=frozenset(row.id for row in rows))

    def get_stock_statuses(self, part_numbers: Iterable[str]) -> Dict[str, StockStatus]:
        """Get catalog stock statuses by SKU for the given part numbers."""
        skus = sorted({part for part in part_numbers if part})
        if not skus:
            return {}

        products = self.session.query(models.Product).filter(models.Product.sku.in_(skus)).all()
        return {
            product.sku: StockStatus(product.stock_status)
            for product in products
            if product.stock_status is not None
        }

    def analyze_quote(self, quote_id: str, now: Optional[datetime] = None) -> WinAnalysis:
        """Score a quote's likelihood to win and store the result on it.

        Args:
            quote_id: Quote ID
            now: Reference time (defaults to the current time)

        Returns:
            WinAnalysis with the score and its factors

        Raises:
            NotFoundError if the quote does not exist
        """
        row = self.session.get(models.Quote, quote_id)
        if row is None:
            raise NotFoundError(f"Quote {quote_id} not found", details={'quote_id': quote_id})

        quote = quote_from_row(row)
        analysis = score_quote(
            quote,
            lines=quote.lines,
            customer_history=self.get_customer_history(quote.customer_id),
            product_catalog=self.get_stock_statuses(line.part_number for line in quote.lines),
            now=now or self.clock(),
        )

        try:
            row.win_probability = analysis.score
            row.ai_analysis = analysis.to_dict()
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise DatabaseError(f"Failed to save win analysis: {str(e)}", details={'quote_id': quote_id}) from e

        logger.info(f"Quote {quote.quote_number} win probability {analysis.score}%")
        return analysis

    def get_smart_bundles(self, lines: Iterable[QuoteLine]) -> List[Dict]:
        """Suggest catalog products related to the items on a quote.

        Products already on the quote are not suggested again. A product
        related to several quoted items is listed once, with its strongest
        recommendation.

        Args:
            lines: Quote lines

        Returns:
            List of suggestion dictionaries, most confident first
        """
        part_numbers = {line.part_number for line in lines if line.part_number}
        if not part_numbers:
            return []

        parent_ids = [
            row.id for row in self.session.query(models.Product.id).filter(
                models.Product.sku.in_(sorted(part_numbers))
            )
        ]
        if not parent_ids:
            return []

        relationships = self.session.query(models.ProductRelationship).filter(
            models.ProductRelationship.parent_product_id.in_(parent_ids)
        ).all()

        suggestions = {}
        for rel in relationships:
            product = rel.child_product
            if product is None or product.sku in part_numbers:
                continue

            rel_type = RelationshipType(rel.relationship_type)
            confidence = to_decimal(rel.confidence_score, default=ONE)
            current = suggestions.get(product.id)
            if current is not None and current['confidence'] >= confidence:
                continue

            suggestions[product.id] = {
                'product_id': product.id,
                'sku': product.sku,
                'name': product.name,
                'price': product.base_price,
                'relationship_type': rel_type.value,
                'reason': BUNDLE_REASONS.get(rel_type, DEFAULT_BUNDLE_REASON),
                'confidence': confidence,
            }

        return sorted(suggestions.values(), key=lambda s: (-s['confidence'], s['sku']))

    def check_competitor_prices(self, lines: Iterable[QuoteLine]) -> List[Dict]:
        """Flag lines priced well above the latest known competitor price.

        Args:
            lines: Priced quote lines

        Returns:
            List of alert dictionaries, one per flagged line
        """
        alerts = []

        for line in lines:
            if not line.part_number:
                continue

            competitor = self.session.query(models.CompetitorProduct).filter(
                models.CompetitorProduct.sku == line.part_number
            ).order_by(models.CompetitorProduct.last_checked_at.desc()).first()
            if competitor is None:
                continue

            our_price = to_decimal(line.unit_sell_ex_vat, default=ZERO)
            market_price = to_decimal(competitor.price, default=ZERO)
            if market_price <= ZERO:
                continue

            if our_price > market_price * COMPETITOR_PRICE_TOLERANCE:
                diff_percent = round_to_int((our_price - market_price) / market_price * HUNDRED)
                alerts.append({
                    'line_number': line.inputs.line_number,
                    'part_number': line.part_number,
                    'alert_type': 'High Price Warning',
                    'message': f"Price is {diff_percent}% higher than {competitor.competitor_name}",
                    'competitor': competitor.competitor_name,
                    'competitor_price': market_price,
                    'our_price': our_price,
                })

        return alerts
