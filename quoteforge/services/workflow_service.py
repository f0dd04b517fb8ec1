# quoteforge/services/workflow_service.py
import logging
from collections import OrderedDict
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from quoteforge import models
from quoteforge.exceptions import NotFoundError
from quoteforge.services.quote_service import quote_from_row
from quoteforge.utils.date_utils import utc_now
from quoteforge.utils.math_utils import ZERO, round_money, to_decimal

logger = logging.getLogger(__name__)

UNKNOWN_SUPPLIER_NAME = 'Unknown Supplier'


def po_reference(quote_number: str, supplier_name: str) -> str:
    """Build a draft PO reference, e.g. 'PO-QF-2024-0001-ACM'."""
    return f"PO-{quote_number}-{supplier_name[:3].upper()}"


class WorkflowService:
    """Service for follow-on documents of a won quote."""

    def __init__(self, session: Session, clock=utc_now):
        self.session = session
        self.clock = clock

    def generate_vendor_pos(self, quote_id: str, now: Optional[datetime] = None) -> List[Dict]:
        """Group a quote's lines by supplier into draft purchase orders.

        Lines without a supplier are left out. Unit costs are the buy prices
        in the supplier's currency.

        Args:
            quote_id: Quote ID
            now: Generation time (defaults to the current time)

        Returns:
            List of draft purchase order dictionaries, one per supplier

        Raises:
            NotFoundError if the quote does not exist
        """
        row = self.session.get(models.Quote, quote_id)
        if row is None:
            raise NotFoundError(f"Quote {quote_id} not found", details={'quote_id': quote_id})

        quote = quote_from_row(row)
        generated_at = now or self.clock()

        by_supplier = OrderedDict()
        skipped = 0
        for line in quote.lines:
            supplier_id = line.inputs.supplier_id
            if not supplier_id:
                skipped += 1
                continue

            if supplier_id not in by_supplier:
                supplier = self.session.get(models.Supplier, supplier_id)
                by_supplier[supplier_id] = {
                    'supplier_name': supplier.name if supplier else UNKNOWN_SUPPLIER_NAME,
                    'currency': line.inputs.currency,
                    'items': [],
                    'total_cost': ZERO,
                }

            unit_cost = to_decimal(line.inputs.buy_price)
            total_cost = unit_cost * line.quantity
            group = by_supplier[supplier_id]
            group['items'].append({
                'part_number': line.part_number,
                'description': line.inputs.description,
                'quantity': line.quantity,
                'unit_cost': unit_cost,
                'total_cost': round_money(total_cost),
            })
            group['total_cost'] += total_cost

        if skipped:
            logger.warning(f"Quote {quote.quote_number}: {skipped} line(s) without a supplier left off the POs")

        purchase_orders = []
        for supplier_id, group in by_supplier.items():
            purchase_orders.append({
                'type': 'Draft PO',
                'supplier': group['supplier_name'],
                'supplier_id': supplier_id,
                'reference': po_reference(quote.quote_number, group['supplier_name']),
                'items': group['items'],
                'total_cost': round_money(group['total_cost']),
                'currency': group['currency'],
                'status': 'Draft',
                'generated_at': generated_at,
            })

        logger.info(f"Generated {len(purchase_orders)} draft PO(s) for quote {quote.quote_number}")
        return purchase_orders
