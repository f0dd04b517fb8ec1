# quoteforge/services/reporting_service.py
import csv
import io
import logging
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Union

from sqlalchemy.orm import Session

from quoteforge import models
from quoteforge.core.types import QuoteStatus
from quoteforge.exceptions import ReportingError
from quoteforge.utils.date_utils import ensure_aware, utc_now
from quoteforge.utils.math_utils import HUNDRED, ZERO, decimal_sum, round_money, to_decimal

logger = logging.getLogger(__name__)

# Quotes that count as revenue
WON_STATUSES = (QuoteStatus.APPROVED, QuoteStatus.ACCEPTED)

UNASSIGNED_SUPPLIER = 'Unassigned'
UNCATEGORIZED = 'Uncategorized'

DateLike = Union[date, datetime]


def _as_datetime(value: Optional[DateLike], end_of_day: bool = False) -> Optional[datetime]:
    if value is None:
        return None
    if not isinstance(value, datetime):
        value = datetime.combine(value, time.max if end_of_day else time.min)
    return ensure_aware(value)


def _percentage(part: Decimal, whole: Decimal) -> Decimal:
    if whole <= ZERO:
        return ZERO
    return round_money(part / whole * HUNDRED)


def _average_ratio_as_percent(values: List[Decimal]) -> Decimal:
    if not values:
        return ZERO
    return round_money(decimal_sum(values) / len(values) * HUNDRED)


class ReportingService:
    """Service for quote analytics reports.

    Every report is a dictionary with ``report_name``, ``report_date``,
    ``filters``, ``summary`` and ``data`` keys, so any of them can be passed
    to :meth:`export_report_to_csv`. Templates are never reported on.
    """

    def __init__(self, session: Session, clock=utc_now):
        """Initialize the reporting service.

        Args:
            session: Database session
            clock: Callable returning the current aware datetime
        """
        self.session = session
        self.clock = clock

    def _quotes(
        self,
        from_date: Optional[DateLike] = None,
        to_date: Optional[DateLike] = None,
        statuses=None
    ) -> List[models.Quote]:
        start = _as_datetime(from_date)
        end = _as_datetime(to_date, end_of_day=True)
        if start and end and start > end:
            raise ReportingError(
                "Report start date is after its end date",
                details={'from_date': str(from_date), 'to_date': str(to_date)}
            )

        query = self.session.query(models.Quote).filter(models.Quote.is_template.is_(False))
        if statuses:
            query = query.filter(models.Quote.status.in_(statuses))

        # SQLite hands back naive datetimes, so the window is applied here
        quotes = []
        for quote in query.order_by(models.Quote.created_at, models.Quote.quote_number).all():
            created_at = ensure_aware(quote.created_at) if quote.created_at else None
            if start and (created_at is None or created_at < start):
                continue
            if end and (created_at is None or created_at > end):
                continue
            quotes.append(quote)
        return quotes

    def _report(self, name: str, filters: Dict, summary: Dict, data: List[Dict]) -> Dict:
        return {
            'report_name': name,
            'report_date': self.clock().isoformat(),
            'filters': filters,
            'summary': summary,
            'data': data
        }

    def summary_report(
        self,
        from_date: Optional[DateLike] = None,
        to_date: Optional[DateLike] = None
    ) -> Dict:
        """Generate the quote pipeline summary.

        Revenue, average GM and average quote value are taken from won
        quotes (approved or accepted). The conversion rate is won quotes as
        a percentage of all quotes in the window.

        Args:
            from_date: Optional first creation date to include
            to_date: Optional last creation date to include

        Returns:
            Report dictionary whose ``data`` lists one row per status
        """
        quotes = self._quotes(from_date, to_date)
        won = [quote for quote in quotes if quote.status in WON_STATUSES]

        counts = {status.value: 0 for status in QuoteStatus}
        for quote in quotes:
            counts[quote.status.value] += 1

        total_revenue = decimal_sum(
            to_decimal(quote.total_selling_inc_vat, default=ZERO) for quote in won
        )
        summary = {
            'total_quotes': len(quotes),
            'won_quotes': len(won),
            'total_revenue': round_money(total_revenue),
            'average_gm_percent': _average_ratio_as_percent(
                [to_decimal(quote.overall_gm_percent, default=ZERO) for quote in won]
            ),
            'conversion_rate': _percentage(Decimal(len(won)), Decimal(len(quotes))),
            'average_quote_value': round_money(total_revenue / len(won)) if won else ZERO,
        }
        data = [{'status': status, 'count': count} for status, count in counts.items()]

        logger.info(f"Summary report: {len(quotes)} quotes, {len(won)} won")
        return self._report(
            "Quote Summary Report",
            {'from_date': from_date, 'to_date': to_date},
            summary,
            data
        )

    def supplier_report(
        self,
        from_date: Optional[DateLike] = None,
        to_date: Optional[DateLike] = None
    ) -> Dict:
        """Generate revenue by supplier across won quotes.

        Lines without a supplier are grouped as 'Unassigned'. Rows are sorted
        by revenue, highest first.

        Args:
            from_date: Optional first creation date to include
            to_date: Optional last creation date to include

        Returns:
            Report dictionary
        """
        groups = {}
        for quote in self._quotes(from_date, to_date, WON_STATUSES):
            for line in quote.lines:
                key = line.supplier_id or None
                name = line.supplier.name if line.supplier is not None else UNASSIGNED_SUPPLIER
                group = groups.setdefault(key, {
                    'supplier_id': key,
                    'supplier': name,
                    'revenue': ZERO,
                    'line_count': 0,
                    'quotes': set()
                })
                group['revenue'] += to_decimal(line.line_total_inc_vat, default=ZERO)
                group['line_count'] += 1
                group['quotes'].add(quote.id)

        data = []
        for group in groups.values():
            quote_ids = group.pop('quotes')
            group['revenue'] = round_money(group['revenue'])
            group['quote_count'] = len(quote_ids)
            data.append(group)
        data.sort(key=lambda row: (-row['revenue'], row['supplier']))

        summary = {
            'total_suppliers': len(data),
            'total_revenue': round_money(decimal_sum(row['revenue'] for row in data)),
        }
        return self._report(
            "Revenue by Supplier Report",
            {'from_date': from_date, 'to_date': to_date},
            summary,
            data
        )

    def category_report(
        self,
        from_date: Optional[DateLike] = None,
        to_date: Optional[DateLike] = None
    ) -> Dict:
        """Generate revenue and average markup by category across won quotes.

        Args:
            from_date: Optional first creation date to include
            to_date: Optional last creation date to include

        Returns:
            Report dictionary
        """
        groups = {}
        for quote in self._quotes(from_date, to_date, WON_STATUSES):
            for line in quote.lines:
                key = line.category_id or None
                group = groups.setdefault(key, {
                    'category_id': key,
                    'category': key or UNCATEGORIZED,
                    'revenue': ZERO,
                    'line_count': 0,
                    'markups': []
                })
                group['revenue'] += to_decimal(line.line_total_inc_vat, default=ZERO)
                group['line_count'] += 1
                group['markups'].append(to_decimal(line.markup_percent, default=ZERO))

        data = []
        for group in groups.values():
            group['average_markup_percent'] = _average_ratio_as_percent(group.pop('markups'))
            group['revenue'] = round_money(group['revenue'])
            data.append(group)
        data.sort(key=lambda row: (-row['revenue'], row['category']))

        summary = {
            'total_categories': len(data),
            'total_revenue': round_money(decimal_sum(row['revenue'] for row in data)),
        }
        return self._report(
            "Revenue by Category Report",
            {'from_date': from_date, 'to_date': to_date},
            summary,
            data
        )

    def trends_report(self, months: int = 12, now: Optional[datetime] = None) -> Dict:
        """Generate monthly quote counts, revenue and conversion.

        The window starts on the first day of the month ``months - 1``
        months before ``now``, so ``months=1`` is the current month. Months
        with no quotes are left out.

        Args:
            months: Number of calendar months to cover
            now: Reference time (defaults to the current time)

        Returns:
            Report dictionary with one row per month, oldest first
        """
        if months < 1:
            raise ReportingError("Trend window must cover at least one month", details={'months': months})

        now = ensure_aware(now or self.clock())
        month_index = now.year * 12 + (now.month - 1) - (months - 1)
        start = datetime(month_index // 12, month_index % 12 + 1, 1, tzinfo=timezone.utc)

        buckets = {}
        for quote in self._quotes(start, now):
            key = ensure_aware(quote.created_at).strftime('%Y-%m')
            bucket = buckets.setdefault(key, {
                'month': key,
                'total_quotes': 0,
                'won': 0,
                'revenue': ZERO,
                'gm_values': []
            })
            bucket['total_quotes'] += 1
            if quote.status in WON_STATUSES:
                bucket['won'] += 1
                bucket['revenue'] += to_decimal(quote.total_selling_inc_vat, default=ZERO)
                bucket['gm_values'].append(to_decimal(quote.overall_gm_percent, default=ZERO))

        data = []
        for key in sorted(buckets):
            bucket = buckets[key]
            bucket['average_gm_percent'] = _average_ratio_as_percent(bucket.pop('gm_values'))
            bucket['revenue'] = round_money(bucket['revenue'])
            bucket['conversion_rate'] = _percentage(Decimal(bucket['won']), Decimal(bucket['total_quotes']))
            data.append(bucket)

        summary = {
            'months': months,
            'total_quotes': sum(row['total_quotes'] for row in data),
            'total_revenue': round_money(decimal_sum(row['revenue'] for row in data)),
        }
        return self._report(
            "Monthly Trends Report",
            {'months': months, 'from_date': start.date().isoformat()},
            summary,
            data
        )

    def export_report_to_csv(self, report: Dict) -> str:
        """Export a report's rows to CSV.

        Args:
            report: Report dictionary

        Returns:
            CSV data as string
        """
        if 'data' not in report:
            raise ReportingError("Report has no data to export")

        data = report['data']
        if not data:
            return "No data to export"

        output = io.StringIO()
        writer = csv.writer(output)

        header = list(data[0].keys())
        writer.writerow(header)
        for row in data:
            writer.writerow([row.get(col, '') for col in header])

        return output.getvalue()
