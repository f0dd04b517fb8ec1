"""
Tests for quote analytics reports.
"""
from datetime import date, datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from quoteforge import models
from quoteforge.core.types import LineInput
from quoteforge.exceptions import ReportingError
from quoteforge.services.quote_service import QuoteService
from quoteforge.services.rate_resolver import StaticRateResolver
from quoteforge.services.reporting_service import ReportingService

REPORT_TIME = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def line(markup, buy_price="100", supplier_id=None, category_id=None):
    return LineInput(buy_price=buy_price, exchange_rate="1", target_markup_percent=markup,
                     supplier_id=supplier_id, category_id=category_id)


@pytest.fixture
def pipeline(session):
    """Two won quotes, one rejected, one draft and a template."""
    session.add(models.Supplier(id='s-acme', name='Acme Marine'))
    session.commit()

    now = [datetime(2024, 5, 10, 9, 0, tzinfo=timezone.utc)]
    service = QuoteService(session, StaticRateResolver(), MagicMock(), clock=lambda: now[0])

    # 168.75 + 168.75 inc VAT, GM 0.3333
    approved = service.create_quote('sales-1', 'Pacific Marine', [
        line("0.50", supplier_id='s-acme', category_id='pumps'),
        line("0.50"),
    ])
    service.submit_quote(approved.id, 'sales-1')

    # 281.25 inc VAT, GM 0.2000
    now[0] = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)
    accepted = service.create_quote('sales-1', 'Harbour Boats', [
        line("0.25", buy_price="200", supplier_id='s-acme', category_id='pumps'),
    ])
    service.submit_quote(accepted.id, 'sales-1')
    service.accept_quote(service.get_quote(accepted.id).public_id, 'Jane Client')

    now[0] = datetime(2024, 6, 2, 9, 0, tzinfo=timezone.utc)
    rejected = service.create_quote('sales-1', 'Reef Charters', [
        line("0.10", supplier_id='s-acme', category_id='pumps'),
    ])
    service.submit_quote(rejected.id, 'sales-1')
    service.reject_quote(rejected.id, 'manager-1', 'Margin too thin')

    now[0] = datetime(2024, 6, 3, 9, 0, tzinfo=timezone.utc)
    service.create_quote('sales-1', 'Walk-in', [line("0.50")])
    service.create_quote('sales-1', '', [line("0.50", supplier_id='s-acme')], is_template=True)
    return service


@pytest.fixture
def reports(session):
    return ReportingService(session, clock=lambda: REPORT_TIME)


class TestSummaryReport:
    def test_counts_revenue_and_conversion(self, pipeline, reports):
        report = reports.summary_report()

        assert report['report_name'] == 'Quote Summary Report'
        assert report['report_date'] == REPORT_TIME.isoformat()
        summary = report['summary']
        assert summary['total_quotes'] == 4
        assert summary['won_quotes'] == 2
        assert summary['total_revenue'] == Decimal("618.75")
        # (33.33% + 20.00%) / 2
        assert summary['average_gm_percent'] == Decimal("26.67")
        assert summary['conversion_rate'] == Decimal("50.00")
        assert summary['average_quote_value'] == Decimal("309.38")

        counts = {row['status']: row['count'] for row in report['data']}
        assert counts == {'draft': 1, 'pending': 0, 'approved': 1, 'rejected': 1, 'accepted': 1}

    def test_date_window(self, pipeline, reports):
        june = reports.summary_report(from_date=date(2024, 6, 1))
        assert june['summary']['total_quotes'] == 3
        assert june['summary']['total_revenue'] == Decimal("281.25")
        assert june['summary']['conversion_rate'] == Decimal("33.33")

        may = reports.summary_report(to_date=date(2024, 5, 31))
        assert may['summary']['total_quotes'] == 1
        assert may['filters'] == {'from_date': None, 'to_date': date(2024, 5, 31)}

    def test_empty_database(self, reports):
        summary = reports.summary_report()['summary']
        assert summary['total_quotes'] == 0
        assert summary['conversion_rate'] == Decimal("0")
        assert summary['average_quote_value'] == Decimal("0")

    def test_inverted_window(self, reports):
        with pytest.raises(ReportingError):
            reports.summary_report(from_date=date(2024, 6, 2), to_date=date(2024, 6, 1))


class TestBreakdownReports:
    def test_revenue_by_supplier(self, pipeline, reports):
        report = reports.supplier_report()

        assert report['data'] == [
            {'supplier_id': 's-acme', 'supplier': 'Acme Marine', 'revenue': Decimal("450.00"),
             'line_count': 2, 'quote_count': 2},
            {'supplier_id': None, 'supplier': 'Unassigned', 'revenue': Decimal("168.75"),
             'line_count': 1, 'quote_count': 1},
        ]
        assert report['summary'] == {'total_suppliers': 2, 'total_revenue': Decimal("618.75")}

    def test_revenue_by_category(self, pipeline, reports):
        data = reports.category_report()['data']

        assert [row['category'] for row in data] == ['pumps', 'Uncategorized']
        assert data[0]['revenue'] == Decimal("450.00")
        assert data[0]['average_markup_percent'] == Decimal("37.50")
        assert data[1]['average_markup_percent'] == Decimal("50.00")


class TestTrendsReport:
    def test_current_month(self, pipeline, reports):
        report = reports.trends_report(months=1)

        assert report['filters']['from_date'] == '2024-06-01'
        assert len(report['data']) == 1
        june = report['data'][0]
        assert june['month'] == '2024-06'
        assert june['total_quotes'] == 3
        assert june['won'] == 1
        assert june['revenue'] == Decimal("281.25")
        assert june['average_gm_percent'] == Decimal("20.00")
        assert june['conversion_rate'] == Decimal("33.33")

    def test_window_spans_months(self, pipeline, reports):
        report = reports.trends_report(months=2, now=REPORT_TIME)
        assert [row['month'] for row in report['data']] == ['2024-05', '2024-06']
        assert report['summary']['total_quotes'] == 4

    def test_window_crosses_year_end(self, reports):
        report = reports.trends_report(months=7, now=datetime(2024, 3, 5, tzinfo=timezone.utc))
        assert report['filters']['from_date'] == '2023-09-01'

    def test_needs_at_least_one_month(self, reports):
        with pytest.raises(ReportingError):
            reports.trends_report(months=0)


class TestExport:
    def test_rows_as_csv(self, pipeline, reports):
        csv_text = reports.export_report_to_csv(reports.supplier_report())

        rows = csv_text.splitlines()
        assert rows[0] == 'supplier_id,supplier,revenue,line_count,quote_count'
        assert rows[1] == 's-acme,Acme Marine,450.00,2,2'
        assert rows[2] == ',Unassigned,168.75,1,1'

    def test_empty_report(self, reports):
        assert reports.export_report_to_csv(reports.supplier_report()) == "No data to export"

    def test_report_without_rows(self, reports):
        with pytest.raises(ReportingError):
            reports.export_report_to_csv({'report_name': 'Broken'})
