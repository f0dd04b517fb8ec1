"""
Tests for win scoring, bundle suggestions and competitor price checks.
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from quoteforge import models
from quoteforge.core.types import FactorKind, LineInput, RelationshipType, StockStatus
from quoteforge.exceptions import NotFoundError
from quoteforge.services.intelligence_service import IntelligenceService
from quoteforge.services.quote_service import QuoteService
from quoteforge.services.rate_resolver import StaticRateResolver

CREATED = datetime(2024, 6, 1, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
def quotes(session):
    return QuoteService(session, StaticRateResolver(), MagicMock(), clock=lambda: CREATED)


@pytest.fixture
def intelligence(session):
    return IntelligenceService(session, clock=lambda: CREATED + timedelta(hours=2))


def add_customer(session, customer_id='c-1'):
    session.add(models.Customer(id=customer_id, name='Pacific Marine'))
    session.commit()


def lines(*part_numbers, markup="0.50"):
    return [
        LineInput(buy_price="100", exchange_rate="1", target_markup_percent=markup, part_number=part)
        for part in part_numbers
    ]


class TestAnalyzeQuote:
    def test_scores_and_stores_analysis(self, session, quotes, intelligence):
        add_customer(session)
        quote = quotes.create_quote('sales-1', 'Pacific Marine', lines('A'), customer_id='c-1')

        analysis = intelligence.analyze_quote(quote.id)

        # 50% markup = 33% margin (+40), new customer (-10), 2h old (+20), A not in catalog (+10)
        assert analysis.score == 60
        assert analysis.factor(FactorKind.CUSTOMER_RELATIONSHIP).impact == -10

        stored = quotes.get_quote(quote.id)
        assert stored.win_probability == 60
        assert stored.ai_analysis == analysis

    def test_existing_customer_history(self, session, quotes, intelligence):
        add_customer(session)
        won = quotes.create_quote('sales-1', 'Pacific Marine', lines('A'), customer_id='c-1')
        quotes.submit_quote(won.id, 'sales-1')
        quotes.accept_quote(quotes.get_quote(won.id).public_id, 'Jane Client')

        new_quote = quotes.create_quote('sales-1', 'Pacific Marine', lines('A'), customer_id='c-1')
        analysis = intelligence.analyze_quote(new_quote.id)

        assert analysis.factor(FactorKind.CUSTOMER_RELATIONSHIP).impact == 20
        # The accepted quote does not count towards its own history
        own = intelligence.analyze_quote(won.id)
        assert own.factor(FactorKind.CUSTOMER_RELATIONSHIP).impact == -10

    def test_missing_customer_record_emits_no_factor(self, quotes, intelligence):
        quote = quotes.create_quote('sales-1', 'Pacific Marine', lines('A'), customer_id='ghost')
        analysis = intelligence.analyze_quote(quote.id)
        assert analysis.factor(FactorKind.CUSTOMER_RELATIONSHIP) is None

    def test_catalog_stock_status(self, session, quotes, intelligence):
        session.add_all([
            models.Product(sku='A', name='Pump', stock_status=StockStatus.CUSTOM),
            models.Product(sku='B', name='Hose', stock_status=StockStatus.SPECIAL_ORDER),
        ])
        session.commit()
        quote = quotes.create_quote('sales-1', 'Pacific Marine', lines('A', 'B', 'C'))

        analysis = intelligence.analyze_quote(quote.id)
        assert analysis.factor(FactorKind.PRODUCT_FIT).impact == -10
        assert intelligence.get_stock_statuses(['A', 'B', 'C', None]) == {
            'A': StockStatus.CUSTOM, 'B': StockStatus.SPECIAL_ORDER
        }

    def test_delayed_quote(self, quotes, session):
        quote = quotes.create_quote('sales-1', 'Pacific Marine', lines('A'))
        late = IntelligenceService(session).analyze_quote(quote.id, now=CREATED + timedelta(hours=73))
        assert late.factor(FactorKind.QUOTE_VELOCITY).impact == -15

    def test_missing_quote(self, intelligence):
        with pytest.raises(NotFoundError):
            intelligence.analyze_quote('nope')


class TestSmartBundles:
    @pytest.fixture
    def catalog(self, session):
        session.add_all([
            models.Product(id='p-pump', sku='PUMP', name='Bilge pump', base_price=Decimal("250.00")),
            models.Product(id='p-hose', sku='HOSE', name='Hose kit', base_price=Decimal("45.00")),
            models.Product(id='p-switch', sku='SWITCH', name='Float switch', base_price=Decimal("60.00")),
            models.Product(id='p-pump2', sku='PUMP-XL', name='Bilge pump XL', base_price=Decimal("390.00")),
        ])
        session.add_all([
            models.ProductRelationship(parent_product_id='p-pump', child_product_id='p-hose',
                                       relationship_type=RelationshipType.ACCESSORY, confidence_score=Decimal("0.90")),
            models.ProductRelationship(parent_product_id='p-pump', child_product_id='p-switch',
                                       relationship_type=RelationshipType.UPSELL, confidence_score=Decimal("0.60")),
            models.ProductRelationship(parent_product_id='p-pump', child_product_id='p-pump2',
                                       relationship_type=RelationshipType.SUBSTITUTE, confidence_score=Decimal("0.40")),
            models.ProductRelationship(parent_product_id='p-hose', child_product_id='p-switch',
                                       relationship_type=RelationshipType.ACCESSORY, confidence_score=Decimal("0.75")),
        ])
        session.commit()

    def test_suggests_related_products(self, catalog, quotes, intelligence):
        quote = quotes.create_quote('sales-1', 'Pacific Marine', lines('PUMP'))

        bundles = intelligence.get_smart_bundles(quote.lines)

        assert [b['sku'] for b in bundles] == ['HOSE', 'SWITCH', 'PUMP-XL']
        assert bundles[0]['reason'] == 'Perfect accessory for your item'
        assert bundles[0]['price'] == Decimal("45.00")
        assert bundles[0]['confidence'] == Decimal("0.90")
        assert bundles[1]['reason'] == 'Frequently bought together'

    def test_items_already_quoted_are_not_suggested(self, catalog, quotes, intelligence):
        quote = quotes.create_quote('sales-1', 'Pacific Marine', lines('PUMP', 'HOSE'))

        bundles = intelligence.get_smart_bundles(quote.lines)

        # SWITCH is related to both lines; the stronger accessory link wins
        assert [b['sku'] for b in bundles] == ['SWITCH', 'PUMP-XL']
        assert bundles[0]['relationship_type'] == 'accessory'
        assert bundles[0]['confidence'] == Decimal("0.75")

    def test_no_catalog_match(self, catalog, quotes, intelligence):
        quote = quotes.create_quote('sales-1', 'Pacific Marine', lines('UNKNOWN', None))
        assert intelligence.get_smart_bundles(quote.lines) == []
        assert intelligence.get_smart_bundles([]) == []


class TestCompetitorPrices:
    def add_competitor(self, session, sku, price, competitor='Marine Depot', checked=CREATED):
        session.add(models.CompetitorProduct(
            sku=sku, competitor_name=competitor, price=Decimal(price), last_checked_at=checked
        ))
        session.commit()

    def test_flags_lines_over_ten_percent_above_market(self, session, quotes, intelligence):
        # unit sell 150.00
        quote = quotes.create_quote('sales-1', 'Pacific Marine', lines('A', 'B', 'C'))
        self.add_competitor(session, 'A', '120.00')
        self.add_competitor(session, 'B', '140.00')

        alerts = intelligence.check_competitor_prices(quote.lines)

        assert len(alerts) == 1
        assert alerts[0]['part_number'] == 'A'
        assert alerts[0]['alert_type'] == 'High Price Warning'
        assert alerts[0]['message'] == 'Price is 25% higher than Marine Depot'

    def test_uses_latest_competitor_price(self, session, quotes, intelligence):
        quote = quotes.create_quote('sales-1', 'Pacific Marine', lines('A'))
        self.add_competitor(session, 'A', '100.00', competitor='Old Price', checked=CREATED - timedelta(days=30))
        self.add_competitor(session, 'A', '149.00', competitor='New Price', checked=CREATED)

        assert intelligence.check_competitor_prices(quote.lines) == []

    def test_exactly_ten_percent_is_not_flagged(self, session, quotes, intelligence):
        quote = quotes.create_quote('sales-1', 'Pacific Marine', lines('A', markup="0.10"))
        self.add_competitor(session, 'A', '100.00')
        assert intelligence.check_competitor_prices(quote.lines) == []
