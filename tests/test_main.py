"""
Tests for the command line entry point.
"""
from contextlib import contextmanager
from decimal import Decimal
from unittest.mock import MagicMock, patch

from quoteforge import main as cli
from quoteforge import models
from quoteforge.core.types import LineInput, RelationshipType
from quoteforge.services.quote_service import QuoteService
from quoteforge.services.rate_resolver import StaticRateResolver


def test_calculate_line_prints_breakdown(capsys):
    exit_code = cli.main([
        'calculate-line', '--buy-price', '263.58', '--exchange-rate', '0.72',
        '--freight-rate', '0.05', '--markup', '0.25', '--vat-rate', '0.125',
    ])

    output = capsys.readouterr().out
    assert exit_code == 0
    assert 'Landed Cost' in output
    assert '199.2665' in output
    assert '280.22' in output


def test_invalid_line_returns_error_code(capsys):
    with patch.object(cli.logger, 'log_exception') as log_exception:
        exit_code = cli.main(['calculate-line', '--buy-price', '-1', '--exchange-rate', '0.72'])

    assert exit_code == 1
    assert 'Invalid quote line' in capsys.readouterr().err
    log_exception.assert_called_once()


def test_setup_db_flag():
    with patch.object(cli, 'setup_database') as setup_database:
        assert cli.main(['--setup-db', '--drop-db']) == 0
    setup_database.assert_called_once_with(True)


def test_no_command_prints_help(capsys):
    assert cli.main([]) == 0
    assert 'calculate-line' in capsys.readouterr().out


def test_service_commands_initialize_the_database(capsys):
    with patch.object(cli, 'init_application') as init_application, \
            patch.dict(cli.COMMANDS, {'generate-po': lambda args: []}):
        assert cli.main(['generate-po', 'q-1']) == 0
    init_application.assert_called_once_with()


def test_init_application_connects_to_configured_database():
    assert cli.init_application() is True
    assert cli.db.check_connection() is True


def test_calculate_line_uses_configured_default_markup(capsys):
    assert cli.main([
        'calculate-line', '--buy-price', '263.58', '--exchange-rate', '0.72', '--freight-rate', '0.05',
    ]) == 0
    # settings.ini in the test config sets a 25% default markup
    assert '249.0831' in capsys.readouterr().out


@contextmanager
def scope_for(session):
    yield session


def test_report_prints_supplier_revenue(session, capsys):
    session.add(models.Supplier(id='s-acme', name='Acme Marine'))
    session.commit()
    service = QuoteService(session, StaticRateResolver(), MagicMock())
    quote = service.create_quote('sales-1', 'Pacific Marine', [
        LineInput(buy_price="100", exchange_rate="1", target_markup_percent="0.50", supplier_id='s-acme'),
    ])
    service.submit_quote(quote.id, 'sales-1')

    with patch.object(cli, 'init_application'), patch.object(cli, 'session_scope', lambda: scope_for(session)):
        assert cli.main(['report', 'supplier', '--csv']) == 0

    assert capsys.readouterr().out.splitlines()[1] == 's-acme,Acme Marine,168.75,1,1'


def test_analyze_prints_bundle_suggestions(session, capsys):
    session.add_all([
        models.Product(id='p-pump', sku='PUMP', name='Bilge pump', base_price=Decimal("250.00")),
        models.Product(id='p-hose', sku='HOSE', name='Hose kit', base_price=Decimal("45.00")),
        models.ProductRelationship(parent_product_id='p-pump', child_product_id='p-hose',
                                   relationship_type=RelationshipType.ACCESSORY,
                                   confidence_score=Decimal("0.90")),
    ])
    session.commit()
    quote = QuoteService(session, StaticRateResolver(), MagicMock()).create_quote('sales-1', 'Pacific Marine', [
        LineInput(buy_price="100", exchange_rate="1", part_number='PUMP'),
    ])

    with patch.object(cli, 'init_application'), patch.object(cli, 'session_scope', lambda: scope_for(session)):
        assert cli.main(['analyze', quote.id]) == 0

    output = capsys.readouterr().out
    assert 'Suggested Bundles:' in output
    assert 'Perfect accessory for your item' in output
    assert 'HOSE' in output
