import argparse
import sys
from datetime import date

from tabulate import tabulate

from quoteforge.config import config
from quoteforge.db import db, session_scope
from quoteforge.exceptions import QuoteForgeError
from quoteforge.logging_setup import get_logger, logger


def init_application():
    """Initialize application components."""
    db.initialize()
    db.check_connection()

    log = logger.app_logger
    log.info("QuoteForge initialized")
    log.info(f"Using database: {db.engine.url.render_as_string(hide_password=True)}")

    return True


def setup_database(drop_existing=False):
    """Create the database schema.

    Args:
        drop_existing: Drop existing tables first
    """
    log = get_logger('setup')
    db.initialize()
    if drop_existing:
        log.warning("Dropping existing tables")
        db.drop_all_tables()
    db.create_all_tables()
    log.info("Database schema created")


def _rate_resolver(session):
    from quoteforge.services.rate_resolver import SettingsTableRateResolver
    return SettingsTableRateResolver(session)


def calculate_line_command(args):
    """Price a single line and print its breakdown."""
    from quoteforge.core.line_calculation import calculate_line
    from quoteforge.core.types import LineInput

    pricing = config.pricing_config
    vat_rate = args.vat_rate if args.vat_rate is not None else pricing['vat_rate']
    line = LineInput(
        buy_price=args.buy_price,
        exchange_rate=args.exchange_rate,
        quantity=args.quantity,
        currency=args.currency,
        freight_rate=args.freight_rate,
        duty_rate=args.duty_rate,
        handling_rate=args.handling_rate,
        target_markup_percent=args.markup,
        override_markup_percent=args.override_markup,
    )
    breakdown = calculate_line(line, vat_rate, pricing['default_markup_percent'])

    rows = [[name.replace('_', ' ').title(), value] for name, value in breakdown.to_dict().items()]
    print(tabulate(rows, headers=['Field', 'Value'], disable_numparse=True))
    return breakdown


def submit_command(args):
    from quoteforge.services.quote_service import QuoteService

    with session_scope() as session:
        service = QuoteService(session, _rate_resolver(session))
        result = service.submit_quote(args.quote_id, args.user)

    outcome = 'auto-approved' if result.auto_approved else 'pending approval'
    print(f"Quote {result.quote.quote_number} {outcome} (GM {result.check.gm_percent}%)")
    if result.check.message:
        print(result.check.message)
    return result


def decision_command(args):
    from quoteforge.services.quote_service import QuoteService

    with session_scope() as session:
        service = QuoteService(session, _rate_resolver(session))
        if args.command == 'approve':
            quote = service.approve_quote(args.quote_id, args.user, args.comments)
        else:
            quote = service.reject_quote(args.quote_id, args.user, args.comments)

    print(f"Quote {quote.quote_number} is now {quote.status.value}")
    return quote


def amend_command(args):
    from quoteforge.services.quote_service import QuoteService

    with session_scope() as session:
        service = QuoteService(session, _rate_resolver(session))
        amendment = service.amend_quote(args.quote_id, args.user)

    print(f"Created amendment {amendment.quote_number} (revision {amendment.revision_number})")
    return amendment


def analyze_command(args):
    """Score a quote and print its factors, bundle suggestions and price alerts."""
    from quoteforge.services.intelligence_service import IntelligenceService
    from quoteforge.services.quote_service import QuoteService

    with session_scope() as session:
        intelligence = IntelligenceService(session)
        analysis = intelligence.analyze_quote(args.quote_id)
        quote = QuoteService(session, _rate_resolver(session)).get_quote(args.quote_id)
        bundles = intelligence.get_smart_bundles(quote.lines)
        alerts = intelligence.check_competitor_prices(quote.lines)

    print(f"\nWin probability: {analysis.score}%")
    table_data = [[item.factor.value, f"{item.impact:+d}", item.description] for item in analysis.factors]
    print(tabulate(table_data, headers=['Factor', 'Impact', 'Description']))

    if bundles:
        print("\nSuggested Bundles:")
        print(tabulate(
            [[b['sku'], b['name'], b['price'], b['reason'], b['confidence']] for b in bundles],
            headers=['SKU', 'Product', 'Price', 'Reason', 'Confidence']
        ))

    if alerts:
        print("\nCompetitor Price Alerts:")
        print(tabulate(
            [[a['part_number'], a['competitor'], a['competitor_price'], a['our_price'], a['message']] for a in alerts],
            headers=['Part', 'Competitor', 'Market Price', 'Our Price', 'Message']
        ))
    return analysis


def generate_po_command(args):
    from quoteforge.services.workflow_service import WorkflowService

    with session_scope() as session:
        purchase_orders = WorkflowService(session).generate_vendor_pos(args.quote_id)

    table_data = [
        [po['reference'], po['supplier'], len(po['items']), po['total_cost'], po['currency']]
        for po in purchase_orders
    ]
    print(tabulate(table_data, headers=['Reference', 'Supplier', 'Items', 'Total Cost', 'Currency']))
    return purchase_orders


def report_command(args):
    """Print an analytics report, or its rows as CSV."""
    from quoteforge.services.reporting_service import ReportingService

    with session_scope() as session:
        service = ReportingService(session)
        if args.report_type == 'trends':
            report = service.trends_report(args.months)
        else:
            builders = {
                'summary': service.summary_report,
                'supplier': service.supplier_report,
                'category': service.category_report,
            }
            report = builders[args.report_type](args.from_date, args.to_date)

    if args.csv:
        print(service.export_report_to_csv(report), end='')
        return report

    print(f"\n{report['report_name']}")
    print(tabulate(list(report['summary'].items()), headers=['Metric', 'Value'], disable_numparse=True))
    if report['data']:
        print()
        print(tabulate(report['data'], headers='keys', disable_numparse=True))
    return report


def build_parser():
    parser = argparse.ArgumentParser(description='QuoteForge pricing and quote approval')

    parser.add_argument('--setup-db', action='store_true',
                        help='Set up the database schema')
    parser.add_argument('--drop-db', action='store_true',
                        help='Drop existing tables before setup')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    calc_parser = subparsers.add_parser('calculate-line', help='Price a single quote line')
    calc_parser.add_argument('--buy-price', required=True, help='Buy price in supplier currency')
    calc_parser.add_argument('--exchange-rate', required=True,
                             help='Base currency units per 1 unit of supplier currency')
    calc_parser.add_argument('--quantity', type=int, default=1, help='Quantity')
    calc_parser.add_argument('--currency', default='NZD', help='Supplier currency code')
    calc_parser.add_argument('--freight-rate', default='0', help='Freight as a ratio of buy price')
    calc_parser.add_argument('--duty-rate', default='0', help='Duty rate')
    calc_parser.add_argument('--handling-rate', default='0', help='Handling rate')
    calc_parser.add_argument('--markup', default=None,
                             help='Target markup as a ratio (defaults to configuration)')
    calc_parser.add_argument('--override-markup', default=None, help='Override markup as a ratio')
    calc_parser.add_argument('--vat-rate', default=None, help='VAT rate (defaults to configuration)')

    submit_parser = subparsers.add_parser('submit', help='Submit a quote for approval')
    submit_parser.add_argument('quote_id', help='Quote ID')
    submit_parser.add_argument('--user', required=True, help='Submitting user ID')

    for name, help_text in (('approve', 'Approve a pending quote'), ('reject', 'Reject a pending quote')):
        decision_parser = subparsers.add_parser(name, help=help_text)
        decision_parser.add_argument('quote_id', help='Quote ID')
        decision_parser.add_argument('--user', required=True, help='Approver user ID')
        decision_parser.add_argument('--comments', default=None, help='Approver comments')

    amend_parser = subparsers.add_parser('amend', help='Amend an approved or accepted quote')
    amend_parser.add_argument('quote_id', help='Quote ID')
    amend_parser.add_argument('--user', required=True, help='User creating the amendment')

    analyze_parser = subparsers.add_parser('analyze', help='Score win probability, suggest bundles and check prices')
    analyze_parser.add_argument('quote_id', help='Quote ID')

    po_parser = subparsers.add_parser('generate-po', help='Draft vendor purchase orders for a quote')
    po_parser.add_argument('quote_id', help='Quote ID')

    report_parser = subparsers.add_parser('report', help='Quote analytics reports')
    report_parser.add_argument('report_type', choices=['summary', 'supplier', 'category', 'trends'],
                               help='Report to generate')
    report_parser.add_argument('--from', dest='from_date', type=date.fromisoformat, default=None,
                               help='First creation date to include (YYYY-MM-DD)')
    report_parser.add_argument('--to', dest='to_date', type=date.fromisoformat, default=None,
                               help='Last creation date to include (YYYY-MM-DD)')
    report_parser.add_argument('--months', type=int, default=12, help='Months covered by the trends report')
    report_parser.add_argument('--csv', action='store_true', help='Print the report rows as CSV')

    return parser


COMMANDS = {
    'calculate-line': calculate_line_command,
    'submit': submit_command,
    'approve': decision_command,
    'reject': decision_command,
    'amend': amend_command,
    'analyze': analyze_command,
    'generate-po': generate_po_command,
    'report': report_command,
}


def main(argv=None):
    """Main application entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.setup_db:
        setup_database(args.drop_db)
        return 0

    if args.command is None:
        parser.print_help()
        return 0

    if args.command != 'calculate-line':
        init_application()

    try:
        COMMANDS[args.command](args)
    except QuoteForgeError as e:
        logger.log_exception('app', e, f"Command '{args.command}' failed")
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
