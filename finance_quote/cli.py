"""Command-line interface for finance quote lookups.

Fetches quotes through the configured quote modules, converts currency
amounts and searches the bundled ISO 4217 currency table.
"""

import argparse
import json
import re
import sys
from typing import Any, Dict, List, Optional

from tabulate import tabulate

from finance_quote.models.quote_models import STANDARD_LABELS, QuoteSet
from finance_quote.quoter import Quoter
from finance_quote.utils.config import config
from finance_quote.utils.exceptions import FinanceQuoteError
from finance_quote.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)

# Columns shown first in the quote table, when present
PREFERRED_COLUMNS = ['success', 'name', 'last', 'price', 'currency', 'date', 'time', 'volume', 'errormsg']


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser.

    Returns:
        argparse.ArgumentParser: Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog='finance-quote',
        description='Look up stock, fund and currency quotes from pluggable sources',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Fetch quotes, failing over between every source of a method
  finance-quote fetch nasdaq AAPL MSFT

  # Fetch in euros using a specific module only
  finance-quote fetch nasdaq AAPL --module mysource --currency EUR

  # Convert an amount
  finance-quote currency "15.95 USD" EUR

  # Find currencies used in a country
  finance-quote lookup country="united states" --regex
        """
    )

    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Log debug output to the console')
    parser.add_argument('--config', '-c', type=str, default='config.yaml',
                        help='Path to configuration file (default: config.yaml)')
    parser.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        help='Set logging level')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    fetch_parser = subparsers.add_parser('fetch', help='Fetch quotes for one or more symbols')
    fetch_parser.add_argument('method', help='Fetch method, e.g. nasdaq or europe')
    fetch_parser.add_argument('symbols', nargs='+', help='Symbols to look up')
    fetch_parser.add_argument('--module', '-m', action='append', dest='modules', default=[],
                              help='Quote module to load (repeatable, -defaults for all)')
    fetch_parser.add_argument('--currency', type=str,
                              help='Convert currency amounts into this currency')
    fetch_parser.add_argument('--require', action='append', dest='required_labels', default=[],
                              help='Only use sources providing this label (repeatable)')
    fetch_parser.add_argument('--no-failover', action='store_true',
                              help='Do not retry failed symbols with other sources')
    fetch_parser.add_argument('--timeout', type=float,
                              help='Per-request timeout in seconds')
    fetch_parser.add_argument('--format', '-f', choices=['table', 'json'], default='table',
                              help='Output format (default: table)')

    currency_parser = subparsers.add_parser('currency', help='Convert an amount between currencies')
    currency_parser.add_argument('amount', help='Amount and currency code, e.g. "15.95 USD" or USD')
    currency_parser.add_argument('target', help='Target currency code')

    lookup_parser = subparsers.add_parser('lookup', help='Search the ISO 4217 currency table')
    lookup_parser.add_argument('constraints', nargs='*', metavar='ATTR=VALUE',
                               help='Attribute constraints, e.g. name=Dollar country=Japan')
    lookup_parser.add_argument('--regex', action='store_true',
                               help='Treat values as case-insensitive regular expressions')
    lookup_parser.add_argument('--format', '-f', choices=['table', 'json'], default='table',
                               help='Output format (default: table)')

    subparsers.add_parser('labels', help='List the standard quote labels')

    methods_parser = subparsers.add_parser('methods', help='List available fetch methods')
    methods_parser.add_argument('--module', '-m', action='append', dest='modules', default=[],
                                help='Quote module to load (repeatable)')

    config_parser = subparsers.add_parser('config', help='Inspect configuration')
    config_subparsers = config_parser.add_subparsers(dest='config_action', help='Configuration actions')
    config_show_parser = config_subparsers.add_parser('show', help='Show configuration')
    config_show_parser.add_argument('key', nargs='?', help='Dot-notation key to show')

    return parser


def format_quotes(quotes: QuoteSet, output_format: str = 'table') -> str:
    """Render a quote set as a table or as JSON."""
    if output_format == 'json':
        return json.dumps(quotes, indent=2, default=str, sort_keys=True)

    labels: List[str] = []
    for record in quotes.values():
        for label in record:
            if label not in labels:
                labels.append(label)
    columns = [label for label in PREFERRED_COLUMNS if label in labels]
    columns += sorted(label for label in labels if label not in columns)

    rows = [[symbol] + [record.get(label, '') for label in columns] for symbol, record in quotes.items()]
    return tabulate(rows, headers=['symbol'] + columns, tablefmt='grid')


def format_currencies(currencies: Dict[str, Dict[str, Any]], output_format: str = 'table') -> str:
    if output_format == 'json':
        return json.dumps(currencies, indent=2, sort_keys=True)

    rows = [
        [code, entry.get('name'), entry.get('number'), entry.get('minor_unit'), ', '.join(entry.get('country') or [])]
        for code, entry in sorted(currencies.items())
    ]
    return tabulate(rows, headers=['code', 'name', 'number', 'minor unit', 'country'], tablefmt='grid')


def parse_constraints(items: List[str], use_regex: bool = False) -> Dict[str, Any]:
    """Turn ``ATTR=VALUE`` arguments into ``currency_lookup`` keywords.

    Raises:
        ValueError: If an item has no ``=``
    """
    constraints: Dict[str, Any] = {}
    for item in items:
        name, sep, value = item.partition('=')
        if not sep or not name:
            raise ValueError(f"Constraint '{item}' is not of the form ATTR=VALUE")
        constraints[name] = re.compile(value, re.IGNORECASE) if use_regex else value
    return constraints


def handle_fetch_command(args) -> int:
    """Handle the fetch command.

    Args:
        args: Parsed command line arguments

    Returns:
        int: Exit code (0 if every symbol resolved, 1 otherwise)
    """
    parameters: Dict[str, Any] = {}
    if args.currency:
        parameters['fetch_currency'] = args.currency
    if args.required_labels:
        parameters['required_labels'] = args.required_labels
    if args.no_failover:
        parameters['failover'] = False
    if args.timeout is not None:
        parameters['timeout'] = args.timeout

    try:
        with Quoter(*args.modules, **parameters) as quoter:
            quotes = quoter.fetch(args.method, args.symbols)
    except FinanceQuoteError as e:
        logger.error(f"Fetch failed: {str(e)}")
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    print(format_quotes(quotes, args.format))
    return 0 if not quotes.failed() else 1


def handle_currency_command(args) -> int:
    try:
        with Quoter() as quoter:
            value = quoter.currency(args.amount, args.target)
    except FinanceQuoteError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    if value is None:
        print(f"No exchange rate available for {args.amount} -> {args.target}", file=sys.stderr)
        return 1

    print(f"{value:g} {args.target.upper()}")
    return 0


def handle_lookup_command(args) -> int:
    try:
        constraints = parse_constraints(args.constraints, args.regex)
    except (ValueError, re.error) as e:
        print(f"Error: {str(e)}", file=sys.stderr)
        return 1

    from finance_quote.services.currency_catalog import currency_lookup

    currencies = currency_lookup(**constraints)
    if currencies is None:
        print(f"Error: unknown currency attribute in {', '.join(constraints)}", file=sys.stderr)
        return 1

    print(format_currencies(currencies, args.format))
    return 0


def handle_methods_command(args) -> int:
    try:
        with Quoter(*args.modules) as quoter:
            methods = sorted(quoter.get_methods())
    except FinanceQuoteError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    if not methods:
        print("No fetch methods available; install or load a quote module")
        return 0

    for method in methods:
        print(method)
    return 0


def handle_labels_command(args) -> int:
    rows = [[label, description] for label, description in STANDARD_LABELS.items()]
    print(tabulate(rows, headers=['label', 'description'], tablefmt='grid'))
    return 0


def handle_config_command(args) -> int:
    if args.config_action != 'show':
        print("Usage: finance-quote config show [key]", file=sys.stderr)
        return 1

    if args.key:
        value = config.get(args.key)
        if value is None:
            print(f"Configuration key '{args.key}' not found")
            return 1
        print(f"{args.key}: {value}")
        return 0

    print("Current Configuration:")
    print(json.dumps(config.as_dict(), indent=2, default=str))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI.

    Returns:
        int: Exit code (0 for success, non-zero for error)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        if args.config:
            config.config_path = args.config
            config.load_config()

        log_level = 'DEBUG' if args.verbose else args.log_level
        setup_logging(log_level=log_level)
    except FinanceQuoteError as e:
        print(f"Error: {str(e)}", file=sys.stderr)
        return 1

    if args.command == 'fetch':
        return handle_fetch_command(args)
    elif args.command == 'currency':
        return handle_currency_command(args)
    elif args.command == 'lookup':
        return handle_lookup_command(args)
    elif args.command == 'methods':
        return handle_methods_command(args)
    elif args.command == 'labels':
        return handle_labels_command(args)
    elif args.command == 'config':
        return handle_config_command(args)
    else:
        parser.print_help()
        return 0


if __name__ == '__main__':
    sys.exit(main())
