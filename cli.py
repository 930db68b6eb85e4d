#!/usr/bin/env python3
"""
================================================================================
CLI - Command Line Interface
================================================================================

Command-line access to the wallet ledger:
    - Build a tagged, priced ledger for one wallet (CSV output)
    - Look up a single historical price
    - Show paths, configuration and last-run status

Features:
    - ANSI colored status output
    - Ctrl+C cancels cooperatively; no partial CSV is written

Usage:
    python cli.py run 0xabc... --chain celo --start 2025-01-01 --end 2025-12-31
    python cli.py price CELO --timestamp 1735689600000
    python cli.py info

================================================================================
"""

import sys
import signal
import argparse
from datetime import date, datetime, timezone
from pathlib import Path

from walletledger.core.cancellation import CancellationToken
from walletledger.core.errors import HistoryUnavailableError, PipelineCancelled
from walletledger.core.models import PriceRequest, Tag
from walletledger.core.pipeline import PipelineOrchestrator
from walletledger.processors.explorer import ExplorerHistoryClient
from walletledger.processors.price_resolver import PriceCache, PriceResolver
from walletledger.processors.price_sources import default_sources
from walletledger.utils import constants
from walletledger.utils.config import get_chain_profile, get_status, load_config, mark_run_complete
from walletledger.utils.logger import set_run_context


# ANSI color codes
class Colors:
    HEADER = '\033[95m'
    BLUE = '\033[94m'
    CYAN = '\033[96m'
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    RED = '\033[91m'
    ENDC = '\033[0m'
    BOLD = '\033[1m'


def print_header(text):
    """Print formatted header"""
    print(f"\n{Colors.BOLD}{Colors.BLUE}{'=' * 70}{Colors.ENDC}")
    print(f"{Colors.BOLD}{Colors.CYAN}{text:^70}{Colors.ENDC}")
    print(f"{Colors.BOLD}{Colors.BLUE}{'=' * 70}{Colors.ENDC}\n")


def print_success(text):
    """Print success message"""
    print(f"{Colors.GREEN}✓{Colors.ENDC} {text}")


def print_error(text):
    """Print error message"""
    print(f"{Colors.RED}✗{Colors.ENDC} {text}")


def print_info(text):
    """Print info message"""
    print(f"{Colors.CYAN}ℹ{Colors.ENDC} {text}")


def print_warning(text):
    print(f"{Colors.YELLOW}⚠{Colors.ENDC} {text}")


def _parse_date(value):
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date '{value}', expected YYYY-MM-DD")


def _parse_tags(value):
    try:
        return [Tag.parse(t) for t in value.split(',') if t.strip()]
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def cmd_run(args):
    """Build the ledger for one wallet"""
    print_header("WALLET LEDGER")
    config = load_config()
    chain = get_chain_profile(args.chain, config)
    print_info(f"Wallet: {args.address} on {chain.name}")
    if args.start or args.end:
        print_info(f"Date range: {args.start or '...'} to {args.end or '...'}")

    client = ExplorerHistoryClient(
        chain,
        api_key=config['api'].get('explorer_api_key', ''),
        timeout=config['api'].get('timeout_seconds', constants.API_TIMEOUT_SECONDS),
        retries=config['api'].get('retry_attempts', constants.API_RETRY_MAX_ATTEMPTS),
    )
    pipeline = PipelineOrchestrator(chain, config=config)

    cancel = CancellationToken()
    previous = signal.signal(signal.SIGINT, lambda *_: cancel.cancel())
    try:
        result = pipeline.run_wallet(client, args.address, start=args.start, end=args.end,
                                     tags=args.tags, skip_prices=args.skip_prices,
                                     cancel=cancel, limit=args.limit)
    except PipelineCancelled:
        print_info("Run cancelled; no output written")
        mark_run_complete(success=False, wallet=args.address)
        return False
    except HistoryUnavailableError as e:
        print_error(f"Transaction history unavailable: {e}")
        mark_run_complete(success=False, wallet=args.address)
        return False
    finally:
        signal.signal(signal.SIGINT, previous)

    output = Path(args.output) if args.output else (
        constants.OUTPUT_DIR / f"{chain.id}-{args.address[:10]}-export.csv")
    output.parent.mkdir(parents=True, exist_ok=True)
    result.to_csv(output)

    stats = result.stats
    print(f"\n{Colors.BOLD}Summary:{Colors.ENDC}")
    print(f"  Rows:            {stats.total}")
    for tag, count in sorted(stats.tag_counts.items()):
        print(f"  {tag + ':':<17}{count}")
    if stats.skipped:
        print_warning(f"{stats.skipped} malformed record(s) skipped")
    if stats.missing_prices:
        print_warning(f"Could not find prices for {len(stats.missing_prices)} token/time combination(s)")
        for miss in stats.missing_prices[:10]:
            print(f"    {miss}")
    print_success(f"Ledger written to {output}")
    mark_run_complete(success=True, wallet=args.address)
    return True


def cmd_price(args):
    """Resolve one historical price"""
    config = load_config()
    chain = get_chain_profile(args.chain, config)
    resolver = PriceResolver(chain, default_sources(chain, config), PriceCache(), config)
    quote = resolver.resolve(PriceRequest(args.symbol, args.timestamp, args.address))
    when = datetime.fromtimestamp(args.timestamp / 1000, tz=timezone.utc).isoformat()
    if quote is None:
        print_warning(f"No price for {args.symbol.upper()} at {when}")
        return False
    print_success(f"{args.symbol.upper()} at {when}: ${quote.price} ({quote.source})")
    return True


def cmd_info(args):
    """Display system information"""
    print_header("SYSTEM INFORMATION")

    print(f"{Colors.BOLD}Paths:{Colors.ENDC}")
    print(f"  Base Directory:  {constants.BASE_DIR}")
    print(f"  Config:          {constants.CONFIG_FILE} {'✓' if constants.CONFIG_FILE.exists() else '✗'}")
    print(f"  Output Folder:   {constants.OUTPUT_DIR}")

    config = load_config()
    status = get_status()

    print(f"\n{Colors.BOLD}Configuration:{Colors.ENDC}")
    print(f"  Accounting:      {config['accounting'].get('method', 'FIFO')}")
    print(f"  Fees Dispose:    {config['accounting'].get('fees_are_disposals', True)}")
    print(f"  Price Batch:     {config['pricing'].get('batch_size')}")
    print(f"  Chains:          {', '.join(sorted(set(constants.DEFAULT_CHAINS) | set(config.get('chains', {}))))}")

    print(f"\n{Colors.BOLD}Status:{Colors.ENDC}")
    print(f"  Last Run:        {status.get('last_run') or 'Never'}")
    print(f"  Last Wallet:     {status.get('last_wallet') or '-'}")
    print(f"  Succeeded:       {status.get('last_run_success')}")

    print_success("System information displayed")
    return True


def build_parser():
    parser = argparse.ArgumentParser(
        description='Wallet Ledger - on-chain activity to a tagged cost-basis ledger',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Examples:
  %(prog)s run 0xabc... --chain celo              # Full history, priced
  %(prog)s run 0xabc... --start 2025-01-01        # From a date
  %(prog)s run 0xabc... --tags swap,fee           # Only some tags
  %(prog)s price CELO --timestamp 1735689600000   # One price
  %(prog)s info                                   # Display system info
        '''
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # Run command
    parser_run = subparsers.add_parser('run', help='Build the ledger for a wallet')
    parser_run.add_argument('address', help='Wallet address (0x...)')
    parser_run.add_argument('--chain', default=constants.DEFAULT_CHAIN, help='Chain id (default: %(default)s)')
    parser_run.add_argument('--start', type=_parse_date, help='Inclusive start date (YYYY-MM-DD, UTC)')
    parser_run.add_argument('--end', type=_parse_date, help='Inclusive end date (YYYY-MM-DD, UTC)')
    parser_run.add_argument('--tags', type=_parse_tags, help='Comma-separated tags to keep')
    parser_run.add_argument('--skip-prices', action='store_true', help='Do not resolve fiat prices')
    parser_run.add_argument('--limit', type=int, help='Maximum transactions to fetch')
    parser_run.add_argument('--output', help='CSV output path')
    parser_run.set_defaults(func=cmd_run)

    # Price command
    parser_price = subparsers.add_parser('price', help='Resolve one historical price')
    parser_price.add_argument('symbol', help='Token symbol')
    parser_price.add_argument('--timestamp', type=int, required=True, help='Epoch milliseconds')
    parser_price.add_argument('--address', help='Token contract address')
    parser_price.add_argument('--chain', default=constants.DEFAULT_CHAIN, help='Chain id (default: %(default)s)')
    parser_price.set_defaults(func=cmd_price)

    # Info command
    parser_info = subparsers.add_parser('info', help='Display system information')
    parser_info.set_defaults(func=cmd_info)
    return parser


def main(argv=None):
    """Main CLI entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    # If no command specified, show help
    if not args.command:
        parser.print_help()
        return 0

    set_run_context('cli')
    try:
        success = args.func(args)
        return 0 if success else 1
    except KeyboardInterrupt:
        print_info("\nOperation cancelled by user")
        return 130


if __name__ == '__main__':
    sys.exit(main())
