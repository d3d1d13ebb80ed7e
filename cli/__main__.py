#!/usr/bin/env python3
"""
FinControl CLI - Command-line interface for the personal finance ledger.

Usage:
    python -m cli <command> <subcommand> [options]

Commands:
    transactions Add, edit, settle and delete transactions
    cards        Manage credit cards
    categories   Rename and remove category labels
    summary      Monthly summary, daily forecast, recurring sync, advice
    migrate      Database migrations

Examples:
    python -m cli transactions add "Rent" 1000 --date 2024-01-05 --recurring
    python -m cli transactions list --month 2024-02
    python -m cli cards add "Visa" 5000 10 20
    python -m cli summary forecast --month 2024-02
    python -m cli migrate apply
"""

import sys
import argparse
from cli import transactions, cards, categories, summary, migrate
from config import load_config
from errors import FinControlError
from services.base import Services
from db.manager import DatabaseManager
from tools.periods import Period
from logger import setup_logging, get_logger

# Commands that work on the loaded ledger
_LEDGER_COMMANDS = ("transactions", "cards", "categories", "summary")


def _open_ledger(services: Services) -> None:
    """Prepare the schema, load the ledger and carry recurring entries into this month."""
    logger = get_logger()
    services.db_manager.apply_pending()
    services.ledger.load()

    try:
        services.ledger.sync_recurring(Period.current())
    except FinControlError as e:
        logger.warning(f"Recurring transactions were not synced: {e}")


def main():
    """Main CLI entry point with subcommands."""
    parser = argparse.ArgumentParser(
        prog="cli",
        description="FinControl - Personal finance ledger and forecasts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(
        title="commands",
        description="Available commands",
        dest="command",
        required=True,
    )

    transactions.setup_parser(subparsers)
    cards.setup_parser(subparsers)
    categories.setup_parser(subparsers)
    summary.setup_parser(subparsers)
    migrate.setup_parser(subparsers)

    args = parser.parse_args()

    if hasattr(args, "func"):
        try:
            config = load_config()
            setup_logging(config)

            if args.command in _LEDGER_COMMANDS:
                services = Services(config)
                _open_ledger(services)
                args.func(args, services)
            elif args.command == "migrate":
                args.func(args, DatabaseManager(config))
            else:
                args.func(args)
        except Exception as e:
            print(f"Error: {e}")
            sys.exit(1)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
