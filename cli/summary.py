#!/usr/bin/env python3

import sys
from advisor import get_financial_advice
from errors import AdviceError, PersistenceError, SyncInProgressError
from tools.periods import Period
from logger import get_logger

logger = get_logger()


def _period(args) -> Period:
    if args.month is None:
        return Period.current()
    try:
        return Period.parse(args.month)
    except ValueError as e:
        logger.error(str(e))
        sys.exit(1)


def cmd_show(args, services):
    """Show the financial summary of a month."""
    period = _period(args)
    summary, _ = services.ledger.summary(period)

    logger.info(f"\nSummary for {period}")
    logger.info("=" * 80)
    logger.info(f"Balance (settled):   {summary.balance:>12.2f}")
    logger.info(f"Income:              {summary.income:>12.2f}")
    logger.info(f"Expense:             {summary.expense:>12.2f}")
    logger.info(f"Pending income:      {summary.pending_income:>12.2f}")
    logger.info(f"Pending expense:     {summary.pending_expense:>12.2f}")
    logger.info(f"Card invoices:       {summary.card_invoice_total:>12.2f}")
    logger.info(f"Forecast (end):      {summary.forecast:>12.2f}")


def cmd_forecast(args, services):
    """Show the projected balance day by day."""
    period = _period(args)
    _, forecast = services.ledger.summary(period)

    points = list(forecast) if args.every == 1 else forecast.sample(args.every)

    logger.info(f"\nDaily balance forecast for {period}")
    logger.info("=" * 80)
    for point in points:
        change = forecast.delta(point.day)
        change_text = f"  ({change:+.2f})" if change else ""
        logger.info(f"{point.label:>6}  {point.balance:>12.2f}{change_text}")


def cmd_sync(args, services):
    """Carry last month's recurring transactions into a month."""
    period = _period(args)
    try:
        created = services.ledger.sync_recurring(period)
    except (PersistenceError, SyncInProgressError) as e:
        logger.error(f"Error syncing recurring transactions: {e}")
        sys.exit(1)

    if not created:
        logger.info(f"Recurring transactions for {period} are up to date.")
        return
    logger.info(f"✓ Added {len(created)} recurring transaction(s) to {period}")
    for txn in created:
        logger.info(f"  {txn.transaction_date.isoformat()}  {txn.description}  {txn.amount:.2f}")


def cmd_advice(args, services):
    """Ask the LLM advisor for tips on recent spending."""
    summary, _ = services.ledger.summary(Period.current())
    try:
        advice = get_financial_advice(
            services.ledger.transactions, summary.balance, services.config
        )
    except AdviceError as e:
        logger.error(str(e))
        sys.exit(1)

    logger.info("\nAdvice")
    logger.info("=" * 80)
    logger.info(advice)


def setup_parser(subparsers):
    """Setup summary subcommand parser.

    Args:
        subparsers: The subparsers object from the main CLI
    """
    parser = subparsers.add_parser(
        "summary",
        help="Balances, forecasts and advice",
        description="Monthly summary, daily forecast, recurring sync and advice",
    )

    summary_subparsers = parser.add_subparsers(
        title="subcommands",
        description="Available summary commands",
        dest="subcommand",
        required=True,
    )

    show_parser = summary_subparsers.add_parser("show", help="Show the monthly summary")
    show_parser.add_argument("--month", help="Month as YYYY-MM (default: current month)")
    show_parser.set_defaults(func=cmd_show)

    forecast_parser = summary_subparsers.add_parser(
        "forecast", help="Show the daily balance forecast"
    )
    forecast_parser.add_argument("--month", help="Month as YYYY-MM (default: current month)")
    forecast_parser.add_argument(
        "--every", type=int, default=1, help="Show every Nth day plus days with changes"
    )
    forecast_parser.set_defaults(func=cmd_forecast)

    sync_parser = summary_subparsers.add_parser(
        "sync", help="Carry recurring transactions into a month"
    )
    sync_parser.add_argument("--month", help="Month as YYYY-MM (default: current month)")
    sync_parser.set_defaults(func=cmd_sync)

    advice_parser = summary_subparsers.add_parser("advice", help="Get advice from the LLM")
    advice_parser.set_defaults(func=cmd_advice)
