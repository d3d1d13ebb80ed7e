#!/usr/bin/env python3

import sys
from decimal import Decimal, InvalidOperation
from errors import PersistenceError
from models.card import DEFAULT_CARD_COLOR
from tools.periods import Period
from logger import get_logger

logger = get_logger()


def _parse_period(value) -> Period:
    if value is None:
        return Period.current()
    try:
        return Period.parse(value)
    except ValueError as e:
        logger.error(str(e))
        sys.exit(1)


def _resolve_card(services, card_name_or_id):
    for card in services.ledger.cards:
        if card.id == card_name_or_id or card.name == card_name_or_id:
            return card
    logger.error(f"Card '{card_name_or_id}' not found.")
    logger.info("Use 'python -m cli cards list' to see available cards.")
    sys.exit(1)


def cmd_list(args, services):
    """List all cards with their open invoice, available limit and usage."""
    cards = services.ledger.cards

    if not cards:
        logger.info("No cards found.")
        return

    period = _parse_period(args.month)
    summary, _ = services.ledger.summary(period)

    logger.info(f"\nCards (invoices for {period}):")
    logger.info("=" * 80)
    for card in cards:
        invoice = summary.card_totals.get(card.id, Decimal("0"))
        logger.info(f"ID: {card.id}")
        logger.info(f"Name: {card.name}")
        logger.info(f"Closes on day {card.closing_day}, due on day {card.due_day}")
        logger.info(f"Open invoice: {invoice:.2f}")
        logger.info(
            f"Limit: {card.credit_limit:.2f}  Available: {card.available_limit(invoice):.2f}  "
            f"Used: {card.percent_used(invoice):.1f}%"
        )
        logger.info("-" * 80)

    logger.info(f"\nTotal cards: {len(cards)}")


def cmd_invoice(args, services):
    """List the charges on a card's invoice for a month."""
    card = _resolve_card(services, args.card)
    period = _parse_period(args.month)
    charges = services.ledger.card_invoice(card.id, period)

    if not charges:
        logger.info(f"No charges on {card.name}'s invoice for {period}.")
        return

    summary, _ = services.ledger.summary(period)

    logger.info(f"\nInvoice of {card.name} for {period}:")
    logger.info("=" * 80)
    for txn in charges:
        status = "settled" if txn.settled else "open"
        logger.info(
            f"{txn.transaction_date.isoformat()}  {txn.amount:>10.2f}  "
            f"{txn.description} [{status}]  id={txn.id}"
        )
    logger.info(
        f"\nOpen total: {summary.card_totals.get(card.id, Decimal('0')):.2f} "
        f"({len(charges)} charge(s))"
    )


def cmd_add(args, services):
    """Add a credit card."""
    try:
        credit_limit = Decimal(args.limit)
    except InvalidOperation:
        logger.error(f"Invalid limit: {args.limit}")
        sys.exit(1)
    if not credit_limit.is_finite():
        logger.error(f"Invalid limit: {args.limit} (must be a finite number)")
        sys.exit(1)

    try:
        card = services.ledger.add_card(
            args.name, credit_limit, args.closing_day, args.due_day, color=args.color
        )
    except (ValueError, PersistenceError) as e:
        logger.error(f"Error adding card: {e}")
        sys.exit(1)

    logger.info(f"\n✓ Card created successfully with ID: {card.id}")
    logger.info(f"  Name: {card.name}")
    logger.info(f"  Closes on day {card.closing_day}, due on day {card.due_day}")


def cmd_delete(args, services):
    """Delete a card. Its transactions are kept as cash transactions."""
    card = services.ledger.find_card(args.card_id)
    if not card:
        logger.error(f"Card with ID {args.card_id} not found.")
        sys.exit(1)

    attached = [t for t in services.ledger.transactions if t.card_id == card.id]
    logger.info("\nCard to delete:")
    logger.info(f"  ID: {card.id}")
    logger.info(f"  Name: {card.name}")
    logger.info(f"  {len(attached)} transaction(s) will be kept and detached from it")

    if not args.yes:
        confirm = (
            input("\nAre you sure you want to delete this card? (yes/no): ")
            .strip()
            .lower()
        )
        if confirm != "yes":
            logger.info("Deletion cancelled.")
            return

    try:
        detached = services.ledger.delete_card(card.id)
    except PersistenceError as e:
        logger.error(f"Error deleting card: {e}")
        sys.exit(1)

    logger.info(f"✓ Card '{card.name}' deleted, {len(detached)} transaction(s) detached.")


def setup_parser(subparsers):
    """Setup cards subcommand parser.

    Args:
        subparsers: The subparsers object from the main CLI
    """
    parser = subparsers.add_parser(
        "cards",
        help="Manage credit cards",
        description="Create, list, and delete credit cards",
    )

    cards_subparsers = parser.add_subparsers(
        title="subcommands",
        description="Available card commands",
        dest="subcommand",
        required=True,
    )

    list_parser = cards_subparsers.add_parser("list", help="List all cards")
    list_parser.add_argument("--month", help="Invoice month as YYYY-MM (default: current month)")
    list_parser.set_defaults(func=cmd_list)

    invoice_parser = cards_subparsers.add_parser(
        "invoice", help="List the charges on a card's invoice"
    )
    invoice_parser.add_argument("card", help="Card name or ID")
    invoice_parser.add_argument("--month", help="Invoice month as YYYY-MM (default: current month)")
    invoice_parser.set_defaults(func=cmd_invoice)

    add_parser = cards_subparsers.add_parser("add", help="Add a credit card")
    add_parser.add_argument("name", help="Card name")
    add_parser.add_argument("limit", help="Credit limit")
    add_parser.add_argument("closing_day", type=int, help="Invoice closing day (1-31)")
    add_parser.add_argument("due_day", type=int, help="Invoice due day (1-31)")
    add_parser.add_argument("--color", default=DEFAULT_CARD_COLOR, help="Display color")
    add_parser.set_defaults(func=cmd_add)

    delete_parser = cards_subparsers.add_parser("delete", help="Delete a card by ID")
    delete_parser.add_argument("card_id", help="ID of the card to delete")
    delete_parser.add_argument("--yes", action="store_true", help="Skip confirmation")
    delete_parser.set_defaults(func=cmd_delete)
