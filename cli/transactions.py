#!/usr/bin/env python3

import sys
from datetime import date
from decimal import Decimal, InvalidOperation
from errors import PersistenceError
from models.transaction import EXPENSE, INCOME, TRANSACTION_TYPES, Transaction
from services.ledger import DELETE_FUTURE, DELETE_SINGLE
from tools.periods import Period
from logger import get_logger

logger = get_logger()


def _parse_amount(value: str) -> Decimal:
    try:
        amount = Decimal(value)
    except InvalidOperation:
        logger.error(f"Invalid amount: {value}")
        sys.exit(1)
    if not amount.is_finite():
        logger.error(f"Invalid amount: {value} (must be a finite number)")
        sys.exit(1)
    if amount < 0:
        logger.error("Amount must be non-negative; use --type to choose income or expense.")
        sys.exit(1)
    return amount


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        logger.error(f"Invalid date: {value} (expected YYYY-MM-DD)")
        sys.exit(1)


def _parse_period(value) -> Period:
    if value is None:
        return Period.current()
    try:
        return Period.parse(value)
    except ValueError as e:
        logger.error(str(e))
        sys.exit(1)


def _resolve_card(services, card_name_or_id):
    if card_name_or_id is None:
        return None
    for card in services.ledger.cards:
        if card.id == card_name_or_id or card.name == card_name_or_id:
            return card.id
    logger.error(f"Card '{card_name_or_id}' not found.")
    logger.info("Use 'python -m cli cards list' to see available cards.")
    sys.exit(1)


def format_transaction(txn: Transaction) -> str:
    sign = "+" if txn.type == INCOME else "-"
    flags = []
    if not txn.settled:
        flags.append("pending")
    if txn.is_card_charge:
        flags.append("card")
    if txn.recurring:
        flags.append("recurring")
    flag_text = f" [{', '.join(flags)}]" if flags else ""
    category = f" ({txn.category})" if txn.category else ""
    return (
        f"{txn.transaction_date.isoformat()}  {sign}{txn.amount:>10.2f}  "
        f"{txn.description}{category}{flag_text}  id={txn.id}"
    )


def cmd_list(args, services):
    """List the transactions active in a month."""
    period = _parse_period(args.month)
    transactions = services.ledger.period_transactions(period)

    if args.type:
        transactions = [t for t in transactions if t.type == args.type]

    if not transactions:
        logger.info(f"No transactions in {period}.")
        return

    logger.info(f"\nTransactions for {period}:")
    logger.info("=" * 80)
    for txn in transactions:
        logger.info(format_transaction(txn))
    logger.info(f"\nTotal transactions: {len(transactions)}")


def cmd_recent(args, services):
    """List the most recent transactions across all months."""
    if args.limit < 1:
        logger.error("--limit must be at least 1.")
        sys.exit(1)

    transactions = services.ledger.recent_transactions(args.limit)
    if not transactions:
        logger.info("No transactions yet.")
        return

    logger.info(f"\nLast {len(transactions)} transaction(s):")
    logger.info("=" * 80)
    for txn in transactions:
        logger.info(format_transaction(txn))


def cmd_add(args, services):
    """Add a transaction, or a set of monthly installments."""
    amount = _parse_amount(args.amount)
    transaction_date = _parse_date(args.date) if args.date else date.today()
    card_id = _resolve_card(services, args.card)

    category = args.category
    if category is None:
        category = services.ledger.suggest_category(args.description) or ""
        if category:
            logger.info(f"Using category '{category}' from earlier entries")

    try:
        if args.installments > 1:
            if args.recurring or args.settled:
                logger.error("Installment purchases cannot be recurring or settled up front.")
                sys.exit(1)
            created = services.ledger.add_installments(
                args.description,
                amount,
                args.type,
                transaction_date,
                args.installments,
                category=category,
                card_id=card_id,
            )
            logger.info(f"✓ Added {len(created)} installments")
            for txn in created:
                logger.info(f"  {format_transaction(txn)}")
            return

        txn = Transaction.create(
            description=args.description,
            amount=amount,
            type=args.type,
            transaction_date=transaction_date,
            settled=args.settled,
            category=category,
            card_id=card_id,
            recurring=args.recurring,
        )
        created = services.ledger.add_transaction(txn)
        logger.info("✓ Transaction added")
        logger.info(f"  {format_transaction(created)}")
    except (ValueError, PersistenceError) as e:
        logger.error(f"Error adding transaction: {e}")
        sys.exit(1)


def cmd_edit(args, services):
    """Edit fields of a transaction."""
    changes = {}
    if args.description is not None:
        changes["description"] = args.description
    if args.amount is not None:
        changes["amount"] = _parse_amount(args.amount)
    if args.type is not None:
        changes["type"] = args.type
    if args.date is not None:
        changes["transaction_date"] = _parse_date(args.date)
    if args.category is not None:
        changes["category"] = args.category
    if args.card is not None:
        changes["card_id"] = None if args.card == "none" else _resolve_card(services, args.card)
    if args.recurring is not None:
        changes["recurring"] = args.recurring == "yes"

    if not changes:
        logger.error("Nothing to change. See --help for the editable fields.")
        sys.exit(1)

    try:
        updated = services.ledger.edit_transaction(args.transaction_id, **changes)
    except (ValueError, PersistenceError) as e:
        logger.error(f"Error editing transaction: {e}")
        sys.exit(1)

    logger.info("✓ Transaction updated")
    logger.info(f"  {format_transaction(updated)}")


def cmd_toggle(args, services):
    """Toggle a transaction between settled and pending."""
    try:
        updated = services.ledger.toggle_settled(args.transaction_id)
    except (ValueError, PersistenceError) as e:
        logger.error(f"Error updating transaction: {e}")
        sys.exit(1)

    state = "settled" if updated.settled else "pending"
    logger.info(f"✓ Transaction marked as {state}")


def cmd_delete(args, services):
    """Delete a transaction, optionally with the later occurrences of its series."""
    txn = services.ledger.find(args.transaction_id)
    if not txn:
        logger.error(f"Transaction with ID '{args.transaction_id}' not found.")
        sys.exit(1)

    scope = DELETE_FUTURE if args.future else DELETE_SINGLE
    logger.info("\nTransaction to delete:")
    logger.info(f"  {format_transaction(txn)}")
    if args.future:
        logger.info("  (and every later occurrence; the recurring series ends here)")

    if not args.yes:
        confirm = input("\nAre you sure? (yes/no): ").strip().lower()
        if confirm != "yes":
            logger.info("Deletion cancelled.")
            return

    try:
        deleted = services.ledger.delete_transaction(args.transaction_id, scope=scope)
    except (ValueError, PersistenceError) as e:
        logger.error(f"Error deleting transaction: {e}")
        sys.exit(1)

    logger.info(f"✓ Deleted {len(deleted)} transaction(s)")


def setup_parser(subparsers):
    """Setup transactions subcommand parser.

    Args:
        subparsers: The subparsers object from the main CLI
    """
    parser = subparsers.add_parser(
        "transactions",
        help="Manage transactions",
        description="List, add, edit, settle and delete transactions",
    )

    transactions_subparsers = parser.add_subparsers(
        title="subcommands",
        description="Available transaction commands",
        dest="subcommand",
        required=True,
    )

    # transactions list
    list_parser = transactions_subparsers.add_parser(
        "list", help="List the transactions of a month"
    )
    list_parser.add_argument("--month", help="Month as YYYY-MM (default: current month)")
    list_parser.add_argument("--type", choices=TRANSACTION_TYPES, help="Only this type")
    list_parser.set_defaults(func=cmd_list)

    # transactions recent
    recent_parser = transactions_subparsers.add_parser(
        "recent", help="List the most recent transactions"
    )
    recent_parser.add_argument("--limit", type=int, default=5, help="How many (default: 5)")
    recent_parser.set_defaults(func=cmd_recent)

    # transactions add
    add_parser = transactions_subparsers.add_parser("add", help="Add a transaction")
    add_parser.add_argument("description", help="Transaction description")
    add_parser.add_argument("amount", help="Amount, always positive")
    add_parser.add_argument("--type", choices=TRANSACTION_TYPES, default=EXPENSE)
    add_parser.add_argument("--date", help="Date as YYYY-MM-DD (default: today)")
    add_parser.add_argument("--category", help="Category (default: guessed from description)")
    add_parser.add_argument("--card", help="Card name or ID for credit card charges")
    add_parser.add_argument(
        "--settled",
        action="store_true",
        help="Already paid/received (a settled card charge leaves the open invoice)",
    )
    add_parser.add_argument("--recurring", action="store_true", help="Repeats every month")
    add_parser.add_argument(
        "--installments", type=int, default=1, help="Split into N monthly installments"
    )
    add_parser.set_defaults(func=cmd_add)

    # transactions edit
    edit_parser = transactions_subparsers.add_parser("edit", help="Edit a transaction")
    edit_parser.add_argument("transaction_id", help="ID of the transaction to edit")
    edit_parser.add_argument("--description")
    edit_parser.add_argument("--amount")
    edit_parser.add_argument("--type", choices=TRANSACTION_TYPES)
    edit_parser.add_argument("--date", help="Date as YYYY-MM-DD")
    edit_parser.add_argument("--category", help="Category (empty string to clear)")
    edit_parser.add_argument("--card", help="Card name or ID, or 'none' to detach")
    edit_parser.add_argument("--recurring", choices=("yes", "no"))
    edit_parser.set_defaults(func=cmd_edit)

    # transactions toggle
    toggle_parser = transactions_subparsers.add_parser(
        "toggle", help="Toggle a transaction between settled and pending"
    )
    toggle_parser.add_argument("transaction_id", help="ID of the transaction")
    toggle_parser.set_defaults(func=cmd_toggle)

    # transactions delete
    delete_parser = transactions_subparsers.add_parser("delete", help="Delete a transaction")
    delete_parser.add_argument("transaction_id", help="ID of the transaction to delete")
    delete_parser.add_argument(
        "--future",
        action="store_true",
        help="Also delete later occurrences of the same recurring series",
    )
    delete_parser.add_argument("--yes", action="store_true", help="Skip confirmation")
    delete_parser.set_defaults(func=cmd_delete)
