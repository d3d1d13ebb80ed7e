#!/usr/bin/env python3

import sys
from errors import PersistenceError
from logger import get_logger

logger = get_logger()


def cmd_list(args, services):
    """List the category labels in use."""
    categories = services.ledger.categories()

    if not categories:
        logger.info("No categories found.")
        return

    logger.info("\nCategories:")
    logger.info("=" * 80)
    for name, count in categories:
        logger.info(f"{name}: {count} transaction(s)")

    logger.info(f"\nTotal categories: {len(categories)}")


def cmd_rename(args, services):
    """Rename a category on every transaction that uses it."""
    if not args.new_name.strip():
        logger.error("New category name cannot be empty. Use 'categories delete' instead.")
        sys.exit(1)

    try:
        count = services.ledger.rename_category(args.old_name, args.new_name.strip())
    except PersistenceError as e:
        logger.error(f"Error renaming category: {e}")
        sys.exit(1)

    if count == 0:
        logger.info(f"No transactions use category '{args.old_name}'.")
        return
    logger.info(f"✓ Renamed '{args.old_name}' to '{args.new_name.strip()}' on {count} transaction(s)")


def cmd_delete(args, services):
    """Remove a category label. The transactions themselves are kept."""
    affected = sum(1 for t in services.ledger.transactions if t.category == args.name)
    if affected == 0:
        logger.info(f"No transactions use category '{args.name}'.")
        return

    if not args.yes:
        confirm = (
            input(f"\nRemove '{args.name}' from {affected} transaction(s)? (yes/no): ")
            .strip()
            .lower()
        )
        if confirm != "yes":
            logger.info("Deletion cancelled.")
            return

    try:
        count = services.ledger.delete_category(args.name)
    except PersistenceError as e:
        logger.error(f"Error deleting category: {e}")
        sys.exit(1)

    logger.info(f"✓ Category '{args.name}' removed from {count} transaction(s).")


def setup_parser(subparsers):
    """Setup categories subcommand parser.

    Args:
        subparsers: The subparsers object from the main CLI
    """
    parser = subparsers.add_parser(
        "categories",
        help="Manage categories",
        description="List, rename, and delete transaction category labels",
    )

    categories_subparsers = parser.add_subparsers(
        title="subcommands",
        description="Available category commands",
        dest="subcommand",
        required=True,
    )

    list_parser = categories_subparsers.add_parser("list", help="List categories in use")
    list_parser.set_defaults(func=cmd_list)

    rename_parser = categories_subparsers.add_parser(
        "rename", help="Rename a category on all transactions"
    )
    rename_parser.add_argument("old_name", help="Current category name")
    rename_parser.add_argument("new_name", help="New category name")
    rename_parser.set_defaults(func=cmd_rename)

    delete_parser = categories_subparsers.add_parser(
        "delete", help="Remove a category from all transactions"
    )
    delete_parser.add_argument("name", help="Category name")
    delete_parser.add_argument("--yes", action="store_true", help="Skip confirmation")
    delete_parser.set_defaults(func=cmd_delete)
