"""Helper utilities for tests."""

from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Optional
import sqlite3
import uuid

from models.card import Card
from models.transaction import EXPENSE, Transaction


def run_migrations(conn: sqlite3.Connection, migrations_dir: Path) -> None:
    """Run all SQL migrations in order.

    Args:
        conn: SQLite connection to run migrations against.
        migrations_dir: Path to directory containing .sql migration files.
    """
    for migration_file in sorted(migrations_dir.glob("*.sql")):
        conn.executescript(migration_file.read_text())

    conn.commit()


def make_transaction(
    on: date,
    amount: str = "10.00",
    type: str = EXPENSE,
    description: str = "Item",
    settled: bool = False,
    category: str = "",
    card_id: Optional[str] = None,
    recurring: bool = False,
    recurring_group_id: Optional[str] = None,
    id: Optional[str] = None,
) -> Transaction:
    """Build a Transaction with a stable id, as if it had been loaded from storage."""
    return Transaction(
        id=id or uuid.uuid4().hex,
        description=description,
        amount=Decimal(amount),
        type=type,
        transaction_date=on,
        settled=settled,
        category=category,
        card_id=card_id,
        recurring=recurring,
        recurring_group_id=recurring_group_id,
    )


def make_card(
    id: str = "card-1",
    closing_day: int = 10,
    due_day: int = 20,
    name: str = "Visa",
    credit_limit: str = "5000",
) -> Card:
    return Card(
        id=id,
        name=name,
        credit_limit=Decimal(credit_limit),
        closing_day=closing_day,
        due_day=due_day,
    )
