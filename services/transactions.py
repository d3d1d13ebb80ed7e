"""Transaction service for database operations.

This is the storage boundary: rows use storage column names (is_paid,
is_recurring, ...) and are mapped onto the domain Transaction here.
"""

import sqlite3
import uuid
from dataclasses import replace
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, List, Optional
from errors import RecordMappingError
from models.transaction import TRANSACTION_TYPES, Transaction
from logger import get_logger

logger = get_logger()

# SQL Query Constants
_TRANSACTION_SELECT_FIELDS = """id, description, amount, type, date, is_paid,
       category, card_id, is_recurring, recurring_group_id"""

_TRANSACTION_INSERT_FIELDS = """id, user_id, description, amount, type, date, is_paid,
    category, card_id, is_recurring, recurring_group_id"""

# Automatically generate placeholders from field count
_TRANSACTION_INSERT_PLACEHOLDERS = (
    f"({', '.join(['?'] * len(_TRANSACTION_INSERT_FIELDS.split(',')))})"
)


def _new_id() -> str:
    return uuid.uuid4().hex


class TransactionService:
    """Service for managing stored transactions."""

    def __init__(self, db_manager):
        """Initialize the transaction service.

        Args:
            db_manager: Database manager instance for database operations.
        """
        self.db_manager = db_manager

    def create(self, user_id: str, transaction: Transaction) -> Transaction:
        """Store a single transaction.

        Args:
            user_id: Owner of the transaction.
            transaction: Transaction to insert. Its id is ignored.

        Returns:
            A copy of the transaction carrying its storage id.

        Raises:
            sqlite3.Error: If the insert fails.
        """
        stored = replace(transaction, id=_new_id())

        with self.db_manager.connect() as conn:
            conn.execute(
                f"""
                INSERT INTO transactions ({_TRANSACTION_INSERT_FIELDS})
                VALUES {_TRANSACTION_INSERT_PLACEHOLDERS}
                """,
                self._to_row(user_id, stored),
            )
            conn.commit()

        return stored

    def bulk_create(
        self, user_id: str, transactions: List[Transaction]
    ) -> Dict[str, Transaction]:
        """Store several transactions in one database transaction.

        Rows that would duplicate an existing occurrence of the same recurring
        series on the same date are skipped.

        Args:
            user_id: Owner of the transactions.
            transactions: Transactions to insert, identified by their current
                (temporary) ids.

        Returns:
            Mapping of input id to the stored copy, for confirmed rows only.

        Raises:
            sqlite3.Error: If the batch fails. Nothing is stored in that case.
        """
        if not transactions:
            return {}

        confirmed = {}
        with self.db_manager.connect() as conn:
            try:
                for txn in transactions:
                    stored = replace(txn, id=_new_id())
                    cursor = conn.execute(
                        f"""
                        INSERT OR IGNORE INTO transactions ({_TRANSACTION_INSERT_FIELDS})
                        VALUES {_TRANSACTION_INSERT_PLACEHOLDERS}
                        """,
                        self._to_row(user_id, stored),
                    )
                    if cursor.rowcount == 1:
                        confirmed[txn.id] = stored
                    else:
                        logger.info(
                            f"Skipped duplicate occurrence of series "
                            f"{txn.recurring_group_id} on {txn.transaction_date}"
                        )
                conn.commit()
            except sqlite3.Error:
                conn.rollback()
                raise

        return confirmed

    def update(self, transaction: Transaction) -> bool:
        """Overwrite every editable field of a stored transaction.

        Returns:
            True if a row was updated, False if the id is unknown.
        """
        with self.db_manager.connect() as conn:
            cursor = conn.execute(
                """
                UPDATE transactions
                SET description = ?, amount = ?, type = ?, date = ?, is_paid = ?,
                    category = ?, card_id = ?, is_recurring = ?, recurring_group_id = ?
                WHERE id = ?
                """,
                (
                    transaction.description,
                    str(transaction.amount),
                    transaction.type,
                    transaction.transaction_date.isoformat(),
                    int(transaction.settled),
                    transaction.category,
                    transaction.card_id,
                    int(transaction.recurring),
                    transaction.recurring_group_id,
                    transaction.id,
                ),
            )
            conn.commit()
            return cursor.rowcount > 0

    def update_settled(self, transaction_id: str, settled: bool) -> bool:
        """Set only the settlement flag of a transaction."""
        with self.db_manager.connect() as conn:
            cursor = conn.execute(
                "UPDATE transactions SET is_paid = ? WHERE id = ?",
                (int(settled), transaction_id),
            )
            conn.commit()
            return cursor.rowcount > 0

    def set_recurring_group(self, transaction_id: str, group_id: str) -> bool:
        """Attach a series id to a transaction stored without one."""
        with self.db_manager.connect() as conn:
            cursor = conn.execute(
                "UPDATE transactions SET recurring_group_id = ? WHERE id = ?",
                (group_id, transaction_id),
            )
            conn.commit()
            return cursor.rowcount > 0

    def delete(self, transaction_id: str) -> bool:
        """Delete a transaction by ID.

        Returns:
            True if the transaction was deleted, False if not found.
        """
        with self.db_manager.connect() as conn:
            cursor = conn.execute("DELETE FROM transactions WHERE id = ?", (transaction_id,))
            conn.commit()
            return cursor.rowcount > 0

    def delete_series_from(self, user_id: str, group_id: str, from_date: date) -> int:
        """End a recurring series at `from_date`.

        Occurrences dated on or after `from_date` are deleted and the earlier
        ones are marked as not recurring, so the series is not carried into
        later months again. Both changes commit or roll back together.

        Returns:
            Number of deleted rows.

        Raises:
            sqlite3.Error: If either statement fails. Nothing is changed.
        """
        with self.db_manager.connect() as conn:
            try:
                cursor = conn.execute(
                    """
                    DELETE FROM transactions
                    WHERE user_id = ? AND recurring_group_id = ? AND date >= ?
                    """,
                    (user_id, group_id, from_date.isoformat()),
                )
                deleted = cursor.rowcount
                conn.execute(
                    """
                    UPDATE transactions SET is_recurring = 0
                    WHERE user_id = ? AND recurring_group_id = ? AND date < ?
                    """,
                    (user_id, group_id, from_date.isoformat()),
                )
                conn.commit()
            except sqlite3.Error:
                conn.rollback()
                raise
            return deleted

    def rename_category(self, user_id: str, old_name: str, new_name: str) -> int:
        """Relabel every transaction of a user in one statement.

        Returns:
            Number of relabelled transactions.
        """
        with self.db_manager.connect() as conn:
            cursor = conn.execute(
                "UPDATE transactions SET category = ? WHERE user_id = ? AND category = ?",
                (new_name, user_id, old_name),
            )
            conn.commit()
            return cursor.rowcount

    def clear_category(self, user_id: str, name: str) -> int:
        """Remove a label from every transaction of a user, keeping the transactions."""
        return self.rename_category(user_id, name, "")

    def find(self, transaction_id: str) -> Optional[Transaction]:
        """Get a single transaction by ID.

        Returns:
            Transaction object if found, None otherwise.

        Raises:
            RecordMappingError: If the stored row is malformed.
        """
        with self.db_manager.connect() as conn:
            cursor = conn.execute(
                f"SELECT {_TRANSACTION_SELECT_FIELDS} FROM transactions WHERE id = ?",
                (transaction_id,),
            )
            row = cursor.fetchone()

            if row:
                return self._row_to_transaction(row)
            return None

    def find_all(
        self,
        user_id: str,
        on_error: Optional[Callable[[RecordMappingError], None]] = None,
    ) -> List[Transaction]:
        """Get all transactions of a user.

        Args:
            user_id: Owner to filter by.
            on_error: Called with the error for each malformed row, which is
                then skipped. Without it the first malformed row raises.

        Returns:
            List of Transaction objects ordered by date (newest first).

        Raises:
            RecordMappingError: If a row is malformed and no on_error is given.
        """
        with self.db_manager.connect() as conn:
            cursor = conn.execute(
                f"""
                SELECT {_TRANSACTION_SELECT_FIELDS}
                FROM transactions
                WHERE user_id = ?
                ORDER BY date DESC, id
                """,
                (user_id,),
            )
            rows = cursor.fetchall()

        transactions = []
        for row in rows:
            try:
                transactions.append(self._row_to_transaction(row))
            except RecordMappingError as e:
                if on_error is None:
                    raise
                on_error(e)
        return transactions

    def _to_row(self, user_id: str, t: Transaction) -> tuple:
        return (
            t.id,
            user_id,
            t.description,
            str(t.amount),
            t.type,
            t.transaction_date.isoformat(),
            int(t.settled),
            t.category,
            t.card_id,
            int(t.recurring),
            t.recurring_group_id,
        )

    def _row_to_transaction(self, row: tuple) -> Transaction:
        """Convert a database row to a Transaction object.

        Raises:
            RecordMappingError: If the amount, type or date cannot be parsed.
        """
        record_id = row[0]
        try:
            amount = Decimal(str(row[2]))
        except InvalidOperation:
            raise RecordMappingError(record_id, f"unparseable amount {row[2]!r}") from None
        if not amount.is_finite() or amount < 0:
            raise RecordMappingError(record_id, f"invalid amount {row[2]!r}")

        if row[3] not in TRANSACTION_TYPES:
            raise RecordMappingError(record_id, f"unknown type {row[3]!r}")

        try:
            transaction_date = date.fromisoformat(row[4])
        except (TypeError, ValueError):
            raise RecordMappingError(record_id, f"unparseable date {row[4]!r}") from None

        return Transaction(
            id=record_id,
            description=row[1],
            amount=amount,
            type=row[3],
            transaction_date=transaction_date,
            settled=bool(row[5]),
            category=row[6] or "",
            card_id=row[7],
            recurring=bool(row[8]),
            recurring_group_id=row[9],
        )
