"""Credit card service for database operations."""

import sqlite3
import uuid
from dataclasses import replace
from decimal import Decimal, InvalidOperation
from typing import List, Optional
from errors import RecordMappingError
from models.card import DEFAULT_CARD_COLOR, Card

_CARD_SELECT_FIELDS = "id, name, credit_limit, closing_day, due_day, color"


class CardService:
    """Service for managing credit cards."""

    def __init__(self, db_manager):
        """Initialize the card service.

        Args:
            db_manager: Database manager instance for database operations.
        """
        self.db_manager = db_manager

    def find_all(self, user_id: str) -> List[Card]:
        """Get all cards of a user, ordered by name.

        Raises:
            RecordMappingError: If a stored card is malformed.
        """
        with self.db_manager.connect() as conn:
            cursor = conn.execute(
                f"SELECT {_CARD_SELECT_FIELDS} FROM credit_cards WHERE user_id = ? ORDER BY name",
                (user_id,),
            )
            rows = cursor.fetchall()

            return [self._row_to_card(row) for row in rows]

    def find(self, card_id: str) -> Optional[Card]:
        """Get a single card by ID.

        Returns:
            Card object if found, None otherwise.
        """
        with self.db_manager.connect() as conn:
            cursor = conn.execute(
                f"SELECT {_CARD_SELECT_FIELDS} FROM credit_cards WHERE id = ?",
                (card_id,),
            )
            row = cursor.fetchone()

            if row:
                return self._row_to_card(row)
            return None

    def create(self, user_id: str, card: Card) -> Card:
        """Store a new card.

        Args:
            user_id: Owner of the card.
            card: Card to insert. Its id is ignored.

        Returns:
            A copy of the card carrying its storage id.
        """
        stored = replace(card, id=uuid.uuid4().hex)

        with self.db_manager.connect() as conn:
            conn.execute(
                """
                INSERT INTO credit_cards
                    (id, user_id, name, credit_limit, closing_day, due_day, color)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    stored.id,
                    user_id,
                    stored.name,
                    str(stored.credit_limit),
                    stored.closing_day,
                    stored.due_day,
                    stored.color,
                ),
            )
            conn.commit()

        return stored

    def delete(self, card_id: str) -> bool:
        """Delete a card and detach the transactions charged on it.

        The transactions are kept; their card reference is cleared in the
        same database transaction as the delete.

        Returns:
            True if the card was deleted, False if not found.
        """
        with self.db_manager.connect() as conn:
            try:
                conn.execute(
                    "UPDATE transactions SET card_id = NULL WHERE card_id = ?",
                    (card_id,),
                )
                cursor = conn.execute("DELETE FROM credit_cards WHERE id = ?", (card_id,))
                conn.commit()
            except sqlite3.Error:
                conn.rollback()
                raise
            return cursor.rowcount > 0

    def _row_to_card(self, row: tuple) -> Card:
        try:
            credit_limit = Decimal(str(row[2]))
        except InvalidOperation:
            raise RecordMappingError(row[0], f"unparseable credit limit {row[2]!r}") from None

        return Card(
            id=row[0],
            name=row[1],
            credit_limit=credit_limit,
            closing_day=int(row[3]),
            due_day=int(row[4]),
            color=row[5] or DEFAULT_CARD_COLOR,
        )
