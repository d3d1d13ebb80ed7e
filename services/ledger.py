"""In-memory ledger of one user, kept in step with storage.

Every mutation is applied to memory first and then confirmed by storage.
Entries waiting for confirmation carry a temporary id that is swapped for
the storage id on success; on failure the change is rolled back and a
PersistenceError is raised. Calls are expected from a single thread of
control; when two edits of the same entry race, the last confirmation wins.
"""

import threading
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Set, Tuple
from errors import PersistenceError, RecordMappingError, SyncInProgressError
from models.card import DEFAULT_CARD_COLOR, Card
from models.summary import FinancialSummary
from models.transaction import TRANSACTION_TYPES, Transaction, new_group_id, new_temp_id
from tools import categories as category_tools
from tools.installments import split_installments
from tools.periods import Period, filter_for_period, sort_by_date_desc
from tools.recurrence import plan_recurring
from tools.summary import DailyForecast, compute_summary
from logger import get_logger

logger = get_logger()

DELETE_SINGLE = "single"
DELETE_FUTURE = "future"
DELETE_SCOPES = (DELETE_SINGLE, DELETE_FUTURE)


@dataclass(frozen=True)
class LedgerSnapshot:
    """Consistent, detached copy of the ledger for computing derived views."""

    transactions: Tuple[Transaction, ...]
    cards: Tuple[Card, ...]


class LedgerStore:
    """Holds the transactions and cards of one user.

    Args:
        transaction_service: Storage for transactions.
        card_service: Storage for cards.
        user_id: Owner of the ledger.
    """

    def __init__(self, transaction_service, card_service, user_id: str):
        self.transaction_service = transaction_service
        self.card_service = card_service
        self.user_id = user_id

        self._transactions: List[Transaction] = []
        self._cards: List[Card] = []
        self._syncing: Set[Period] = set()
        self._sync_lock = threading.Lock()

    # Reading

    def load(self) -> List[RecordMappingError]:
        """Replace the in-memory ledger with what storage holds.

        Malformed stored transactions are skipped and logged.

        Returns:
            The mapping errors of the skipped records.
        """
        errors: List[RecordMappingError] = []

        def skip(error: RecordMappingError):
            logger.error(f"Skipping malformed transaction: {error}")
            errors.append(error)

        cards = self.card_service.find_all(self.user_id)
        transactions = self.transaction_service.find_all(self.user_id, on_error=skip)

        self._cards = cards
        self._transactions = transactions
        logger.info(
            f"Loaded {len(transactions)} transaction(s) and {len(cards)} card(s) "
            f"for user {self.user_id}"
        )
        return errors

    @property
    def transactions(self) -> List[Transaction]:
        return list(self._transactions)

    @property
    def cards(self) -> List[Card]:
        return list(self._cards)

    def snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(
            transactions=tuple(replace(t) for t in self._transactions),
            cards=tuple(replace(c) for c in self._cards),
        )

    def find(self, transaction_id: str) -> Optional[Transaction]:
        for txn in self._transactions:
            if txn.id == transaction_id:
                return txn
        return None

    def find_card(self, card_id: str) -> Optional[Card]:
        for card in self._cards:
            if card.id == card_id:
                return card
        return None

    # Derived views

    def period_transactions(self, period: Period) -> List[Transaction]:
        """Transactions active in `period`, newest first."""
        snapshot = self.snapshot()
        return sort_by_date_desc(
            filter_for_period(snapshot.transactions, snapshot.cards, period)
        )

    def summary(self, period: Period) -> Tuple[FinancialSummary, DailyForecast]:
        snapshot = self.snapshot()
        in_period = filter_for_period(snapshot.transactions, snapshot.cards, period)
        return compute_summary(snapshot.transactions, in_period, snapshot.cards, period)

    def card_invoice(self, card_id: str, period: Period) -> List[Transaction]:
        """Charges on a card billed in `period`, newest first.

        Raises:
            ValueError: If the card is unknown.
        """
        if self.find_card(card_id) is None:
            raise ValueError(f"Card {card_id} not found")
        return [t for t in self.period_transactions(period) if t.card_id == card_id]

    def recent_transactions(self, limit: int) -> List[Transaction]:
        return sort_by_date_desc(self.snapshot().transactions)[:limit]

    def categories(self) -> List[Tuple[str, int]]:
        return category_tools.list_categories(self._transactions)

    def suggest_category(self, description: str) -> Optional[str]:
        return category_tools.most_frequent_category(self._transactions, description)

    # Transactions

    def add_transaction(self, transaction: Transaction) -> Transaction:
        """Add a transaction and store it.

        Returns:
            The stored transaction, carrying its storage id.

        Raises:
            PersistenceError: If storage fails. The entry is removed again.
        """
        pending = replace(transaction, id=new_temp_id())
        if pending.recurring and pending.recurring_group_id is None:
            pending.recurring_group_id = new_group_id()
        self._transactions.append(pending)

        try:
            stored = self.transaction_service.create(self.user_id, pending)
        except Exception as e:
            self._drop(pending.id)
            logger.error(f"Error adding transaction '{pending.description}': {e}")
            raise PersistenceError(f"Could not save transaction: {e}") from e

        self._swap(pending.id, stored)
        logger.info(f"Added transaction {stored.id} ({stored.description})")
        return stored

    def add_installments(
        self,
        description: str,
        amount: Decimal,
        type: str,
        start_date: date,
        count: int,
        category: str = "",
        card_id: Optional[str] = None,
    ) -> List[Transaction]:
        """Split a purchase into monthly installments and store them as one batch.

        Raises:
            ValueError: If the installment arguments are invalid.
            PersistenceError: If storage fails. No installment is kept.
        """
        installments = split_installments(
            description, amount, type, start_date, count, category=category, card_id=card_id
        )
        stored = self._persist_batch(installments)
        if len(stored) != len(installments):
            self._discard(stored)
            raise PersistenceError(
                f"Only {len(stored)} of {len(installments)} installments were saved; "
                "the saved ones were removed again"
            )
        return stored

    def edit_transaction(self, transaction_id: str, **changes) -> Transaction:
        """Change fields of a transaction.

        Args:
            transaction_id: Transaction to edit.
            **changes: Transaction fields to overwrite (not id).

        Returns:
            The edited transaction.

        Raises:
            ValueError: If the transaction is unknown or a change is invalid.
            PersistenceError: If storage fails. The old values are restored.
        """
        current = self._require(transaction_id)
        if "id" in changes:
            raise ValueError("Transaction ids cannot be changed")

        updated = replace(current, **changes)
        updated.amount = Decimal(updated.amount)
        if not updated.amount.is_finite():
            raise ValueError(f"Amount must be a finite number, got {updated.amount}")
        if updated.amount < 0:
            raise ValueError(f"Amount must be non-negative, got {updated.amount}")
        if updated.type not in TRANSACTION_TYPES:
            raise ValueError(f"Type must be one of {TRANSACTION_TYPES}, got {updated.type!r}")
        if updated.recurring and updated.recurring_group_id is None:
            updated.recurring_group_id = new_group_id()

        self._swap(transaction_id, updated)
        try:
            found = self.transaction_service.update(updated)
        except Exception as e:
            self._swap(transaction_id, current)
            logger.error(f"Error editing transaction {transaction_id}: {e}")
            raise PersistenceError(f"Could not save transaction: {e}") from e

        if not found:
            self._swap(transaction_id, current)
            raise PersistenceError(f"Transaction {transaction_id} no longer exists in storage")

        return updated

    def toggle_settled(self, transaction_id: str) -> Transaction:
        """Flip a transaction between settled and pending.

        Raises:
            ValueError: If the transaction is unknown.
            PersistenceError: If storage fails. The flag is restored.
        """
        current = self._require(transaction_id)
        updated = replace(current, settled=not current.settled)

        self._swap(transaction_id, updated)
        try:
            found = self.transaction_service.update_settled(transaction_id, updated.settled)
        except Exception as e:
            self._swap(transaction_id, current)
            logger.error(f"Error updating transaction {transaction_id}: {e}")
            raise PersistenceError(f"Could not update transaction: {e}") from e

        if not found:
            self._swap(transaction_id, current)
            raise PersistenceError(f"Transaction {transaction_id} no longer exists in storage")

        return updated

    def delete_transaction(
        self, transaction_id: str, scope: str = DELETE_SINGLE
    ) -> List[Transaction]:
        """Delete a transaction, or it and the later occurrences of its series.

        With scope "future", every entry of the same recurring series dated on
        or after this one is deleted and the series ends: its earlier entries
        are no longer recurring. Entries without a series id are deleted alone
        whatever the scope.

        Returns:
            The deleted transactions.

        Raises:
            ValueError: If the transaction is unknown or the scope is invalid.
            PersistenceError: If storage fails. The entries are restored.
        """
        if scope not in DELETE_SCOPES:
            raise ValueError(f"Scope must be one of {DELETE_SCOPES}, got {scope!r}")

        current = self._require(transaction_id)
        series = scope == DELETE_FUTURE and current.recurring_group_id is not None

        if series:
            doomed = [
                t
                for t in self._transactions
                if t.recurring_group_id == current.recurring_group_id
                and t.transaction_date >= current.transaction_date
            ]
        else:
            doomed = [current]

        previous = self._transactions
        doomed_ids = {t.id for t in doomed}
        remaining = [t for t in previous if t.id not in doomed_ids]
        if series:
            remaining = [
                replace(t, recurring=False)
                if t.recurring_group_id == current.recurring_group_id
                else t
                for t in remaining
            ]
        self._transactions = remaining

        try:
            if series:
                self.transaction_service.delete_series_from(
                    self.user_id, current.recurring_group_id, current.transaction_date
                )
            elif not self.transaction_service.delete(transaction_id):
                logger.warning(f"Transaction {transaction_id} was already gone from storage")
        except Exception as e:
            self._transactions = previous
            logger.error(f"Error deleting transaction {transaction_id}: {e}")
            raise PersistenceError(f"Could not delete transaction: {e}") from e

        logger.info(f"Deleted {len(doomed)} transaction(s)")
        return doomed

    # Cards

    def add_card(
        self,
        name: str,
        credit_limit: Decimal,
        closing_day: int,
        due_day: int,
        color: str = DEFAULT_CARD_COLOR,
    ) -> Card:
        """Add a credit card and store it.

        Raises:
            ValueError: If the limit is not a finite positive number or a day
                is outside 1-31.
            PersistenceError: If storage fails. The card is removed again.
        """
        credit_limit = Decimal(credit_limit)
        if not credit_limit.is_finite():
            raise ValueError(f"Credit limit must be a finite number, got {credit_limit}")
        if credit_limit <= 0:
            raise ValueError(f"Credit limit must be positive, got {credit_limit}")
        for label, day in (("Closing day", closing_day), ("Due day", due_day)):
            if not 1 <= day <= 31:
                raise ValueError(f"{label} must be between 1 and 31, got {day}")

        pending = Card(
            id=new_temp_id(),
            name=name,
            credit_limit=credit_limit,
            closing_day=closing_day,
            due_day=due_day,
            color=color,
        )
        self._cards.append(pending)

        try:
            stored = self.card_service.create(self.user_id, pending)
        except Exception as e:
            self._cards = [c for c in self._cards if c.id != pending.id]
            logger.error(f"Error adding card '{name}': {e}")
            raise PersistenceError(f"Could not save card: {e}") from e

        self._cards = [stored if c.id == pending.id else c for c in self._cards]
        return stored

    def delete_card(self, card_id: str) -> List[Transaction]:
        """Delete a card. Transactions charged on it are kept and detached.

        Returns:
            The detached transactions.

        Raises:
            ValueError: If the card is unknown.
            PersistenceError: If storage fails. Card and references are restored.
        """
        if self.find_card(card_id) is None:
            raise ValueError(f"Card {card_id} not found")

        previous_cards = self._cards
        previous_transactions = self._transactions

        detached = [replace(t, card_id=None) for t in previous_transactions if t.card_id == card_id]
        detached_by_id = {t.id: t for t in detached}
        self._cards = [c for c in previous_cards if c.id != card_id]
        self._transactions = [detached_by_id.get(t.id, t) for t in previous_transactions]

        try:
            self.card_service.delete(card_id)
        except Exception as e:
            self._cards = previous_cards
            self._transactions = previous_transactions
            logger.error(f"Error deleting card {card_id}: {e}")
            raise PersistenceError(f"Could not delete card: {e}") from e

        logger.info(f"Deleted card {card_id}, detached {len(detached)} transaction(s)")
        return detached

    # Categories

    def rename_category(self, old_name: str, new_name: str) -> int:
        """Relabel every transaction using `old_name`.

        Returns:
            Number of relabelled transactions.

        Raises:
            PersistenceError: If storage fails. No label is changed.
        """
        changed = category_tools.rename_category(self._transactions, old_name, new_name)
        self._apply_category_change(
            changed,
            lambda: self.transaction_service.rename_category(self.user_id, old_name, new_name),
        )
        return len(changed)

    def delete_category(self, name: str) -> int:
        """Clear the label `name` from every transaction, keeping the transactions.

        Returns:
            Number of affected transactions.

        Raises:
            PersistenceError: If storage fails. No label is changed.
        """
        changed = category_tools.delete_category(self._transactions, name)
        self._apply_category_change(
            changed,
            lambda: self.transaction_service.clear_category(self.user_id, name),
        )
        return len(changed)

    # Recurrence

    def sync_recurring(self, target: Period) -> List[Transaction]:
        """Carry last month's recurring entries into `target`.

        Running it again for the same month adds nothing.

        Returns:
            The stored new occurrences.

        Raises:
            SyncInProgressError: If a sync for `target` is already running.
            PersistenceError: If the batch insert fails. Nothing is kept.
        """
        with self._sync_lock:
            if target in self._syncing:
                raise SyncInProgressError(f"Recurring sync for {target} is already running")
            self._syncing.add(target)

        try:
            plan = plan_recurring(self._transactions, target)
            if not plan.occurrences:
                logger.debug(f"No recurring occurrences to add for {target}")
                return []

            stored = self._persist_batch(plan.occurrences)
            stored_groups = {t.recurring_group_id for t in stored}
            for source in plan.backfilled:
                if source.recurring_group_id in stored_groups:
                    self._backfill_group(source)

            logger.info(f"Added {len(stored)} recurring occurrence(s) for {target}")
            return stored
        finally:
            with self._sync_lock:
                self._syncing.discard(target)

    # Internals

    def _require(self, transaction_id: str) -> Transaction:
        txn = self.find(transaction_id)
        if txn is None:
            raise ValueError(f"Transaction {transaction_id} not found")
        return txn

    def _swap(self, transaction_id: str, replacement: Transaction) -> None:
        self._transactions = [
            replacement if t.id == transaction_id else t for t in self._transactions
        ]

    def _drop(self, transaction_id: str) -> None:
        self._transactions = [t for t in self._transactions if t.id != transaction_id]

    def _persist_batch(self, pending: List[Transaction]) -> List[Transaction]:
        """Add entries optimistically and store them in one batch.

        Entries storage does not confirm are removed again.
        """
        self._transactions.extend(pending)
        pending_ids = {t.id for t in pending}

        try:
            confirmed: Dict[str, Transaction] = self.transaction_service.bulk_create(
                self.user_id, pending
            )
        except Exception as e:
            self._transactions = [t for t in self._transactions if t.id not in pending_ids]
            logger.error(f"Error saving {len(pending)} transaction(s): {e}")
            raise PersistenceError(f"Could not save transactions: {e}") from e

        rejected = pending_ids - set(confirmed)
        if rejected:
            logger.warning(f"{len(rejected)} transaction(s) were not confirmed by storage")

        self._transactions = [
            confirmed.get(t.id, t) for t in self._transactions if t.id not in rejected
        ]
        return [confirmed[t.id] for t in pending if t.id in confirmed]

    def _discard(self, stored: List[Transaction]) -> None:
        """Delete confirmed entries from storage and memory.

        Raises:
            PersistenceError: If storage fails. Entries not yet deleted stay.
        """
        for txn in stored:
            try:
                self.transaction_service.delete(txn.id)
            except Exception as e:
                logger.error(f"Error removing transaction {txn.id}: {e}")
                raise PersistenceError(f"Could not remove transaction {txn.id}: {e}") from e
            self._drop(txn.id)

    def _backfill_group(self, source: Transaction) -> None:
        """Store a generated series id on a source entry that had none.

        When this fails the source keeps no id and later syncs recognise its
        occurrences by description, amount and type.
        """
        try:
            found = self.transaction_service.set_recurring_group(
                source.id, source.recurring_group_id
            )
        except Exception as e:
            logger.warning(f"Could not store series id on transaction {source.id}: {e}")
            return

        if found:
            self._swap(source.id, source)

    def _apply_category_change(self, changed: List[Transaction], persist) -> None:
        if not changed:
            return

        previous = self._transactions
        changed_by_id = {t.id: t for t in changed}
        self._transactions = [changed_by_id.get(t.id, t) for t in previous]

        try:
            persist()
        except Exception as e:
            self._transactions = previous
            logger.error(f"Error updating categories: {e}")
            raise PersistenceError(f"Could not update categories: {e}") from e
