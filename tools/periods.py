"""Calendar periods, invoice periods and period filtering."""

import calendar
from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List
from dateutil.relativedelta import relativedelta
from models.card import Card
from models.transaction import Transaction
from logger import get_logger

logger = get_logger()


@dataclass(frozen=True, order=True)
class Period:
    """A calendar month, e.g. Period(2024, 2) for February 2024."""

    year: int
    month: int

    def __post_init__(self):
        if not 1 <= self.month <= 12:
            raise ValueError(f"Month must be between 1 and 12, got {self.month}")

    @classmethod
    def of(cls, d: date) -> "Period":
        return cls(d.year, d.month)

    @classmethod
    def current(cls) -> "Period":
        return cls.of(date.today())

    @classmethod
    def parse(cls, value: str) -> "Period":
        """Parse a "YYYY-MM" string.

        Raises:
            ValueError: If the string is not a valid month.
        """
        try:
            year_text, month_text = value.strip().split("-")
            return cls(int(year_text), int(month_text))
        except ValueError:
            raise ValueError(f"Invalid month {value!r}, expected YYYY-MM") from None

    @property
    def last_day(self) -> int:
        return calendar.monthrange(self.year, self.month)[1]

    @property
    def first_date(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def last_date(self) -> date:
        return date(self.year, self.month, self.last_day)

    def next(self) -> "Period":
        return Period.of(self.first_date + relativedelta(months=1))

    def previous(self) -> "Period":
        return Period.of(self.first_date - relativedelta(months=1))

    def contains(self, d: date) -> bool:
        return d.year == self.year and d.month == self.month

    def clamp(self, day: int) -> date:
        """Date for `day` in this month, pulled back to the last day if it overflows."""
        return date(self.year, self.month, max(1, min(day, self.last_day)))

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


def resolve_invoice_period(transaction_date: date, closing_day: int) -> Period:
    """Return the invoice (billing) month a card purchase belongs to.

    Purchases made after the closing day are billed on the following month's
    invoice; purchases on or before it are billed in their own month.

    Args:
        transaction_date: Purchase date.
        closing_day: Card closing day. Not validated.

    Returns:
        The invoice Period.
    """
    period = Period.of(transaction_date)
    if transaction_date.day > closing_day:
        return period.next()
    return period


def filter_for_period(
    transactions: Iterable[Transaction],
    cards: Iterable[Card],
    period: Period,
) -> List[Transaction]:
    """Get the transactions that are active in a period.

    Cash transactions count in the month they are dated in. Card charges
    count in the month of the invoice they are billed on. Card charges that
    point to an unknown card are left out and logged.

    Args:
        transactions: Full ledger.
        cards: Cards of the same user.
        period: Selected month.

    Returns:
        Matching transactions, in ledger order.
    """
    cards_by_id: Dict[str, Card] = {card.id: card for card in cards}
    result = []

    for txn in transactions:
        if not txn.is_card_charge:
            if period.contains(txn.transaction_date):
                result.append(txn)
            continue

        card = cards_by_id.get(txn.card_id)
        if card is None:
            logger.warning(
                f"Transaction {txn.id} references unknown card {txn.card_id}; "
                "excluded from period views"
            )
            continue

        if resolve_invoice_period(txn.transaction_date, card.closing_day) == period:
            result.append(txn)

    return result


def sort_by_date_desc(transactions: Iterable[Transaction]) -> List[Transaction]:
    """Newest first, the order used for display."""
    return sorted(transactions, key=lambda t: t.transaction_date, reverse=True)
