"""Financial summary and daily balance forecast for a selected month."""

from collections import defaultdict
from decimal import Decimal
from typing import Dict, Iterable, Iterator, List, Tuple
from models.card import Card
from models.summary import DailyBalance, FinancialSummary
from models.transaction import INCOME, Transaction
from tools.periods import Period
from logger import get_logger

logger = get_logger()

ZERO = Decimal("0")


class DailyForecast:
    """Running balance for every day of a period.

    Iterating yields one DailyBalance per day, day 1 first, computed on the
    fly. The object can be iterated any number of times.

    Args:
        period: Month the forecast covers.
        opening_balance: Balance before day 1.
        deltas: Signed cash-flow change per day of month.
    """

    def __init__(self, period: Period, opening_balance: Decimal, deltas: Dict[int, Decimal]):
        self.period = period
        self.opening_balance = opening_balance
        self._deltas = dict(deltas)

    def __iter__(self) -> Iterator[DailyBalance]:
        running = self.opening_balance
        for day in range(1, self.period.last_day + 1):
            running += self._deltas.get(day, ZERO)
            yield DailyBalance(
                day=day,
                label=f"{day}/{self.period.month}",
                balance=running,
            )

    def __len__(self) -> int:
        return self.period.last_day

    def delta(self, day: int) -> Decimal:
        return self._deltas.get(day, ZERO)

    @property
    def closing_balance(self) -> Decimal:
        return self.opening_balance + sum(self._deltas.values(), ZERO)

    def sample(self, every: int = 5) -> List[DailyBalance]:
        """Thin the curve for display: day 1, every Nth day, the last day and
        any day with a non-zero change."""
        if every < 1:
            raise ValueError("every must be at least 1")
        last_day = self.period.last_day
        return [
            point
            for point in self
            if point.day == 1
            or point.day == last_day
            or point.day % every == 0
            or self._deltas.get(point.day, ZERO) != ZERO
        ]


def settled_cash_balance(transactions: Iterable[Transaction]) -> Decimal:
    """All-time balance of settled cash entries. Card charges never count."""
    return sum(
        (t.signed_amount for t in transactions if t.settled and not t.is_card_charge),
        ZERO,
    )


def compute_summary(
    transactions: Iterable[Transaction],
    period_transactions: Iterable[Transaction],
    cards: Iterable[Card],
    period: Period,
) -> Tuple[FinancialSummary, DailyForecast]:
    """Aggregate the ledger for a selected month.

    The opening balance is the all-time settled cash balance. Pending cash
    entries move the forecast on their own day; unsettled card charges move
    it on their card's due day, when the invoice is paid. Settled entries are
    already part of the opening balance and add no daily change.

    Args:
        transactions: Full ledger.
        period_transactions: The ledger filtered to `period`
            (see tools.periods.filter_for_period).
        cards: Cards of the same user.
        period: Selected month.

    Returns:
        Tuple of (FinancialSummary, DailyForecast).
    """
    cards_by_id = {card.id: card for card in cards}
    summary = FinancialSummary(balance=settled_cash_balance(transactions))
    deltas: Dict[int, Decimal] = defaultdict(lambda: ZERO)
    card_totals: Dict[str, Decimal] = defaultdict(lambda: ZERO)

    for txn in period_transactions:
        if txn.is_card_charge:
            if txn.settled:
                continue
            card = cards_by_id.get(txn.card_id)
            if card is None:
                logger.warning(
                    f"Transaction {txn.id} references unknown card {txn.card_id}; "
                    "left out of the summary"
                )
                continue
            summary.card_invoice_total -= txn.signed_amount
            card_totals[card.id] -= txn.signed_amount
            deltas[period.clamp(card.due_day).day] += txn.signed_amount
            continue

        if txn.settled:
            if txn.type == INCOME:
                summary.income += txn.amount
            else:
                summary.expense += txn.amount
            continue

        if txn.type == INCOME:
            summary.pending_income += txn.amount
        else:
            summary.pending_expense += txn.amount

        day = txn.transaction_date.day if period.contains(txn.transaction_date) else 1
        deltas[day] += txn.signed_amount

    forecast = DailyForecast(period, summary.balance, deltas)
    summary.forecast = forecast.closing_balance
    summary.card_totals = dict(card_totals)

    return summary, forecast
