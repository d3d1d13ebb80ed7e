"""Planning of monthly recurring transactions.

Recurring entries of the month before the target month are copied forward
into the target month, unless an occurrence of the same series already
exists there. Planning is pure: persisting the plan is the ledger's job.
"""

from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Iterable, List, Set, Tuple
from models.transaction import Transaction, new_group_id, new_temp_id
from tools.periods import Period

# Legacy identity for series created before group ids existed
_LegacyKey = Tuple[str, Decimal, str]


@dataclass
class RecurrencePlan:
    """Result of planning one target month.

    Attributes:
        target: Month the occurrences were planned for.
        occurrences: New unsettled entries with temporary ids.
        backfilled: Source entries that had no series id, with the id that
            was generated for them (and copied into their occurrence).
    """

    target: Period
    occurrences: List[Transaction] = field(default_factory=list)
    backfilled: List[Transaction] = field(default_factory=list)


def _legacy_key(txn: Transaction) -> _LegacyKey:
    return (txn.description, txn.amount, txn.type)


def plan_recurring(transactions: Iterable[Transaction], target: Period) -> RecurrencePlan:
    """Plan the occurrences of last month's recurring entries in `target`.

    An occurrence keeps its source's day of month, pulled back to the last
    day when `target` is shorter (the 31st lands on the 30th, never on the
    1st of the following month).

    A source counts as already carried over when the target month holds an
    entry of the same series. Sources without a series id fall back to
    matching description, amount and type, which can misfire on coincidental
    look-alikes.

    Args:
        transactions: Full ledger.
        target: Month to fill.

    Returns:
        RecurrencePlan. Planning again after the plan was stored yields an
        empty plan.
    """
    transactions = list(transactions)
    source_period = target.previous()

    existing_groups: Set[str] = set()
    existing_legacy: Set[_LegacyKey] = set()
    for txn in transactions:
        if target.contains(txn.transaction_date):
            if txn.recurring_group_id:
                existing_groups.add(txn.recurring_group_id)
            existing_legacy.add(_legacy_key(txn))

    sources = [
        txn
        for txn in transactions
        if txn.recurring and source_period.contains(txn.transaction_date)
    ]
    sources.sort(key=lambda t: (t.transaction_date, t.id))

    plan = RecurrencePlan(target=target)
    for source in sources:
        if source.recurring_group_id:
            if source.recurring_group_id in existing_groups:
                continue
            group_id = source.recurring_group_id
        else:
            if _legacy_key(source) in existing_legacy:
                continue
            group_id = new_group_id()
            plan.backfilled.append(replace(source, recurring_group_id=group_id))

        occurrence = replace(
            source,
            id=new_temp_id(),
            transaction_date=target.clamp(source.transaction_date.day),
            settled=False,
            recurring=True,
            recurring_group_id=group_id,
        )
        plan.occurrences.append(occurrence)

        existing_groups.add(group_id)
        existing_legacy.add(_legacy_key(occurrence))

    return plan
