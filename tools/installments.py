"""Splitting a purchase into monthly installments."""

from datetime import date
from decimal import ROUND_DOWN, Decimal
from typing import List, Optional
from dateutil.relativedelta import relativedelta
from models.transaction import Transaction

CENT = Decimal("0.01")


def split_installments(
    description: str,
    amount: Decimal,
    type: str,
    start_date: date,
    count: int,
    category: str = "",
    card_id: Optional[str] = None,
) -> List[Transaction]:
    """Split a purchase into `count` monthly entries.

    Each part is labelled "description (i/n)", is unsettled and is not
    recurring. Parts are whole cents; the rounding remainder goes on the
    first installment so the parts add up to `amount`. Later installments
    keep the start day, pulled back to the month's last day when needed.

    Args:
        description: Label of the purchase.
        amount: Total amount.
        type: 'income' or 'expense'.
        start_date: Date of the first installment.
        count: Number of installments, at least 1.
        category: Optional category label.
        card_id: Card the installments are charged on, if any.

    Returns:
        The installments in date order, not yet persisted.

    Raises:
        ValueError: If count is below 1 or the amount is invalid.
    """
    if count < 1:
        raise ValueError(f"Installment count must be at least 1, got {count}")

    total = Decimal(amount)
    if not total.is_finite():
        raise ValueError(f"Amount must be a finite number, got {total}")
    if count == 1:
        return [
            Transaction.create(
                description=description,
                amount=total,
                type=type,
                transaction_date=start_date,
                category=category,
                card_id=card_id,
            )
        ]

    part = (total / count).quantize(CENT, rounding=ROUND_DOWN)
    remainder = total - part * count

    installments = []
    for i in range(count):
        installments.append(
            Transaction.create(
                description=f"{description} ({i + 1}/{count})",
                amount=part + remainder if i == 0 else part,
                type=type,
                transaction_date=start_date + relativedelta(months=i),
                category=category,
                card_id=card_id,
            )
        )

    return installments
