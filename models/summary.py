"""Derived figures for a selected month. Never persisted."""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict


@dataclass
class FinancialSummary:
    """Aggregates for one period.

    Attributes:
        balance: All-time settled cash balance (card charges excluded).
        income: Settled cash income within the period.
        expense: Settled cash expense within the period.
        pending_income: Unsettled cash income within the period.
        pending_expense: Unsettled cash expense within the period.
        card_invoice_total: Unsettled card charges on the period's invoices.
        forecast: Projected balance after the last day of the period.
        card_totals: Unsettled invoice total per card id.
    """

    balance: Decimal = Decimal("0")
    income: Decimal = Decimal("0")
    expense: Decimal = Decimal("0")
    pending_income: Decimal = Decimal("0")
    pending_expense: Decimal = Decimal("0")
    card_invoice_total: Decimal = Decimal("0")
    forecast: Decimal = Decimal("0")
    card_totals: Dict[str, Decimal] = field(default_factory=dict)


@dataclass(frozen=True)
class DailyBalance:
    """Projected balance at the end of one day of the period."""

    day: int
    label: str  # "D/M", e.g. "5/2"
    balance: Decimal
