from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional
import uuid

INCOME = "income"
EXPENSE = "expense"
TRANSACTION_TYPES = (INCOME, EXPENSE)

TEMP_ID_PREFIX = "tmp-"


def new_temp_id() -> str:
    """Id for an entry that has not been confirmed by storage yet."""
    return f"{TEMP_ID_PREFIX}{uuid.uuid4().hex}"


def new_group_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Transaction:
    id: str  # storage id, or a tmp- id while a write is in flight
    description: str
    amount: Decimal  # always non-negative, sign comes from type
    type: str  # 'income' or 'expense'
    transaction_date: date  # purchase date for card charges, not the invoice date
    settled: bool = False
    category: str = ""
    card_id: Optional[str] = None
    recurring: bool = False
    recurring_group_id: Optional[str] = None

    @classmethod
    def create(
        cls,
        description: str,
        amount: Decimal,
        type: str,
        transaction_date: date,
        settled: bool = False,
        category: str = "",
        card_id: Optional[str] = None,
        recurring: bool = False,
        recurring_group_id: Optional[str] = None,
    ) -> "Transaction":
        """Create a new, not yet persisted Transaction.

        Recurring entries get a fresh series id unless one is passed in.

        Raises:
            ValueError: If the amount is not a finite, non-negative number or
                the type is unknown.
        """
        amount = Decimal(amount)
        if not amount.is_finite():
            raise ValueError(f"Amount must be a finite number, got {amount}")
        if amount < 0:
            raise ValueError(f"Amount must be non-negative, got {amount}")
        if type not in TRANSACTION_TYPES:
            raise ValueError(f"Type must be one of {TRANSACTION_TYPES}, got {type!r}")
        if recurring and recurring_group_id is None:
            recurring_group_id = new_group_id()

        return cls(
            id=new_temp_id(),
            description=description,
            amount=amount,
            type=type,
            transaction_date=transaction_date,
            settled=settled,
            category=category or "",
            card_id=card_id,
            recurring=recurring,
            recurring_group_id=recurring_group_id,
        )

    @property
    def is_card_charge(self) -> bool:
        return self.card_id is not None

    @property
    def is_temporary(self) -> bool:
        return self.id.startswith(TEMP_ID_PREFIX)

    @property
    def signed_amount(self) -> Decimal:
        """Amount with its cash-flow sign: income positive, expense negative."""
        return self.amount if self.type == INCOME else -self.amount
