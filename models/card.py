from dataclasses import dataclass
from decimal import Decimal

DEFAULT_CARD_COLOR = "#1e293b"


@dataclass
class Card:
    id: str
    name: str
    credit_limit: Decimal
    closing_day: int  # 1-31; purchases after this day go to next month's invoice
    due_day: int  # 1-31; day the invoice is paid
    color: str = DEFAULT_CARD_COLOR

    def available_limit(self, invoice_total: Decimal) -> Decimal:
        """Limit left after the open invoice. Negative when over the limit."""
        return self.credit_limit - invoice_total

    def percent_used(self, invoice_total: Decimal) -> Decimal:
        if self.credit_limit <= 0:
            return Decimal("0")
        return invoice_total / self.credit_limit * 100
