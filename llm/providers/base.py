"""Base provider interface for LLM implementations."""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import List
from models.transaction import Transaction


class AdviceProvider(ABC):
    """Abstract base class for advice providers.

    Each provider can talk to its model in its own optimal way, using
    provider-specific features like structured outputs.
    """

    @abstractmethod
    def generate_advice(self, transactions: List[Transaction], balance: Decimal) -> str:
        """Produce free-text financial advice.

        Args:
            transactions: Recent transactions, already capped by the caller.
            balance: Current settled balance.

        Returns:
            Advice text. May be empty if the model had nothing to say.

        Raises:
            Exception: If the LLM API call fails.
        """
        pass
