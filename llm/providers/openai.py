"""OpenAI provider implementation using structured outputs."""

from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel
from openai import OpenAI
from llm.providers.base import AdviceProvider
from llm.prompts.loader import PromptManager
from models.transaction import Transaction
from logger import get_logger

logger = get_logger()


# Pydantic models for structured output
class AdviceInsight(BaseModel):
    """One actionable piece of advice."""

    title: str
    detail: str


class AdviceResponse(BaseModel):
    """Full advice response."""

    insights: List[AdviceInsight]


class OpenAIProvider(AdviceProvider):
    """OpenAI implementation using structured outputs for reliable parsing."""

    def __init__(self, api_key: str, model: Optional[str] = None, client=None):
        """Initialize OpenAI provider.

        Args:
            api_key: OpenAI API key.
            model: Model to use (e.g., "gpt-4o-mini"). If None, uses prompt default.
            client: Optional preconfigured OpenAI client (testing).
        """
        self.client = client or OpenAI(api_key=api_key)
        self.model = model
        self.prompt_manager = PromptManager()

    def generate_advice(self, transactions: List[Transaction], balance: Decimal) -> str:
        """Ask OpenAI for advice on the given transactions.

        Args:
            transactions: Recent transactions, already capped by the caller.
            balance: Current settled balance.

        Returns:
            The insights as text, one paragraph each. Empty if the model
            returned nothing usable.

        Raises:
            Exception: If the OpenAI API call fails.
        """
        logger.info(f"Calling OpenAI for advice on {len(transactions)} transaction(s)")

        rendered_prompt = self.prompt_manager.render_prompt(
            "advice",
            {
                "balance": f"{balance:.2f}",
                "transactions": self._format_transactions(transactions),
            },
        )

        model = self.model or rendered_prompt["parameters"].get("model", "gpt-4o-mini")
        temperature = rendered_prompt["parameters"].get("temperature", 0.4)
        max_tokens = rendered_prompt["parameters"].get("max_tokens", 1500)

        logger.info(f"Using model: {model}, prompt version: {rendered_prompt['version']}")

        try:
            response = self.client.chat.completions.parse(
                model=model,
                messages=[
                    {"role": "system", "content": rendered_prompt["system_prompt"]},
                    {"role": "user", "content": rendered_prompt["user_prompt"]},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
                response_format=AdviceResponse,
            )
        except Exception as e:
            logger.error(f"OpenAI API error: {e}")
            raise

        result = response.choices[0].message.parsed
        if result is None:
            logger.warning("OpenAI returned null parsed response")
            return ""

        return "\n\n".join(f"{i.title}: {i.detail}" for i in result.insights)

    def _format_transactions(self, transactions: List[Transaction]) -> str:
        if not transactions:
            return "No transactions recorded."

        lines = []
        for txn in transactions:
            status = "settled" if txn.settled else "pending"
            extras = []
            if txn.category:
                extras.append(f"Category: {txn.category}")
            if txn.is_card_charge:
                extras.append("Credit card")
            if txn.recurring:
                extras.append("Recurring")
            extra_text = f", {', '.join(extras)}" if extras else ""
            lines.append(
                f"- {txn.transaction_date.isoformat()}: '{txn.description}', "
                f"Amount: {txn.amount:.2f}, Type: {txn.type}, {status}{extra_text}"
            )

        return "\n".join(lines)
