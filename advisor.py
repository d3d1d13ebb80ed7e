"""Financial advice from an LLM.

The advice provider gets a bounded sample of the most recent transactions
and the current balance, and answers with free text. The sample is capped
to keep requests within the provider's size limits.
"""

from decimal import Decimal
from typing import Iterable, List, Optional
from config import Config, DEFAULT_ADVICE_SAMPLE_SIZE
from errors import AdviceError
from llm import get_llm_provider
from llm.providers.base import AdviceProvider
from models.transaction import Transaction
from tools.periods import sort_by_date_desc
from logger import get_logger

logger = get_logger()

FALLBACK_ADVICE = "Unable to generate advice right now."


def advice_sample(
    transactions: Iterable[Transaction], limit: int = DEFAULT_ADVICE_SAMPLE_SIZE
) -> List[Transaction]:
    """The `limit` most recent transactions, newest first."""
    return sort_by_date_desc(transactions)[:limit]


def get_financial_advice(
    transactions: Iterable[Transaction],
    balance: Decimal,
    config: Config,
    provider: Optional[AdviceProvider] = None,
) -> str:
    """Ask the configured LLM for advice on recent spending.

    Args:
        transactions: The user's transactions, in any order.
        balance: Current settled balance.
        config: Application config (provider settings and sample size).
        provider: Provider to use instead of the configured one.

    Returns:
        Advice text, or a fixed fallback message if the model returned nothing.

    Raises:
        AdviceError: If advice is disabled, misconfigured, or the call fails.
    """
    if provider is None:
        try:
            provider = get_llm_provider(config)
        except ValueError as e:
            raise AdviceError(f"LLM provider is misconfigured: {e}") from e

    if provider is None:
        raise AdviceError("LLM advice is disabled; enable it under [llm] in the config file")

    sample = advice_sample(transactions, config.advice_sample_size)
    logger.info(f"Requesting advice with {len(sample)} transaction(s), balance {balance}")

    try:
        advice = provider.generate_advice(sample, balance)
    except Exception as e:
        logger.error(f"Advice generation failed: {e}")
        raise AdviceError(f"Could not reach the advice provider: {e}") from e

    if not advice or not advice.strip():
        logger.warning("Advice provider returned an empty answer")
        return FALLBACK_ADVICE

    return advice.strip()
