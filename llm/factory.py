"""Factory for creating LLM provider instances."""

from typing import Optional
from config import Config
from llm.providers.base import AdviceProvider
from llm.providers.openai import OpenAIProvider
from logger import get_logger

logger = get_logger()


def get_llm_provider(config: Config) -> Optional[AdviceProvider]:
    """Create an advice provider instance based on configuration.

    Args:
        config: Application configuration.

    Returns:
        AdviceProvider instance, or None if the LLM is disabled.

    Raises:
        ValueError: If a provider is configured but its settings are invalid.
    """
    if not config.llm_enabled:
        logger.info("LLM advice is disabled")
        return None

    provider_name = config.llm_provider

    if provider_name == "openai":
        if not config.llm_openai_api_key:
            raise ValueError("OpenAI provider selected but llm.openai_api_key not configured")

        logger.info(f"Initializing OpenAI provider (model: {config.llm_openai_model or 'default'})")
        return OpenAIProvider(api_key=config.llm_openai_api_key, model=config.llm_openai_model)

    if not provider_name:
        logger.info("No LLM provider configured")
        return None

    raise ValueError(f"Unknown LLM provider: {provider_name}")
