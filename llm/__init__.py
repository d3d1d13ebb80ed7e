"""LLM integration module for financial advice."""

from llm.factory import get_llm_provider

__all__ = ["get_llm_provider"]
