"""LLM client utilities."""

import logging
from typing import Optional

from services.llm_client import LLMClient

logger = logging.getLogger(__name__)

# Singleton client
_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    """Get the shared LLM client, built from runtime config on first use."""
    global _client
    if _client is None:
        from config import runtime_config
        _client = LLMClient(
            base_url=runtime_config.llm_base_url,
            timeout=runtime_config.llm_timeout,
            model=runtime_config.model_chat,
        )
        logger.info(f"LLM client ready: {runtime_config.llm_base_url} ({runtime_config.model_chat})")
    return _client
