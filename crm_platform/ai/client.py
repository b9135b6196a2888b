"""
OpenAI client wrapper.
Reads the API key from settings and exposes a configured client, or None
when no key is set so callers can degrade instead of failing at import.
"""
from openai import OpenAI
from typing import Optional

from crm_platform.lib.settings import settings
from crm_platform.lib.logging import get_logger

logger = get_logger(__name__)


class OpenAIClient:
    """
    Wrapper around the OpenAI client with configuration and availability checks.
    """

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        """
        Args:
            api_key: OpenAI API key (defaults to settings.openai_api_key)
            model: Chat model name (defaults to settings.openai_model)
        """
        self.api_key = api_key or settings.openai_api_key
        self.model = model or settings.openai_model

        if not self.api_key:
            logger.warning("OpenAI API key not configured. Rule generation will be unavailable.")

        self.client = OpenAI(api_key=self.api_key) if self.api_key else None

    def is_available(self) -> bool:
        """Check if the OpenAI client is available (API key is set)."""
        return self.client is not None

    def get_client(self) -> Optional[OpenAI]:
        return self.client


_openai_client: Optional[OpenAIClient] = None


def get_openai_client() -> OpenAIClient:
    """
    Get the process-wide OpenAI client wrapper, created on first use.

    Returns:
        Configured OpenAI client wrapper
    """
    global _openai_client
    if _openai_client is None:
        _openai_client = OpenAIClient()
    return _openai_client
