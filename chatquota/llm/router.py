"""
Provider selection for the chat pipeline.
"""
import logging
from functools import lru_cache

from fastapi import HTTPException, status

from chatquota.core.config import OPENAI_API_KEY
from chatquota.llm.openai_provider import OpenAIProvider
from chatquota.llm.provider import CompletionProvider

logger = logging.getLogger(__name__)


def is_provider_configured() -> bool:
    return bool(OPENAI_API_KEY)


@lru_cache
def _build_provider() -> CompletionProvider:
    return OpenAIProvider()


def get_completion_provider() -> CompletionProvider:
    """
    FastAPI dependency returning the shared completion provider.

    Responds 503 when no provider is configured.
    """
    try:
        return _build_provider()
    except ValueError as e:
        logger.error(f"Completion provider unavailable: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="AI service is not configured"
        )
