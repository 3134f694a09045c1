"""
OpenAI-compatible completion provider.
"""
import logging
from typing import Optional

from openai import (
    OpenAI,
    APIError,
    APIConnectionError,
    APITimeoutError,
    APIStatusError,
    AuthenticationError,
    BadRequestError,
    RateLimitError,
)

from chatquota.core.config import OPENAI_API_KEY, OPENAI_BASE_URL, COMPLETION_TIMEOUT_SECONDS
from chatquota.core.errors import UpstreamError
from chatquota.llm.provider import CompletionProvider, Completion, estimate_tokens

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are a helpful AI assistant. Respond in a friendly and informative manner."
FALLBACK_REPLY = "I apologize, but I couldn't generate a response at this time."

# Completion budget per model family
MAX_TOKENS_BY_MODEL = {
    "gpt-4": 1500,
    "gpt-4-0314": 1500,
    "gpt-4-0613": 1500,
    "gpt-4-32k": 3000,
    "gpt-4-32k-0314": 3000,
    "gpt-4-32k-0613": 3000,
    "gpt-3.5-turbo": 1000,
    "gpt-3.5-turbo-0301": 1000,
    "gpt-3.5-turbo-0613": 1000,
    "gpt-3.5-turbo-16k": 2000,
    "gpt-3.5-turbo-16k-0613": 2000,
}
DEFAULT_MAX_TOKENS = 1000


def get_max_tokens_for_model(model: str) -> int:
    return MAX_TOKENS_BY_MODEL.get((model or "").lower(), DEFAULT_MAX_TOKENS)


def classify_openai_error(error: Exception) -> str:
    """Map an openai SDK exception onto an UpstreamError kind."""
    # APITimeoutError subclasses APIConnectionError, so check it first
    if isinstance(error, APITimeoutError):
        return UpstreamError.TIMEOUT
    if isinstance(error, APIConnectionError):
        return UpstreamError.NETWORK
    if isinstance(error, AuthenticationError):
        return UpstreamError.UNAUTHORIZED
    if isinstance(error, RateLimitError):
        return UpstreamError.RATE_LIMITED
    if isinstance(error, BadRequestError):
        return UpstreamError.BAD_REQUEST
    if isinstance(error, APIStatusError) and error.status_code >= 500:
        return UpstreamError.SERVER_UNAVAILABLE
    return UpstreamError.UNKNOWN


UPSTREAM_MESSAGES = {
    UpstreamError.UNAUTHORIZED: "API authentication failed. Please check your API key.",
    UpstreamError.RATE_LIMITED: "Rate limit exceeded. Please try again later.",
    UpstreamError.BAD_REQUEST: "Invalid request format or parameters.",
    UpstreamError.SERVER_UNAVAILABLE: "The AI service is temporarily unavailable.",
    UpstreamError.NETWORK: "Network error occurred while contacting the AI service.",
    UpstreamError.TIMEOUT: "The AI service is taking too long to respond. Please try again.",
    UpstreamError.UNKNOWN: "An unexpected error occurred while contacting the AI service.",
}


class OpenAIProvider(CompletionProvider):
    """Completion provider using the official OpenAI SDK."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = COMPLETION_TIMEOUT_SECONDS,
        client: Optional[OpenAI] = None,
    ):
        """Initialize OpenAI client."""
        if client is None:
            api_key = api_key or OPENAI_API_KEY
            if not api_key:
                raise ValueError("OPENAI_API_KEY not configured")
            # No SDK retries: the timeout bounds the whole call
            client = OpenAI(
                api_key=api_key,
                base_url=base_url or OPENAI_BASE_URL,
                timeout=timeout,
                max_retries=0,
            )
        self.client = client
        logger.info("OpenAI provider initialized")

    def complete(self, message: str, model: str) -> Completion:
        logger.info(f"Sending chat completion request: model={model}")
        try:
            response = self.client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": message},
                ],
                max_tokens=get_max_tokens_for_model(model),
                temperature=0.7,
                top_p=1.0,
                frequency_penalty=0.0,
                presence_penalty=0.0,
                user="chatbot-user",
            )
        except APIError as e:
            kind = classify_openai_error(e)
            logger.error(f"OpenAI API error: kind={kind}, model={model}: {e}")
            raise UpstreamError(kind, UPSTREAM_MESSAGES[kind], {"model": model}) from e

        if not response.choices:
            logger.warning(f"Completion returned no choices: model={model}")
            text = FALLBACK_REPLY
            finish_reason = None
        else:
            text = response.choices[0].message.content or FALLBACK_REPLY
            finish_reason = response.choices[0].finish_reason

        if response.usage is not None and response.usage.total_tokens:
            tokens_used = response.usage.total_tokens
        else:
            tokens_used = estimate_tokens(message, text)

        logger.info(f"Completion received: model={model}, tokens_used={tokens_used}")
        return Completion(
            text=text,
            tokens_used=tokens_used,
            model=model,
            metadata={"finish_reason": finish_reason},
        )

    def validate_connection(self) -> bool:
        try:
            self.client.models.list()
            logger.info("Successfully connected to completion API")
            return True
        except APIError as e:
            logger.warning(f"Failed to connect to completion API: {e}")
            return False
