"""
Completion provider interface for abstracting LLM implementations.
"""
from abc import ABC, abstractmethod
from typing import Dict, Any
from dataclasses import dataclass, field


@dataclass
class Completion:
    """Standardized completion result."""
    text: str
    tokens_used: int
    model: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)


class CompletionProvider(ABC):
    """Abstract base class for completion providers."""

    @abstractmethod
    def complete(self, message: str, model: str) -> Completion:
        """
        Generate a reply to a single user message.

        Args:
            message: User message
            model: Model identifier

        Returns:
            Completion with the reply text and the tokens billed for the call

        Raises:
            UpstreamError: On any provider failure, with kind set to one of
                unauthorized, rate_limited, bad_request, server_unavailable,
                network, timeout or unknown
        """
        pass

    def validate_connection(self) -> bool:
        """Cheap reachability check. Providers should override."""
        return True


def estimate_tokens(message: str, response: str) -> int:
    """Rough estimate when the provider reports no usage: ~4 chars per token, min 10."""
    total_chars = len(message or "") + len(response or "")
    return max(10, total_chars // 4)
