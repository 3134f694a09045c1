"""
Error taxonomy for entitlement and quota accounting.

Policy denials raised here are turned into structured results by the chat
pipeline; everything else is mapped to HTTP responses by the handlers in
chatquota.core.error_handlers.
"""
from typing import Optional


class ChatQuotaError(Exception):
    """Base class for all domain errors."""

    code = "chatquota_error"

    def __init__(self, message: str, detail: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class ValidationError(ChatQuotaError):
    """Unknown plan name, malformed amount, bad token count."""

    code = "validation_error"


class NotFoundError(ChatQuotaError):
    """No such user or entitlement."""

    code = "not_found"


class QuotaExceeded(ChatQuotaError):
    """Remaining budget is exhausted or would be exceeded."""

    code = "quota_exceeded"


class EntitlementDenied(ChatQuotaError):
    """
    Paid plan is inactive or expired.

    The chat pipeline reports this outcome as a ChatDenied value and never
    raises it. It is kept for callers that prefer an exception, and the
    handlers map it to 402 like the pipeline's no_active_subscription denial.
    """

    code = "entitlement_denied"


class UpstreamError(ChatQuotaError):
    """Completion provider failure."""

    code = "upstream_error"

    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    BAD_REQUEST = "bad_request"
    SERVER_UNAVAILABLE = "server_unavailable"
    NETWORK = "network"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"

    def __init__(self, kind: str, message: str, detail: Optional[dict] = None):
        super().__init__(message, detail)
        self.kind = kind


class PersistenceError(ChatQuotaError):
    """Store unreachable or write conflict that could not be resolved."""

    code = "persistence_error"
