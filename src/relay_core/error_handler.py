import logging

lib_logger = logging.getLogger("relay_core")

RATE_LIMITED_REASON = "Rate limited"
UNAUTHORIZED_REASON = "Invalid API Key"
TIMEOUT_REASON = "Request timed out"
MISSING_KEY_REASON = "API key is missing or empty"

RATE_LIMIT_EXHAUSTED_MESSAGE = (
    "All API keys are currently rate limited. Please try again in a few minutes."
)
STREAM_ERROR_MESSAGE = "Streaming error"
INTERNAL_ERROR_MESSAGE = "Internal server error on chat endpoint"


class PoolExhaustedError(Exception):
    """Raised when a credential is requested from an empty pool."""

    pass


class NoCredentialsError(Exception):
    """Raised when a chat turn arrives but no credentials are configured."""

    def __init__(self, message: str = "No API keys configured in backend"):
        super().__init__(message)
        self.message = message


class ChatRequestError(Exception):
    """
    Raised when an inbound chat request fails validation.

    The message is returned to the caller verbatim, so it must never
    contain credential material.
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def mask_credential(credential: str) -> str:
    """
    Mask a credential for safe display in logs.

    Shows the last 4 characters (e.g. "...c0de"); short or empty values
    are hidden entirely.
    """
    if not credential:
        return "none"
    if len(credential) > 4:
        return f"...{credential[-4:]}"
    return "***"


def build_exhaustion_message(last_reason: str) -> str:
    """Client-facing message for a turn whose attempts all failed."""
    if last_reason == RATE_LIMITED_REASON:
        return RATE_LIMIT_EXHAUSTED_MESSAGE
    return (
        "Unable to reach AI service. Please check your connection. "
        f"(Error: {last_reason})"
    )
