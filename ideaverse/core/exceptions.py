"""
Custom exception hierarchy for the IdeaVerse workflow engine.

All application exceptions inherit from IdeaverseError.
"""


class IdeaverseError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(IdeaverseError):
    """Invalid or missing configuration (e.g. no API key)."""

    pass


class PromptTemplateNotFoundError(ConfigurationError):
    """Requested prompt template does not exist in the catalog."""

    pass


class UnknownThinkingModelError(IdeaverseError):
    """Thinking model id is not in the catalog."""

    pass


# =============================================================================
# LLM Errors
# =============================================================================


class LLMError(IdeaverseError):
    """Base for LLM-related errors."""

    pass


class TransportError(LLMError):
    """The completion call could not be completed (network/auth/service)."""

    pass


class LLMTimeoutError(TransportError):
    """LLM call timed out."""

    pass


class LLMRateLimitError(TransportError):
    """LLM rate limit exceeded."""

    pass


class StreamAbortedError(TransportError):
    """Stream was aborted by the caller before completion."""

    pass


class ResponseFormatError(LLMError):
    """Every parse strategy failed on the model output.

    The user-facing message is fixed; the offending text is kept on the
    exception for diagnostic logging only.
    """

    USER_MESSAGE = "AI response was not parseable; please retry"

    def __init__(self, message: str = USER_MESSAGE, raw_text: str = ""):
        super().__init__(message)
        self.raw_text = raw_text


# =============================================================================
# Session Errors
# =============================================================================


class SessionError(IdeaverseError):
    """Session-related error."""

    pass


class SessionNotFoundError(SessionError):
    """Session does not exist."""

    pass


class ValidationError(IdeaverseError):
    """Input validation failed."""

    pass
