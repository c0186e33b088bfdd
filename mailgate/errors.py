# mailgate/errors.py
from typing import Optional


class ConfigurationError(RuntimeError):
    """Required configuration is missing or invalid. Fatal at boot."""


class InvalidTokenError(Exception):
    """A presented bearer token failed signature, issuer, audience or expiry checks."""


class LLMCommunicationError(Exception):
    """
    Raised when the LLM provider cannot be reached or returns an unusable reply.

    status_code is the upstream HTTP status when the provider answered,
    error_content the provider's error text when available.
    """

    def __init__(self, message: str, status_code: Optional[int] = None,
                 error_content: Optional[str] = None, unavailable: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.error_content = error_content
        self.unavailable = unavailable or status_code in (503, 504)
