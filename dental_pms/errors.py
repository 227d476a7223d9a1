"""Error taxonomy for the PMS adapter layer.

Transport-level errors propagate unchanged through the normalizer and the
adapters.  The only exception is :class:`NotFoundError`, which single-entity
lookups (``get_patient``, ``get_appointment``) turn into ``None``.

Each error carries a ``user_message`` that consumers (the HTTP API, the
voice receptionist) can show verbatim.
"""

from __future__ import annotations

CHECK_CREDENTIALS = "Please check the practice management system credentials."
TRY_AGAIN_SHORTLY = "The practice management system is busy. Please try again shortly."
CHECK_CONNECTION = "Could not reach the practice management system. Please check the connection."
FIX_CONFIGURATION = "The practice management integration is misconfigured."


class PMSError(Exception):
    """Base class for every error raised by the adapter layer."""

    user_message = TRY_AGAIN_SHORTLY

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class AuthenticationError(PMSError):
    """401-equivalent: bad or missing vendor credentials."""

    user_message = CHECK_CREDENTIALS


class RateLimitError(PMSError):
    """429-equivalent: the vendor asked us to slow down."""


class ServerError(PMSError):
    """5xx-equivalent or any other unclassified non-2xx response."""


class NotFoundError(ServerError):
    """404 from the vendor.  Never escapes a single-entity lookup."""


class RequestTimeoutError(PMSError, TimeoutError):
    """Client-side deadline exceeded; the in-flight request was aborted."""

    user_message = CHECK_CONNECTION


class NetworkError(PMSError, ConnectionError):
    """Connection/DNS failure, or a simulated failure in mock mode."""

    user_message = CHECK_CONNECTION


class ConfigurationError(PMSError):
    """The adapter cannot be used as configured."""

    user_message = FIX_CONFIGURATION


class UnsupportedAuthMethodError(ConfigurationError):
    pass


class MissingTokenError(ConfigurationError):
    """OAuth2 was selected but the caller supplied no bearer token."""

    user_message = CHECK_CREDENTIALS


class UnsupportedPMSError(ConfigurationError):
    """Unknown ``pms_type`` or a vendor whose integration is not built yet."""


class InvalidIdentifierError(ConfigurationError, ValueError):
    """An id that cannot be sent to a vendor using numeric identifiers."""
