"""Custom exceptions for the RWA funding oracle.

Exceptions are raised inside a layer and converted to typed Result values
at service boundaries (see rwa_oracle.models.Result). Only configuration
errors are allowed to escape at startup.
"""


class OracleError(Exception):
    """Base exception for all oracle errors."""


class ConfigurationError(OracleError):
    """Raised at startup when configuration is malformed."""


# ---- Provider failures ----


class ProviderError(OracleError):
    """A single external data provider failed a call."""

    def __init__(self, provider: str, message: str = "") -> None:
        self.provider = provider
        super().__init__(f"{provider}: {message}" if message else provider)


class RateLimited(ProviderError):
    """Provider rejected the call with a rate limit (HTTP 429 or quota notice)."""


class SourceUnavailable(ProviderError):
    """Provider errored, timed out, or returned an unusable payload."""


class SymbolNotFound(ProviderError):
    """Provider has no data for the requested symbol or date."""


# ---- Data failures ----


class NoDataAvailable(OracleError):
    """All sources failed or the symbol is unknown."""


class AmbiguousCorporateAction(OracleError):
    """Conflicting unverified corporate-action records for the same event."""


class CorporateActionDiscontinuity(OracleError):
    """An adjustment range crosses a merger or spin-off without acknowledgement."""

    def __init__(self, symbol: str, action_id: str | None, message: str = "") -> None:
        self.symbol = symbol
        self.action_id = action_id
        super().__init__(message or f"{symbol}: price series discontinuous at {action_id}")


class InvalidCorporateAction(OracleError):
    """A corporate-action request failed validation."""


class DuplicateCorporateAction(OracleError):
    """A manual corporate action duplicates an existing record."""


# ---- Chain failures ----


class ChainError(OracleError):
    """A chain client call failed or was rejected."""


class PublishFailed(OracleError):
    """Publishing a funding rate to a chain failed."""


class PublisherNotConfigured(OracleError):
    """No publisher is registered for the requested provider type."""
