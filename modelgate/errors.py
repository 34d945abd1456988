"""Exception hierarchy for modelgate."""

from __future__ import annotations


class GatewayError(Exception):
    """Base exception for all modelgate errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(GatewayError):
    """Request construction failed before any network call was made.

    Raised for a missing model selection, a malformed tool schema or a
    conversation that breaks the function-call pairing rules.
    """


class LateSubscriptionError(GatewayError):
    """A listener tried to subscribe after delivery had started."""


class PublisherClosedError(GatewayError):
    """An event was submitted to a publisher that is already closed."""


class StreamCancelled(GatewayError):
    """Terminal marker for a stream stopped by its cancel provider.

    Delivered through ``on_error`` like any other terminal failure, so
    listeners can tell a user cancellation apart from a real error.
    """

    def __init__(self, message: str = "Stream cancelled", *, hint: str | None = None) -> None:
        super().__init__(message, hint=hint)


class ProviderError(GatewayError):
    """A vendor request failed."""

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        provider: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.provider = provider
        self.status_code = status_code


class ProviderHTTPError(ProviderError):
    """The vendor answered with a non-success HTTP status."""

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        provider: str | None = None,
        status_code: int | None = None,
        body: str = "",
    ) -> None:
        super().__init__(message, hint=hint, provider=provider, status_code=status_code)
        self.body = body


class RateLimitExceeded(ProviderHTTPError):
    """HTTP 429 persisted after every allowed retry."""

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        provider: str | None = None,
        body: str = "",
        retry_after_s: float | None = None,
        attempts: int = 0,
    ) -> None:
        super().__init__(
            message, hint=hint, provider=provider, status_code=429, body=body
        )
        self.retry_after_s = retry_after_s
        self.attempts = attempts


class ProviderStreamError(ProviderError):
    """The vendor reported an error inside the event stream itself."""
