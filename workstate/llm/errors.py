"""Error taxonomy for model provider calls."""

from __future__ import annotations


class ProviderError(RuntimeError):
    """Base class for failures talking to the model provider."""

    transient = False

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class TransientProviderError(ProviderError):
    """Failures worth retrying after a backoff."""

    transient = True


class RateLimitedError(TransientProviderError):
    pass


class ServiceUnavailableError(TransientProviderError):
    pass


class ServerError(TransientProviderError):
    pass


class ProviderConnectionError(TransientProviderError):
    pass


class AuthenticationError(ProviderError):
    """Missing or rejected API key."""


class InsufficientCreditsError(ProviderError):
    pass


class HTTPStatusError(ProviderError):
    pass


class InvalidResponseError(ProviderError):
    """The provider answered, but the body could not be used."""


def error_for_status(status: int, detail: str) -> ProviderError:
    message = f"Model provider returned status {status}: {detail}" if detail else (
        f"Model provider returned status {status}"
    )
    if status in (401, 403):
        return AuthenticationError(message, status=status)
    if status == 402:
        return InsufficientCreditsError(message, status=status)
    if status == 429:
        return RateLimitedError(message, status=status)
    if status == 503:
        return ServiceUnavailableError(message, status=status)
    if status >= 500:
        return ServerError(message, status=status)
    return HTTPStatusError(message, status=status)


__all__ = [
    "AuthenticationError",
    "HTTPStatusError",
    "InsufficientCreditsError",
    "InvalidResponseError",
    "ProviderConnectionError",
    "ProviderError",
    "RateLimitedError",
    "ServerError",
    "ServiceUnavailableError",
    "TransientProviderError",
    "error_for_status",
]
