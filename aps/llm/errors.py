"""Classified failures surfaced by completion clients."""


class CompletionError(Exception):
    """Base class for completion-service failures."""

    retryable = True


class AuthError(CompletionError):
    """Credential missing or rejected. Never retried."""

    retryable = False


class RateLimitedError(CompletionError):
    pass


class ServiceUnavailableError(CompletionError):
    pass


class EmptyResponseError(CompletionError):
    pass


class UnknownCompletionError(CompletionError):
    pass
