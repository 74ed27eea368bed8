"""Error types shared by the listing pipeline."""


class InvalidRequest(ValueError):
    """Malformed or oversized input, rejected before any model call."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class UnparseableResponse(ValueError):
    """Model output that could not be recovered into a JSON object."""


class ModelError(Exception):
    """Generic model or network failure."""

    retryable = False

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimited(ModelError):
    """The model provider asked us to slow down. Retry with backoff."""

    retryable = True


class QuotaExhausted(ModelError):
    """Credits or quota are used up. Needs intervention before retrying."""
