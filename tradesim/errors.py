"""
Error taxonomy for the portfolio service.

Every expected failure of a service operation is one of the classes below.
Each carries a stable machine-checkable ``code`` and a human message.
The HTTP layer maps them to responses in one place; services never catch
and re-word them.
"""


class TradeSimError(Exception):
    """Base error for all expected service failures."""

    code = "ERROR"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(self.message)


class InvalidInputError(TradeSimError):
    """Raised for malformed tickers, non-positive amounts or empty names."""

    code = "INVALID_INPUT"


class NotFoundError(TradeSimError):
    """Raised when an entity is absent, soft-deleted or owned by someone else.

    Absence and foreign ownership raise the same error.
    """

    code = "NOT_FOUND"


class InsufficientFundsError(TradeSimError):
    """Raised when a buy costs more than the portfolio's cash balance."""

    code = "INSUFFICIENT_FUNDS"

    def __init__(self, required, available) -> None:
        super().__init__(
            f"Insufficient funds. Required: ${required:,.2f}, "
            f"Available: ${available:,.2f}"
        )
        self.required = required
        self.available = available


class InsufficientSharesError(TradeSimError):
    """Raised when a sell requests more shares than the holding has."""

    code = "INSUFFICIENT_SHARES"

    def __init__(self, ticker: str, requested, available) -> None:
        super().__init__(
            f"Insufficient shares of {ticker}. Requested: {requested.normalize():f}, "
            f"Available: {available.normalize():f}"
        )
        self.ticker = ticker
        self.requested = requested
        self.available = available


class RateLimitedError(TradeSimError):
    """Raised when the quote provider throttles us (HTTP 429)."""

    code = "RATE_LIMITED"


class UpstreamUnavailableError(TradeSimError):
    """Raised when the quote provider errors, times out or is not configured."""

    code = "UPSTREAM_UNAVAILABLE"


class ConflictError(TradeSimError):
    """Raised when a commit violates a uniqueness or concurrency constraint."""

    code = "CONFLICT"
