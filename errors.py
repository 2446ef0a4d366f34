# errors.py
"""
Exception taxonomy for the stock price checker.

Each error carries the HTTP status the route maps it to. Upstream and storage
problems are server-side (500); bad query input is a client error (400).
"""


class StockServiceError(Exception):
    status_code = 500


class InvalidQuoteData(StockServiceError):
    """The quote provider answered, but without a usable latest price."""


class UpstreamUnavailable(StockServiceError):
    """The quote provider could not be reached (timeout, connection error, 5xx)."""


class StorageFailure(StockServiceError):
    """MongoDB read or write failed."""


class MalformedInput(StockServiceError):
    status_code = 400


class MissingAddress(StockServiceError):
    """No client address was available to derive a visitor fingerprint."""
    status_code = 400
