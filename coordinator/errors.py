"""
coordinator/errors.py

Ledger-side errors. Neither ever reaches the client: both are absorbed by
the reader and mean "not observed this cycle".
"""


class DecodeError(ValueError):
    """Raised by ByteCursor when account data is malformed or truncated."""


class LedgerUnavailable(RuntimeError):
    """Raised when account data cannot be fetched from the ledger RPC."""
