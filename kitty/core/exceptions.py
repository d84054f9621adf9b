"""
Domain exceptions raised by the service layer.
"""


class LedgerError(Exception):
    """Base class for ledger errors."""


class NotFoundError(LedgerError):
    """Raised when an activity, member, transaction or batch does not exist."""


class ReconciliationError(LedgerError):
    """
    Raised when a batch cannot be recomputed.

    The surrounding database transaction is rolled back, so balances and
    rows are left exactly as they were before the request.
    """
