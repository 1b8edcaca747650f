"""
Ledger error taxonomy.

Services raise these; main.py maps them to HTTP status codes:
  • ValidationError       → 422  (rejected before any write)
  • NotFoundError         → 404  (referenced user/conversation/message missing)
  • PermissionDeniedError → 403  (admin-only operation)
  • StoreError            → 503  (database failure, never retried)
"""


class LedgerError(Exception):
    """Base class for every error the ledger surfaces to callers."""


class ValidationError(LedgerError):
    """Malformed or missing usage fields."""


class NotFoundError(LedgerError):
    """A referenced entity does not exist."""


class PermissionDeniedError(LedgerError):
    """The acting user is not allowed to perform the operation."""


class StoreError(LedgerError):
    """Writing or reading the store failed.

    When raised after a usage record was committed, the record stays —
    aggregates are derived state and can be rebuilt from the records.
    """
