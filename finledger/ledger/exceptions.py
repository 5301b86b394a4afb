"""
Ledger exceptions.

Three families, reported distinctly to the caller:
- validation: rejected before any write
- write failures: a store call failed partway through an operation
- integrity: the stored data shows an earlier partial failure
"""

from typing import Optional
from uuid import UUID

from finledger.models.ledger import ValidationIssue


class LedgerError(Exception):
    """Base exception for ledger operations."""
    pass


class LedgerValidationError(LedgerError):
    """The intent was rejected before anything was written."""

    def __init__(self, issues: list[ValidationIssue], operation: str = "ledger operation"):
        self.issues = issues
        self.operation = operation
        errors = [i.message for i in issues if i.severity == "error"] or [i.message for i in issues]
        super().__init__(f"{operation} rejected: " + "; ".join(errors))


class LedgerWriteError(LedgerError):
    """
    A store write failed partway through an operation.

    `compensated` tells whether the writes already made by the operation
    were undone. When False, the audit log holds the steps that could
    not be reversed.
    """

    def __init__(self, step: str, cause: Exception, compensated: bool):
        self.step = step
        self.cause = cause
        self.compensated = compensated
        state = "rolled back" if compensated else "NOT fully rolled back"
        super().__init__(f"Write failed at '{step}' ({state}): {cause}")


class LedgerIntegrityError(LedgerError):
    """Stored data is inconsistent, e.g. a transfer without exactly two legs."""

    def __init__(self, message: str, entity_id: Optional[UUID] = None):
        self.entity_id = entity_id
        super().__init__(message)


class BalanceConflictError(LedgerError):
    """
    The account balance kept changing under us.

    Retryable: nothing was lost, the caller may resubmit the operation.
    """

    retryable = True

    def __init__(self, account_id: UUID, attempts: int):
        self.account_id = account_id
        self.attempts = attempts
        super().__init__(
            f"Balance of account {account_id} changed concurrently "
            f"({attempts} attempt(s)); please retry"
        )
