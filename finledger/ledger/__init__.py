"""
Ledger core: balance reconciliation, transfers and write compensation.
"""

from finledger.ledger.balance import BalanceReconciler
from finledger.ledger.compensation import CompensationLog
from finledger.ledger.exceptions import (
    BalanceConflictError,
    LedgerError,
    LedgerIntegrityError,
    LedgerValidationError,
    LedgerWriteError,
)
from finledger.ledger.transfers import TransferCoordinator

__all__ = [
    "BalanceConflictError",
    "BalanceReconciler",
    "CompensationLog",
    "LedgerError",
    "LedgerIntegrityError",
    "LedgerValidationError",
    "LedgerWriteError",
    "TransferCoordinator",
]
