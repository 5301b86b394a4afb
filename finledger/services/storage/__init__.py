"""
Storage Services Package

Provides abstract interfaces and concrete implementations for the
ledger's remote store. Google Sheets is the production backend; the
in-memory backend serves tests and offline runs.
"""

from finledger.services.storage.interface import (
    AccountStorageInterface,
    AuditStorageInterface,
    ConnectionError,
    CreditCardBillStorageInterface,
    CreditCardStorageInterface,
    DuplicateError,
    NotFoundError,
    StorageError,
    TransactionStorageInterface,
    VersionConflictError,
)
from finledger.services.storage.google_sheets import (
    GoogleSheetsAccountStorage,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsCreditCardBillStorage,
    GoogleSheetsCreditCardStorage,
    GoogleSheetsTransactionStorage,
)
from finledger.services.storage.memory import (
    InMemoryAccountStorage,
    InMemoryAuditStorage,
    InMemoryCreditCardBillStorage,
    InMemoryCreditCardStorage,
    InMemoryTransactionStorage,
)

__all__ = [
    # Interfaces
    "AccountStorageInterface",
    "AuditStorageInterface",
    "CreditCardBillStorageInterface",
    "CreditCardStorageInterface",
    "TransactionStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    "VersionConflictError",
    # Google Sheets implementation
    "GoogleSheetsAccountStorage",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsCreditCardBillStorage",
    "GoogleSheetsCreditCardStorage",
    "GoogleSheetsTransactionStorage",
    # In-memory implementation
    "InMemoryAccountStorage",
    "InMemoryAuditStorage",
    "InMemoryCreditCardBillStorage",
    "InMemoryCreditCardStorage",
    "InMemoryTransactionStorage",
]
