"""Services package."""

from finledger.services.storage import (
    AccountStorageInterface,
    AuditStorageInterface,
    ConnectionError,
    CreditCardBillStorageInterface,
    CreditCardStorageInterface,
    DuplicateError,
    GoogleSheetsClient,
    NotFoundError,
    StorageError,
    TransactionStorageInterface,
    VersionConflictError,
)

__all__ = [
    "AccountStorageInterface",
    "AuditStorageInterface",
    "ConnectionError",
    "CreditCardBillStorageInterface",
    "CreditCardStorageInterface",
    "DuplicateError",
    "GoogleSheetsClient",
    "NotFoundError",
    "StorageError",
    "TransactionStorageInterface",
    "VersionConflictError",
]
