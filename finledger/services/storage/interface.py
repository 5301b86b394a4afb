"""
Abstract Storage Interface

The ledger talks to its remote store only through these interfaces.
This allows us to:
1. Swap Google Sheets for a relational database later
2. Use in-memory storage for testing
3. Keep reconciliation logic decoupled from the storage client

The interface is intentionally thin - it mirrors the handful of
remote calls the ledger makes (lookup, insert, update, delete, query)
rather than a full ORM.
"""

from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal
from typing import Any, Optional, Union
from uuid import UUID

from finledger.models.audit import AuditEvent
from finledger.models.ledger import (
    Account,
    CreditCard,
    CreditCardBill,
    Transaction,
    TransactionFilter,
)


class AccountStorageInterface(ABC):
    """
    Abstract interface for account storage.

    Balance writes are conditional: the caller presents the version it
    read and the store rejects the write if the row moved on since.
    """

    @abstractmethod
    async def get_account(self, account_id: UUID) -> Optional[Account]:
        """
        Read an account fresh from storage.

        Returns:
            The account if found, None otherwise
        """
        pass

    @abstractmethod
    async def list_accounts(self) -> list[Account]:
        """List all accounts."""
        pass

    @abstractmethod
    async def save_account(self, account: Account) -> Account:
        """Insert or replace an account (account screens, setup, tests)."""
        pass

    @abstractmethod
    async def set_default_account(self, account_id: UUID) -> None:
        """
        Make an account the only default one.

        Clears `is_default` on every other account, then sets it on this one.

        Raises:
            NotFoundError: If the account doesn't exist
        """
        pass

    @abstractmethod
    async def update_balance(
        self,
        account_id: UUID,
        new_balance: Decimal,
        expected_version: int,
    ) -> Account:
        """
        Compare-and-swap the balance of an account.

        Args:
            account_id: Account to update
            new_balance: Balance to store
            expected_version: Version the caller read the balance at

        Returns:
            The updated account, with its version incremented

        Raises:
            NotFoundError: If the account doesn't exist
            VersionConflictError: If the stored version differs
        """
        pass


class TransactionStorageInterface(ABC):
    """Abstract interface for transaction storage."""

    @abstractmethod
    async def insert(
        self,
        transactions: Union[Transaction, list[Transaction]],
    ) -> list[Transaction]:
        """
        Insert one transaction or a batch.

        Raises:
            StorageError: If the insert is rejected
        """
        pass

    @abstractmethod
    async def get(self, transaction_id: UUID) -> Optional[Transaction]:
        """Retrieve a transaction by ID, or None."""
        pass

    @abstractmethod
    async def update(
        self,
        transaction_id: UUID,
        fields: dict[str, Any],
    ) -> Transaction:
        """
        Update selected fields of a transaction.

        Returns:
            The updated transaction

        Raises:
            NotFoundError: If the transaction doesn't exist
        """
        pass

    @abstractmethod
    async def delete(self, flt: TransactionFilter) -> int:
        """
        Delete every transaction matching the filter.

        Returns:
            Number of rows deleted (an empty filter deletes nothing)
        """
        pass

    @abstractmethod
    async def query(self, flt: TransactionFilter) -> list[Transaction]:
        """Return transactions matching the filter, oldest first."""
        pass

    @abstractmethod
    async def list_transactions(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Transaction]:
        """List transactions, newest first."""
        pass


class CreditCardStorageInterface(ABC):
    """Credit card configuration. Read-only to the ledger."""

    @abstractmethod
    async def get_card(self, card_id: UUID) -> Optional[CreditCard]:
        pass

    @abstractmethod
    async def list_cards(self) -> list[CreditCard]:
        pass

    @abstractmethod
    async def save_card(self, card: CreditCard) -> CreditCard:
        pass


class CreditCardBillStorageInterface(ABC):
    """
    Credit card bill storage.

    Enforces at most one bill per (credit_card_id, reference_month).
    """

    @abstractmethod
    async def find(
        self,
        card_id: UUID,
        reference_month: date,
    ) -> Optional[CreditCardBill]:
        """Look up the bill of a card for a reference month."""
        pass

    @abstractmethod
    async def get(self, bill_id: UUID) -> Optional[CreditCardBill]:
        pass

    @abstractmethod
    async def insert(self, bill: CreditCardBill) -> CreditCardBill:
        """
        Insert a new bill.

        Raises:
            DuplicateError: If the card already has a bill for that month
        """
        pass

    @abstractmethod
    async def delete(self, bill_id: UUID) -> bool:
        """
        Delete a bill.

        Only used to undo a bill created by an operation that then failed.
        """
        pass

    @abstractmethod
    async def list_bills(self, card_id: UUID) -> list[CreditCardBill]:
        """List a card's bills by reference month."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events of one ledger operation in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events for a specific entity in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the most recent audit events (newest first)."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class VersionConflictError(StorageError):
    """A conditional update lost to a concurrent writer."""

    def __init__(self, entity_id: UUID, expected_version: int, actual_version: int):
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Version conflict on {entity_id}: "
            f"expected {expected_version}, found {actual_version}"
        )
