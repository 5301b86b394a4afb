"""
In-Memory Storage Implementation

Keeps every entity in dictionaries and applies the same rules as the
remote store: bill uniqueness per (card, reference month) and versioned
balance updates. Used by the test suite and when no spreadsheet is
configured.

Rows are copied on the way in and on the way out, so callers can never
mutate stored state except through the interface.
"""

from datetime import date, datetime, timezone
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
from finledger.services.storage.interface import (
    AccountStorageInterface,
    AuditStorageInterface,
    CreditCardBillStorageInterface,
    CreditCardStorageInterface,
    DuplicateError,
    NotFoundError,
    TransactionStorageInterface,
    VersionConflictError,
)


class InMemoryAccountStorage(AccountStorageInterface):

    def __init__(self):
        self._accounts: dict[UUID, Account] = {}

    async def get_account(self, account_id: UUID) -> Optional[Account]:
        account = self._accounts.get(account_id)
        return account.model_copy() if account else None

    async def list_accounts(self) -> list[Account]:
        return [a.model_copy() for a in self._accounts.values()]

    async def save_account(self, account: Account) -> Account:
        self._accounts[account.id] = account.model_copy()
        return account.model_copy()

    async def set_default_account(self, account_id: UUID) -> None:
        if account_id not in self._accounts:
            raise NotFoundError(f"Account not found: {account_id}")
        for other_id, account in self._accounts.items():
            is_default = other_id == account_id
            if account.is_default != is_default:
                self._accounts[other_id] = account.model_copy(update={"is_default": is_default})

    async def update_balance(
        self,
        account_id: UUID,
        new_balance: Decimal,
        expected_version: int,
    ) -> Account:
        account = self._accounts.get(account_id)
        if account is None:
            raise NotFoundError(f"Account not found: {account_id}")
        if account.version != expected_version:
            raise VersionConflictError(account_id, expected_version, account.version)

        updated = account.model_copy(update={
            "balance": new_balance,
            "version": account.version + 1,
            "updated_at": datetime.now(timezone.utc),
        })
        self._accounts[account_id] = updated
        return updated.model_copy()


class InMemoryTransactionStorage(TransactionStorageInterface):

    def __init__(self):
        self._rows: dict[UUID, Transaction] = {}

    async def insert(
        self,
        transactions: Union[Transaction, list[Transaction]],
    ) -> list[Transaction]:
        batch = transactions if isinstance(transactions, list) else [transactions]
        for tx in batch:
            if tx.id in self._rows:
                raise DuplicateError(f"Transaction already exists: {tx.id}")
        for tx in batch:
            self._rows[tx.id] = tx.model_copy()
        return [tx.model_copy() for tx in batch]

    async def get(self, transaction_id: UUID) -> Optional[Transaction]:
        tx = self._rows.get(transaction_id)
        return tx.model_copy() if tx else None

    async def update(
        self,
        transaction_id: UUID,
        fields: dict[str, Any],
    ) -> Transaction:
        tx = self._rows.get(transaction_id)
        if tx is None:
            raise NotFoundError(f"Transaction not found: {transaction_id}")
        # Re-validate so an update can't break the row's invariants
        data = tx.model_dump()
        data.update(fields)
        data["updated_at"] = datetime.now(timezone.utc)
        updated = Transaction.model_validate(data)
        self._rows[transaction_id] = updated
        return updated.model_copy()

    async def delete(self, flt: TransactionFilter) -> int:
        doomed = [tx_id for tx_id, tx in self._rows.items() if flt.matches(tx)]
        for tx_id in doomed:
            del self._rows[tx_id]
        return len(doomed)

    async def query(self, flt: TransactionFilter) -> list[Transaction]:
        rows = [tx.model_copy() for tx in self._rows.values() if flt.matches(tx)]
        rows.sort(key=lambda t: (t.date, t.installment_number, t.created_at))
        return rows

    async def list_transactions(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Transaction]:
        rows = [
            tx.model_copy() for tx in self._rows.values()
            if (date_from is None or tx.date >= date_from)
            and (date_to is None or tx.date <= date_to)
        ]
        rows.sort(key=lambda t: (t.date, t.created_at), reverse=True)
        return rows[offset:offset + limit]


class InMemoryCreditCardStorage(CreditCardStorageInterface):

    def __init__(self):
        self._cards: dict[UUID, CreditCard] = {}

    async def get_card(self, card_id: UUID) -> Optional[CreditCard]:
        card = self._cards.get(card_id)
        return card.model_copy() if card else None

    async def list_cards(self) -> list[CreditCard]:
        return [c.model_copy() for c in self._cards.values()]

    async def save_card(self, card: CreditCard) -> CreditCard:
        self._cards[card.id] = card.model_copy()
        return card.model_copy()


class InMemoryCreditCardBillStorage(CreditCardBillStorageInterface):

    def __init__(self):
        self._bills: dict[UUID, CreditCardBill] = {}

    async def find(
        self,
        card_id: UUID,
        reference_month: date,
    ) -> Optional[CreditCardBill]:
        for bill in self._bills.values():
            if bill.credit_card_id == card_id and bill.reference_month == reference_month:
                return bill.model_copy()
        return None

    async def get(self, bill_id: UUID) -> Optional[CreditCardBill]:
        bill = self._bills.get(bill_id)
        return bill.model_copy() if bill else None

    async def insert(self, bill: CreditCardBill) -> CreditCardBill:
        for existing in self._bills.values():
            if (
                existing.credit_card_id == bill.credit_card_id
                and existing.reference_month == bill.reference_month
            ):
                raise DuplicateError(
                    f"Bill already exists for card {bill.credit_card_id} "
                    f"and month {bill.reference_month.isoformat()}"
                )
        self._bills[bill.id] = bill.model_copy()
        return bill.model_copy()

    async def delete(self, bill_id: UUID) -> bool:
        return self._bills.pop(bill_id, None) is not None

    async def list_bills(self, card_id: UUID) -> list[CreditCardBill]:
        bills = [b.model_copy() for b in self._bills.values() if b.credit_card_id == card_id]
        bills.sort(key=lambda b: b.reference_month)
        return bills


class InMemoryAuditStorage(AuditStorageInterface):

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return sorted(self._events, key=lambda e: e.timestamp, reverse=True)[:limit]
