"""
Shared fixtures.

Everything runs against the in-memory storage backend; no test talks
to Google Sheets. Async code is driven with asyncio.run from plain
synchronous tests.
"""

import asyncio
from decimal import Decimal
from uuid import uuid4

import pytest

from finledger.audit import AuditLogger
from finledger.config import LedgerSettings
from finledger.models.ledger import Account, CreditCard
from finledger.orchestrator import TransactionLedger
from finledger.queries import LedgerQueryExecutor
from finledger.services.storage import (
    InMemoryAccountStorage,
    InMemoryAuditStorage,
    InMemoryCreditCardBillStorage,
    InMemoryCreditCardStorage,
    InMemoryTransactionStorage,
)
from finledger.validation import LedgerValidator


def run(coro):
    """Run a coroutine to completion."""
    return asyncio.run(coro)


class Stores:
    """The full set of in-memory stores behind one ledger."""

    def __init__(self):
        self.accounts = InMemoryAccountStorage()
        self.transactions = InMemoryTransactionStorage()
        self.cards = InMemoryCreditCardStorage()
        self.bills = InMemoryCreditCardBillStorage()
        self.audit = InMemoryAuditStorage()

    def add_account(self, name: str = "Checking", balance: str = "0.00") -> Account:
        return run(self.accounts.save_account(Account(
            name=name,
            balance=Decimal(balance),
            opening_balance=Decimal(balance),
        )))

    def add_card(self, closing_day: int = 5, due_day: int = 15) -> CreditCard:
        return run(self.cards.save_card(CreditCard(
            name="Visa",
            closing_day=closing_day,
            due_day=due_day,
        )))

    def balance(self, account: Account) -> Decimal:
        return run(self.accounts.get_account(account.id)).balance

    def event_types(self) -> list[str]:
        return [e.event_type.value for e in self.audit._events]


@pytest.fixture
def stores() -> Stores:
    return Stores()


@pytest.fixture
def audit_logger(stores) -> AuditLogger:
    return AuditLogger(stores.audit)


@pytest.fixture
def ledger_settings() -> LedgerSettings:
    return LedgerSettings(
        max_installments=48,
        max_transaction_amount=Decimal("1000000.00"),
        balance_conflict_retries=3,
        force_pending_for_future_dates=True,
    )


@pytest.fixture
def ledger(stores, audit_logger, ledger_settings) -> TransactionLedger:
    return TransactionLedger(
        account_storage=stores.accounts,
        transaction_storage=stores.transactions,
        card_storage=stores.cards,
        bill_storage=stores.bills,
        audit_logger=audit_logger,
        validator=LedgerValidator(ledger_settings),
    )


@pytest.fixture
def queries(stores) -> LedgerQueryExecutor:
    return LedgerQueryExecutor(
        account_storage=stores.accounts,
        transaction_storage=stores.transactions,
        card_storage=stores.cards,
        bill_storage=stores.bills,
    )


@pytest.fixture
def category_id():
    return uuid4()
