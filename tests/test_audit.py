"""
Tests for the audit trail.
"""

import asyncio
from datetime import date
from decimal import Decimal

from finledger.audit import AuditLogger, create_correlation_id
from finledger.models.audit import AuditEventBuilder, AuditEventType, AuditSeverity
from finledger.models.ledger import Direction, TransactionInput
from finledger.services.storage import InMemoryAuditStorage, StorageError


class BrokenAuditStorage(InMemoryAuditStorage):

    async def append_event(self, event):
        raise StorageError("audit sheet unavailable")


class TestAuditLogger:

    def test_persists_events(self, stores, audit_logger):
        correlation_id = create_correlation_id()

        asyncio.run(audit_logger.log_balance_conflict(
            account_id=create_correlation_id(),
            attempts=3,
            correlation_id=correlation_id,
        ))

        events = asyncio.run(stores.audit.get_events_by_correlation_id(correlation_id))
        assert len(events) == 1
        assert events[0].event_type == AuditEventType.BALANCE_CONFLICT
        assert events[0].severity == AuditSeverity.WARNING

    def test_storage_failure_is_not_raised(self):
        logger = AuditLogger(BrokenAuditStorage())

        event = AuditEventBuilder.integrity_error(
            entity_type="transfer",
            entity_id=None,
            error_message="orphan leg",
        )

        assert asyncio.run(logger.log(event)) is False

    def test_local_only_logger(self):
        logger = AuditLogger()
        asyncio.run(logger.log_write_failed(
            operation="add transaction",
            step="insert transaction",
            error_message="timeout",
            correlation_id=create_correlation_id(),
        ))


class TestOperationTrail:

    def test_one_operation_shares_a_correlation_id(self, stores, ledger, category_id):
        account = stores.add_account("Main", "100.00")
        correlation_id = create_correlation_id()

        tx = asyncio.run(ledger.add_transaction(
            TransactionInput(
                name="Groceries",
                direction=Direction.EXPENSE,
                amount=Decimal("30"),
                date=date(2024, 1, 5),
                account_id=account.id,
                category_id=category_id,
            ),
            correlation_id=correlation_id,
        ))

        events = asyncio.run(stores.audit.get_events_by_correlation_id(correlation_id))
        types = [e.event_type for e in events]
        assert AuditEventType.BALANCE_UPDATED in types
        assert AuditEventType.TRANSACTION_CREATED in types

        by_entity = asyncio.run(stores.audit.get_events_by_entity("transaction", tx.id))
        assert [e.event_type for e in by_entity] == [AuditEventType.TRANSACTION_CREATED]

    def test_recent_events_newest_first(self, stores, ledger, category_id):
        account = stores.add_account()
        for amount in ("1", "2"):
            asyncio.run(ledger.add_transaction(TransactionInput(
                name="Coffee",
                direction=Direction.EXPENSE,
                amount=Decimal(amount),
                date=date(2024, 1, 5),
                account_id=account.id,
                category_id=category_id,
            )))

        recent = asyncio.run(stores.audit.get_recent_events(limit=1))
        assert len(recent) == 1
        assert recent[0].timestamp == max(e.timestamp for e in stores.audit._events)
