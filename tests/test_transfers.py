"""
Tests for the transfer coordinator.
"""

import asyncio
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from finledger.ledger import BalanceReconciler, LedgerIntegrityError, TransferCoordinator
from finledger.models.ledger import (
    Transaction,
    TransactionFilter,
    TransactionStatus,
    TransferInput,
)


@pytest.fixture
def coordinator(stores, audit_logger):
    reconciler = BalanceReconciler(stores.accounts, audit_logger, max_attempts=3)
    return TransferCoordinator(stores.transactions, reconciler, audit_logger)


def _transfer(source, target, amount="100", category_id=None):
    return TransferInput(
        from_account_id=source.id,
        to_account_id=target.id,
        amount=Decimal(amount),
        date=date(2024, 3, 1),
        category_id=category_id,
    )


class TestBuildPair:

    def test_legs_are_symmetric(self, stores):
        source = stores.add_account("A")
        target = stores.add_account("B")
        category_id = uuid4()

        pair = TransferCoordinator.build_pair(_transfer(source, target, category_id=category_id))

        assert pair.debit.amount == Decimal("-100.00")
        assert pair.credit.amount == Decimal("100.00")
        assert pair.debit.transfer_id == pair.credit.transfer_id
        assert pair.debit.account_id == source.id
        assert pair.credit.account_id == target.id
        assert pair.debit.date == pair.credit.date
        assert pair.debit.status == pair.credit.status == TransactionStatus.COMPLETED
        assert pair.debit.category_id is None
        assert pair.credit.category_id == category_id


class TestCreateTransfer:

    def test_moves_both_balances(self, stores, coordinator):
        source = stores.add_account("A", "500.00")
        target = stores.add_account("B", "50.00")

        pair = asyncio.run(coordinator.create_transfer(_transfer(source, target)))

        legs = asyncio.run(stores.transactions.query(TransactionFilter(transfer_id=pair.transfer_id)))
        assert len(legs) == 2
        assert sum(leg.amount for leg in legs) == Decimal("0")
        assert stores.balance(source) == Decimal("400.00")
        assert stores.balance(target) == Decimal("150.00")
        assert "transfer_created" in stores.event_types()

    def test_resolve_returns_both_legs(self, stores, coordinator):
        source = stores.add_account("A", "500.00")
        target = stores.add_account("B")

        created = asyncio.run(coordinator.create_transfer(_transfer(source, target, "75")))
        resolved = asyncio.run(coordinator.resolve_transfer(created.transfer_id))

        assert resolved.debit.id == created.debit.id
        assert resolved.credit.id == created.credit.id
        assert resolved.amount == Decimal("75.00")


class TestCancelTransfer:

    def test_reverses_balances_and_deletes_legs(self, stores, coordinator):
        source = stores.add_account("A", "500.00")
        target = stores.add_account("B", "50.00")
        pair = asyncio.run(coordinator.create_transfer(_transfer(source, target)))

        asyncio.run(coordinator.cancel_transfer(pair.transfer_id))

        legs = asyncio.run(stores.transactions.query(TransactionFilter(transfer_id=pair.transfer_id)))
        assert legs == []
        assert stores.balance(source) == Decimal("500.00")
        assert stores.balance(target) == Decimal("50.00")
        assert "transfer_cancelled" in stores.event_types()

    def test_orphan_leg_is_integrity_error(self, stores, coordinator):
        source = stores.add_account("A", "500.00")
        transfer_id = uuid4()
        asyncio.run(stores.transactions.insert(Transaction(
            name="Transfer",
            amount=Decimal("-100"),
            date=date(2024, 3, 1),
            account_id=source.id,
            transfer_id=transfer_id,
        )))

        with pytest.raises(LedgerIntegrityError) as exc_info:
            asyncio.run(coordinator.cancel_transfer(transfer_id))

        assert exc_info.value.entity_id == transfer_id
        assert stores.balance(source) == Decimal("500.00")
        assert "integrity_error" in stores.event_types()

    def test_unbalanced_legs_are_integrity_error(self, stores, coordinator):
        source = stores.add_account("A")
        target = stores.add_account("B")
        transfer_id = uuid4()
        asyncio.run(stores.transactions.insert([
            Transaction(
                name="Transfer", amount=Decimal("-100"), date=date(2024, 3, 1),
                account_id=source.id, transfer_id=transfer_id,
            ),
            Transaction(
                name="Transfer", amount=Decimal("90"), date=date(2024, 3, 1),
                account_id=target.id, transfer_id=transfer_id,
            ),
        ]))

        with pytest.raises(LedgerIntegrityError, match="do not balance"):
            asyncio.run(coordinator.resolve_transfer(transfer_id))
