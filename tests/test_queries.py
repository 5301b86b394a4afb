"""
Tests for the read-only ledger queries.
"""

import asyncio
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from finledger.models.ledger import (
    CardPurchaseInput,
    Direction,
    Transaction,
    TransactionInput,
    TransferInput,
)
from finledger.queries import QueryExecutionError


def _tx(account, category_id, amount, direction=Direction.EXPENSE, when=date(2024, 1, 10)):
    return TransactionInput(
        name="Item",
        direction=direction,
        amount=Decimal(amount),
        date=when,
        account_id=account.id,
        category_id=category_id,
    )


class TestStatements:

    def test_account_statement_oldest_first(self, stores, ledger, queries, category_id):
        account = stores.add_account()
        asyncio.run(ledger.add_transaction(_tx(account, category_id, "10", when=date(2024, 2, 1))))
        asyncio.run(ledger.add_transaction(_tx(account, category_id, "20", when=date(2024, 1, 1))))

        rows = asyncio.run(queries.account_statement(account.id))

        assert [tx.date for tx in rows] == [date(2024, 1, 1), date(2024, 2, 1)]

    def test_installment_series_and_bill_contents(self, stores, ledger, queries, category_id):
        card = stores.add_card(closing_day=5)
        series = asyncio.run(ledger.add_card_purchase(CardPurchaseInput(
            name="Bike",
            total_amount=Decimal("200"),
            start_date=date(2024, 1, 2),
            installments=2,
            credit_card_id=card.id,
            category_id=category_id,
        )))

        rows = asyncio.run(queries.installment_series(series.transactions[1].id))
        assert [tx.installment_number for tx in rows] == [1, 2]

        first_bill = series.transactions[0].credit_card_bill_id
        assert asyncio.run(queries.bill_total(first_bill)) == Decimal("100.00")
        assert len(asyncio.run(queries.bill_transactions(first_bill))) == 1
        assert len(asyncio.run(queries.list_bills(card.id))) == 2

        bill = asyncio.run(queries.get_bill(first_bill))
        assert bill.credit_card_id == card.id
        assert asyncio.run(queries.get_bill(uuid4())) is None

    def test_unknown_transaction_series(self, queries):
        with pytest.raises(QueryExecutionError):
            asyncio.run(queries.installment_series(uuid4()))


class TestSummaries:

    def test_total_balance_respects_include_flag(self, stores, queries):
        stores.add_account("Main", "100.00")
        savings = stores.add_account("Savings", "50.00")
        hidden = savings.model_copy(update={"include_in_total": False})
        asyncio.run(stores.accounts.save_account(hidden))

        assert asyncio.run(queries.total_balance()) == Decimal("100.00")

    def test_monthly_summary_excludes_transfers(self, stores, ledger, queries, category_id):
        source = stores.add_account("A", "1000.00")
        target = stores.add_account("B")
        asyncio.run(ledger.add_transaction(
            _tx(source, category_id, "500", Direction.INCOME, date(2024, 1, 5))
        ))
        asyncio.run(ledger.add_transaction(_tx(source, category_id, "80", when=date(2024, 1, 20))))
        asyncio.run(ledger.add_transaction(_tx(source, category_id, "30", when=date(2024, 2, 3))))
        asyncio.run(ledger.add_transfer(TransferInput(
            from_account_id=source.id,
            to_account_id=target.id,
            amount=Decimal("200"),
            date=date(2024, 1, 25),
        )))

        summary = asyncio.run(queries.monthly_summary())

        assert list(summary) == ["2024-01", "2024-02"]
        assert summary["2024-01"] == {"income": Decimal("500"), "expense": Decimal("80")}
        assert summary["2024-02"]["expense"] == Decimal("30")


class TestBalanceCheck:

    def test_consistent_account(self, stores, ledger, queries, category_id):
        account = stores.add_account("Main", "100.00")
        asyncio.run(ledger.add_transaction(_tx(account, category_id, "40")))

        check = asyncio.run(queries.check_balance(account.id, opening_balance=Decimal("100.00")))

        assert check.is_consistent
        assert check.expected_balance == Decimal("60.00")
        assert check.transaction_count == 1

    def test_opening_balance_is_not_drift(self, ledger, queries, category_id):
        savings = asyncio.run(ledger.open_account("Savings", opening_balance=Decimal("500")))
        checks = asyncio.run(queries.check_all_balances())
        assert [(c.account_name, c.is_consistent) for c in checks] == [("Savings", True)]

        asyncio.run(ledger.add_transaction(_tx(savings, category_id, "120")))

        check = asyncio.run(queries.check_balance(savings.id))
        assert check.is_consistent
        assert check.expected_balance == Decimal("380.00")

    def test_detects_drift(self, stores, queries):
        account = stores.add_account("Main", "0.00")
        asyncio.run(stores.transactions.insert(Transaction(
            name="Written without balance update",
            amount=Decimal("-25"),
            date=date(2024, 1, 1),
            account_id=account.id,
        )))

        check = asyncio.run(queries.check_balance(account.id))

        assert check.is_consistent is False
        assert check.difference == Decimal("25.00")

    def test_unknown_account(self, queries):
        with pytest.raises(QueryExecutionError):
            asyncio.run(queries.check_balance(uuid4()))
