"""
Tests for billing cycle resolution and installment expansion.
"""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from finledger.billing import (
    BillCycleResolver,
    InstallmentSeriesExpander,
    add_months,
    installment_amount,
    installment_dates,
    resolve_cycle,
)
from finledger.ledger import LedgerIntegrityError
from finledger.models.ledger import CardPurchaseInput, TransactionStatus
from finledger.services.storage import (
    DuplicateError,
    InMemoryCreditCardBillStorage,
)


class TestAddMonths:

    def test_simple(self):
        assert add_months(date(2024, 1, 10), 1) == date(2024, 2, 10)

    def test_year_rollover(self):
        assert add_months(date(2024, 11, 15), 3) == date(2025, 2, 15)

    def test_clamps_to_shorter_month(self):
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
        assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)

    def test_offsets_from_start_not_chained(self):
        assert installment_dates(date(2024, 1, 31), 3) == [
            date(2024, 1, 31),
            date(2024, 2, 29),
            date(2024, 3, 31),
        ]


class TestResolveCycle:

    def test_after_closing_day_rolls_to_next_month(self):
        cycle = resolve_cycle(date(2024, 1, 15), closing_day=10, due_day=20)
        assert cycle.reference_month == date(2024, 2, 1)
        assert cycle.closing_date == date(2024, 2, 10)
        assert cycle.due_date == date(2024, 2, 20)

    def test_before_closing_day_stays_in_month(self):
        cycle = resolve_cycle(date(2024, 1, 5), closing_day=10, due_day=20)
        assert cycle.reference_month == date(2024, 1, 1)
        assert cycle.closing_date == date(2024, 1, 10)

    def test_on_closing_day_is_current_cycle(self):
        cycle = resolve_cycle(date(2024, 1, 10), closing_day=10, due_day=20)
        assert cycle.reference_month == date(2024, 1, 1)

    def test_december_rolls_into_next_year(self):
        cycle = resolve_cycle(date(2024, 12, 20), closing_day=10, due_day=20)
        assert cycle.reference_month == date(2025, 1, 1)
        assert cycle.closing_date == date(2025, 1, 10)

    def test_due_date_stays_in_closing_month(self):
        cycle = resolve_cycle(date(2024, 3, 1), closing_day=25, due_day=5)
        assert cycle.closing_date == date(2024, 3, 25)
        assert cycle.due_date == date(2024, 3, 5)

    def test_due_date_rolls_with_closing_date(self):
        cycle = resolve_cycle(date(2024, 3, 26), closing_day=25, due_day=5)
        assert cycle.closing_date == date(2024, 4, 25)
        assert cycle.due_date == date(2024, 4, 5)

    def test_closing_day_clamped_in_february(self):
        cycle = resolve_cycle(date(2024, 2, 29), closing_day=31, due_day=10)
        assert cycle.reference_month == date(2024, 2, 1)
        assert cycle.closing_date == date(2024, 2, 29)
        assert cycle.due_date == date(2024, 2, 10)


class TestBillCycleResolver:

    def test_creates_bill_once_per_cycle(self, stores):
        card = stores.add_card(closing_day=10)
        resolver = BillCycleResolver(stores.bills)

        first = asyncio.run(resolver.get_or_create_bill(card, date(2024, 1, 15)))
        second = asyncio.run(resolver.get_or_create_bill(card, date(2024, 2, 3)))

        assert first.created is True
        assert second.created is False
        assert first.bill.id == second.bill.id
        assert first.bill.reference_month == date(2024, 2, 1)
        assert first.bill.total_amount == Decimal("0")

    def test_different_cycles_get_different_bills(self, stores):
        card = stores.add_card(closing_day=10)
        resolver = BillCycleResolver(stores.bills)

        jan = asyncio.run(resolver.get_or_create_bill(card, date(2024, 1, 5)))
        feb = asyncio.run(resolver.get_or_create_bill(card, date(2024, 1, 15)))

        assert jan.bill.id != feb.bill.id
        assert len(asyncio.run(stores.bills.list_bills(card.id))) == 2

    def test_lost_insert_race_returns_existing_bill(self, stores, audit_logger):
        card = stores.add_card(closing_day=10)

        class RacingBillStorage(InMemoryCreditCardBillStorage):
            """Misses on the first lookup, as if another writer got in between."""

            def __init__(self):
                super().__init__()
                self.misses = 1

            async def find(self, card_id, reference_month):
                if self.misses:
                    self.misses -= 1
                    return None
                return await super().find(card_id, reference_month)

        bills = RacingBillStorage()
        winner = asyncio.run(BillCycleResolver(bills).get_or_create_bill(card, date(2024, 1, 5)))
        bills.misses = 1

        resolution = asyncio.run(
            BillCycleResolver(bills, audit_logger).get_or_create_bill(card, date(2024, 1, 7))
        )

        assert resolution.created is False
        assert resolution.bill.id == winner.bill.id
        assert len(asyncio.run(bills.list_bills(card.id))) == 1
        assert "bill_race_resolved" in stores.event_types()

    def test_duplicate_without_readable_bill_is_integrity_error(self, stores):
        card = stores.add_card(closing_day=10)

        class BrokenBillStorage(InMemoryCreditCardBillStorage):
            async def find(self, card_id, reference_month):
                return None

            async def insert(self, bill):
                raise DuplicateError("duplicate")

        with pytest.raises(LedgerIntegrityError):
            asyncio.run(
                BillCycleResolver(BrokenBillStorage()).get_or_create_bill(card, date(2024, 1, 5))
            )


class TestInstallmentExpansion:

    def test_installment_amount_is_equal_expense(self):
        assert installment_amount(Decimal("300"), 3) == Decimal("-100.00")
        assert installment_amount(Decimal("-300"), 3) == Decimal("-100.00")
        assert installment_amount(Decimal("100"), 3) == Decimal("-33.33")

    def test_three_installments_map_to_consecutive_bills(self, stores, category_id):
        card = stores.add_card(closing_day=5)
        expander = InstallmentSeriesExpander(BillCycleResolver(stores.bills))

        series = asyncio.run(expander.expand(
            CardPurchaseInput(
                name="TV",
                total_amount=Decimal("300"),
                start_date=date(2024, 1, 10),
                installments=3,
                credit_card_id=card.id,
                category_id=category_id,
            ),
            card,
        ))

        rows = series.transactions
        assert [tx.date for tx in rows] == [
            date(2024, 1, 10),
            date(2024, 2, 10),
            date(2024, 3, 10),
        ]
        assert all(tx.amount == Decimal("-100.00") for tx in rows)
        assert [tx.installment_number for tx in rows] == [1, 2, 3]
        assert all(tx.total_installments == 3 for tx in rows)
        assert all(tx.status == TransactionStatus.PENDING for tx in rows)
        assert all(tx.account_id is None for tx in rows)
        assert all(tx.series_id == series.series_id for tx in rows)

        months = [
            asyncio.run(stores.bills.get(bill_id)).reference_month
            for bill_id in series.bill_ids
        ]
        assert months == [date(2024, 2, 1), date(2024, 3, 1), date(2024, 4, 1)]
        assert len(series.created_bills) == 3

    def test_single_installment_degenerates_to_one_row(self, stores, category_id):
        card = stores.add_card(closing_day=5)
        expander = InstallmentSeriesExpander(BillCycleResolver(stores.bills))

        series = asyncio.run(expander.expand(
            CardPurchaseInput(
                name="Book",
                total_amount=Decimal("42.50"),
                start_date=date(2024, 1, 3),
                credit_card_id=card.id,
                category_id=category_id,
            ),
            card,
        ))

        assert len(series.transactions) == 1
        tx = series.transactions[0]
        assert tx.amount == Decimal("-42.50")
        assert tx.installment_number == tx.total_installments == 1


class TestNeedsReexpansion:

    def _expand(self, stores, card, purchase):
        expander = InstallmentSeriesExpander(BillCycleResolver(stores.bills))
        series = asyncio.run(expander.expand(purchase, card))
        first_bill = asyncio.run(stores.bills.get(series.transactions[0].credit_card_bill_id))
        return expander, series.transactions, first_bill

    def _purchase(self, card, **overrides):
        data = dict(
            name="Sofa",
            total_amount=Decimal("600"),
            start_date=date(2024, 1, 3),
            installments=3,
            credit_card_id=card.id,
        )
        data.update(overrides)
        return CardPurchaseInput(**data)

    def test_same_shape_is_updated_in_place(self, stores):
        card = stores.add_card(closing_day=5)
        expander, rows, first_bill = self._expand(stores, card, self._purchase(card))

        edited = self._purchase(card, name="Couch", total_amount=Decimal("900"))
        assert expander.needs_reexpansion(rows, first_bill, edited, card) is False

    def test_count_change_reexpands(self, stores):
        card = stores.add_card(closing_day=5)
        expander, rows, first_bill = self._expand(stores, card, self._purchase(card))

        edited = self._purchase(card, installments=4)
        assert expander.needs_reexpansion(rows, first_bill, edited, card) is True

    def test_cycle_change_reexpands(self, stores):
        card = stores.add_card(closing_day=5)
        expander, rows, first_bill = self._expand(stores, card, self._purchase(card))

        edited = self._purchase(card, start_date=date(2024, 1, 20))
        assert expander.needs_reexpansion(rows, first_bill, edited, card) is True

    def test_start_date_change_in_same_cycle_reexpands_series(self, stores):
        card = stores.add_card(closing_day=5)
        expander, rows, first_bill = self._expand(stores, card, self._purchase(card))

        edited = self._purchase(card, start_date=date(2024, 1, 4))
        assert expander.needs_reexpansion(rows, first_bill, edited, card) is True

    def test_single_purchase_date_change_in_same_cycle_is_in_place(self, stores):
        card = stores.add_card(closing_day=5)
        purchase = self._purchase(card, installments=1)
        expander, rows, first_bill = self._expand(stores, card, purchase)

        edited = self._purchase(card, installments=1, start_date=date(2024, 1, 4))
        assert expander.needs_reexpansion(rows, first_bill, edited, card) is False
