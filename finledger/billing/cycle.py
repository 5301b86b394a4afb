"""
Billing cycle resolution for credit cards.

A card closes on `closing_day` and is due on `due_day`. A purchase made
on or before the closing day belongs to this month's bill; a purchase
made after it rolls over to next month's bill. The bill is identified
by its reference month (first day of the closing date's month).

Day-of-month values are clamped to the length of the target month, so a
card closing on the 31st closes on Feb 28/29 in February.
"""

import calendar
from datetime import date
from typing import Optional

from finledger.audit import AuditLogger
from finledger.ledger.compensation import CompensationLog
from finledger.ledger.exceptions import LedgerIntegrityError
from finledger.models.ledger import (
    BillCycle,
    BillResolution,
    CreditCard,
    CreditCardBill,
)
from finledger.services.storage import CreditCardBillStorageInterface, DuplicateError


def first_of_month(d: date) -> date:
    return d.replace(day=1)


def day_in_month(year: int, month: int, day: int) -> date:
    """Build a date, clamping `day` to the month's last day."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last_day))


def add_months(d: date, months: int) -> date:
    """Add calendar months to a date, clamping day to month end."""
    month = d.month - 1 + months
    year = d.year + month // 12
    month = month % 12 + 1
    return day_in_month(year, month, d.day)


def resolve_cycle(purchase_date: date, closing_day: int, due_day: int) -> BillCycle:
    """
    Map a purchase date to the billing cycle it is charged on.

    The closing day itself belongs to the current cycle. The due date is
    taken in the same month as the closing date and rolls with it.
    """
    target = first_of_month(purchase_date)
    if purchase_date.day > closing_day:
        target = add_months(target, 1)

    closing_date = day_in_month(target.year, target.month, closing_day)
    due_date = day_in_month(target.year, target.month, due_day)

    return BillCycle(
        reference_month=first_of_month(closing_date),
        closing_date=closing_date,
        due_date=due_date,
    )


class BillCycleResolver:
    """
    Finds or opens the bill a purchase is charged on.

    Bills are created lazily, on the first purchase mapped to a cycle,
    and looked up by (card, reference month) on every later purchase.
    """

    def __init__(
        self,
        bill_storage: CreditCardBillStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._bills = bill_storage
        self._audit_logger = audit_logger

    def resolve(self, card: CreditCard, purchase_date: date) -> BillCycle:
        return resolve_cycle(purchase_date, card.closing_day, card.due_day)

    async def get_or_create_bill(
        self,
        card: CreditCard,
        purchase_date: date,
        compensation: Optional[CompensationLog] = None,
    ) -> BillResolution:
        """
        Return the card's bill for the cycle of `purchase_date`, creating it if absent.

        Losing an insert race to a concurrent caller is not an error: the
        store's uniqueness violation is answered by re-fetching the
        winner's bill.

        Raises:
            LedgerIntegrityError: If the store reports a duplicate but the
                                  bill cannot be read back
        """
        compensation = compensation or CompensationLog(audit_logger=self._audit_logger)
        cycle = self.resolve(card, purchase_date)
        month_key = cycle.reference_month.isoformat()

        compensation.current_step = f"find bill {month_key}"
        existing = await self._bills.find(card.id, cycle.reference_month)
        if existing is not None:
            return BillResolution(bill=existing, created=False)

        bill = CreditCardBill(
            credit_card_id=card.id,
            reference_month=cycle.reference_month,
            closing_date=cycle.closing_date,
            due_date=cycle.due_date,
        )
        try:
            created = await compensation.run(
                f"create bill {month_key}",
                self._bills.insert(bill),
                undo=lambda b: self._bills.delete(b.id),
            )
        except DuplicateError:
            winner = await self._bills.find(card.id, cycle.reference_month)
            if winner is None:
                message = (
                    f"Bill for card {card.id} and month {month_key} "
                    "reported as duplicate but not found"
                )
                if self._audit_logger:
                    await self._audit_logger.log_integrity_error(
                        entity_type="bill",
                        entity_id=None,
                        error_message=message,
                        correlation_id=compensation.correlation_id,
                    )
                raise LedgerIntegrityError(message)
            if self._audit_logger:
                await self._audit_logger.log_bill_race_resolved(
                    bill_id=winner.id,
                    credit_card_id=card.id,
                    reference_month=month_key,
                    correlation_id=compensation.correlation_id,
                )
            return BillResolution(bill=winner, created=False)

        if self._audit_logger:
            await self._audit_logger.log_bill_created(
                bill_id=created.id,
                credit_card_id=card.id,
                reference_month=month_key,
                correlation_id=compensation.correlation_id,
            )
        return BillResolution(bill=created, created=True)
