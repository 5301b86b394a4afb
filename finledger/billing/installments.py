"""
Installment series expansion.

A card purchase split into N installments becomes N transaction rows,
one per month starting at the purchase date. Each row is charged on
the bill of its own date's billing cycle, so a 3x purchase touches
three consecutive bills. All rows of one purchase share a series id.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import uuid4

from finledger.billing.cycle import BillCycleResolver, add_months
from finledger.ledger.compensation import CompensationLog
from finledger.models.ledger import (
    CardPurchaseInput,
    CreditCard,
    CreditCardBill,
    ExpandedSeries,
    Transaction,
    TransactionStatus,
    quantize_money,
)


def installment_dates(start_date: date, installments: int) -> list[date]:
    """
    Dates of each installment, one calendar month apart.

    Always offset from the start date, never chained, so a purchase on
    Jan 31 lands on Feb 28/29 and then Mar 31.
    """
    return [add_months(start_date, i) for i in range(installments)]


def installment_amount(total_amount: Decimal, installments: int) -> Decimal:
    """Signed (negative) value of each installment, rounded to cents."""
    return -quantize_money(abs(total_amount) / installments)


class InstallmentSeriesExpander:
    """Turns a card purchase into its per-month installment rows."""

    def __init__(self, resolver: BillCycleResolver):
        self._resolver = resolver

    async def expand(
        self,
        purchase: CardPurchaseInput,
        card: CreditCard,
        compensation: Optional[CompensationLog] = None,
    ) -> ExpandedSeries:
        """
        Build the installment rows of a purchase, resolving one bill per month.

        Bills are looked up (or created) here; the rows themselves are
        returned unsaved for the caller to insert as one batch.

        Args:
            purchase: The purchase as entered
            card: Card the purchase is charged on
            compensation: Log that records bills created along the way

        Returns:
            ExpandedSeries with a fresh series id
        """
        series_id = uuid4()
        amount = installment_amount(purchase.total_amount, purchase.installments)
        transactions = []
        created_bills = []

        for number, when in enumerate(
            installment_dates(purchase.start_date, purchase.installments),
            start=1,
        ):
            resolution = await self._resolver.get_or_create_bill(card, when, compensation)
            if resolution.created:
                created_bills.append(resolution.bill)
            transactions.append(Transaction(
                name=purchase.name,
                amount=amount,
                date=when,
                status=TransactionStatus.PENDING,
                account_id=None,
                credit_card_bill_id=resolution.bill.id,
                category_id=purchase.category_id,
                series_id=series_id,
                installment_number=number,
                total_installments=purchase.installments,
                description=purchase.description,
            ))

        return ExpandedSeries(
            series_id=series_id,
            transactions=transactions,
            created_bills=created_bills,
        )

    def needs_reexpansion(
        self,
        current_series: list[Transaction],
        current_first_bill: Optional[CreditCardBill],
        purchase: CardPurchaseInput,
        card: CreditCard,
    ) -> bool:
        """
        Decide whether an edit changes the shape of a series.

        A shape change (different first bill, installment count, start
        date of a multi-installment series, or card) means the whole
        series is deleted and rebuilt. Anything else is applied in place.

        Args:
            current_series: Stored rows of the series, in installment order
            current_first_bill: Bill the first stored installment is charged on
            purchase: The edited purchase
            card: Card the edited purchase is charged on
        """
        if not current_series or current_first_bill is None:
            return True

        first = current_series[0]
        if len(current_series) != first.total_installments:
            return True
        if first.total_installments != purchase.installments:
            return True

        cycle = self._resolver.resolve(card, purchase.start_date)
        if current_first_bill.credit_card_id != card.id:
            return True
        if current_first_bill.reference_month != cycle.reference_month:
            return True

        if purchase.is_installment_purchase and first.date != purchase.start_date:
            return True
        return False
