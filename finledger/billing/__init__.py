"""
Credit card billing: cycle resolution and installment expansion.
"""

from finledger.billing.cycle import (
    BillCycleResolver,
    add_months,
    day_in_month,
    first_of_month,
    resolve_cycle,
)
from finledger.billing.installments import (
    InstallmentSeriesExpander,
    installment_amount,
    installment_dates,
)

__all__ = [
    "BillCycleResolver",
    "InstallmentSeriesExpander",
    "add_months",
    "day_in_month",
    "first_of_month",
    "installment_amount",
    "installment_dates",
    "resolve_cycle",
]
