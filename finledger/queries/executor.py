"""
Ledger Query Execution

Read-only views over stored ledger data: account statements, bill
contents, installment series, monthly summaries and balance checks.

Nothing here writes. The balance check recomputes an account's balance
from its transactions so drift left behind by a failed, uncompensated
write can be found and repaired by hand.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from finledger.models.ledger import (
    Account,
    BalanceCheck,
    CreditCard,
    CreditCardBill,
    Transaction,
    TransactionFilter,
    ZERO,
)
from finledger.services.storage import (
    AccountStorageInterface,
    CreditCardBillStorageInterface,
    CreditCardStorageInterface,
    TransactionStorageInterface,
)


class QueryExecutionError(Exception):
    """Error during query execution."""
    pass


class LedgerQueryExecutor:
    """
    Answers read questions about the ledger.

    GUARANTEES:
    - Only returns real data from storage
    - Never writes, never repairs
    """

    def __init__(
        self,
        account_storage: AccountStorageInterface,
        transaction_storage: TransactionStorageInterface,
        card_storage: CreditCardStorageInterface,
        bill_storage: CreditCardBillStorageInterface,
    ):
        self._accounts = account_storage
        self._transactions = transaction_storage
        self._cards = card_storage
        self._bills = bill_storage

    async def list_accounts(self) -> list[Account]:
        return await self._accounts.list_accounts()

    async def list_cards(self, active_only: bool = True) -> list[CreditCard]:
        cards = await self._cards.list_cards()
        if active_only:
            cards = [card for card in cards if card.is_active]
        return cards

    async def list_bills(self, card_id: UUID) -> list[CreditCardBill]:
        return await self._bills.list_bills(card_id)

    async def get_bill(self, bill_id: UUID) -> Optional[CreditCardBill]:
        return await self._bills.get(bill_id)

    async def recent_transactions(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: int = 100,
    ) -> list[Transaction]:
        return await self._transactions.list_transactions(
            date_from=date_from,
            date_to=date_to,
            limit=limit,
        )

    async def account_statement(self, account_id: UUID) -> list[Transaction]:
        """Every transaction booked on an account, oldest first."""
        return await self._transactions.query(TransactionFilter(account_id=account_id))

    async def bill_transactions(self, bill_id: UUID) -> list[Transaction]:
        """Every installment charged on a bill."""
        return await self._transactions.query(
            TransactionFilter(credit_card_bill_id=bill_id)
        )

    async def bill_total(self, bill_id: UUID) -> Decimal:
        """Sum of the installments charged on a bill, as a positive amount owed."""
        rows = await self.bill_transactions(bill_id)
        return -sum((tx.amount for tx in rows), ZERO)

    async def installment_series(self, transaction_id: UUID) -> list[Transaction]:
        """
        All installments of the purchase a transaction belongs to.

        Raises:
            QueryExecutionError: If the transaction doesn't exist
        """
        tx = await self._transactions.get(transaction_id)
        if tx is None:
            raise QueryExecutionError(f"Transaction not found: {transaction_id}")
        if tx.series_id is None:
            return [tx]
        series = await self._transactions.query(TransactionFilter(series_id=tx.series_id))
        return sorted(series, key=lambda row: row.installment_number)

    async def total_balance(self) -> Decimal:
        """Sum of balances of the accounts included in the total."""
        accounts = await self._accounts.list_accounts()
        return sum((a.balance for a in accounts if a.include_in_total), ZERO)

    async def monthly_summary(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        account_id: Optional[UUID] = None,
    ) -> dict[str, dict[str, Decimal]]:
        """
        Income and expense totals per month (YYYY-MM).

        Transfers are excluded: they move money between accounts without
        changing what the user earned or spent.
        """
        if account_id is not None:
            rows = await self.account_statement(account_id)
            rows = [
                tx for tx in rows
                if (date_from is None or tx.date >= date_from)
                and (date_to is None or tx.date <= date_to)
            ]
        else:
            rows = await self._transactions.list_transactions(
                date_from=date_from,
                date_to=date_to,
                limit=100_000,
            )

        groups: dict[str, dict[str, Decimal]] = defaultdict(
            lambda: {"income": ZERO, "expense": ZERO}
        )
        for tx in rows:
            if tx.transfer_id is not None:
                continue
            key = tx.date.strftime("%Y-%m")
            if tx.amount < 0:
                groups[key]["expense"] += -tx.amount
            else:
                groups[key]["income"] += tx.amount

        return {key: groups[key] for key in sorted(groups)}

    async def check_balance(
        self,
        account_id: UUID,
        opening_balance: Optional[Decimal] = None,
    ) -> BalanceCheck:
        """
        Compare an account's stored balance with the sum of its completed rows.

        The expected balance starts from the account's recorded opening
        balance unless one is passed explicitly.

        Raises:
            QueryExecutionError: If the account doesn't exist
        """
        account = await self._accounts.get_account(account_id)
        if account is None:
            raise QueryExecutionError(f"Account not found: {account_id}")

        if opening_balance is None:
            opening_balance = account.opening_balance
        rows = await self.account_statement(account_id)
        expected = opening_balance + sum((tx.balance_impact for tx in rows), ZERO)

        return BalanceCheck(
            account_id=account.id,
            account_name=account.name,
            stored_balance=account.balance,
            expected_balance=expected,
            transaction_count=len(rows),
        )

    async def check_all_balances(self) -> list[BalanceCheck]:
        """Balance check of every account, from its recorded opening balance."""
        accounts = await self._accounts.list_accounts()
        return [await self.check_balance(account.id) for account in accounts]
