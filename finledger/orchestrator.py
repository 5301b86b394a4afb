"""
Transaction Ledger Orchestrator

This module ties the ledger components together and defines the
end-to-end flows behind every form in the UI:
1. Plain income/expense (validate → insert → move balance)
2. Card purchase (validate → resolve bill per installment → bulk insert)
3. Transfer (validate → insert both legs → move both balances)
plus the matching edit and delete flows.

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing is written until the intent passes validation
- An edit never changes what kind of transaction a row is
- Every multi-step write runs under a CompensationLog, so a failure
  partway through undoes what was already written
- Every step is audited under one correlation id

No UI code computes a balance delta, a closing date or an installment
date itself; it only calls this module.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog

from finledger.audit import AuditLogger, create_correlation_id
from finledger.billing import (
    BillCycleResolver,
    InstallmentSeriesExpander,
    installment_amount,
)
from finledger.ledger import (
    BalanceReconciler,
    CompensationLog,
    LedgerValidationError,
    TransferCoordinator,
)
from finledger.models.audit import AuditEventType
from finledger.models.ledger import (
    ZERO,
    Account,
    CardPurchaseInput,
    CreditCard,
    ExpandedSeries,
    Transaction,
    TransactionFilter,
    TransactionInput,
    TransactionKind,
    TransferInput,
    TransferPair,
    ValidationIssue,
    ValidationResult,
)
from finledger.queries import LedgerQueryExecutor
from finledger.services.storage import (
    AccountStorageInterface,
    CreditCardBillStorageInterface,
    CreditCardStorageInterface,
    GoogleSheetsAccountStorage,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsCreditCardBillStorage,
    GoogleSheetsCreditCardStorage,
    GoogleSheetsTransactionStorage,
    InMemoryAccountStorage,
    InMemoryCreditCardBillStorage,
    InMemoryCreditCardStorage,
    InMemoryTransactionStorage,
    TransactionStorageInterface,
)
from finledger.validation import LedgerValidator

logger = structlog.get_logger(__name__)

# Fields a plain transaction edit may change
PLAIN_EDIT_FIELDS = (
    "name",
    "amount",
    "date",
    "status",
    "account_id",
    "category_id",
    "description",
)


class TransactionLedger:
    """
    Single entry point for creating, editing and deleting transactions.

    Dispatch by kind:
    - plain → BalanceReconciler
    - card purchase → BillCycleResolver / InstallmentSeriesExpander
    - transfer → TransferCoordinator

    Every public method accepts an optional correlation id; one is
    created when omitted.
    """

    def __init__(
        self,
        account_storage: AccountStorageInterface,
        transaction_storage: TransactionStorageInterface,
        card_storage: CreditCardStorageInterface,
        bill_storage: CreditCardBillStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[LedgerValidator] = None,
        reconciler: Optional[BalanceReconciler] = None,
    ):
        self._accounts = account_storage
        self._transactions = transaction_storage
        self._cards = card_storage
        self._bills = bill_storage
        self._audit_logger = audit_logger
        self._validator = validator or LedgerValidator()

        self._reconciler = reconciler or BalanceReconciler(account_storage, audit_logger)
        self._resolver = BillCycleResolver(bill_storage, audit_logger)
        self._expander = InstallmentSeriesExpander(self._resolver)
        self._transfers = TransferCoordinator(
            transaction_storage, self._reconciler, audit_logger
        )

    # =========================================================================
    # Validation helpers
    # =========================================================================

    async def _reject_if_invalid(
        self,
        result: ValidationResult,
        correlation_id: UUID,
    ) -> None:
        if result.is_valid:
            return
        if self._audit_logger:
            issues = [
                {"field": i.field, "type": i.issue_type, "message": i.message}
                for i in result.issues
            ]
            await self._audit_logger.log_validation_failed(
                operation=result.operation,
                issues=issues,
                correlation_id=correlation_id,
            )
        raise LedgerValidationError(result.issues, result.operation)

    async def _fail(
        self,
        operation: str,
        field: str,
        issue_type: str,
        message: str,
        correlation_id: UUID,
    ) -> None:
        await self._reject_if_invalid(
            ValidationResult(
                operation=operation,
                issues=[ValidationIssue(
                    field=field,
                    issue_type=issue_type,
                    message=message,
                    severity="error",
                )],
            ),
            correlation_id,
        )

    async def _load(
        self,
        transaction_id: UUID,
        kind: TransactionKind,
        operation: str,
        correlation_id: UUID,
    ) -> Transaction:
        """Load a stored row and check it is the kind the caller expects."""
        tx = await self._transactions.get(transaction_id)
        if tx is None:
            await self._fail(
                operation, "transaction_id", "not_found",
                f"Transaction not found: {transaction_id}", correlation_id,
            )
        if tx.kind != kind:
            await self._fail(
                operation, "kind", "kind_mismatch",
                f"Transaction {transaction_id} is a {tx.kind.value} and "
                f"cannot be edited as a {kind.value}",
                correlation_id,
            )
        return tx

    async def _load_card(
        self,
        card_id: UUID,
        operation: str,
        correlation_id: UUID,
    ) -> CreditCard:
        card = await self._cards.get_card(card_id)
        if card is None:
            await self._fail(
                operation, "credit_card_id", "not_found",
                f"Credit card not found: {card_id}", correlation_id,
            )
        return card

    @staticmethod
    def _series_filter(tx: Transaction) -> TransactionFilter:
        if tx.series_id is not None:
            return TransactionFilter(series_id=tx.series_id)
        return TransactionFilter(ids=[tx.id])

    async def _series_of(self, tx: Transaction) -> list[Transaction]:
        rows = await self._transactions.query(self._series_filter(tx))
        return sorted(rows, key=lambda row: row.installment_number)

    # =========================================================================
    # Setup
    # =========================================================================

    async def open_account(
        self,
        name: str,
        opening_balance: Decimal = ZERO,
        include_in_total: bool = True,
        is_default: bool = False,
    ) -> Account:
        """
        Create an account with its opening balance.

        At most one account is the default: opening a new default account
        clears the flag on the previous one.
        """
        account = await self._accounts.save_account(Account(
            name=name,
            balance=opening_balance,
            opening_balance=opening_balance,
            include_in_total=include_in_total,
        ))
        if is_default:
            await self._accounts.set_default_account(account.id)
            account = account.model_copy(update={"is_default": True})

        logger.info(
            "account_opened",
            account_id=str(account.id),
            name=account.name,
            is_default=account.is_default,
        )
        return account

    async def set_default_account(self, account_id: UUID) -> None:
        """Make an existing account the only default one."""
        await self._accounts.set_default_account(account_id)
        logger.info("default_account_changed", account_id=str(account_id))

    async def register_card(self, card: CreditCard) -> CreditCard:
        """Store a credit card's billing configuration."""
        saved = await self._cards.save_card(card)
        logger.info(
            "card_registered",
            card_id=str(saved.id),
            closing_day=saved.closing_day,
            due_day=saved.due_day,
        )
        return saved

    # =========================================================================
    # Plain transactions
    # =========================================================================

    async def add_transaction(
        self,
        data: TransactionInput,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Record a plain income or expense on an account.

        A completed transaction moves the account balance by its signed
        amount; a pending one is stored without touching the balance.
        """
        correlation_id = correlation_id or create_correlation_id()
        await self._reject_if_invalid(
            self._validator.validate_transaction(data), correlation_id
        )
        data = self._validator.apply_date_policy(data)

        tx = Transaction(
            name=data.name,
            amount=data.signed_amount,
            date=data.date,
            status=data.status,
            account_id=data.account_id,
            category_id=data.category_id,
            description=data.description,
        )

        log = CompensationLog(correlation_id, self._audit_logger)
        async with log.guard("add transaction"):
            await log.run(
                "insert transaction",
                self._transactions.insert(tx),
                undo=lambda _rows: self._transactions.delete(TransactionFilter(ids=[tx.id])),
            )
            await self._reconciler.apply_create(tx, log)

        if self._audit_logger:
            await self._audit_logger.log_transaction_created(
                transaction_id=tx.id,
                name=tx.name,
                amount=tx.amount,
                correlation_id=correlation_id,
            )
        return tx

    async def edit_transaction(
        self,
        transaction_id: UUID,
        data: TransactionInput,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Edit a plain transaction.

        The balance moves by the difference between the old and new
        impact: a status flip, an amount change and a move to another
        account are all handled by the same delta computation.

        Raises:
            LedgerValidationError: If the row is not a plain transaction,
                                   or the new values are invalid
        """
        correlation_id = correlation_id or create_correlation_id()
        old = await self._load(
            transaction_id, TransactionKind.PLAIN, "edit transaction", correlation_id
        )
        await self._reject_if_invalid(
            self._validator.validate_transaction(data), correlation_id
        )
        data = self._validator.apply_date_policy(data)

        new = Transaction.model_validate({
            **old.model_dump(),
            "name": data.name,
            "amount": data.signed_amount,
            "date": data.date,
            "status": data.status,
            "account_id": data.account_id,
            "category_id": data.category_id,
            "description": data.description,
        })
        fields = {key: getattr(new, key) for key in PLAIN_EDIT_FIELDS}
        restore = {key: getattr(old, key) for key in PLAIN_EDIT_FIELDS}
        deltas = self._reconciler.deltas_for_edit(old, new)

        log = CompensationLog(correlation_id, self._audit_logger)
        async with log.guard("edit transaction"):
            updated = await log.run(
                "update transaction",
                self._transactions.update(old.id, fields),
                undo=lambda _row: self._transactions.update(old.id, restore),
            )
            await self._reconciler.apply(deltas, log)

        if self._audit_logger:
            changes = {
                key: value for key, value in fields.items()
                if restore[key] != value
            }
            await self._audit_logger.log_transaction_updated(
                transaction_id=old.id,
                changes=changes,
                correlation_id=correlation_id,
            )
        return updated

    # =========================================================================
    # Card purchases
    # =========================================================================

    async def add_card_purchase(
        self,
        data: CardPurchaseInput,
        correlation_id: Optional[UUID] = None,
    ) -> ExpandedSeries:
        """
        Record a card purchase, expanded into one row per installment.

        Card purchases never touch an account balance; they are settled
        when the bill is paid.
        """
        correlation_id = correlation_id or create_correlation_id()
        await self._reject_if_invalid(
            self._validator.validate_card_purchase(data), correlation_id
        )
        card = await self._load_card(data.credit_card_id, "card purchase", correlation_id)

        log = CompensationLog(correlation_id, self._audit_logger)
        async with log.guard("add card purchase"):
            series = await self._expander.expand(data, card, log)
            await log.run(
                "insert installments",
                self._transactions.insert(series.transactions),
                undo=lambda _rows: self._transactions.delete(
                    TransactionFilter(series_id=series.series_id)
                ),
            )

        if self._audit_logger:
            await self._audit_logger.log_card_purchase(
                event_type=AuditEventType.CARD_PURCHASE_CREATED,
                series_id=series.series_id,
                name=data.name,
                installments=data.installments,
                correlation_id=correlation_id,
            )
        return series

    async def edit_card_purchase(
        self,
        transaction_id: UUID,
        data: CardPurchaseInput,
        correlation_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        """
        Edit a card purchase given any one of its installments.

        If the edit changes the shape of the series (first bill, card,
        installment count, or start date of a multi-installment purchase),
        every installment of the series is deleted and the purchase is
        expanded again under a new series id. Otherwise name, amount,
        category and description are updated in place on every row (and
        the date, for a single-installment purchase).

        Returns:
            The installments of the purchase after the edit
        """
        correlation_id = correlation_id or create_correlation_id()
        old = await self._load(
            transaction_id, TransactionKind.CARD_PURCHASE, "edit card purchase", correlation_id
        )
        await self._reject_if_invalid(
            self._validator.validate_card_purchase(data), correlation_id
        )
        card = await self._load_card(data.credit_card_id, "edit card purchase", correlation_id)

        series = await self._series_of(old)
        first_bill = await self._bills.get(series[0].credit_card_bill_id)

        log = CompensationLog(correlation_id, self._audit_logger)

        if self._expander.needs_reexpansion(series, first_bill, data, card):
            async with log.guard("re-expand card purchase"):
                new_series = await self._expander.expand(data, card, log)
                await log.run(
                    "delete installments",
                    self._transactions.delete(self._series_filter(old)),
                    undo=lambda _count: self._transactions.insert(series),
                )
                await log.run(
                    "insert installments",
                    self._transactions.insert(new_series.transactions),
                    undo=lambda _rows: self._transactions.delete(
                        TransactionFilter(series_id=new_series.series_id)
                    ),
                )

            if self._audit_logger:
                await self._audit_logger.log_card_purchase(
                    event_type=AuditEventType.SERIES_REEXPANDED,
                    series_id=new_series.series_id,
                    name=data.name,
                    installments=data.installments,
                    correlation_id=correlation_id,
                )
            return new_series.transactions

        fields = {
            "name": data.name,
            "amount": installment_amount(data.total_amount, data.installments),
            "category_id": data.category_id,
            "description": data.description,
        }
        if not data.is_installment_purchase:
            fields["date"] = data.start_date

        updated = []
        async with log.guard("edit card purchase"):
            for row in series:
                restore = {key: getattr(row, key) for key in fields}
                updated.append(await log.run(
                    f"update installment {row.installment_number}",
                    self._transactions.update(row.id, fields),
                    undo=lambda _row, row_id=row.id, restore=restore: (
                        self._transactions.update(row_id, restore)
                    ),
                ))

        if self._audit_logger:
            await self._audit_logger.log_card_purchase(
                event_type=AuditEventType.CARD_PURCHASE_UPDATED,
                series_id=old.series_id or old.id,
                name=data.name,
                installments=data.installments,
                correlation_id=correlation_id,
            )
        return updated

    # =========================================================================
    # Transfers
    # =========================================================================

    async def add_transfer(
        self,
        data: TransferInput,
        correlation_id: Optional[UUID] = None,
    ) -> TransferPair:
        """Move funds between two accounts as a debit/credit pair."""
        correlation_id = correlation_id or create_correlation_id()
        await self._reject_if_invalid(
            self._validator.validate_transfer(data), correlation_id
        )

        log = CompensationLog(correlation_id, self._audit_logger)
        async with log.guard("add transfer"):
            return await self._transfers.create_transfer(data, log)

    async def edit_transfer(
        self,
        transaction_id: UUID,
        data: TransferInput,
        correlation_id: Optional[UUID] = None,
    ) -> TransferPair:
        """
        Edit a transfer given either of its legs.

        The old pair is cancelled (balances reversed, legs deleted) and a
        new pair is created, under one compensation log.
        """
        correlation_id = correlation_id or create_correlation_id()
        old = await self._load(
            transaction_id, TransactionKind.TRANSFER, "edit transfer", correlation_id
        )
        await self._reject_if_invalid(
            self._validator.validate_transfer(data), correlation_id
        )

        log = CompensationLog(correlation_id, self._audit_logger)
        async with log.guard("edit transfer"):
            await self._transfers.cancel_transfer(old.transfer_id, log)
            return await self._transfers.create_transfer(data, log)

    async def get_transfer(
        self,
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> TransferPair:
        """Load both legs of the transfer a transaction belongs to."""
        correlation_id = correlation_id or create_correlation_id()
        tx = await self._load(
            transaction_id, TransactionKind.TRANSFER, "view transfer", correlation_id
        )
        return await self._transfers.resolve_transfer(tx.transfer_id)

    # =========================================================================
    # Delete
    # =========================================================================

    async def delete_transaction(
        self,
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> int:
        """
        Delete a transaction of any kind.

        - plain: the balance effect is reversed first, then the row deleted
        - card purchase: every installment of the series is deleted
        - transfer: both legs are reversed and deleted

        Returns:
            Number of rows deleted
        """
        correlation_id = correlation_id or create_correlation_id()
        tx = await self._transactions.get(transaction_id)
        if tx is None:
            await self._fail(
                "delete transaction", "transaction_id", "not_found",
                f"Transaction not found: {transaction_id}", correlation_id,
            )

        log = CompensationLog(correlation_id, self._audit_logger)

        if tx.kind == TransactionKind.TRANSFER:
            async with log.guard("delete transfer"):
                pair = await self._transfers.cancel_transfer(tx.transfer_id, log)
            return len(pair.legs)

        if tx.kind == TransactionKind.CARD_PURCHASE:
            series = await self._series_of(tx)
            async with log.guard("delete card purchase"):
                count = await log.run(
                    "delete installments",
                    self._transactions.delete(self._series_filter(tx)),
                    undo=lambda _count: self._transactions.insert(series),
                )
            if self._audit_logger:
                await self._audit_logger.log_card_purchase(
                    event_type=AuditEventType.CARD_PURCHASE_DELETED,
                    series_id=tx.series_id or tx.id,
                    name=tx.name,
                    installments=tx.total_installments,
                    correlation_id=correlation_id,
                )
            return count

        async with log.guard("delete transaction"):
            await self._reconciler.apply_delete(tx, log)
            count = await log.run(
                "delete transaction",
                self._transactions.delete(TransactionFilter(ids=[tx.id])),
                undo=lambda _count: self._transactions.insert(tx),
            )

        if self._audit_logger:
            await self._audit_logger.log_transaction_deleted(
                transaction_id=tx.id,
                amount=tx.amount,
                correlation_id=correlation_id,
            )
        return count


def create_app_components(
    use_storage: bool = True,
) -> tuple[TransactionLedger, LedgerQueryExecutor, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    When False, or when Sheets is not configured, the
                    ledger runs on in-memory storage.

    Returns:
        (ledger, query_executor, sheets_client)
    """
    sheets_client = None
    audit_logger = None

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            account_storage = GoogleSheetsAccountStorage(sheets_client)
            transaction_storage = GoogleSheetsTransactionStorage(sheets_client)
            card_storage = GoogleSheetsCreditCardStorage(sheets_client)
            bill_storage = GoogleSheetsCreditCardBillStorage(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None

    if sheets_client is None:
        account_storage = InMemoryAccountStorage()
        transaction_storage = InMemoryTransactionStorage()
        card_storage = InMemoryCreditCardStorage()
        bill_storage = InMemoryCreditCardBillStorage()
        audit_logger = AuditLogger()  # Local-only logging

    ledger = TransactionLedger(
        account_storage=account_storage,
        transaction_storage=transaction_storage,
        card_storage=card_storage,
        bill_storage=bill_storage,
        audit_logger=audit_logger,
    )
    query_executor = LedgerQueryExecutor(
        account_storage=account_storage,
        transaction_storage=transaction_storage,
        card_storage=card_storage,
        bill_storage=bill_storage,
    )

    return ledger, query_executor, sheets_client
