"""
Transfer Coordinator

A transfer is stored as two rows sharing a transfer id: a debit on the
source account and a credit of the same magnitude on the destination.
The pair is created, edited and deleted as a unit; the two legs always
sum to zero.
"""

from typing import Optional
from uuid import UUID, uuid4

from finledger.audit import AuditLogger
from finledger.ledger.balance import BalanceReconciler
from finledger.ledger.compensation import CompensationLog
from finledger.ledger.exceptions import LedgerIntegrityError
from finledger.models.audit import AuditEventType
from finledger.models.ledger import (
    Transaction,
    TransactionFilter,
    TransactionStatus,
    TransferInput,
    TransferPair,
    ZERO,
)
from finledger.services.storage import TransactionStorageInterface


class TransferCoordinator:
    """Creates, resolves and cancels two-legged transfers."""

    def __init__(
        self,
        transaction_storage: TransactionStorageInterface,
        reconciler: BalanceReconciler,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._transactions = transaction_storage
        self._reconciler = reconciler
        self._audit_logger = audit_logger

    @staticmethod
    def build_pair(transfer: TransferInput) -> TransferPair:
        """
        Build both legs of a transfer without saving them.

        Both legs are completed and dated the same day. The category, when
        given, is set on the credit leg only.
        """
        transfer_id = uuid4()
        magnitude = abs(transfer.amount)

        debit = Transaction(
            name=transfer.name,
            amount=-magnitude,
            date=transfer.date,
            status=TransactionStatus.COMPLETED,
            account_id=transfer.from_account_id,
            transfer_id=transfer_id,
            description=transfer.description,
        )
        credit = Transaction(
            name=transfer.name,
            amount=magnitude,
            date=transfer.date,
            status=TransactionStatus.COMPLETED,
            account_id=transfer.to_account_id,
            category_id=transfer.category_id,
            transfer_id=transfer_id,
            description=transfer.description,
        )
        return TransferPair(debit=debit, credit=credit)

    async def create_transfer(
        self,
        transfer: TransferInput,
        compensation: Optional[CompensationLog] = None,
    ) -> TransferPair:
        """Insert both legs and move both balances."""
        compensation = compensation or CompensationLog(audit_logger=self._audit_logger)
        pair = self.build_pair(transfer)

        await compensation.run(
            "insert transfer legs",
            self._transactions.insert(pair.legs),
            undo=lambda _rows: self._transactions.delete(
                TransactionFilter(transfer_id=pair.transfer_id)
            ),
        )
        for leg in pair.legs:
            await self._reconciler.apply_create(leg, compensation)

        if self._audit_logger:
            await self._audit_logger.log_transfer(
                event_type=AuditEventType.TRANSFER_CREATED,
                transfer_id=pair.transfer_id,
                amount=pair.amount,
                correlation_id=compensation.correlation_id,
            )
        return pair

    async def resolve_transfer(self, transfer_id: UUID) -> TransferPair:
        """
        Load both legs of a transfer.

        Raises:
            LedgerIntegrityError: If the transfer does not have exactly two
                                  legs summing to zero
        """
        legs = await self._transactions.query(TransactionFilter(transfer_id=transfer_id))

        if len(legs) != 2:
            await self._integrity_error(
                transfer_id,
                f"Transfer {transfer_id} has {len(legs)} leg(s), expected 2",
            )

        debit, credit = sorted(legs, key=lambda tx: tx.amount)
        if debit.amount + credit.amount != ZERO or debit.amount >= ZERO:
            await self._integrity_error(
                transfer_id,
                f"Transfer {transfer_id} legs do not balance: "
                f"{debit.amount} + {credit.amount}",
            )
        return TransferPair(debit=debit, credit=credit)

    async def cancel_transfer(
        self,
        transfer_id: UUID,
        compensation: Optional[CompensationLog] = None,
    ) -> TransferPair:
        """Reverse both balance effects, then delete both legs."""
        compensation = compensation or CompensationLog(audit_logger=self._audit_logger)
        pair = await self.resolve_transfer(transfer_id)

        for leg in pair.legs:
            await self._reconciler.apply_delete(leg, compensation)

        await compensation.run(
            "delete transfer legs",
            self._transactions.delete(TransactionFilter(transfer_id=transfer_id)),
            undo=lambda _count: self._transactions.insert(pair.legs),
        )

        if self._audit_logger:
            await self._audit_logger.log_transfer(
                event_type=AuditEventType.TRANSFER_CANCELLED,
                transfer_id=transfer_id,
                amount=pair.amount,
                correlation_id=compensation.correlation_id,
            )
        return pair

    async def _integrity_error(self, transfer_id: UUID, message: str) -> None:
        if self._audit_logger:
            await self._audit_logger.log_integrity_error(
                entity_type="transfer",
                entity_id=transfer_id,
                error_message=message,
            )
        raise LedgerIntegrityError(message, entity_id=transfer_id)
