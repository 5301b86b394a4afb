"""
Balance Reconciler

Keeps each account's stored balance equal to its opening balance plus
the sum of the amounts of its completed transactions.

A transaction moves its account's balance by its signed amount only
while it is completed and linked to an account. Every create, edit and
delete is turned into a list of per-account deltas, and each delta is
written as read-fresh / add / compare-and-swap, so a balance is never
computed from a stale read.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
)

from finledger.audit import AuditLogger
from finledger.config import get_settings
from finledger.ledger.compensation import CompensationLog
from finledger.ledger.exceptions import BalanceConflictError
from finledger.models.ledger import Account, BalanceDelta, Transaction, ZERO
from finledger.services.storage import (
    AccountStorageInterface,
    NotFoundError,
    VersionConflictError,
)


class BalanceReconciler:
    """
    Computes and persists account balance changes.

    The delta computations are pure; `apply` is the only method that
    writes.
    """

    def __init__(
        self,
        account_storage: AccountStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        max_attempts: Optional[int] = None,
    ):
        self._accounts = account_storage
        self._audit_logger = audit_logger
        self._max_attempts = max_attempts or get_settings().ledger.balance_conflict_retries

    @staticmethod
    def impact(tx: Transaction) -> Decimal:
        """Signed amount the transaction contributes to its account (0 if none)."""
        return tx.balance_impact

    # =========================================================================
    # Delta computation
    # =========================================================================

    def deltas_for_create(self, tx: Transaction) -> list[BalanceDelta]:
        return self._nonzero([(tx.account_id, self.impact(tx))])

    def deltas_for_delete(self, tx: Transaction) -> list[BalanceDelta]:
        return self._nonzero([(tx.account_id, -self.impact(tx))])

    def deltas_for_edit(self, old: Transaction, new: Transaction) -> list[BalanceDelta]:
        """
        Balance changes for replacing `old` with `new`.

        Same account: one net delta. Account changed: the old impact is
        reversed on the old account first, then the new impact applied on
        the new one.
        """
        old_impact = self.impact(old)
        new_impact = self.impact(new)

        if old.account_id == new.account_id:
            return self._nonzero([(new.account_id, new_impact - old_impact)])

        return self._nonzero([
            (old.account_id, -old_impact),
            (new.account_id, new_impact),
        ])

    @staticmethod
    def _nonzero(pairs: list[tuple[Optional[UUID], Decimal]]) -> list[BalanceDelta]:
        return [
            BalanceDelta(account_id=account_id, delta=delta)
            for account_id, delta in pairs
            if account_id is not None and delta != ZERO
        ]

    # =========================================================================
    # Persistence
    # =========================================================================

    async def apply_delta(
        self,
        delta: BalanceDelta,
        correlation_id=None,
    ) -> Account:
        """
        Add a delta to an account's stored balance.

        The account is re-read on every attempt and written back with the
        version it was read at. A version conflict re-reads and retries,
        up to the configured number of attempts.

        Raises:
            NotFoundError: If the account doesn't exist
            BalanceConflictError: If every attempt lost to a concurrent writer
        """
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._max_attempts),
                retry=retry_if_exception_type(VersionConflictError),
                reraise=True,
            ):
                with attempt:
                    account = await self._accounts.get_account(delta.account_id)
                    if account is None:
                        raise NotFoundError(f"Account not found: {delta.account_id}")
                    updated = await self._accounts.update_balance(
                        account.id,
                        account.balance + delta.delta,
                        expected_version=account.version,
                    )
        except VersionConflictError:
            if self._audit_logger:
                await self._audit_logger.log_balance_conflict(
                    account_id=delta.account_id,
                    attempts=self._max_attempts,
                    correlation_id=correlation_id,
                )
            raise BalanceConflictError(delta.account_id, self._max_attempts)

        if self._audit_logger:
            await self._audit_logger.log_balance_updated(
                account_id=updated.id,
                old_balance=account.balance,
                new_balance=updated.balance,
                correlation_id=correlation_id,
            )
        return updated

    async def apply(
        self,
        deltas: list[BalanceDelta],
        compensation: Optional[CompensationLog] = None,
    ) -> list[Account]:
        """
        Persist deltas in order, recording each so it can be reversed.

        Returns:
            The updated accounts, one per delta
        """
        compensation = compensation or CompensationLog(audit_logger=self._audit_logger)
        updated = []
        for delta in deltas:
            account = await compensation.run(
                f"update balance {delta.account_id}",
                self.apply_delta(delta, compensation.correlation_id),
                undo=lambda _acct, d=delta: self.apply_delta(
                    d.reversed(), compensation.correlation_id
                ),
            )
            updated.append(account)
        return updated

    async def apply_create(
        self,
        tx: Transaction,
        compensation: Optional[CompensationLog] = None,
    ) -> list[BalanceDelta]:
        deltas = self.deltas_for_create(tx)
        await self.apply(deltas, compensation)
        return deltas

    async def apply_edit(
        self,
        old: Transaction,
        new: Transaction,
        compensation: Optional[CompensationLog] = None,
    ) -> list[BalanceDelta]:
        deltas = self.deltas_for_edit(old, new)
        await self.apply(deltas, compensation)
        return deltas

    async def apply_delete(
        self,
        tx: Transaction,
        compensation: Optional[CompensationLog] = None,
    ) -> list[BalanceDelta]:
        deltas = self.deltas_for_delete(tx)
        await self.apply(deltas, compensation)
        return deltas
