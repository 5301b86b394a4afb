"""
Compensation log for multi-step ledger writes.

The remote store has no transactions, so every ledger operation keeps
a list of the writes it has made, each paired with the call that undoes
it. If a later step fails, the undo calls run newest-first and the
caller gets a LedgerWriteError saying whether the rollback completed.
"""

from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Optional, TypeVar
from uuid import UUID

from finledger.audit import AuditLogger, create_correlation_id
from finledger.ledger.exceptions import (
    BalanceConflictError,
    LedgerIntegrityError,
    LedgerWriteError,
)
from finledger.services.storage import StorageError

T = TypeVar("T")

UndoFn = Callable[[Any], Awaitable[Any]]


class CompensationLog:
    """Records completed writes of one operation and how to reverse them."""

    def __init__(
        self,
        correlation_id: Optional[UUID] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self.correlation_id = correlation_id or create_correlation_id()
        self.current_step = "start"
        self._audit_logger = audit_logger
        self._undo: list[tuple[str, UndoFn, Any]] = []

    @property
    def steps(self) -> list[str]:
        """Names of the recorded (reversible) steps, oldest first."""
        return [step for step, _, _ in self._undo]

    async def run(
        self,
        step: str,
        action: Awaitable[T],
        undo: Optional[UndoFn] = None,
    ) -> T:
        """
        Await one write and remember how to reverse it.

        Args:
            step: Short name of the write, used in errors and audit
            action: The write coroutine
            undo: Called with the write's result to reverse it

        Returns:
            Whatever the write returned
        """
        self.current_step = step
        result = await action
        if undo is not None:
            self._undo.append((step, undo, result))
        return result

    async def rollback(self) -> bool:
        """
        Run every recorded undo, newest first.

        Keeps going past a failed undo so as much as possible is reversed.

        Returns:
            True if every undo succeeded
        """
        all_ok = True
        while self._undo:
            step, undo, result = self._undo.pop()
            try:
                await undo(result)
            except Exception as e:
                all_ok = False
                if self._audit_logger:
                    await self._audit_logger.log_compensation(
                        step=step,
                        succeeded=False,
                        correlation_id=self.correlation_id,
                        error_message=str(e),
                    )
                continue
            if self._audit_logger:
                await self._audit_logger.log_compensation(
                    step=step,
                    succeeded=True,
                    correlation_id=self.correlation_id,
                )
        return all_ok

    @asynccontextmanager
    async def guard(self, operation: str):
        """
        Wrap an operation so any failure rolls back its recorded writes.

        Storage failures are re-raised as LedgerWriteError; balance
        conflicts and integrity errors are re-raised as they are, after
        the rollback.
        """
        try:
            yield self
        except StorageError as e:
            if self._audit_logger:
                await self._audit_logger.log_write_failed(
                    operation=operation,
                    step=self.current_step,
                    error_message=str(e),
                    correlation_id=self.correlation_id,
                )
            compensated = await self.rollback()
            raise LedgerWriteError(self.current_step, e, compensated) from e
        except (BalanceConflictError, LedgerIntegrityError):
            await self.rollback()
            raise
