"""
Audit Logger

Every ledger operation is logged: each balance change, each inserted or
deleted row, each undo step. Events of one operation share a
correlation id, so a half-finished edit can be reconstructed later.

The audit logger:
- Always logs locally through structlog
- Persists to audit storage when one is configured
- Never raises if the audit store is down (the ledger write already happened)
"""

from decimal import Decimal
from typing import Any, Optional
from uuid import UUID, uuid4

import structlog

from finledger.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from finledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and later repair)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("finledger.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_transaction_created(
        self,
        transaction_id: UUID,
        name: str,
        amount: Decimal,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_created(
            transaction_id=transaction_id,
            name=name,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_transaction_updated(
        self,
        transaction_id: UUID,
        changes: dict[str, Any],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_updated(
            transaction_id=transaction_id,
            changes=changes,
            correlation_id=correlation_id,
        ))

    async def log_transaction_deleted(
        self,
        transaction_id: UUID,
        amount: Decimal,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_deleted(
            transaction_id=transaction_id,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_card_purchase(
        self,
        event_type: AuditEventType,
        series_id: UUID,
        name: str,
        installments: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.card_purchase(
            event_type=event_type,
            series_id=series_id,
            name=name,
            installments=installments,
            correlation_id=correlation_id,
        ))

    async def log_bill_created(
        self,
        bill_id: UUID,
        credit_card_id: UUID,
        reference_month: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.bill_created(
            bill_id=bill_id,
            credit_card_id=credit_card_id,
            reference_month=reference_month,
            correlation_id=correlation_id,
        ))

    async def log_bill_race_resolved(
        self,
        bill_id: UUID,
        credit_card_id: UUID,
        reference_month: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.bill_race_resolved(
            bill_id=bill_id,
            credit_card_id=credit_card_id,
            reference_month=reference_month,
            correlation_id=correlation_id,
        ))

    async def log_transfer(
        self,
        event_type: AuditEventType,
        transfer_id: UUID,
        amount: Decimal,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.transfer(
            event_type=event_type,
            transfer_id=transfer_id,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_balance_updated(
        self,
        account_id: UUID,
        old_balance: Decimal,
        new_balance: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.balance_updated(
            account_id=account_id,
            old_balance=old_balance,
            new_balance=new_balance,
            correlation_id=correlation_id,
        ))

    async def log_balance_conflict(
        self,
        account_id: UUID,
        attempts: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.balance_conflict(
            account_id=account_id,
            attempts=attempts,
            correlation_id=correlation_id,
        ))

    async def log_validation_failed(
        self,
        operation: str,
        issues: list[dict],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.validation_failed(
            operation=operation,
            issues=issues,
            correlation_id=correlation_id,
        ))

    async def log_write_failed(
        self,
        operation: str,
        step: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.write_failed(
            operation=operation,
            step=step,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_compensation(
        self,
        step: str,
        succeeded: bool,
        correlation_id: UUID,
        error_message: Optional[str] = None,
    ) -> None:
        await self.log(AuditEventBuilder.compensation(
            step=step,
            succeeded=succeeded,
            correlation_id=correlation_id,
            error_message=error_message,
        ))

    async def log_integrity_error(
        self,
        entity_type: str,
        entity_id: Optional[UUID],
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.integrity_error(
            entity_type=entity_type,
            entity_id=entity_id,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a ledger operation and pass it through
    every write it performs.
    """
    return uuid4()
