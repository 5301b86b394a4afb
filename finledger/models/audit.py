"""
Audit Models for the Finance Ledger

Every ledger operation is logged for audit purposes.
This provides:
1. Traceability of every balance change back to the operation that caused it
2. Debugging information when a multi-step write fails halfway
3. A record of compensations and integrity problems for later repair

Audit logs are append-only. They are never deleted or modified.
"""

import json
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Each step of a ledger operation has its own event type.
    """
    # Plain transactions
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"

    # Credit card purchases
    CARD_PURCHASE_CREATED = "card_purchase_created"
    CARD_PURCHASE_UPDATED = "card_purchase_updated"
    CARD_PURCHASE_DELETED = "card_purchase_deleted"
    SERIES_REEXPANDED = "series_reexpanded"
    BILL_CREATED = "bill_created"
    BILL_RACE_RESOLVED = "bill_race_resolved"

    # Transfers
    TRANSFER_CREATED = "transfer_created"
    TRANSFER_CANCELLED = "transfer_cancelled"

    # Balances
    BALANCE_UPDATED = "balance_updated"
    BALANCE_CONFLICT = "balance_conflict"

    # Failure handling
    VALIDATION_FAILED = "validation_failed"
    WRITE_FAILED = "write_failed"
    COMPENSATION_APPLIED = "compensation_applied"
    COMPENSATION_FAILED = "compensation_failed"
    INTEGRITY_ERROR = "integrity_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'account', 'bill')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - ties together the steps of one ledger operation
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all writes of one edit)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_created(tx_id, amount, correlation_id)
        event = AuditEventBuilder.balance_updated(account_id, old, new, correlation_id)
    """

    @staticmethod
    def transaction_created(
        transaction_id: UUID,
        name: str,
        amount: Decimal,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction created: {name} ({amount})",
            details={"name": name, "amount": str(amount)},
            is_user_action=True,
        )

    @staticmethod
    def transaction_updated(
        transaction_id: UUID,
        changes: dict[str, Any],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction updated: {', '.join(sorted(changes)) or 'no changes'}",
            details={key: str(value) for key, value in changes.items()},
            is_user_action=True,
        )

    @staticmethod
    def transaction_deleted(
        transaction_id: UUID,
        amount: Decimal,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction deleted ({amount})",
            details={"amount": str(amount)},
            is_user_action=True,
        )

    @staticmethod
    def card_purchase(
        event_type: AuditEventType,
        series_id: UUID,
        name: str,
        installments: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        verb = {
            AuditEventType.CARD_PURCHASE_CREATED: "created",
            AuditEventType.CARD_PURCHASE_UPDATED: "updated",
            AuditEventType.CARD_PURCHASE_DELETED: "deleted",
            AuditEventType.SERIES_REEXPANDED: "re-expanded",
        }.get(event_type, event_type.value)
        return AuditEvent(
            event_type=event_type,
            entity_type="series",
            entity_id=series_id,
            correlation_id=correlation_id,
            description=f"Card purchase {verb}: {name} in {installments} installment(s)",
            details={"name": name, "installments": installments},
            is_user_action=True,
        )

    @staticmethod
    def bill_created(
        bill_id: UUID,
        credit_card_id: UUID,
        reference_month: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILL_CREATED,
            entity_type="bill",
            entity_id=bill_id,
            correlation_id=correlation_id,
            description=f"Bill opened for {reference_month}",
            details={
                "credit_card_id": str(credit_card_id),
                "reference_month": reference_month,
            },
        )

    @staticmethod
    def bill_race_resolved(
        bill_id: UUID,
        credit_card_id: UUID,
        reference_month: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILL_RACE_RESOLVED,
            severity=AuditSeverity.WARNING,
            entity_type="bill",
            entity_id=bill_id,
            correlation_id=correlation_id,
            description=f"Concurrent bill creation for {reference_month} resolved to existing bill",
            details={
                "credit_card_id": str(credit_card_id),
                "reference_month": reference_month,
            },
        )

    @staticmethod
    def transfer(
        event_type: AuditEventType,
        transfer_id: UUID,
        amount: Decimal,
        correlation_id: UUID,
    ) -> AuditEvent:
        verb = "created" if event_type == AuditEventType.TRANSFER_CREATED else "cancelled"
        return AuditEvent(
            event_type=event_type,
            entity_type="transfer",
            entity_id=transfer_id,
            correlation_id=correlation_id,
            description=f"Transfer {verb}: {amount}",
            details={"amount": str(amount)},
            is_user_action=True,
        )

    @staticmethod
    def balance_updated(
        account_id: UUID,
        old_balance: Decimal,
        new_balance: Decimal,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_UPDATED,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Balance {old_balance} -> {new_balance}",
            details={
                "old_balance": str(old_balance),
                "new_balance": str(new_balance),
                "delta": str(new_balance - old_balance),
            },
        )

    @staticmethod
    def balance_conflict(
        account_id: UUID,
        attempts: int,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_CONFLICT,
            severity=AuditSeverity.WARNING,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Balance update lost the race {attempts} time(s)",
            details={"attempts": attempts},
        )

    @staticmethod
    def validation_failed(
        operation: str,
        issues: list[dict],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description=f"{operation} rejected with {len(issues)} issue(s)",
            details={"operation": operation, "issues": issues},
            is_user_action=True,
        )

    @staticmethod
    def write_failed(
        operation: str,
        step: str,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.WRITE_FAILED,
            severity=AuditSeverity.ERROR,
            correlation_id=correlation_id,
            description=f"{operation} failed at step '{step}'",
            error_message=error_message,
            details={"operation": operation, "step": step},
        )

    @staticmethod
    def compensation(
        step: str,
        succeeded: bool,
        correlation_id: UUID,
        error_message: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.COMPENSATION_APPLIED
                if succeeded
                else AuditEventType.COMPENSATION_FAILED
            ),
            severity=AuditSeverity.WARNING if succeeded else AuditSeverity.ERROR,
            correlation_id=correlation_id,
            description=f"Undo {'applied' if succeeded else 'FAILED'}: {step}",
            error_message=error_message,
            details={"step": step},
        )

    @staticmethod
    def integrity_error(
        entity_type: str,
        entity_id: Optional[UUID],
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INTEGRITY_ERROR,
            severity=AuditSeverity.ERROR,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Integrity problem on {entity_type}",
            error_message=error_message,
        )
