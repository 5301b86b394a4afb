"""
Data Models Package

This package contains all Pydantic models used by the Finance Ledger.
All data flowing through the ledger must conform to these schemas.
"""

from finledger.models.ledger import (
    CENT,
    ZERO,
    Account,
    BalanceCheck,
    BalanceDelta,
    BillCycle,
    BillResolution,
    BillStatus,
    CardPurchaseInput,
    CreditCard,
    CreditCardBill,
    Direction,
    ExpandedSeries,
    Money,
    Transaction,
    TransactionFilter,
    TransactionInput,
    TransactionKind,
    TransactionStatus,
    TransferInput,
    TransferPair,
    ValidationIssue,
    ValidationResult,
    quantize_money,
)
from finledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "CENT",
    "ZERO",
    "Account",
    "BalanceCheck",
    "BalanceDelta",
    "BillCycle",
    "BillResolution",
    "BillStatus",
    "CardPurchaseInput",
    "CreditCard",
    "CreditCardBill",
    "Direction",
    "ExpandedSeries",
    "Money",
    "Transaction",
    "TransactionFilter",
    "TransactionInput",
    "TransactionKind",
    "TransactionStatus",
    "TransferInput",
    "TransferPair",
    "ValidationIssue",
    "ValidationResult",
    "quantize_money",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
