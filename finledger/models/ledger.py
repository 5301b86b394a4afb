"""
Core Data Models for the Finance Ledger

These models define the strict schemas for everything the ledger reads
from and writes to the remote store. They are designed to:
1. Enforce type safety at runtime
2. Keep money as two-decimal Decimal values end to end
3. Be serializable for storage and logging
4. Carry the ledger invariants as validators and properties

Signed amounts exist only on stored rows (Transaction). Everything a
user submits (the *Input models) carries a Direction plus an unsigned
magnitude, and the sign is applied once, when the row is built.
"""

import datetime as dt
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Annotated, Optional
from uuid import UUID, uuid4

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def quantize_money(value: Decimal) -> Decimal:
    """Round a Decimal to cents."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


Money = Annotated[Decimal, AfterValidator(quantize_money)]


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionStatus(str, Enum):
    """
    Completion status of a transaction.

    Only COMPLETED transactions linked to an account move that
    account's balance.
    """
    COMPLETED = "completed"
    PENDING = "pending"


class Direction(str, Enum):
    """Which way money moves. Inputs carry this plus an unsigned magnitude."""
    INCOME = "income"
    EXPENSE = "expense"

    def signed(self, magnitude: Decimal) -> Decimal:
        """Convert an unsigned magnitude to the signed ledger amount."""
        magnitude = abs(magnitude)
        return -magnitude if self is Direction.EXPENSE else magnitude

    @classmethod
    def of(cls, amount: Decimal) -> "Direction":
        """Direction of a signed ledger amount."""
        return cls.EXPENSE if amount < 0 else cls.INCOME


class TransactionKind(str, Enum):
    """What a stored transaction row represents."""
    PLAIN = "plain"
    CARD_PURCHASE = "card_purchase"
    TRANSFER = "transfer"


class BillStatus(str, Enum):
    """Lifecycle of a monthly credit card bill."""
    OPEN = "open"
    CLOSED = "closed"
    PAID = "paid"
    OVERDUE = "overdue"


# =============================================================================
# STORED ENTITIES
# =============================================================================

class Account(BaseModel):
    """
    A money account with a signed running balance.

    `version` is the optimistic concurrency token: every balance update
    must present the version it read, and the store bumps it on success.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=200)
    balance: Money = Field(default=ZERO)
    opening_balance: Money = Field(
        default=ZERO,
        description="Balance the account was opened with, before any transaction"
    )
    is_default: bool = False
    include_in_total: bool = True
    version: int = Field(default=0, ge=0)
    updated_at: dt.datetime = Field(default_factory=_utcnow)


class CreditCard(BaseModel):
    """Credit card billing configuration. Read-only to the ledger."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=200)
    account_id: Optional[UUID] = Field(
        default=None,
        description="Account the bills are paid from"
    )
    closing_day: int = Field(..., ge=1, le=31)
    due_day: int = Field(..., ge=1, le=31)
    credit_limit: Optional[Money] = None
    is_active: bool = True


class CreditCardBill(BaseModel):
    """
    One billing cycle of a credit card.

    Natural key: (credit_card_id, reference_month). `total_amount` is
    maintained by an external aggregator; the ledger only creates the row.
    """

    id: UUID = Field(default_factory=uuid4)
    credit_card_id: UUID
    reference_month: dt.date
    closing_date: dt.date
    due_date: dt.date
    total_amount: Money = Field(default=ZERO)
    paid_amount: Money = Field(default=ZERO)
    status: BillStatus = BillStatus.OPEN
    created_at: dt.datetime = Field(default_factory=_utcnow)

    @field_validator('reference_month')
    @classmethod
    def validate_reference_month(cls, v: dt.date) -> dt.date:
        if v.day != 1:
            raise ValueError("Reference month must be the first day of a month")
        return v


class Transaction(BaseModel):
    """
    A stored ledger row.

    `amount` is signed: negative is an expense, positive is income.
    A row belongs either to an account or to a credit card bill, never both.
    Installments of one purchase share a `series_id`; the two legs of a
    transfer share a `transfer_id`.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=200)
    amount: Money
    date: dt.date
    status: TransactionStatus = TransactionStatus.COMPLETED
    account_id: Optional[UUID] = None
    credit_card_bill_id: Optional[UUID] = None
    category_id: Optional[UUID] = None
    transfer_id: Optional[UUID] = None
    series_id: Optional[UUID] = None
    installment_number: int = Field(default=1, ge=1)
    total_installments: int = Field(default=1, ge=1)
    description: Optional[str] = Field(default=None, max_length=1000)
    created_at: dt.datetime = Field(default_factory=_utcnow)
    updated_at: dt.datetime = Field(default_factory=_utcnow)

    @model_validator(mode='after')
    def validate_links(self) -> 'Transaction':
        """Validate ownership and installment position."""
        if self.account_id and self.credit_card_bill_id:
            raise ValueError(
                "A transaction cannot belong to both an account and a credit card bill"
            )
        if self.installment_number > self.total_installments:
            raise ValueError("Installment number cannot exceed total installments")
        return self

    @property
    def kind(self) -> TransactionKind:
        if self.transfer_id is not None:
            return TransactionKind.TRANSFER
        if self.credit_card_bill_id is not None:
            return TransactionKind.CARD_PURCHASE
        return TransactionKind.PLAIN

    @property
    def affects_balance(self) -> bool:
        return (
            self.account_id is not None
            and self.status == TransactionStatus.COMPLETED
        )

    @property
    def balance_impact(self) -> Decimal:
        """Amount this row contributes to its account's balance."""
        return self.amount if self.affects_balance else ZERO

    @property
    def direction(self) -> Direction:
        return Direction.of(self.amount)


# =============================================================================
# INPUT INTENTS - what the UI submits
# =============================================================================

class TransactionInput(BaseModel):
    """
    A plain income/expense as entered by the user.

    Amount and selections are checked by LedgerValidator rather than here,
    so problems come back as ValidationIssues instead of parse errors.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=200)
    direction: Direction
    amount: Decimal = Field(..., description="Unsigned magnitude")
    date: dt.date
    status: TransactionStatus = TransactionStatus.COMPLETED
    account_id: Optional[UUID] = None
    category_id: Optional[UUID] = None
    description: Optional[str] = Field(default=None, max_length=1000)

    @property
    def signed_amount(self) -> Decimal:
        return self.direction.signed(self.amount)


class CardPurchaseInput(BaseModel):
    """
    A credit card purchase, optionally split into monthly installments.

    `total_amount` is the full purchase value; it is split evenly across
    the installments. Card purchases are always expenses.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=200)
    total_amount: Decimal
    start_date: dt.date
    installments: int = Field(default=1)
    credit_card_id: Optional[UUID] = None
    category_id: Optional[UUID] = None
    description: Optional[str] = Field(default=None, max_length=1000)

    @property
    def is_installment_purchase(self) -> bool:
        return self.installments > 1


class TransferInput(BaseModel):
    """A move of funds between two accounts."""
    model_config = ConfigDict(str_strip_whitespace=True)

    from_account_id: Optional[UUID] = None
    to_account_id: Optional[UUID] = None
    amount: Decimal
    date: dt.date
    name: str = Field(default="Transfer", min_length=1, max_length=200)
    category_id: Optional[UUID] = None
    description: Optional[str] = Field(default=None, max_length=1000)


# =============================================================================
# RESULTS
# =============================================================================

class BillCycle(BaseModel):
    """The billing cycle a purchase date falls into."""
    reference_month: dt.date
    closing_date: dt.date
    due_date: dt.date


class BillResolution(BaseModel):
    """Outcome of a get-or-create bill lookup."""
    bill: CreditCardBill
    created: bool


class ExpandedSeries(BaseModel):
    """An installment purchase expanded into per-month rows."""
    series_id: UUID
    transactions: list[Transaction]
    created_bills: list[CreditCardBill] = Field(default_factory=list)

    @property
    def bill_ids(self) -> list[UUID]:
        return [tx.credit_card_bill_id for tx in self.transactions]


class BalanceDelta(BaseModel):
    """A signed change to persist on one account."""
    account_id: UUID
    delta: Money

    def reversed(self) -> "BalanceDelta":
        return BalanceDelta(account_id=self.account_id, delta=-self.delta)


class TransferPair(BaseModel):
    """Both legs of one transfer, presented as a single operation."""
    debit: Transaction
    credit: Transaction

    @property
    def transfer_id(self) -> Optional[UUID]:
        return self.debit.transfer_id

    @property
    def amount(self) -> Decimal:
        return self.credit.amount

    @property
    def legs(self) -> list[Transaction]:
        return [self.debit, self.credit]


class TransactionFilter(BaseModel):
    """
    Equality filter over stored transactions.

    Unset fields do not constrain. An empty filter matches nothing, so a
    delete can never wipe the table by accident.
    """

    ids: Optional[list[UUID]] = None
    account_id: Optional[UUID] = None
    credit_card_bill_id: Optional[UUID] = None
    transfer_id: Optional[UUID] = None
    series_id: Optional[UUID] = None
    name: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return all(value is None for value in self.model_dump().values())

    def matches(self, tx: Transaction) -> bool:
        if self.is_empty:
            return False
        if self.ids is not None and tx.id not in self.ids:
            return False
        if self.account_id is not None and tx.account_id != self.account_id:
            return False
        if (
            self.credit_card_bill_id is not None
            and tx.credit_card_bill_id != self.credit_card_bill_id
        ):
            return False
        if self.transfer_id is not None and tx.transfer_id != self.transfer_id:
            return False
        if self.series_id is not None and tx.series_id != self.series_id:
            return False
        if self.name is not None and tx.name != self.name:
            return False
        return True


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'suspicious_value')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested action for the user"
    )


class ValidationResult(BaseModel):
    """Result of validating one ledger intent before any write."""

    operation: str = Field(
        ...,
        description="Ledger operation being validated"
    )
    validated_at: dt.datetime = Field(default_factory=_utcnow)
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> list[str]:
        return [i.message for i in self.issues if i.severity == "warning"]


# =============================================================================
# QUERY MODELS
# =============================================================================

class BalanceCheck(BaseModel):
    """Stored balance of an account compared with its recomputed value."""

    account_id: UUID
    account_name: str
    stored_balance: Money
    expected_balance: Money = Field(
        ...,
        description="Opening balance plus every completed transaction amount"
    )
    transaction_count: int = 0

    @property
    def difference(self) -> Decimal:
        return self.stored_balance - self.expected_balance

    @property
    def is_consistent(self) -> bool:
        return self.difference == ZERO
