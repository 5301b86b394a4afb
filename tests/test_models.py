"""
Tests for Finance Ledger models

Test strategy:
1. Unit tests for individual components (models, validators)
2. Flow tests for the ledger against in-memory storage
3. No real API calls in tests
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from finledger.models.ledger import (
    BalanceCheck,
    BalanceDelta,
    CreditCard,
    CreditCardBill,
    Direction,
    Transaction,
    TransactionFilter,
    TransactionKind,
    TransactionStatus,
    ValidationIssue,
    ValidationResult,
)
from finledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


class TestTransactionModel:
    """Tests for the stored transaction row."""

    def test_amount_is_quantized_to_cents(self):
        tx = Transaction(name="Coffee", amount=Decimal("-3.456"), date=date(2024, 1, 1))
        assert tx.amount == Decimal("-3.46")

    def test_name_strips_whitespace(self):
        tx = Transaction(name="  Rent  ", amount=Decimal("-100"), date=date(2024, 1, 1))
        assert tx.name == "Rent"

    def test_rejects_account_and_bill_together(self):
        with pytest.raises(ValueError, match="both an account and a credit card bill"):
            Transaction(
                name="Bad",
                amount=Decimal("-1"),
                date=date(2024, 1, 1),
                account_id=uuid4(),
                credit_card_bill_id=uuid4(),
            )

    def test_rejects_installment_number_above_total(self):
        with pytest.raises(ValueError, match="cannot exceed total installments"):
            Transaction(
                name="TV",
                amount=Decimal("-100"),
                date=date(2024, 1, 1),
                installment_number=4,
                total_installments=3,
            )

    def test_kind(self):
        plain = Transaction(name="a", amount=Decimal("1"), date=date(2024, 1, 1), account_id=uuid4())
        card = Transaction(name="b", amount=Decimal("-1"), date=date(2024, 1, 1), credit_card_bill_id=uuid4())
        transfer = Transaction(
            name="c", amount=Decimal("1"), date=date(2024, 1, 1),
            account_id=uuid4(), transfer_id=uuid4(),
        )
        assert plain.kind == TransactionKind.PLAIN
        assert card.kind == TransactionKind.CARD_PURCHASE
        assert transfer.kind == TransactionKind.TRANSFER

    def test_balance_impact_only_when_completed_and_linked(self):
        account_id = uuid4()
        completed = Transaction(
            name="Salary", amount=Decimal("1000"), date=date(2024, 1, 1),
            account_id=account_id,
        )
        pending = completed.model_copy(update={"status": TransactionStatus.PENDING})
        unlinked = completed.model_copy(update={"account_id": None})

        assert completed.balance_impact == Decimal("1000.00")
        assert pending.balance_impact == Decimal("0")
        assert unlinked.balance_impact == Decimal("0")

    def test_direction(self):
        tx = Transaction(name="Gym", amount=Decimal("-50"), date=date(2024, 1, 1))
        assert tx.direction == Direction.EXPENSE


class TestDirection:

    def test_signed_expense_is_negative(self):
        assert Direction.EXPENSE.signed(Decimal("50")) == Decimal("-50")

    def test_signed_ignores_input_sign(self):
        assert Direction.INCOME.signed(Decimal("-50")) == Decimal("50")
        assert Direction.EXPENSE.signed(Decimal("-50")) == Decimal("-50")


class TestBillModels:

    def test_reference_month_must_be_first_of_month(self):
        with pytest.raises(ValueError, match="first day of a month"):
            CreditCardBill(
                credit_card_id=uuid4(),
                reference_month=date(2024, 2, 10),
                closing_date=date(2024, 2, 10),
                due_date=date(2024, 2, 20),
            )

    def test_new_bill_is_open_and_empty(self):
        bill = CreditCardBill(
            credit_card_id=uuid4(),
            reference_month=date(2024, 2, 1),
            closing_date=date(2024, 2, 10),
            due_date=date(2024, 2, 20),
        )
        assert bill.total_amount == Decimal("0")
        assert bill.paid_amount == Decimal("0")
        assert bill.status.value == "open"

    def test_card_days_bounded(self):
        with pytest.raises(ValueError):
            CreditCard(name="Visa", closing_day=32, due_day=10)


class TestTransactionFilter:

    def test_empty_filter_matches_nothing(self):
        tx = Transaction(name="x", amount=Decimal("1"), date=date(2024, 1, 1))
        flt = TransactionFilter()
        assert flt.is_empty
        assert flt.matches(tx) is False

    def test_filter_by_series(self):
        series_id = uuid4()
        tx = Transaction(name="x", amount=Decimal("-1"), date=date(2024, 1, 1), series_id=series_id)
        assert TransactionFilter(series_id=series_id).matches(tx)
        assert not TransactionFilter(series_id=uuid4()).matches(tx)

    def test_filters_combine(self):
        tx = Transaction(name="x", amount=Decimal("-1"), date=date(2024, 1, 1), account_id=uuid4())
        assert not TransactionFilter(ids=[tx.id], name="y").matches(tx)
        assert TransactionFilter(ids=[tx.id], name="x").matches(tx)


class TestResultModels:

    def test_balance_delta_reversed(self):
        delta = BalanceDelta(account_id=uuid4(), delta=Decimal("-30"))
        assert delta.reversed().delta == Decimal("30")
        assert delta.reversed().account_id == delta.account_id

    def test_balance_check_difference(self):
        check = BalanceCheck(
            account_id=uuid4(),
            account_name="Checking",
            stored_balance=Decimal("100"),
            expected_balance=Decimal("90"),
        )
        assert check.difference == Decimal("10")
        assert check.is_consistent is False


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            description="Test transaction",
        )
        assert event.event_type == AuditEventType.TRANSACTION_CREATED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        event = AuditEvent(
            event_type=AuditEventType.BALANCE_UPDATED,
            description="Balance changed",
            details={"old_balance": "10", "new_balance": "20"},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "balance_updated"
        assert log_dict["details"]["new_balance"] == "20"

    def test_audit_event_to_sheets_row(self):
        event = AuditEvent(
            event_type=AuditEventType.TRANSFER_CREATED,
            description="Transfer created",
            is_user_action=True,
        )
        row = event.to_sheets_row()
        assert len(row) == 11
        assert row[2] == "transfer_created"
        assert row[10] == "True"

    def test_builder_balance_updated(self):
        account_id = uuid4()
        correlation_id = uuid4()

        event = AuditEventBuilder.balance_updated(
            account_id=account_id,
            old_balance=Decimal("200.00"),
            new_balance=Decimal("170.00"),
            correlation_id=correlation_id,
        )

        assert event.entity_id == account_id
        assert event.correlation_id == correlation_id
        assert event.details["delta"] == "-30.00"

    def test_builder_compensation_failure_is_error(self):
        event = AuditEventBuilder.compensation(
            step="insert transaction",
            succeeded=False,
            correlation_id=uuid4(),
            error_message="boom",
        )
        assert event.event_type == AuditEventType.COMPENSATION_FAILED
        assert event.severity == AuditSeverity.ERROR


class TestValidationResult:
    """Tests for ValidationResult model."""

    def test_validation_result_has_errors(self):
        result = ValidationResult(
            operation="transaction",
            issues=[
                ValidationIssue(
                    field="amount",
                    issue_type="invalid_value",
                    message="Amount must be greater than zero",
                    severity="error",
                ),
            ],
        )
        assert result.has_errors is True
        assert result.is_valid is False
        assert result.error_count == 1

    def test_validation_result_warnings_only(self):
        result = ValidationResult(
            operation="transaction",
            issues=[
                ValidationIssue(
                    field="amount",
                    issue_type="suspicious_value",
                    message="Amount seems unusually high",
                    severity="warning",
                ),
            ],
        )
        assert result.has_errors is False
        assert result.warnings == ["Amount seems unusually high"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
