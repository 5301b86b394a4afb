"""
Tests for ledger intent validation.
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

from finledger.config import LedgerSettings
from finledger.models.ledger import (
    CardPurchaseInput,
    Direction,
    TransactionInput,
    TransactionStatus,
    TransferInput,
)
from finledger.validation import LedgerValidator


def _validator(**overrides) -> LedgerValidator:
    return LedgerValidator(LedgerSettings(**overrides))


def _tx(**overrides) -> TransactionInput:
    data = dict(
        name="Lunch",
        direction=Direction.EXPENSE,
        amount=Decimal("25"),
        date=date(2024, 5, 1),
        account_id=uuid4(),
        category_id=uuid4(),
    )
    data.update(overrides)
    return TransactionInput(**data)


class TestTransactionValidation:

    def test_valid_transaction(self):
        result = _validator().validate_transaction(_tx())
        assert result.is_valid
        assert result.issues == []

    def test_negative_amount_is_error(self):
        result = _validator().validate_transaction(_tx(amount=Decimal("-5")))
        assert result.has_errors
        assert result.issues[0].field == "amount"

    def test_missing_selections_are_errors(self):
        result = _validator().validate_transaction(_tx(account_id=None, category_id=None))
        assert {i.field for i in result.issues} == {"account_id", "category_id"}
        assert result.error_count == 2

    def test_large_amount_is_warning_only(self):
        validator = _validator(max_transaction_amount=Decimal("1000"))
        result = validator.validate_transaction(_tx(amount=Decimal("5000")))
        assert result.is_valid
        assert len(result.warnings) == 1


class TestCardPurchaseValidation:

    def _purchase(self, **overrides) -> CardPurchaseInput:
        data = dict(
            name="Laptop",
            total_amount=Decimal("1200"),
            start_date=date(2024, 5, 1),
            installments=12,
            credit_card_id=uuid4(),
            category_id=uuid4(),
        )
        data.update(overrides)
        return CardPurchaseInput(**data)

    def test_valid_purchase(self):
        assert _validator().validate_card_purchase(self._purchase()).is_valid

    def test_zero_installments_rejected(self):
        result = _validator().validate_card_purchase(self._purchase(installments=0))
        assert result.issues[0].field == "installments"

    def test_too_many_installments_rejected(self):
        result = _validator(max_installments=24).validate_card_purchase(
            self._purchase(installments=36)
        )
        assert result.has_errors

    def test_installment_rounding_to_zero_rejected(self):
        result = _validator().validate_card_purchase(
            self._purchase(total_amount=Decimal("0.04"), installments=10)
        )
        assert result.has_errors

    def test_missing_card_rejected(self):
        result = _validator().validate_card_purchase(self._purchase(credit_card_id=None))
        assert result.issues[0].field == "credit_card_id"


class TestTransferValidation:

    def test_same_account_rejected(self):
        account_id = uuid4()
        result = _validator().validate_transfer(TransferInput(
            from_account_id=account_id,
            to_account_id=account_id,
            amount=Decimal("10"),
            date=date(2024, 5, 1),
        ))
        assert result.has_errors
        assert result.issues[0].field == "to_account_id"

    def test_category_is_optional(self):
        result = _validator().validate_transfer(TransferInput(
            from_account_id=uuid4(),
            to_account_id=uuid4(),
            amount=Decimal("10"),
            date=date(2024, 5, 1),
        ))
        assert result.is_valid


class TestDatePolicy:

    def test_future_completed_becomes_pending(self):
        tomorrow = date.today() + timedelta(days=1)
        data = _validator().apply_date_policy(_tx(date=tomorrow))
        assert data.status == TransactionStatus.PENDING

    def test_past_transaction_unchanged(self):
        data = _validator().apply_date_policy(_tx())
        assert data.status == TransactionStatus.COMPLETED

    def test_policy_can_be_disabled(self):
        tomorrow = date.today() + timedelta(days=1)
        data = _validator(force_pending_for_future_dates=False).apply_date_policy(
            _tx(date=tomorrow)
        )
        assert data.status == TransactionStatus.COMPLETED


class TestSummary:

    def test_summary_lists_errors(self):
        validator = _validator()
        result = validator.validate_transaction(_tx(amount=Decimal("0")))
        summary = validator.get_user_friendly_summary(result)
        assert "Amount must be greater than zero" in summary

    def test_summary_all_clear(self):
        validator = _validator()
        summary = validator.get_user_friendly_summary(validator.validate_transaction(_tx()))
        assert "All checks passed" in summary
