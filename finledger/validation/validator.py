"""
Ledger Intent Validation

Every intent the UI submits (plain transaction, card purchase, transfer)
is checked here before the ledger writes anything.

Two kinds of finding:
- errors: the intent cannot be written (non-positive amount, missing
  account/card/category, transfer to the same account, installment
  count out of range)
- warnings: the intent is written but the user should double-check it
  (unusually large amounts)

IMPORTANT: Validation NEVER silently fixes issues.
It reports them for the UI to show. The one policy adjustment made
here, storing future-dated transactions as pending, is applied
explicitly by the ledger through `apply_date_policy`.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from finledger.config import LedgerSettings, get_settings
from finledger.models.ledger import (
    CardPurchaseInput,
    TransactionInput,
    TransactionStatus,
    TransferInput,
    ValidationIssue,
    ValidationResult,
    quantize_money,
)


class LedgerValidator:
    """Checks ledger intents and reports issues without writing anything."""

    def __init__(self, settings: Optional[LedgerSettings] = None):
        self._settings = settings or get_settings().ledger

    def _check_amount(self, field: str, amount: Optional[Decimal]) -> list[ValidationIssue]:
        issues = []
        if amount is None or amount <= 0:
            issues.append(ValidationIssue(
                field=field,
                issue_type="invalid_value",
                message="Amount must be greater than zero",
                severity="error",
                suggested_fix="Enter the value without a sign; direction is chosen separately",
            ))
        elif amount > self._settings.max_transaction_amount:
            issues.append(ValidationIssue(
                field=field,
                issue_type="suspicious_value",
                message=f"Amount ({amount:,.2f}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))
        return issues

    @staticmethod
    def _missing(field: str, what: str) -> ValidationIssue:
        return ValidationIssue(
            field=field,
            issue_type="missing",
            message=f"Please select {what}",
            severity="error",
        )

    def validate_transaction(self, data: TransactionInput) -> ValidationResult:
        """Validate a plain income/expense."""
        issues = self._check_amount("amount", data.amount)

        if data.account_id is None:
            issues.append(self._missing("account_id", "an account"))
        if data.category_id is None:
            issues.append(self._missing("category_id", "a category"))

        return ValidationResult(operation="transaction", issues=issues)

    def validate_card_purchase(self, data: CardPurchaseInput) -> ValidationResult:
        """Validate a card purchase, including its installment count."""
        issues = self._check_amount("total_amount", data.total_amount)

        if data.credit_card_id is None:
            issues.append(self._missing("credit_card_id", "a credit card"))
        if data.category_id is None:
            issues.append(self._missing("category_id", "a category"))

        max_installments = self._settings.max_installments
        if data.installments < 1:
            issues.append(ValidationIssue(
                field="installments",
                issue_type="invalid_value",
                message="Number of installments must be at least 1",
                severity="error",
            ))
        elif data.installments > max_installments:
            issues.append(ValidationIssue(
                field="installments",
                issue_type="invalid_value",
                message=f"Number of installments cannot exceed {max_installments}",
                severity="error",
            ))
        elif (
            data.total_amount is not None
            and data.total_amount > 0
            and quantize_money(data.total_amount / data.installments) == 0
        ):
            issues.append(ValidationIssue(
                field="installments",
                issue_type="invalid_value",
                message="Each installment would round to zero",
                severity="error",
                suggested_fix="Use fewer installments",
            ))

        return ValidationResult(operation="card_purchase", issues=issues)

    def validate_transfer(self, data: TransferInput) -> ValidationResult:
        """Validate a transfer between two accounts."""
        issues = self._check_amount("amount", data.amount)

        if data.from_account_id is None:
            issues.append(self._missing("from_account_id", "the source account"))
        if data.to_account_id is None:
            issues.append(self._missing("to_account_id", "the destination account"))
        if (
            data.from_account_id is not None
            and data.from_account_id == data.to_account_id
        ):
            issues.append(ValidationIssue(
                field="to_account_id",
                issue_type="invalid_value",
                message="Source and destination accounts must be different",
                severity="error",
            ))

        return ValidationResult(operation="transfer", issues=issues)

    def apply_date_policy(
        self,
        data: TransactionInput,
        today: Optional[date] = None,
    ) -> TransactionInput:
        """
        Store future-dated transactions as pending.

        A completed transaction dated after today would move the balance
        before the money does; it is kept pending until then.
        """
        today = today or date.today()
        if (
            self._settings.force_pending_for_future_dates
            and data.status == TransactionStatus.COMPLETED
            and data.date > today
        ):
            return data.model_copy(update={"status": TransactionStatus.PENDING})
        return data

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what the UI shows next to the form.
        """
        if result.is_valid and not result.warnings:
            return "✅ All checks passed!"

        lines = []

        if result.has_errors:
            lines.append("❌ Please fix the following:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines).strip()
