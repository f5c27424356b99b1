"""
Two-Stage Input Validation

DESIGN DECISION: Every form submission goes through two stages before
anything is written:

STAGE 1 - PARSING:
- Required field presence
- Numbers parsed loosely (comma decimals, stray whitespace)
- Dates parsed from ISO strings
- This catches typos and empty inputs

STAGE 2 - RANGE CHECKS:
- Amounts must be positive (or non-negative for balances and targets)
- Days of month limited to 1-28 so every month has them
- Rates within plausible bounds
- Absurdly large amounts rejected
- This catches values that parse but make no sense

IMPORTANT: Validation NEVER silently fixes input. Errors block the write
and are shown to the user; warnings are shown but don't block. Nothing is
retried.
"""

import datetime as dt
from decimal import Decimal
from typing import Any, Optional

from ledger.config import LedgerSettings, get_settings
from ledger.models.normalize import normalize_kind
from ledger.models.records import ValidationIssue, ValidationResult
from ledger.validation.formatting import parse_amount_loose


class InputValidationError(ValueError):
    """User input was rejected before any write."""

    def __init__(self, result: ValidationResult):
        self.result = result
        messages = "; ".join(
            issue.message for issue in result.issues if issue.severity == "error"
        )
        super().__init__(f"Invalid {result.subject}: {messages}")


class LedgerValidator:
    """
    Validates user input for every ledger mutation.

    Each ``validate_*`` method returns a ValidationResult whose ``values``
    hold the parsed inputs, ready to build a model from.
    """

    def __init__(self, settings: Optional[LedgerSettings] = None):
        self._settings = settings or get_settings().ledger

    # =========================================================================
    # STAGE 1: PARSING
    # =========================================================================

    def _parse_amount(
        self,
        result: ValidationResult,
        field: str,
        raw: Any,
        required: bool = True,
    ) -> Optional[Decimal]:
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            if required:
                result.issues.append(ValidationIssue(
                    field=field,
                    issue_type="missing",
                    message=f"{field.replace('_', ' ').capitalize()} is required",
                    severity="error",
                ))
            return None

        value = parse_amount_loose(raw)
        if value is None:
            result.issues.append(ValidationIssue(
                field=field,
                issue_type="not_a_number",
                message=f"{field.replace('_', ' ').capitalize()} is not a number: {raw!r}",
                severity="error",
                suggested_fix="Use digits, with a comma or a dot for decimals",
            ))
            return None

        result.values[field] = value
        return value

    def _parse_int(
        self,
        result: ValidationResult,
        field: str,
        raw: Any,
        default: Optional[int] = None,
    ) -> Optional[int]:
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            if default is not None:
                result.values[field] = default
            return default

        value = parse_amount_loose(raw)
        if value is None or value != value.to_integral_value():
            result.issues.append(ValidationIssue(
                field=field,
                issue_type="not_an_integer",
                message=f"{field.replace('_', ' ').capitalize()} must be a whole number",
                severity="error",
            ))
            return None

        result.values[field] = int(value)
        return int(value)

    def _parse_date(
        self,
        result: ValidationResult,
        field: str,
        raw: Any,
        required: bool = True,
    ) -> Optional[dt.date]:
        if raw is None or raw == "":
            if required:
                result.issues.append(ValidationIssue(
                    field=field,
                    issue_type="missing",
                    message=f"{field.replace('_', ' ').capitalize()} is required",
                    severity="error",
                ))
            return None

        if isinstance(raw, dt.datetime):
            value = raw.date()
        elif isinstance(raw, dt.date):
            value = raw
        else:
            try:
                value = dt.date.fromisoformat(str(raw).strip())
            except ValueError:
                result.issues.append(ValidationIssue(
                    field=field,
                    issue_type="invalid_date",
                    message=f"{field.replace('_', ' ').capitalize()} is not a date: {raw!r}",
                    severity="error",
                    suggested_fix="Use the YYYY-MM-DD format",
                ))
                return None

        result.values[field] = value
        return value

    def _parse_title(self, result: ValidationResult, field: str, raw: Any) -> Optional[str]:
        title = (raw or "").strip() if isinstance(raw, str) else ""
        if not title:
            result.issues.append(ValidationIssue(
                field=field,
                issue_type="missing",
                message=f"{field.replace('_', ' ').capitalize()} is required",
                severity="error",
            ))
            return None
        result.values[field] = title
        return title

    # =========================================================================
    # STAGE 2: RANGE CHECKS
    # =========================================================================

    def _check_positive(self, result: ValidationResult, field: str, value: Optional[Decimal]) -> None:
        if value is None:
            return
        if value <= 0:
            result.issues.append(ValidationIssue(
                field=field,
                issue_type="out_of_range",
                message=f"{field.replace('_', ' ').capitalize()} must be greater than zero",
                severity="error",
            ))
        elif value > self._settings.max_amount:
            result.issues.append(ValidationIssue(
                field=field,
                issue_type="absurd_amount",
                message=f"{field.replace('_', ' ').capitalize()} {value} exceeds the maximum of {self._settings.max_amount}",
                severity="error",
                suggested_fix="Check for an extra digit",
            ))

    def _check_non_negative(self, result: ValidationResult, field: str, value: Optional[Decimal]) -> None:
        if value is None:
            return
        if value < 0:
            result.issues.append(ValidationIssue(
                field=field,
                issue_type="out_of_range",
                message=f"{field.replace('_', ' ').capitalize()} cannot be negative",
                severity="error",
            ))
        elif value > self._settings.max_amount:
            result.issues.append(ValidationIssue(
                field=field,
                issue_type="absurd_amount",
                message=f"{field.replace('_', ' ').capitalize()} {value} exceeds the maximum of {self._settings.max_amount}",
                severity="error",
            ))

    def _check_range(
        self,
        result: ValidationResult,
        field: str,
        value: Optional[Decimal],
        low: Decimal,
        high: Decimal,
    ) -> None:
        if value is None:
            return
        if not low <= value <= high:
            result.issues.append(ValidationIssue(
                field=field,
                issue_type="out_of_range",
                message=f"{field.replace('_', ' ').capitalize()} must be between {low} and {high}",
                severity="error",
            ))

    def _check_day_of_month(self, result: ValidationResult, field: str, value: Optional[int]) -> None:
        if value is None:
            return
        if not 1 <= value <= 28:
            result.issues.append(ValidationIssue(
                field=field,
                issue_type="out_of_range",
                message=f"{field.replace('_', ' ').capitalize()} must be between 1 and 28",
                severity="error",
                suggested_fix="Days after the 28th don't exist in every month",
            ))

    def _check_not_future(
        self,
        result: ValidationResult,
        field: str,
        value: Optional[dt.date],
        today: Optional[dt.date],
    ) -> None:
        today = today or dt.date.today()
        if value is not None and value > today:
            result.issues.append(ValidationIssue(
                field=field,
                issue_type="future_date",
                message=f"{field.replace('_', ' ').capitalize()} {value.isoformat()} is in the future",
                severity="warning",
            ))

    # =========================================================================
    # FORMS
    # =========================================================================

    def validate_transaction(
        self,
        kind: Any,
        amount: Any,
        date: Any,
        category: Optional[str] = None,
        taxable: Optional[bool] = None,
        note: Optional[str] = None,
        today: Optional[dt.date] = None,
    ) -> ValidationResult:
        result = ValidationResult(subject="transaction")
        result.values["kind"] = normalize_kind(kind)

        value = self._parse_amount(result, "amount", amount)
        day = self._parse_date(result, "date", date)
        self._check_positive(result, "amount", value)
        self._check_not_future(result, "date", day, today)

        result.values["category"] = (category or "").strip()
        result.values["taxable"] = bool(taxable)
        result.values["note"] = note
        return result

    def validate_loan(
        self,
        title: Any,
        balance: Any,
        monthly_payment: Any,
        payment_day: Any = None,
        annual_rate: Any = None,
    ) -> ValidationResult:
        result = ValidationResult(subject="loan")
        self._parse_title(result, "title", title)

        balance_value = self._parse_amount(result, "balance", balance)
        payment_value = self._parse_amount(result, "monthly_payment", monthly_payment)
        day = self._parse_int(result, "payment_day", payment_day, default=10)
        rate = self._parse_amount(result, "annual_rate", annual_rate, required=False)
        if rate is None and "annual_rate" not in result.values:
            result.values["annual_rate"] = Decimal("0")

        self._check_positive(result, "balance", balance_value)
        self._check_positive(result, "monthly_payment", payment_value)
        self._check_day_of_month(result, "payment_day", day)
        self._check_range(result, "annual_rate", rate, Decimal("0"), Decimal("200"))

        if (
            balance_value is not None
            and payment_value is not None
            and payment_value > balance_value > 0
        ):
            result.issues.append(ValidationIssue(
                field="monthly_payment",
                issue_type="suspicious",
                message="Monthly payment is larger than the whole balance",
                severity="warning",
            ))
        return result

    def validate_card(
        self,
        title: Any,
        balance: Any = None,
        statement_day: Any = None,
        due_day: Any = None,
        min_payment_rate: Any = None,
    ) -> ValidationResult:
        result = ValidationResult(subject="card")
        self._parse_title(result, "title", title)

        balance_value = self._parse_amount(result, "balance", balance, required=False)
        if balance_value is None and "balance" not in result.values:
            result.values["balance"] = Decimal("0")
        statement = self._parse_int(result, "statement_day", statement_day, default=1)
        due = self._parse_int(result, "due_day", due_day, default=25)
        rate = self._parse_amount(result, "min_payment_rate", min_payment_rate, required=False)
        if rate is None and "min_payment_rate" not in result.values:
            result.values["min_payment_rate"] = Decimal("0.05")

        self._check_non_negative(result, "balance", balance_value)
        self._check_day_of_month(result, "statement_day", statement)
        self._check_day_of_month(result, "due_day", due)
        self._check_range(result, "min_payment_rate", rate, Decimal("0"), Decimal("1"))
        return result

    def validate_payment(
        self,
        subject: str,
        amount: Any,
        date: Any = None,
        date_required: bool = True,
        today: Optional[dt.date] = None,
    ) -> ValidationResult:
        """Any single amount on a date: loan/card/tax/savings/recurring payments."""
        result = ValidationResult(subject=subject)
        value = self._parse_amount(result, "amount", amount)
        day = self._parse_date(result, "date", date, required=date_required)
        self._check_positive(result, "amount", value)
        self._check_not_future(result, "date", day, today)
        return result

    def validate_tax_settings(
        self,
        annual_fixed_levy: Any,
        extra_rate: Any,
    ) -> ValidationResult:
        result = ValidationResult(subject="tax settings")
        levy = self._parse_amount(result, "annual_fixed_levy", annual_fixed_levy)
        rate = self._parse_amount(result, "extra_rate", extra_rate)
        self._check_non_negative(result, "annual_fixed_levy", levy)
        self._check_range(result, "extra_rate", rate, Decimal("0"), Decimal("1"))
        if rate is not None and rate > Decimal("0.1"):
            result.issues.append(ValidationIssue(
                field="extra_rate",
                issue_type="suspicious",
                message=f"Surcharge rate {rate} is unusually high",
                severity="warning",
                suggested_fix="Enter the rate as a fraction, e.g. 0.01 for 1%",
            ))
        return result

    def validate_savings_settings(
        self,
        goal_amount: Any,
        target_monthly: Any,
    ) -> ValidationResult:
        result = ValidationResult(subject="savings settings")
        goal = self._parse_amount(result, "goal_amount", goal_amount)
        target = self._parse_amount(result, "target_monthly", target_monthly)
        self._check_positive(result, "goal_amount", goal)
        self._check_non_negative(result, "target_monthly", target)
        return result

    def validate_recurring(
        self,
        title: Any,
        amount: Any,
        pay_day: Any = None,
    ) -> ValidationResult:
        result = ValidationResult(subject="recurring obligation")
        self._parse_title(result, "title", title)
        value = self._parse_amount(result, "amount", amount)
        day = self._parse_int(result, "pay_day", pay_day, default=1)
        self._check_positive(result, "amount", value)
        self._check_day_of_month(result, "pay_day", day)
        return result

    # =========================================================================
    # REPORTING
    # =========================================================================

    @staticmethod
    def require_valid(result: ValidationResult) -> ValidationResult:
        """Raise InputValidationError if the result has errors."""
        if result.has_errors:
            raise InputValidationError(result)
        return result

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what we show next to the form.
        """
        if result.is_valid and not result.warnings:
            return "✅ All checks passed."

        lines = []

        if result.has_errors:
            lines.append("❌ Please fix the following:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please double-check:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
