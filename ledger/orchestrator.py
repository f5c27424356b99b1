"""
Main Orchestrator for Household Ledger

This module ties together all the components and defines the commands
that change the ledger:
1. Transactions (add, edit, delete)
2. Loans (create, pay, delete, rebuild balance)
3. Credit cards (create, accrue interest, pay, delete, rebuild balance)
4. Taxes (settings, payments)
5. Savings (settings, contributions)
6. Month close (carry-over) and recurring obligations

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing is written before input passes validation
- Every write is logged
- After writing, the affected collections are reloaded in full and a new
  snapshot is published

CRITICAL: Multi-record commands (a loan payment is a balance update, a
payment record and a mirrored expense) are NOT transactional. The writes
run in order and stop at the first failure. Nothing is rolled back; the
caller gets a PartialWriteError naming the steps that did complete. The
mirrored-expense step is idempotent (keyed by the source record id), and
balances can be rebuilt from the immutable history to recover.
"""

import datetime as dt
from decimal import Decimal
from typing import Any, Awaitable, NamedTuple, Optional
from uuid import UUID

from ledger.config import LedgerSettings, get_settings
from ledger.engine import (
    LedgerEngine,
    LedgerSession,
    amortize_payment,
    apply_interest,
    apply_payment,
    month_key,
    previous_month_key,
    project_savings,
    rebuild_card_balance,
    rebuild_loan_balance,
    recommended_amount_today,
    recurring_statuses,
    sum_for_period,
)
from ledger.events import EventLogger, configure_logging, create_correlation_id
from ledger.models import (
    CardAccount,
    CardEvent,
    CardEventKind,
    Collection,
    LedgerEventBuilder,
    LedgerEventType,
    Loan,
    LoanPayment,
    LoanPaymentBreakdown,
    MonthCarryover,
    ObligationKind,
    RecurringObligation,
    RecurringPayment,
    RecurringStatus,
    SavingsEntry,
    SavingsSettings,
    TaxPayment,
    TaxSettings,
    Transaction,
    TransactionKind,
    ValidationResult,
)
from ledger.models.normalize import normalize_tax_kind
from ledger.queries import ReportExecutor
from ledger.services import (
    DuplicateError,
    GoogleSheetsRecordStore,
    InMemoryRecordStore,
    LedgerRepository,
    NotFoundError,
    RecordStoreInterface,
)
from ledger.validation import InputValidationError, LedgerValidator

# Marks an edit argument that was not given; None clears optional fields
UNCHANGED: Any = object()


class PartialWriteError(Exception):
    """
    A multi-record command failed after some of its writes succeeded.

    The completed writes are NOT undone.
    """

    def __init__(self, operation: str, completed_steps: list[str], cause: Exception):
        self.operation = operation
        self.completed_steps = list(completed_steps)
        self.cause = cause
        super().__init__(
            f"{operation} failed after {', '.join(completed_steps)}: {cause}"
        )


class WriteSequence:
    """
    Runs the writes of one command in order and tracks what completed.

    Usage:
        writes = WriteSequence("loan payment", event_logger, correlation_id)
        await writes.step("update loan", repo.update(...))
        await writes.step("insert payment", repo.insert(...))
    """

    def __init__(
        self,
        operation: str,
        event_logger: Optional[EventLogger] = None,
        correlation_id: Optional[UUID] = None,
    ):
        self.operation = operation
        self.completed: list[str] = []
        self._event_logger = event_logger
        self._correlation_id = correlation_id

    async def step(self, name: str, write: Awaitable[Any]) -> Any:
        try:
            result = await write
        except Exception as e:
            if not self.completed:
                # Nothing written yet: surface the store error unchanged
                if self._event_logger:
                    self._event_logger.log_storage_error(
                        operation=f"{self.operation}: {name}",
                        error_message=str(e),
                        correlation_id=self._correlation_id,
                    )
                raise
            if self._event_logger:
                self._event_logger.log_partial_write(
                    operation=self.operation,
                    completed_steps=self.completed,
                    error_message=str(e),
                    correlation_id=self._correlation_id,
                )
            raise PartialWriteError(self.operation, self.completed, e) from e

        self.completed.append(name)
        return result


class LedgerFlow:
    """Shared plumbing for the command flows."""

    def __init__(
        self,
        repository: LedgerRepository,
        session: LedgerSession,
        validator: Optional[LedgerValidator] = None,
        event_logger: Optional[EventLogger] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._repository = repository
        self._session = session
        self._settings = settings or get_settings().ledger
        self._validator = validator or LedgerValidator(self._settings)
        self._event_logger = event_logger

    def _require_valid(
        self,
        result: ValidationResult,
        correlation_id: Optional[UUID] = None,
    ) -> dict[str, Any]:
        """Return parsed values, or log and raise if the input was rejected."""
        if result.has_errors:
            if self._event_logger:
                self._event_logger.log_validation_failed(
                    subject=result.subject,
                    issues=[issue.model_dump() for issue in result.issues],
                    correlation_id=correlation_id,
                )
            raise InputValidationError(result)
        return result.values

    def _log(
        self,
        event_type: LedgerEventType,
        entity_type: str,
        entity_id: Optional[UUID],
        description: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        if self._event_logger:
            self._event_logger.log_change(
                event_type=event_type,
                entity_type=entity_type,
                entity_id=entity_id,
                description=description,
                details=details,
                correlation_id=correlation_id,
            )

    async def _get(self, collection: Collection, record_id: UUID):
        record = await self._repository.get(collection, record_id)
        if record is None:
            raise NotFoundError(f"{collection.value} record not found: {record_id}")
        return record

    async def _mirror_expense(
        self,
        source_event_id: UUID,
        date: dt.date,
        amount: Decimal,
        category: str,
        obligation_kind: ObligationKind,
        obligation_id: Optional[UUID] = None,
        note: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Insert the expense transaction mirroring a payment record.

        IMPORTANT: Idempotent. If a transaction already mirrors
        ``source_event_id`` it is returned instead of inserting another.
        """
        existing = await self._repository.find_mirror(source_event_id)
        if existing is not None:
            self._log(
                LedgerEventType.MIRROR_REUSED,
                "transaction",
                existing.id,
                f"Reused mirrored expense for {obligation_kind.value} record",
                details={"source_event_id": str(source_event_id)},
                correlation_id=correlation_id,
            )
            return existing

        mirror = await self._repository.insert(
            Collection.TRANSACTIONS,
            Transaction(
                date=date,
                kind=TransactionKind.EXPENSE,
                amount=amount,
                category=category,
                note=note,
                obligation_kind=obligation_kind,
                obligation_id=obligation_id,
                source_event_id=source_event_id,
            ),
        )
        self._log(
            LedgerEventType.TRANSACTION_ADDED,
            "transaction",
            mirror.id,
            f"Mirrored expense {amount} ({category})",
            details={"source_event_id": str(source_event_id)},
            correlation_id=correlation_id,
        )
        return mirror

    async def _delete_mirror(
        self,
        transaction_id: Optional[UUID],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Delete a linked mirrored transaction if it still exists."""
        if transaction_id is None:
            return
        try:
            await self._repository.delete(Collection.TRANSACTIONS, transaction_id)
        except NotFoundError:
            # Already removed by hand from the ledger
            self._log(
                LedgerEventType.TRANSACTION_DELETED,
                "transaction",
                transaction_id,
                "Mirrored expense was already gone",
                correlation_id=correlation_id,
            )
            return
        self._log(
            LedgerEventType.TRANSACTION_DELETED,
            "transaction",
            transaction_id,
            "Mirrored expense deleted with its source record",
            correlation_id=correlation_id,
        )


# =============================================================================
# TRANSACTIONS
# =============================================================================

class TransactionFlow(LedgerFlow):
    """Manual income and expense entries."""

    async def add_transaction(
        self,
        kind: Any,
        amount: Any,
        date: Any,
        category: Optional[str] = None,
        taxable: Optional[bool] = None,
        note: Optional[str] = None,
        today: Optional[dt.date] = None,
    ) -> Transaction:
        correlation_id = create_correlation_id()
        values = self._require_valid(
            self._validator.validate_transaction(
                kind, amount, date,
                category=category,
                taxable=taxable,
                note=note,
                today=today,
            ),
            correlation_id,
        )

        tx = await self._repository.insert(Collection.TRANSACTIONS, Transaction(**values))
        self._log(
            LedgerEventType.TRANSACTION_ADDED,
            "transaction",
            tx.id,
            f"{tx.kind.value.capitalize()} {tx.amount} ({tx.category})",
            correlation_id=correlation_id,
        )
        await self._session.reload(Collection.TRANSACTIONS)
        return tx

    async def add_income(
        self,
        amount: Any,
        date: Any,
        category: Optional[str] = None,
        taxable: bool = False,
        note: Optional[str] = None,
    ) -> Transaction:
        return await self.add_transaction(
            TransactionKind.INCOME, amount, date,
            category=category, taxable=taxable, note=note,
        )

    async def add_expense(
        self,
        amount: Any,
        date: Any,
        category: Optional[str] = None,
        note: Optional[str] = None,
    ) -> Transaction:
        return await self.add_transaction(
            TransactionKind.EXPENSE, amount, date,
            category=category, note=note,
        )

    async def update_transaction(
        self,
        transaction_id: UUID,
        kind: Any = UNCHANGED,
        amount: Any = UNCHANGED,
        date: Any = UNCHANGED,
        category: Any = UNCHANGED,
        taxable: Any = UNCHANGED,
        note: Any = UNCHANGED,
        today: Optional[dt.date] = None,
    ) -> Transaction:
        """
        Edit a transaction.

        Fields that are not passed keep their current value. Passing None
        clears ``note``, resets ``taxable`` to False and ``category`` to the
        default for the kind.
        """
        correlation_id = create_correlation_id()
        current = await self._get(Collection.TRANSACTIONS, transaction_id)

        def pick(value: Any, existing: Any) -> Any:
            return existing if value is UNCHANGED else value

        values = self._require_valid(
            self._validator.validate_transaction(
                pick(kind, current.kind),
                pick(amount, current.amount),
                pick(date, current.date),
                category=pick(category, current.category),
                taxable=pick(taxable, current.taxable),
                note=pick(note, current.note),
                today=today,
            ),
            correlation_id,
        )

        updated = await self._repository.update(Collection.TRANSACTIONS, transaction_id, values)
        self._log(
            LedgerEventType.TRANSACTION_UPDATED,
            "transaction",
            transaction_id,
            "Transaction edited",
            correlation_id=correlation_id,
        )
        await self._session.reload(Collection.TRANSACTIONS)
        return updated

    async def delete_transaction(self, transaction_id: UUID) -> None:
        await self._repository.delete(Collection.TRANSACTIONS, transaction_id)
        self._log(
            LedgerEventType.TRANSACTION_DELETED,
            "transaction",
            transaction_id,
            "Transaction deleted",
        )
        await self._session.reload(Collection.TRANSACTIONS)


# =============================================================================
# LOANS
# =============================================================================

class LoanFlow(LedgerFlow):
    """Installment loans and their payments."""

    async def create_loan(
        self,
        title: Any,
        balance: Any,
        monthly_payment: Any,
        payment_day: Any = None,
        annual_rate: Any = None,
    ) -> Loan:
        correlation_id = create_correlation_id()
        values = self._require_valid(
            self._validator.validate_loan(title, balance, monthly_payment, payment_day, annual_rate),
            correlation_id,
        )

        loan = await self._repository.insert(Collection.LOANS, Loan(**values))
        self._log(
            LedgerEventType.LOAN_CREATED,
            "loan",
            loan.id,
            f"Loan created: {loan.title}",
            details={"balance": str(loan.balance), "annual_rate": str(loan.annual_rate)},
            correlation_id=correlation_id,
        )
        await self._session.reload(Collection.LOANS)
        return loan

    async def record_payment(
        self,
        loan_id: UUID,
        amount: Any,
        payment_date: Any,
    ) -> tuple[LoanPaymentBreakdown, LoanPayment, Transaction]:
        """
        Record a loan payment.

        FLOW (sequential, no rollback):
        1. Update the loan's balance, last payment date and active flag
        2. Append the immutable LoanPayment record
        3. Append the mirrored expense transaction

        Raises:
            InputValidationError: Before any write, if the input is invalid
            PartialWriteError: If step 2 or 3 fails
        """
        correlation_id = create_correlation_id()
        values = self._require_valid(
            self._validator.validate_payment("loan payment", amount, payment_date),
            correlation_id,
        )
        loan = await self._get(Collection.LOANS, loan_id)
        breakdown = amortize_payment(loan, values["amount"], values["date"])

        writes = WriteSequence("loan payment", self._event_logger, correlation_id)
        try:
            await writes.step("update loan", self._repository.update(
                Collection.LOANS,
                loan.id,
                {
                    "balance": breakdown.balance_after,
                    "last_payment_date": breakdown.payment_date,
                    "active": breakdown.active,
                },
            ))
            payment = await writes.step(
                "insert loan payment",
                self._repository.insert(Collection.LOAN_PAYMENTS, breakdown.to_payment_record()),
            )
            mirror = await writes.step("insert mirrored expense", self._mirror_expense(
                source_event_id=payment.id,
                date=payment.payment_date,
                amount=payment.payment_amount,
                category=f"Loan: {loan.title}",
                obligation_kind=ObligationKind.LOAN,
                obligation_id=loan.id,
                correlation_id=correlation_id,
            ))
        finally:
            if writes.completed:
                await self._session.reload(
                    Collection.LOANS, Collection.LOAN_PAYMENTS, Collection.TRANSACTIONS
                )

        if self._event_logger:
            self._event_logger.log(
                LedgerEventBuilder.loan_payment_recorded(
                    loan_id=loan.id,
                    payment_id=payment.id,
                    days=breakdown.days_since_payment,
                    interest=str(breakdown.interest_amount),
                    principal=str(breakdown.principal_amount),
                    balance_after=str(breakdown.balance_after),
                    correlation_id=correlation_id,
                )
            )
        return breakdown, payment, mirror

    async def ensure_payment_mirror(self, payment_id: UUID) -> Transaction:
        """
        Make sure a recorded loan payment has its mirrored expense.

        Safe to run repeatedly; used to finish a payment whose last write failed.
        """
        payment = await self._get(Collection.LOAN_PAYMENTS, payment_id)
        loan = await self._repository.get(Collection.LOANS, payment.loan_id)
        title = loan.title if loan else str(payment.loan_id)
        mirror = await self._mirror_expense(
            source_event_id=payment.id,
            date=payment.payment_date,
            amount=payment.payment_amount,
            category=f"Loan: {title}",
            obligation_kind=ObligationKind.LOAN,
            obligation_id=payment.loan_id,
        )
        await self._session.reload(Collection.TRANSACTIONS)
        return mirror

    async def delete_loan(self, loan_id: UUID) -> None:
        """
        Delete a loan and its payment history.

        Mirrored expenses stay in the ledger: that money really was spent.
        """
        correlation_id = create_correlation_id()
        payments = await self._repository.load(Collection.LOAN_PAYMENTS, filters={"loan_id": loan_id})

        writes = WriteSequence("delete loan", self._event_logger, correlation_id)
        try:
            for payment in payments:
                await writes.step(
                    f"delete payment {payment.id}",
                    self._repository.delete(Collection.LOAN_PAYMENTS, payment.id),
                )
            await writes.step("delete loan", self._repository.delete(Collection.LOANS, loan_id))
        finally:
            if writes.completed:
                await self._session.reload(Collection.LOANS, Collection.LOAN_PAYMENTS)

        self._log(
            LedgerEventType.LOAN_DELETED,
            "loan",
            loan_id,
            f"Loan deleted with {len(payments)} payments",
            correlation_id=correlation_id,
        )

    async def rebuild_balance(
        self,
        loan_id: UUID,
        opening_balance: Optional[Decimal] = None,
    ) -> Loan:
        """
        Recompute the cached balance from the payment history.

        Use after a partial write left the balance out of step with the
        recorded payments.
        """
        loan = await self._get(Collection.LOANS, loan_id)
        payments = await self._repository.load(Collection.LOAN_PAYMENTS, filters={"loan_id": loan_id})
        if not payments and opening_balance is None:
            return loan

        balance = rebuild_loan_balance(payments, opening_balance)
        last_paid = max((p.payment_date for p in payments), default=None)
        updated = await self._repository.update(
            Collection.LOANS,
            loan_id,
            {"balance": balance, "last_payment_date": last_paid, "active": balance > 0},
        )
        self._log(
            LedgerEventType.LOAN_BALANCE_REBUILT,
            "loan",
            loan_id,
            f"Balance rebuilt from {len(payments)} payments",
            details={"before": str(loan.balance), "after": str(balance)},
        )
        await self._session.reload(Collection.LOANS)
        return updated


# =============================================================================
# CREDIT CARDS
# =============================================================================

class CardFlow(LedgerFlow):
    """Credit card balances, interest and payments."""

    async def create_card(
        self,
        title: Any,
        balance: Any = None,
        statement_day: Any = None,
        due_day: Any = None,
        min_payment_rate: Any = None,
    ) -> CardAccount:
        correlation_id = create_correlation_id()
        values = self._require_valid(
            self._validator.validate_card(title, balance, statement_day, due_day, min_payment_rate),
            correlation_id,
        )
        values["opening_balance"] = values["balance"]
        values["active"] = True

        card = await self._repository.insert(Collection.CARD_ACCOUNTS, CardAccount(**values))
        self._log(
            LedgerEventType.CARD_CREATED,
            "card",
            card.id,
            f"Card created: {card.title}",
            correlation_id=correlation_id,
        )
        await self._session.reload(Collection.CARD_ACCOUNTS)
        return card

    async def accrue_interest(
        self,
        card_id: UUID,
        amount: Any,
        date: Any,
        note: Optional[str] = None,
    ) -> CardEvent:
        """
        Add interest to the card balance.

        No transaction is created: interest grows the debt, no cash moves.
        """
        correlation_id = create_correlation_id()
        values = self._require_valid(
            self._validator.validate_payment("card interest", amount, date),
            correlation_id,
        )
        card = await self._get(Collection.CARD_ACCOUNTS, card_id)
        new_balance, active = apply_interest(card, values["amount"])

        writes = WriteSequence("card interest", self._event_logger, correlation_id)
        try:
            event = await writes.step("insert card event", self._repository.insert(
                Collection.CARD_EVENTS,
                CardEvent(
                    card_id=card.id,
                    date=values["date"],
                    kind=CardEventKind.INTEREST,
                    amount=values["amount"],
                    note=note,
                ),
            ))
            await writes.step("update card", self._repository.update(
                Collection.CARD_ACCOUNTS,
                card.id,
                {"balance": new_balance, "active": active},
            ))
        finally:
            if writes.completed:
                await self._session.reload(Collection.CARD_ACCOUNTS, Collection.CARD_EVENTS)

        self._log(
            LedgerEventType.CARD_INTEREST_ACCRUED,
            "card",
            card.id,
            f"Interest {values['amount']} accrued",
            details={"balance_after": str(new_balance)},
            correlation_id=correlation_id,
        )
        return event

    async def record_payment(
        self,
        card_id: UUID,
        amount: Any,
        date: Any,
        note: Optional[str] = None,
    ) -> tuple[CardEvent, Transaction]:
        """
        Record a card payment.

        FLOW (sequential, no rollback):
        1. Append the payment CardEvent
        2. Update the card balance and active flag
        3. Append the mirrored expense transaction
        """
        correlation_id = create_correlation_id()
        values = self._require_valid(
            self._validator.validate_payment("card payment", amount, date),
            correlation_id,
        )
        card = await self._get(Collection.CARD_ACCOUNTS, card_id)
        new_balance, active = apply_payment(card, values["amount"])

        writes = WriteSequence("card payment", self._event_logger, correlation_id)
        try:
            event = await writes.step("insert card event", self._repository.insert(
                Collection.CARD_EVENTS,
                CardEvent(
                    card_id=card.id,
                    date=values["date"],
                    kind=CardEventKind.PAYMENT,
                    amount=values["amount"],
                    note=note,
                ),
            ))
            await writes.step("update card", self._repository.update(
                Collection.CARD_ACCOUNTS,
                card.id,
                {"balance": new_balance, "active": active},
            ))
            mirror = await writes.step("insert mirrored expense", self._mirror_expense(
                source_event_id=event.id,
                date=event.date,
                amount=event.amount,
                category=f"Card: {card.title}",
                obligation_kind=ObligationKind.CARD,
                obligation_id=card.id,
                note=note,
                correlation_id=correlation_id,
            ))
        finally:
            if writes.completed:
                await self._session.reload(
                    Collection.CARD_ACCOUNTS, Collection.CARD_EVENTS, Collection.TRANSACTIONS
                )

        self._log(
            LedgerEventType.CARD_PAYMENT_RECORDED,
            "card",
            card.id,
            f"Payment {values['amount']} recorded",
            details={"balance_after": str(new_balance), "transaction_id": str(mirror.id)},
            correlation_id=correlation_id,
        )
        return event, mirror

    async def ensure_payment_mirror(self, event_id: UUID) -> Transaction:
        """Make sure a card payment event has its mirrored expense. Idempotent."""
        event = await self._get(Collection.CARD_EVENTS, event_id)
        if event.kind != CardEventKind.PAYMENT:
            raise ValueError("Only card payments are mirrored into the ledger")
        card = await self._repository.get(Collection.CARD_ACCOUNTS, event.card_id)
        title = card.title if card else str(event.card_id)
        mirror = await self._mirror_expense(
            source_event_id=event.id,
            date=event.date,
            amount=event.amount,
            category=f"Card: {title}",
            obligation_kind=ObligationKind.CARD,
            obligation_id=event.card_id,
            note=event.note,
        )
        await self._session.reload(Collection.TRANSACTIONS)
        return mirror

    async def delete_card(self, card_id: UUID) -> None:
        """Delete a card and its events. Mirrored expenses stay in the ledger."""
        correlation_id = create_correlation_id()
        events = await self._repository.load(Collection.CARD_EVENTS, filters={"card_id": card_id})

        writes = WriteSequence("delete card", self._event_logger, correlation_id)
        try:
            for event in events:
                await writes.step(
                    f"delete event {event.id}",
                    self._repository.delete(Collection.CARD_EVENTS, event.id),
                )
            await writes.step("delete card", self._repository.delete(Collection.CARD_ACCOUNTS, card_id))
        finally:
            if writes.completed:
                await self._session.reload(Collection.CARD_ACCOUNTS, Collection.CARD_EVENTS)

        self._log(
            LedgerEventType.CARD_DELETED,
            "card",
            card_id,
            f"Card deleted with {len(events)} events",
            correlation_id=correlation_id,
        )

    async def rebuild_balance(
        self,
        card_id: UUID,
        opening_balance: Optional[Decimal] = None,
    ) -> CardAccount:
        """
        Recompute the balance by replaying interest and payment events.

        Replay starts from the opening debt stored on the card. Cards saved
        before it was recorded need ``opening_balance`` passed explicitly.
        """
        card = await self._get(Collection.CARD_ACCOUNTS, card_id)
        events = await self._repository.load(Collection.CARD_EVENTS, filters={"card_id": card_id})
        if opening_balance is None:
            opening_balance = card.opening_balance
        if opening_balance is None:
            if not events:
                return card
            raise ValueError(
                f"Card {card.title} has no stored opening balance; pass opening_balance"
            )
        balance = rebuild_card_balance(events, opening_balance)

        updated = await self._repository.update(
            Collection.CARD_ACCOUNTS,
            card_id,
            {"balance": balance, "active": balance > 0},
        )
        self._log(
            LedgerEventType.CARD_BALANCE_REBUILT,
            "card",
            card_id,
            f"Balance rebuilt from {len(events)} events",
            details={"before": str(card.balance), "after": str(balance)},
        )
        await self._session.reload(Collection.CARD_ACCOUNTS)
        return updated


# =============================================================================
# TAXES
# =============================================================================

class TaxFlow(LedgerFlow):
    """Tax settings and recorded tax payments."""

    async def update_settings(self, annual_fixed_levy: Any, extra_rate: Any) -> TaxSettings:
        values = self._require_valid(
            self._validator.validate_tax_settings(annual_fixed_levy, extra_rate)
        )
        settings = await self._repository.ensure_tax_settings()
        updated = await self._repository.update(Collection.TAX_SETTINGS, settings.id, values)
        self._log(
            LedgerEventType.SETTINGS_UPDATED,
            "tax_settings",
            settings.id,
            "Tax settings updated",
            details={k: str(v) for k, v in values.items()},
        )
        await self._session.reload(Collection.TAX_SETTINGS)
        return updated

    async def record_payment(
        self,
        kind: Any,
        amount: Any,
        date: Any = None,
        note: Optional[str] = None,
        today: Optional[dt.date] = None,
    ) -> tuple[TaxPayment, Transaction]:
        """
        Record a tax payment.

        FLOW (sequential, no rollback):
        1. Append the TaxPayment
        2. Append the mirrored expense transaction
        3. Link the payment to its transaction
        """
        correlation_id = create_correlation_id()
        values = self._require_valid(
            self._validator.validate_payment("tax payment", amount, date, date_required=False, today=today),
            correlation_id,
        )
        payment_kind = normalize_tax_kind(kind)
        paid_on = values.get("date")

        writes = WriteSequence("tax payment", self._event_logger, correlation_id)
        try:
            payment = await writes.step("insert tax payment", self._repository.insert(
                Collection.TAX_PAYMENTS,
                TaxPayment(kind=payment_kind, amount=values["amount"], date=paid_on, note=note),
            ))
            mirror = await writes.step("insert mirrored expense", self._mirror_expense(
                source_event_id=payment.id,
                date=payment.effective_date,
                amount=payment.amount,
                category=f"Taxes ({payment_kind.value})",
                obligation_kind=ObligationKind.TAX,
                note=note,
                correlation_id=correlation_id,
            ))
            payment = await writes.step("link payment", self._repository.update(
                Collection.TAX_PAYMENTS,
                payment.id,
                {"transaction_id": mirror.id},
            ))
        finally:
            if writes.completed:
                await self._session.reload(Collection.TAX_PAYMENTS, Collection.TRANSACTIONS)

        self._log(
            LedgerEventType.TAX_PAYMENT_RECORDED,
            "tax_payment",
            payment.id,
            f"Tax payment {payment.amount} ({payment_kind.value})",
            correlation_id=correlation_id,
        )
        return payment, mirror

    async def delete_payment(self, payment_id: UUID) -> None:
        """Delete a tax payment together with its mirrored expense."""
        correlation_id = create_correlation_id()
        payment = await self._get(Collection.TAX_PAYMENTS, payment_id)
        transaction_id = payment.transaction_id
        if transaction_id is None:
            mirror = await self._repository.find_mirror(payment.id)
            transaction_id = mirror.id if mirror else None

        writes = WriteSequence("delete tax payment", self._event_logger, correlation_id)
        try:
            await writes.step(
                "delete mirrored expense",
                self._delete_mirror(transaction_id, correlation_id),
            )
            await writes.step(
                "delete tax payment",
                self._repository.delete(Collection.TAX_PAYMENTS, payment_id),
            )
        finally:
            if writes.completed:
                await self._session.reload(Collection.TAX_PAYMENTS, Collection.TRANSACTIONS)

        self._log(
            LedgerEventType.TAX_PAYMENT_DELETED,
            "tax_payment",
            payment_id,
            "Tax payment deleted",
            correlation_id=correlation_id,
        )


# =============================================================================
# SAVINGS
# =============================================================================

class SavingsFlow(LedgerFlow):
    """
    Savings goal and contributions.

    IMPORTANT: When ``mirror_savings_entries`` is on, every contribution is
    also an expense transaction, and editing or deleting the contribution
    edits or deletes that transaction too.
    """

    async def update_settings(self, goal_amount: Any, target_monthly: Any) -> SavingsSettings:
        values = self._require_valid(
            self._validator.validate_savings_settings(goal_amount, target_monthly)
        )
        settings = await self._repository.ensure_savings_settings()
        updated = await self._repository.update(Collection.SAVINGS_SETTINGS, settings.id, values)
        self._log(
            LedgerEventType.SETTINGS_UPDATED,
            "savings_settings",
            settings.id,
            "Savings settings updated",
            details={k: str(v) for k, v in values.items()},
        )
        await self._session.reload(Collection.SAVINGS_SETTINGS)
        return updated

    async def add_entry(
        self,
        amount: Any,
        date: Any,
        note: Optional[str] = None,
    ) -> SavingsEntry:
        """
        Record a contribution.

        FLOW (sequential, no rollback):
        1. Append the SavingsEntry
        2. Append the mirrored expense transaction (if mirroring is on)
        3. Link the entry to its transaction
        """
        correlation_id = create_correlation_id()
        values = self._require_valid(
            self._validator.validate_payment("savings entry", amount, date),
            correlation_id,
        )

        writes = WriteSequence("savings entry", self._event_logger, correlation_id)
        try:
            entry = await writes.step("insert savings entry", self._repository.insert(
                Collection.SAVINGS_ENTRIES,
                SavingsEntry(date=values["date"], amount=values["amount"], note=note),
            ))
            if self._settings.mirror_savings_entries:
                mirror = await writes.step("insert mirrored expense", self._mirror_expense(
                    source_event_id=entry.id,
                    date=entry.date,
                    amount=entry.amount,
                    category="Savings",
                    obligation_kind=ObligationKind.SAVINGS,
                    note=note,
                    correlation_id=correlation_id,
                ))
                entry = await writes.step("link entry", self._repository.update(
                    Collection.SAVINGS_ENTRIES,
                    entry.id,
                    {"transaction_id": mirror.id},
                ))
        finally:
            if writes.completed:
                await self._session.reload(Collection.SAVINGS_ENTRIES, Collection.TRANSACTIONS)

        self._log(
            LedgerEventType.SAVINGS_ENTRY_ADDED,
            "savings_entry",
            entry.id,
            f"Saved {entry.amount}",
            correlation_id=correlation_id,
        )
        return entry

    async def add_recommended_today(self, today: Optional[dt.date] = None) -> Optional[SavingsEntry]:
        """
        Contribute today's recommended amount, rounded to whole units.

        Returns None (and writes nothing) when this month's target is met.
        """
        today = today or dt.date.today()
        snapshot = self._session.snapshot
        projection = project_savings(snapshot.savings_entries, snapshot.savings_settings, today)
        amount = recommended_amount_today(projection)
        if amount <= 0:
            return None
        return await self.add_entry(amount, today, note="Recommended daily contribution")

    async def update_entry(
        self,
        entry_id: UUID,
        amount: Any = None,
        date: Any = None,
        note: Optional[str] = None,
    ) -> SavingsEntry:
        """Edit a contribution and its linked mirrored transaction."""
        correlation_id = create_correlation_id()
        entry = await self._get(Collection.SAVINGS_ENTRIES, entry_id)
        values = self._require_valid(
            self._validator.validate_payment(
                "savings entry",
                amount if amount is not None else entry.amount,
                date if date is not None else entry.date,
            ),
            correlation_id,
        )
        patch = {"amount": values["amount"], "date": values["date"]}
        if note is not None:
            patch["note"] = note

        writes = WriteSequence("edit savings entry", self._event_logger, correlation_id)
        try:
            updated = await writes.step(
                "update savings entry",
                self._repository.update(Collection.SAVINGS_ENTRIES, entry_id, patch),
            )
            if entry.transaction_id is not None:
                await writes.step(
                    "update mirrored expense",
                    self._repository.update(Collection.TRANSACTIONS, entry.transaction_id, patch),
                )
        finally:
            if writes.completed:
                await self._session.reload(Collection.SAVINGS_ENTRIES, Collection.TRANSACTIONS)

        self._log(
            LedgerEventType.SAVINGS_ENTRY_UPDATED,
            "savings_entry",
            entry_id,
            "Savings entry edited",
            correlation_id=correlation_id,
        )
        return updated

    async def delete_entry(self, entry_id: UUID) -> None:
        """Delete a contribution and its linked mirrored transaction."""
        correlation_id = create_correlation_id()
        entry = await self._get(Collection.SAVINGS_ENTRIES, entry_id)

        writes = WriteSequence("delete savings entry", self._event_logger, correlation_id)
        try:
            await writes.step(
                "delete mirrored expense",
                self._delete_mirror(entry.transaction_id, correlation_id),
            )
            await writes.step(
                "delete savings entry",
                self._repository.delete(Collection.SAVINGS_ENTRIES, entry_id),
            )
        finally:
            if writes.completed:
                await self._session.reload(Collection.SAVINGS_ENTRIES, Collection.TRANSACTIONS)

        self._log(
            LedgerEventType.SAVINGS_ENTRY_DELETED,
            "savings_entry",
            entry_id,
            "Savings entry deleted",
            correlation_id=correlation_id,
        )


# =============================================================================
# MONTH CLOSE
# =============================================================================

class CarryoverFlow(LedgerFlow):
    """
    Fixes the opening balance of the current month.

    The carry-over is only ever set by this explicit action; it is never
    computed on read.
    """

    async def close_previous_month(self, today: Optional[dt.date] = None) -> MonthCarryover:
        """
        Carry the previous month's closing balance into the current month.

            carry_in = previous carry_in + income - expense - unmirrored savings

        Running it again overwrites the current month's row.
        """
        today = today or dt.date.today()
        snapshot = await self._session.reload(
            Collection.TRANSACTIONS,
            Collection.SAVINGS_ENTRIES,
            Collection.MONTH_CARRYOVERS,
        )
        previous = previous_month_key(today)
        current = month_key(today)

        closing = (
            snapshot.carry_in_for(previous)
            + sum_for_period(snapshot.transactions, previous, kind=TransactionKind.INCOME)
            - sum_for_period(snapshot.transactions, previous, kind=TransactionKind.EXPENSE)
            - snapshot.unmirrored_savings(previous)
        )

        existing = await self._repository.find_carryover(current)
        if existing is not None:
            row = await self._repository.update(
                Collection.MONTH_CARRYOVERS, existing.id, {"carry_in": closing}
            )
        else:
            row = await self._repository.insert(
                Collection.MONTH_CARRYOVERS,
                MonthCarryover(month=current, carry_in=closing),
            )

        self._log(
            LedgerEventType.MONTH_CLOSED,
            "month_carryover",
            row.id,
            f"Closed {previous}, carried {closing} into {current}",
        )
        await self._session.reload(Collection.MONTH_CARRYOVERS)
        return row


# =============================================================================
# RECURRING OBLIGATIONS
# =============================================================================

class RecurringFlow(LedgerFlow):
    """Fixed monthly bills and whether they were paid."""

    async def create_obligation(self, title: Any, amount: Any, pay_day: Any = None) -> RecurringObligation:
        values = self._require_valid(self._validator.validate_recurring(title, amount, pay_day))
        obligation = await self._repository.insert(
            Collection.RECURRING_EXPENSES, RecurringObligation(**values)
        )
        self._log(
            LedgerEventType.RECURRING_CREATED,
            "recurring",
            obligation.id,
            f"Recurring obligation created: {obligation.title}",
        )
        await self._session.reload(Collection.RECURRING_EXPENSES)
        return obligation

    async def mark_paid(
        self,
        recurring_id: UUID,
        paid_date: Any,
        amount: Any = None,
        month: Optional[str] = None,
    ) -> tuple[RecurringPayment, Transaction]:
        """
        Mark an obligation paid for a month.

        Raises:
            DuplicateError: If it is already marked paid for that month
        """
        correlation_id = create_correlation_id()
        obligation = await self._get(Collection.RECURRING_EXPENSES, recurring_id)
        values = self._require_valid(
            self._validator.validate_payment(
                "recurring payment",
                amount if amount is not None else obligation.amount,
                paid_date,
            ),
            correlation_id,
        )
        month = month or month_key(values["date"])

        if await self._repository.find_recurring_payment(recurring_id, month) is not None:
            raise DuplicateError(f"{obligation.title} is already paid for {month}")

        writes = WriteSequence("recurring payment", self._event_logger, correlation_id)
        try:
            payment = await writes.step("insert recurring payment", self._repository.insert(
                Collection.RECURRING_PAYMENTS,
                RecurringPayment(
                    recurring_id=recurring_id,
                    month=month,
                    paid_date=values["date"],
                    amount=values["amount"],
                ),
            ))
            mirror = await writes.step("insert mirrored expense", self._mirror_expense(
                source_event_id=payment.id,
                date=payment.paid_date,
                amount=payment.amount,
                category=f"Recurring: {obligation.title}",
                obligation_kind=ObligationKind.RECURRING,
                obligation_id=recurring_id,
                correlation_id=correlation_id,
            ))
            payment = await writes.step("link payment", self._repository.update(
                Collection.RECURRING_PAYMENTS,
                payment.id,
                {"transaction_id": mirror.id},
            ))
        finally:
            if writes.completed:
                await self._session.reload(Collection.RECURRING_PAYMENTS, Collection.TRANSACTIONS)

        self._log(
            LedgerEventType.RECURRING_PAID,
            "recurring",
            recurring_id,
            f"{obligation.title} paid for {month}",
            correlation_id=correlation_id,
        )
        return payment, mirror

    def status(self, month: str) -> list[RecurringStatus]:
        snapshot = self._session.snapshot
        return recurring_statuses(snapshot.recurring_obligations, snapshot.recurring_payments, month)


# =============================================================================
# FACTORY
# =============================================================================

class LedgerComponents(NamedTuple):
    store: RecordStoreInterface
    repository: LedgerRepository
    session: LedgerSession
    engine: LedgerEngine
    reports: ReportExecutor
    event_logger: EventLogger
    transactions: TransactionFlow
    loans: LoanFlow
    cards: CardFlow
    taxes: TaxFlow
    savings: SavingsFlow
    carryover: CarryoverFlow
    recurring: RecurringFlow


def create_ledger_components(
    use_sheets: bool = False,
    store: Optional[RecordStoreInterface] = None,
    settings: Optional[LedgerSettings] = None,
) -> LedgerComponents:
    """
    Factory function to create all application components.

    Args:
        use_sheets: Back the ledger with Google Sheets instead of memory.
        store: Explicit store to use (overrides ``use_sheets``).
        settings: Ledger settings (defaults to environment configuration).

    The session is created but not loaded; call ``session.load_all()``.
    """
    settings = settings or get_settings().ledger
    configure_logging(get_settings().app.log_level)
    event_logger = EventLogger()

    if store is None:
        store = GoogleSheetsRecordStore() if use_sheets else InMemoryRecordStore()

    repository = LedgerRepository(store, event_logger=event_logger, settings=settings)
    session = LedgerSession(repository, event_logger=event_logger)
    session.subscribe()
    validator = LedgerValidator(settings)

    flow_args = dict(
        repository=repository,
        session=session,
        validator=validator,
        event_logger=event_logger,
        settings=settings,
    )

    return LedgerComponents(
        store=store,
        repository=repository,
        session=session,
        engine=LedgerEngine(settings),
        reports=ReportExecutor(),
        event_logger=event_logger,
        transactions=TransactionFlow(**flow_args),
        loans=LoanFlow(**flow_args),
        cards=CardFlow(**flow_args),
        taxes=TaxFlow(**flow_args),
        savings=SavingsFlow(**flow_args),
        carryover=CarryoverFlow(**flow_args),
        recurring=RecurringFlow(**flow_args),
    )
