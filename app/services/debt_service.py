import logging
from datetime import datetime, timezone
from typing import Any, Optional

from app.core.config import WorkerConfig
from app.core.errors import (
    AuthorizationError,
    ConcurrencyConflictError,
    InternalError,
    InvalidFieldsError,
)
from app.messaging.rabbit_request import TransactionRequestor
from app.models.debt import Debt, PaymentRef
from app.repositories.debt_repo import DebtRepository
from app.schemas.requests import WorkerCreateDebt, WorkerPayDebt
from app.utils.validator import (
    merge_errors,
    validate_amount,
    validate_concept,
    validate_date,
    validate_debt_ownership,
    validate_loaner,
)

logger = logging.getLogger(__name__)


def format_cents(cents: int) -> str:
    return f"{cents / 100:.2f}"


def payment_concept(debt: Debt, paid_so_far: int) -> str:
    """
    e.g. ``"Lunch p2: 7.50/10.00"``: payment number, paid including this one, total.

    The payment number counts the payments on ``debt`` as read when the credit
    was reserved. A payment whose credit is reserved but not yet appended is
    not counted, so concurrent payments can carry the same number; the
    amounts stay correct.
    """
    return (
        f"{debt.concept} p{len(debt.payments) + 1}: "
        f"{format_cents(paid_so_far)}/{format_cents(debt.amount)}"
    )


def transaction_id_from(payload: Any) -> Optional[str]:
    """Pull the transaction id out of the transaction service's reply."""
    if isinstance(payload, list):
        payload = payload[0] if payload else None
    if isinstance(payload, dict):
        transaction_id = payload.get("_id") or payload.get("id")
        if transaction_id:
            return str(transaction_id)
    return None


class DebtService:
    """Business rules for creating debts and applying payments to them."""

    def __init__(self, repo: DebtRepository, requestor: TransactionRequestor, config: WorkerConfig):
        self.repo = repo
        self.requestor = requestor
        self.config = config

    async def add_debt(self, request: WorkerCreateDebt) -> Debt:
        """
        Validate every field, then store the debt with the normalized values.

        All field errors are collected before answering; nothing is written
        when any of them fails.
        """
        logger.info(f"Adding debt for user: {request.user_id}", extra={"user_id": request.user_id})

        errors = {}
        loaner = validate_loaner(request.loaner)
        merge_errors(errors, loaner)

        amount = validate_amount(request.amount)
        merge_errors(errors, amount)
        if amount.valid and amount.value < 0:
            errors.setdefault("amount", "Amount must not be negative")

        concept = validate_concept(request.concept)
        merge_errors(errors, concept)

        date = validate_date(request.date)
        merge_errors(errors, date)

        if errors:
            raise InvalidFieldsError(errors)

        return await self.repo.add(Debt(
            user_id=request.user_id,
            loaner=loaner.value,
            amount=amount.value,
            concept=concept.value,
            date=request.date[:10],
        ))

    async def pay_debt(self, request: WorkerPayDebt) -> Debt:
        """
        Apply a payment to a debt owned by the requesting user.

        Only what is still owed is credited; any excess is dropped. The
        credit is reserved on the debt before the transaction is recorded
        and released again if recording fails, so the applied payments never
        exceed the debt amount even with concurrent payments.
        """
        log_context = {"user_id": request.user_id, "debt_id": request.debt_id}
        logger.info(f"Making payment for debt: {request.debt_id}", extra=log_context)

        ownership = await validate_debt_ownership(self.repo, request.user_id, request.debt_id)
        if not ownership.valid:
            raise AuthorizationError(ownership.errors)
        debt: Debt = ownership.value

        errors = {}
        amount = validate_amount(request.amount)
        merge_errors(errors, amount)
        if amount.valid and amount.value <= 0:
            errors.setdefault("amount", "Amount must be greater than zero")
        if debt.completed:
            errors.setdefault("debt_id", "Debt is already paid")

        if errors:
            raise InvalidFieldsError(errors)

        debt, credited = await self._reserve(debt, amount.value, request.user_id)

        remainder = amount.value - credited
        if remainder > 0:
            # TODO: store the remainder as a bonus once the product decides how
            logger.info(f"Discarding overpayment of {format_cents(remainder)}", extra=log_context)

        concept = payment_concept(debt, debt.credited + credited)
        logger.debug(concept, extra=log_context)

        transaction_id = await self._record_transaction(debt, credited, concept)
        return await self._apply_payment(debt, PaymentRef(transaction_id=transaction_id, amount=credited))

    async def _apply_payment(self, debt: Debt, payment: PaymentRef) -> Debt:
        """Store the recorded payment on the debt; give the credit back if that fails."""
        try:
            updated = await self.repo.append_payment(debt.id, payment)
            if updated is None:
                raise InternalError(f"Debt {debt.id} disappeared while applying payment {payment.transaction_id}")
        except Exception:
            logger.error(
                f"Transaction {payment.transaction_id} was recorded but could not be applied",
                extra={"user_id": debt.user_id, "debt_id": debt.id},
            )
            await self.repo.release_credit(debt.id, payment.amount)
            raise
        return updated

    async def _reserve(self, debt: Debt, requested: int, user_id: str) -> tuple[Debt, int]:
        """Compare-and-set the credit, re-reading the debt after each lost race."""
        for _ in range(self.config.payment_max_retries):
            credited = min(requested, debt.open_amount())
            if credited <= 0:
                raise InvalidFieldsError({"debt_id": "Debt is already paid"})

            if await self.repo.reserve_credit(debt, credited):
                return debt, credited

            fresh = await self.repo.get_owned(debt.id, user_id)
            if fresh is None:
                raise AuthorizationError({"debt_id": "Debt not found"})
            debt = fresh

        raise ConcurrencyConflictError(debt.id, self.config.payment_max_retries)

    async def _record_transaction(self, debt: Debt, credited: int, concept: str) -> str:
        """Ask the transaction service to record the payment; undo the reservation on failure."""
        payload = {
            "user_id": debt.user_id,
            "debt_id": debt.id,
            "concept": concept,
            "amount": credited,
            "category_id": self.config.other_category_id_out,
            "transactionDate": datetime.now(timezone.utc).date().isoformat(),
        }
        try:
            reply = await self.requestor.send_with_response(self.config.transaction_queue, "add", payload)
            if not reply.ok:
                raise InternalError(reply.payload, message="Transaction service rejected the payment")
            transaction_id = transaction_id_from(reply.payload)
            if transaction_id is None:
                raise InternalError(reply.payload, message="Transaction service reply has no transaction id")
        except Exception:
            await self.repo.release_credit(debt.id, credited)
            raise
        return transaction_id
