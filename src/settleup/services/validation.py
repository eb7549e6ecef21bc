from __future__ import annotations

from typing import Collection

from settleup.db.models import Expense, Payment
from settleup.errors import EngineWarning, LedgerValidationError, WarningKind
from settleup.utils.money import EPSILON_CENTS


def split_slip(expense: Expense) -> int:
    """Amount not covered by the splits; negative when splits overshoot."""
    return expense.amount_cents - expense.split_total_cents


def check_split_total(expense: Expense, *, tolerance_cents: int = EPSILON_CENTS) -> EngineWarning | None:
    slip = split_slip(expense)
    if abs(slip) <= tolerance_cents:
        return None
    return EngineWarning(
        kind=WarningKind.INPUT_INCONSISTENCY,
        message=(
            f"splits of expense {expense.id} add up to {expense.split_total_cents}, "
            f"expected {expense.amount_cents}"
        ),
        context={"expense_id": expense.id, "slip_cents": slip},
    )


def validate_expense(
    expense: Expense,
    participant_ids: Collection[int],
    *,
    tolerance_cents: int = EPSILON_CENTS,
) -> list[EngineWarning]:
    if expense.amount_cents <= 0:
        raise LedgerValidationError("expense amount must be positive")
    if expense.payer_id not in participant_ids:
        raise LedgerValidationError(f"payer {expense.payer_id} is not a member of group {expense.group_id}")
    if not expense.splits:
        raise LedgerValidationError("expense must have at least one split")

    seen: set[int] = set()
    for split in expense.splits:
        if split.owed_cents < 0:
            raise LedgerValidationError("split amounts must not be negative")
        if split.participant_id not in participant_ids:
            raise LedgerValidationError(
                f"participant {split.participant_id} is not a member of group {expense.group_id}"
            )
        if split.participant_id in seen:
            raise LedgerValidationError(f"participant {split.participant_id} appears twice in the splits")
        seen.add(split.participant_id)

    warning = check_split_total(expense, tolerance_cents=tolerance_cents)
    return [warning] if warning else []


def validate_payment(payment: Payment, participant_ids: Collection[int]) -> None:
    if payment.amount_cents <= 0:
        raise LedgerValidationError("payment amount must be positive")
    if payment.payer_id == payment.payee_id:
        raise LedgerValidationError("payer and payee must differ")
    for participant_id in (payment.payer_id, payment.payee_id):
        if participant_id not in participant_ids:
            raise LedgerValidationError(
                f"participant {participant_id} is not a member of group {payment.group_id}"
            )


def normalize_group(name: str, currency: str) -> tuple[str, str]:
    """Trimmed group name and upper-case ISO 4217 style currency code."""
    name = name.strip()
    if not name:
        raise LedgerValidationError("group name must not be empty")
    currency = currency.strip().upper()
    if len(currency) != 3 or not currency.isalpha():
        raise LedgerValidationError(f"currency must be a three-letter code, got {currency!r}")
    return name, currency
