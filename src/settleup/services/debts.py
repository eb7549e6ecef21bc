from __future__ import annotations

from dataclasses import replace
from typing import Iterable, List

from settleup.db.models import Debt
from settleup.errors import LedgerValidationError, UnderflowOnSettlement
from settleup.utils.money import EPSILON_CENTS


def apply_settlement(debt: Debt, amount_cents: int, *, tolerance_cents: int = EPSILON_CENTS) -> Debt:
    if amount_cents <= 0:
        raise LedgerValidationError("settlement amount must be positive")
    return set_paid_amount(debt, debt.paid_cents + amount_cents, tolerance_cents=tolerance_cents)


def set_paid_amount(debt: Debt, paid_cents: int, *, tolerance_cents: int = EPSILON_CENTS) -> Debt:
    if paid_cents < 0:
        raise LedgerValidationError("paid amount cannot be negative")
    if paid_cents - debt.debt_cents > tolerance_cents:
        raise UnderflowOnSettlement(debt_cents=debt.debt_cents, paid_cents=paid_cents)
    return replace(debt, paid_cents=paid_cents)


def is_settled(debt: Debt, *, tolerance_cents: int = EPSILON_CENTS) -> bool:
    return debt.outstanding_cents <= tolerance_cents


def outstanding_debts(rows: Iterable[Debt], *, tolerance_cents: int = EPSILON_CENTS) -> List[Debt]:
    return [debt for debt in rows if not is_settled(debt, tolerance_cents=tolerance_cents)]
