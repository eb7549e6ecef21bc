from __future__ import annotations

from dataclasses import dataclass, field

from settleup.config import SlipPolicy
from settleup.db.models import Expense, GroupLedger, Split
from settleup.errors import EngineWarning, WarningKind
from settleup.services.validation import check_split_total, split_slip
from settleup.utils.money import EPSILON_CENTS


@dataclass(slots=True)
class BalanceSheet:
    balances: dict[int, int]
    warnings: list[EngineWarning] = field(default_factory=list)

    @property
    def total_cents(self) -> int:
        return sum(self.balances.values())


def _absorb_slip(expense: Expense) -> tuple[int, tuple[Split, ...]]:
    """Return (payer credit, split lines) with the slip folded into the last line."""
    slip = split_slip(expense)
    *head, last = expense.splits
    adjusted = last.owed_cents + slip
    if adjusted < 0:
        return expense.split_total_cents, expense.splits
    fixed = Split(expense_id=last.expense_id, participant_id=last.participant_id, owed_cents=adjusted)
    return expense.amount_cents, (*head, fixed)


def calculate_balances(
    ledger: GroupLedger,
    *,
    tolerance_cents: int = EPSILON_CENTS,
    slip_policy: SlipPolicy = SlipPolicy.ABSORB,
) -> BalanceSheet:
    """Net position per participant, positive for creditors.

    balance = paid for expenses - owed in splits + payments made - payments received

    A payment credits its payer, the same way paying for an expense does.
    """
    balances: dict[int, int] = {participant_id: 0 for participant_id in ledger.participant_ids}
    warnings: list[EngineWarning] = []
    unknown: set[int] = set()

    def book(participant_id: int, cents: int) -> None:
        if participant_id not in balances:
            balances[participant_id] = 0
            unknown.add(participant_id)
        balances[participant_id] += cents

    for expense in ledger.expenses:
        if not expense.splits:
            warnings.append(
                EngineWarning(
                    kind=WarningKind.INPUT_INCONSISTENCY,
                    message=f"expense {expense.id} has no splits and was skipped",
                    context={"expense_id": expense.id, "slip_cents": expense.amount_cents},
                )
            )
            continue

        credit, splits = expense.amount_cents, expense.splits
        warning = check_split_total(expense, tolerance_cents=tolerance_cents)
        if warning is not None:
            warnings.append(warning)
        if split_slip(expense) and slip_policy is SlipPolicy.ABSORB:
            credit, splits = _absorb_slip(expense)

        book(expense.payer_id, credit)
        for split in splits:
            book(split.participant_id, -split.owed_cents)

    for payment in ledger.payments:
        book(payment.payer_id, payment.amount_cents)
        book(payment.payee_id, -payment.amount_cents)

    for participant_id in sorted(unknown):
        warnings.append(
            EngineWarning(
                kind=WarningKind.UNKNOWN_PARTICIPANT,
                message=f"participant {participant_id} is not listed in group {ledger.group_id}",
                context={"participant_id": participant_id},
            )
        )

    return BalanceSheet(balances=balances, warnings=warnings)
