from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from settleup.config import SlipPolicy
from settleup.db.models import Debt, GroupLedger, Payment
from settleup.errors import EngineWarning, WarningKind
from settleup.logging import get_logger
from settleup.services.balances import BalanceSheet, calculate_balances
from settleup.services.reconcile import DebtChanges, diff_debts, reconcile
from settleup.services.settlement import Transfer, residual_after, settle
from settleup.utils.money import EPSILON_CENTS

log = get_logger(__name__)


@dataclass(slots=True)
class Recomputation:
    group_id: int
    balances: dict[int, int]
    transfers: list[Transfer]
    rows: list[Debt]
    changes: DebtChanges
    payments: list[Payment] = field(default_factory=list)
    warnings: list[EngineWarning] = field(default_factory=list)
    passes: int = 1


def _residual_warning(sheet: BalanceSheet, transfers: list[Transfer], tolerance_cents: int) -> EngineWarning | None:
    leftover = {
        participant_id: cents
        for participant_id, cents in residual_after(sheet.balances, transfers).items()
        if abs(cents) > tolerance_cents
    }
    if not leftover:
        return None
    return EngineWarning(
        kind=WarningKind.UNSETTLED_RESIDUAL,
        message="balances do not add up to zero; some amounts could not be matched",
        context={"residual": leftover, "imbalance_cents": sheet.total_cents},
    )


def recompute(
    ledger: GroupLedger,
    existing: Sequence[Debt],
    *,
    tolerance_cents: int = EPSILON_CENTS,
    slip_policy: SlipPolicy = SlipPolicy.ABSORB,
) -> Recomputation:
    """Full recomputation of a group's debts.

    Paid amounts on vanished pairs come back as payments. Those change the
    balances, so the cycle repeats until no more payments are produced. Every
    pass retires at least one row carrying a paid amount, which bounds the loop.
    """
    rows: list[Debt] = list(existing)
    derived: list[Payment] = []
    warnings: list[EngineWarning] = []
    max_passes = len(existing) + 1

    passes = 0
    while True:
        passes += 1
        sheet = calculate_balances(
            ledger.with_payments(derived),
            tolerance_cents=tolerance_cents,
            slip_policy=slip_policy,
        )
        transfers = settle(sheet.balances, tolerance_cents=tolerance_cents)
        result = reconcile(ledger.group_id, transfers, rows, tolerance_cents=tolerance_cents)
        if passes == 1:
            # later passes only see cleaned rows
            warnings.extend(w for w in result.warnings if w.kind is not WarningKind.OVERPAID_DEBT)
        rows = result.rows
        if not result.payments:
            break
        derived.extend(result.payments)
        if passes >= max_passes:
            break

    warnings.extend(w for w in result.warnings if w.kind is WarningKind.OVERPAID_DEBT)
    warnings.extend(sheet.warnings)
    if len(sheet.balances) < 2:
        warnings.append(
            EngineWarning(
                kind=WarningKind.DEGENERATE_GROUP,
                message=f"group {ledger.group_id} has fewer than two participants",
                context={"participants": len(sheet.balances)},
            )
        )
    residual = _residual_warning(sheet, transfers, tolerance_cents)
    if residual is not None:
        warnings.append(residual)

    changes = diff_debts(existing, rows)
    log.info(
        "debts.recomputed",
        group_id=ledger.group_id,
        passes=passes,
        transfers=len(transfers),
        inserts=len(changes.inserts),
        updates=len(changes.updates),
        deletes=len(changes.deletes),
        payments=len(derived),
        warnings=[warning.kind.value for warning in warnings],
    )
    return Recomputation(
        group_id=ledger.group_id,
        balances=sheet.balances,
        transfers=transfers,
        rows=rows,
        changes=changes,
        payments=derived,
        warnings=warnings,
        passes=passes,
    )
