"""Merge freshly simplified transfers into the persisted debt rows.

Rows are matched by (lender, debtor). A matched row keeps its id and its paid
amount and only gets the new debt amount. A stored pair that no longer shows up
is deleted; whatever had been paid on it is turned into a Payment from the
debtor to the lender so the next balance pass nets it in.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Hashable, Iterable, Sequence

from settleup.db.models import Debt, Payment
from settleup.errors import EngineWarning, WarningKind
from settleup.services.settlement import Transfer
from settleup.utils.money import EPSILON_CENTS


@dataclass(slots=True)
class DebtChanges:
    inserts: list[Debt] = field(default_factory=list)
    updates: list[Debt] = field(default_factory=list)
    deletes: list[Debt] = field(default_factory=list)
    unchanged: list[Debt] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.inserts or self.updates or self.deletes)


@dataclass(slots=True)
class Reconciliation:
    rows: list[Debt]
    changes: DebtChanges
    payments: list[Payment] = field(default_factory=list)
    warnings: list[EngineWarning] = field(default_factory=list)


def _identity(debt: Debt) -> Hashable:
    if debt.id is not None:
        return ("id", debt.id)
    return ("pair", debt.lender_id, debt.debtor_id)


def _sort_key(debt: Debt) -> tuple[int, int]:
    return debt.pair


def diff_debts(before: Iterable[Debt], after: Iterable[Debt]) -> DebtChanges:
    """Store operations that turn ``before`` into ``after``."""
    previous = {_identity(debt): debt for debt in before}
    changes = DebtChanges()
    kept: set[Hashable] = set()

    for debt in sorted(after, key=_sort_key):
        key = _identity(debt)
        old = previous.get(key)
        if old is None:
            changes.inserts.append(debt)
            continue
        kept.add(key)
        if old.debt_cents != debt.debt_cents or old.paid_cents != debt.paid_cents or old.pair != debt.pair:
            changes.updates.append(debt)
        else:
            changes.unchanged.append(debt)

    changes.deletes = sorted(
        (debt for key, debt in previous.items() if key not in kept),
        key=_sort_key,
    )
    return changes


def _merge_duplicates(
    existing: Sequence[Debt],
    warnings: list[EngineWarning],
) -> dict[tuple[int, int], Debt]:
    by_pair: dict[tuple[int, int], Debt] = {}
    ordered = sorted(existing, key=lambda debt: (debt.id is None, debt.id or 0))
    for debt in ordered:
        if debt.lender_id == debt.debtor_id:
            warnings.append(
                EngineWarning(
                    kind=WarningKind.SELF_DEBT,
                    message=f"participant {debt.lender_id} owed themselves; row dropped",
                    context={"debt_id": debt.id, "participant_id": debt.lender_id},
                )
            )
            continue
        current = by_pair.get(debt.pair)
        if current is None:
            by_pair[debt.pair] = debt
            continue
        warnings.append(
            EngineWarning(
                kind=WarningKind.DUPLICATE_DEBT,
                message=f"debt {debt.lender_id}<-{debt.debtor_id} stored twice; rows merged",
                context={"kept_id": current.id, "merged_id": debt.id},
            )
        )
        by_pair[debt.pair] = replace(current, paid_cents=current.paid_cents + debt.paid_cents)
    return by_pair


def _aggregate(transfers: Iterable[Transfer], tolerance_cents: int) -> dict[tuple[int, int], int]:
    amounts: dict[tuple[int, int], int] = {}
    for transfer in transfers:
        if transfer.lender_id == transfer.debtor_id:
            continue
        pair = (transfer.lender_id, transfer.debtor_id)
        amounts[pair] = amounts.get(pair, 0) + transfer.amount_cents
    return {pair: amount for pair, amount in amounts.items() if amount > tolerance_cents}


def reconcile(
    group_id: int,
    transfers: Sequence[Transfer],
    existing: Sequence[Debt],
    *,
    tolerance_cents: int = EPSILON_CENTS,
) -> Reconciliation:
    warnings: list[EngineWarning] = []
    stored = _merge_duplicates(existing, warnings)
    wanted = _aggregate(transfers, tolerance_cents)

    rows: list[Debt] = []
    for pair, amount in wanted.items():
        old = stored.get(pair)
        if old is None:
            rows.append(Debt(group_id=group_id, lender_id=pair[0], debtor_id=pair[1], debt_cents=amount))
            continue
        row = replace(old, debt_cents=amount)
        if row.paid_cents - row.debt_cents > tolerance_cents:
            warnings.append(
                EngineWarning(
                    kind=WarningKind.OVERPAID_DEBT,
                    message=f"debt {pair[0]}<-{pair[1]} is paid beyond its new amount",
                    context={"debt_id": row.id, "debt_cents": row.debt_cents, "paid_cents": row.paid_cents},
                )
            )
        rows.append(row)

    payments: list[Payment] = []
    for pair, old in sorted(stored.items()):
        if pair in wanted or old.paid_cents <= tolerance_cents:
            continue
        payments.append(
            Payment(
                id=None,
                group_id=group_id,
                payer_id=old.debtor_id,
                payee_id=old.lender_id,
                amount_cents=old.paid_cents,
            )
        )

    rows.sort(key=_sort_key)
    return Reconciliation(
        rows=rows,
        changes=diff_debts(existing, rows),
        payments=payments,
        warnings=warnings,
    )
