"""Greedy debt simplification.

Largest creditor is matched against largest debtor until one side runs out.
This keeps the number of transfers low (at most n - 1) but is a heuristic: the
exact minimum is a partition problem and NP-hard. A min-cost-flow solver can be
dropped in here as long as it keeps the ``settle(balances) -> list[Transfer]``
shape.
"""

from __future__ import annotations

import heapq
from dataclasses import dataclass
from typing import List, Mapping

from settleup.utils.money import EPSILON_CENTS


@dataclass(slots=True, frozen=True)
class Transfer:
    lender_id: int
    debtor_id: int
    amount_cents: int


def settle(balances: Mapping[int, int], *, tolerance_cents: int = EPSILON_CENTS) -> List[Transfer]:
    if len(balances) < 2:
        return []

    # (-amount, participant_id): largest amount first, lower id on ties
    creditors: list[tuple[int, int]] = []
    debtors: list[tuple[int, int]] = []

    for participant_id, balance in balances.items():
        if balance > tolerance_cents:
            creditors.append((-balance, participant_id))
        elif balance < -tolerance_cents:
            debtors.append((balance, participant_id))

    heapq.heapify(creditors)
    heapq.heapify(debtors)

    transfers: list[Transfer] = []
    while creditors and debtors:
        neg_credit, cred_id = heapq.heappop(creditors)
        neg_debt, debt_id = heapq.heappop(debtors)
        cred_amount, debt_amount = -neg_credit, -neg_debt

        transfer_amount = min(cred_amount, debt_amount)
        transfers.append(Transfer(lender_id=cred_id, debtor_id=debt_id, amount_cents=transfer_amount))

        cred_amount -= transfer_amount
        debt_amount -= transfer_amount

        if cred_amount > tolerance_cents:
            heapq.heappush(creditors, (-cred_amount, cred_id))
        if debt_amount > tolerance_cents:
            heapq.heappush(debtors, (-debt_amount, debt_id))

    return transfers


def residual_after(balances: Mapping[int, int], transfers: List[Transfer]) -> dict[int, int]:
    """Balances left over once every transfer has been paid."""
    after = dict(balances)
    for transfer in transfers:
        after[transfer.lender_id] = after.get(transfer.lender_id, 0) - transfer.amount_cents
        after[transfer.debtor_id] = after.get(transfer.debtor_id, 0) + transfer.amount_cents
    return after
