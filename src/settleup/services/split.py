from __future__ import annotations

from decimal import ROUND_HALF_EVEN, Decimal
from typing import Mapping, Optional, Sequence

from settleup.db.models import Split, SplitType
from settleup.errors import LedgerValidationError

PERCENT_TOTAL_BASIS_POINTS = 10_000


def split_amount(amount_cents: int, consumers: Sequence[int]) -> dict[int, int]:
    if amount_cents < 0:
        raise ValueError("amount_cents must be non-negative")
    if not consumers:
        raise ValueError("consumers must not be empty")
    if len(set(consumers)) != len(consumers):
        raise ValueError("consumers must not repeat a participant")

    n = len(consumers)
    decimal_amount = Decimal(amount_cents)
    base_share = (decimal_amount / Decimal(n)).quantize(Decimal("1"), rounding=ROUND_HALF_EVEN)

    shares = [int(base_share) for _ in consumers]
    total = sum(shares)
    remainder = amount_cents - total

    idx = 0
    step = 1 if remainder > 0 else -1
    while remainder != 0:
        shares[idx] += step
        remainder -= step
        idx = (idx + 1) % n

    return {consumer: share for consumer, share in zip(consumers, shares)}


def split_by_weights(amount_cents: int, weights: Mapping[int, int]) -> dict[int, int]:
    """Split proportionally to integer weights using the largest remainder method.

    Leftover cents go to the largest fractional parts first, ties to the earlier
    consumer, so the result always sums to ``amount_cents``.
    """
    if amount_cents < 0:
        raise ValueError("amount_cents must be non-negative")
    if not weights:
        raise ValueError("weights must not be empty")
    if any(weight < 0 for weight in weights.values()):
        raise ValueError("weights must be non-negative")

    total_weight = sum(weights.values())
    if total_weight == 0:
        raise ValueError("weights must not all be zero")

    shares: dict[int, int] = {}
    fractions: list[tuple[int, int, int]] = []
    for position, (consumer, weight) in enumerate(weights.items()):
        share, rest = divmod(amount_cents * weight, total_weight)
        shares[consumer] = share
        fractions.append((-rest, position, consumer))

    remainder = amount_cents - sum(shares.values())
    for _, _, consumer in sorted(fractions)[:remainder]:
        shares[consumer] += 1

    return shares


def split_by_percent(amount_cents: int, basis_points: Mapping[int, int]) -> dict[int, int]:
    # 1% == 100 basis points
    if sum(basis_points.values()) != PERCENT_TOTAL_BASIS_POINTS:
        raise ValueError("percentages must add up to 100")
    return split_by_weights(amount_cents, basis_points)


def split_by_amounts(amount_cents: int, amounts: Mapping[int, int]) -> dict[int, int]:
    if not amounts:
        raise ValueError("amounts must not be empty")
    if any(amount < 0 for amount in amounts.values()):
        raise ValueError("amounts must be non-negative")
    if sum(amounts.values()) != amount_cents:
        raise ValueError("amounts must add up to the expense amount")
    return dict(amounts)


def build_splits(
    expense_id: Optional[int],
    amount_cents: int,
    split_type: SplitType,
    allocations: Mapping[int, int] | Sequence[int],
) -> tuple[Split, ...]:
    """Build split lines for one expense.

    ``allocations`` is a list of participant ids for ``equal`` and a mapping
    participant id -> value otherwise (cents, share weight or basis points).
    """
    try:
        if split_type is SplitType.EQUAL:
            shares = split_amount(amount_cents, list(allocations))
        elif not isinstance(allocations, Mapping):
            raise ValueError(f"{split_type.value} split needs a participant -> value mapping")
        elif split_type is SplitType.AMOUNT:
            shares = split_by_amounts(amount_cents, allocations)
        elif split_type is SplitType.SHARE:
            shares = split_by_weights(amount_cents, allocations)
        else:
            shares = split_by_percent(amount_cents, allocations)
    except ValueError as exc:
        raise LedgerValidationError(str(exc)) from exc

    return tuple(
        Split(expense_id=expense_id, participant_id=participant_id, owed_cents=owed)
        for participant_id, owed in shares.items()
    )
