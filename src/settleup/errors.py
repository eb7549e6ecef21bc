from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class WarningKind(str, Enum):
    INPUT_INCONSISTENCY = "input_inconsistency"
    DEGENERATE_GROUP = "degenerate_group"
    UNSETTLED_RESIDUAL = "unsettled_residual"
    UNKNOWN_PARTICIPANT = "unknown_participant"
    DUPLICATE_DEBT = "duplicate_debt"
    SELF_DEBT = "self_debt"
    OVERPAID_DEBT = "overpaid_debt"


@dataclass(slots=True, frozen=True)
class EngineWarning:
    kind: WarningKind
    message: str
    context: dict[str, Any] = field(default_factory=dict)


class LedgerError(Exception):
    pass


class LedgerValidationError(LedgerError, ValueError):
    pass


class NotFoundError(LedgerError, LookupError):
    pass


class UnderflowOnSettlement(LedgerError):
    """Paid amount would rise above the debt amount.

    Usually a duplicate settlement or a settlement racing a recomputation.
    """

    def __init__(self, debt_cents: int, paid_cents: int) -> None:
        self.debt_cents = debt_cents
        self.paid_cents = paid_cents
        super().__init__(f"paid amount ({paid_cents}) cannot exceed debt amount ({debt_cents})")
