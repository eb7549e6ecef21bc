from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class SplitType(str, Enum):
    EQUAL = "equal"
    AMOUNT = "amount"
    SHARE = "share"
    PERCENT = "percent"


@dataclass(slots=True, frozen=True)
class Group:
    id: Optional[int]
    name: str
    currency: str = "EUR"
    created_at: Optional[datetime] = None


@dataclass(slots=True, frozen=True)
class Participant:
    id: int
    group_id: int
    name: str


@dataclass(slots=True, frozen=True)
class Split:
    expense_id: Optional[int]
    participant_id: int
    owed_cents: int


@dataclass(slots=True, frozen=True)
class Expense:
    id: Optional[int]
    group_id: int
    payer_id: int
    title: str
    amount_cents: int
    split_type: SplitType = SplitType.EQUAL
    splits: tuple[Split, ...] = ()
    created_at: Optional[datetime] = None

    @property
    def split_total_cents(self) -> int:
        return sum(split.owed_cents for split in self.splits)


@dataclass(slots=True, frozen=True)
class Payment:
    id: Optional[int]
    group_id: int
    payer_id: int
    payee_id: int
    amount_cents: int
    created_at: Optional[datetime] = None


@dataclass(slots=True, frozen=True)
class Debt:
    group_id: int
    lender_id: int
    debtor_id: int
    debt_cents: int
    paid_cents: int = 0
    id: Optional[int] = None

    @property
    def pair(self) -> tuple[int, int]:
        return (self.lender_id, self.debtor_id)

    @property
    def outstanding_cents(self) -> int:
        return self.debt_cents - self.paid_cents


@dataclass(slots=True, frozen=True)
class GroupLedger:
    """Everything recorded for one group at the moment of a recomputation."""

    group_id: int
    participants: tuple[Participant, ...] = ()
    expenses: tuple[Expense, ...] = ()
    payments: tuple[Payment, ...] = ()

    @property
    def participant_ids(self) -> list[int]:
        return [participant.id for participant in self.participants]

    def with_payments(self, payments: tuple[Payment, ...] | list[Payment]) -> "GroupLedger":
        if not payments:
            return self
        return GroupLedger(
            group_id=self.group_id,
            participants=self.participants,
            expenses=self.expenses,
            payments=self.payments + tuple(payments),
        )
