from __future__ import annotations

from dataclasses import replace
from typing import AsyncContextManager, Mapping, Optional, Protocol, Sequence

from settleup.config import Settings, get_settings
from settleup.db.models import Debt, Expense, Group, GroupLedger, Participant, Payment, SplitType
from settleup.errors import EngineWarning, LedgerValidationError, NotFoundError
from settleup.logging import get_logger, group_context
from settleup.services.balances import calculate_balances
from settleup.services.debts import apply_settlement, outstanding_debts, set_paid_amount
from settleup.services.engine import Recomputation, recompute
from settleup.services.split import build_splits
from settleup.services.validation import normalize_group, validate_expense, validate_payment


class LedgerSession(Protocol):
    """Reads and writes of one group inside one transaction."""

    async def insert_group(self, name: str, currency: str) -> Group: ...

    async def get_group(self, group_id: int) -> Optional[Group]: ...

    async def update_group(self, group: Group) -> None: ...

    async def fetch_ledger(self, group_id: int) -> GroupLedger: ...

    async def fetch_debts(self, group_id: int) -> list[Debt]: ...

    async def get_debt(self, debt_id: int) -> Optional[Debt]: ...

    async def get_expense(self, expense_id: int) -> Optional[Expense]: ...

    async def insert_participant(self, group_id: int, name: str) -> Participant: ...

    async def rename_participant(self, participant_id: int, name: str) -> None: ...

    async def delete_participant(self, participant_id: int) -> None: ...

    async def insert_expense(self, expense: Expense) -> Expense: ...

    async def update_expense(self, expense: Expense) -> Expense: ...

    async def delete_expense(self, expense_id: int) -> None: ...

    async def insert_payment(self, payment: Payment) -> Payment: ...

    async def save_debt(self, debt: Debt) -> None: ...

    async def apply_recomputation(self, recomputation: Recomputation) -> None: ...


class LedgerStore(Protocol):
    def transaction(self, group_id: Optional[int] = None) -> AsyncContextManager[LedgerSession]:
        """Open a transaction, holding the group's write lock when a group is given."""
        ...


class GroupLedgerService:
    """Mutations of a group ledger, each followed by a full debt recomputation.

    The mutation, the reads feeding the engine and the resulting debt writes all
    share one store transaction, so two edits of the same group never interleave
    and a failed write leaves the previous debt set in place.
    """

    def __init__(self, store: LedgerStore, settings: Settings | None = None) -> None:
        self.store = store
        self.settings = settings or get_settings()
        self._log = get_logger(__name__)

    @property
    def _tolerance(self) -> int:
        return self.settings.tolerance_cents

    async def _recompute(self, session: LedgerSession, group_id: int) -> Recomputation:
        with group_context(group_id):
            ledger = await session.fetch_ledger(group_id)
            existing = await session.fetch_debts(group_id)
            result = recompute(
                ledger,
                existing,
                tolerance_cents=self._tolerance,
                slip_policy=self.settings.slip_policy,
            )
            await session.apply_recomputation(result)
        return result

    async def _load_group(self, session: LedgerSession, group_id: int) -> Group:
        group = await session.get_group(group_id)
        if group is None:
            raise NotFoundError(f"group {group_id} not found")
        return group

    async def create_group(
        self,
        name: str,
        currency: str | None = None,
        participant_names: Sequence[str] = (),
    ) -> tuple[Group, list[Participant]]:
        name, currency = normalize_group(name, self.settings.currency if currency is None else currency)
        names = [participant.strip() for participant in participant_names]
        if any(not participant for participant in names):
            raise LedgerValidationError("participant name must not be empty")
        async with self.store.transaction() as session:
            group = await session.insert_group(name, currency)
            assert group.id is not None
            participants = [await session.insert_participant(group.id, participant) for participant in names]
        self._log.info("group.created", group_id=group.id, participants=len(participants))
        return group, participants

    async def get_group(self, group_id: int) -> Group:
        async with self.store.transaction(group_id) as session:
            return await self._load_group(session, group_id)

    async def update_group(self, group_id: int, name: str | None = None, currency: str | None = None) -> Group:
        async with self.store.transaction(group_id) as session:
            current = await self._load_group(session, group_id)
            name, currency = normalize_group(
                current.name if name is None else name,
                current.currency if currency is None else currency,
            )
            updated = replace(current, name=name, currency=currency)
            if updated != current:
                await session.update_group(updated)
        self._log.info("group.updated", group_id=group_id)
        return updated

    async def recalculate(self, group_id: int) -> Recomputation:
        async with self.store.transaction(group_id) as session:
            return await self._recompute(session, group_id)

    async def add_participant(self, group_id: int, name: str) -> Participant:
        name = name.strip()
        if not name:
            raise LedgerValidationError("participant name must not be empty")
        async with self.store.transaction(group_id) as session:
            await self._load_group(session, group_id)
            participant = await session.insert_participant(group_id, name)
            await self._recompute(session, group_id)
        self._log.info("participant.added", group_id=group_id, participant_id=participant.id)
        return participant

    async def rename_participant(self, group_id: int, participant_id: int, name: str) -> None:
        name = name.strip()
        if not name:
            raise LedgerValidationError("participant name must not be empty")
        async with self.store.transaction(group_id) as session:
            ledger = await session.fetch_ledger(group_id)
            if participant_id not in ledger.participant_ids:
                raise NotFoundError(f"participant {participant_id} not found in group {group_id}")
            await session.rename_participant(participant_id, name)

    async def remove_participant(self, group_id: int, participant_id: int) -> Recomputation:
        async with self.store.transaction(group_id) as session:
            ledger = await session.fetch_ledger(group_id)
            if participant_id not in ledger.participant_ids:
                raise NotFoundError(f"participant {participant_id} not found in group {group_id}")
            involved = any(
                expense.payer_id == participant_id
                or any(split.participant_id == participant_id for split in expense.splits)
                for expense in ledger.expenses
            ) or any(participant_id in (p.payer_id, p.payee_id) for p in ledger.payments)
            if involved:
                raise LedgerValidationError(
                    f"participant {participant_id} still has expenses or payments in group {group_id}"
                )
            await session.delete_participant(participant_id)
            result = await self._recompute(session, group_id)
        self._log.info("participant.removed", group_id=group_id, participant_id=participant_id)
        return result

    def _check_expense(self, expense: Expense, ledger: GroupLedger) -> list[EngineWarning]:
        warnings = validate_expense(expense, ledger.participant_ids, tolerance_cents=self._tolerance)
        if warnings and self.settings.reject_inconsistent_splits:
            raise LedgerValidationError(warnings[0].message)
        return warnings

    async def create_expense(
        self,
        group_id: int,
        payer_id: int,
        title: str,
        amount_cents: int,
        split_type: SplitType,
        allocations: Mapping[int, int] | Sequence[int],
    ) -> tuple[Expense, Recomputation]:
        expense = Expense(
            id=None,
            group_id=group_id,
            payer_id=payer_id,
            title=title,
            amount_cents=amount_cents,
            split_type=split_type,
            splits=build_splits(None, amount_cents, split_type, allocations),
        )
        return await self.save_expense(expense)

    async def save_expense(self, expense: Expense) -> tuple[Expense, Recomputation]:
        """Insert a new expense, or replace an existing one together with all its splits."""
        group_id = expense.group_id
        async with self.store.transaction(group_id) as session:
            ledger = await session.fetch_ledger(group_id)
            self._check_expense(expense, ledger)
            if expense.id is None:
                saved = await session.insert_expense(expense)
            else:
                current = await session.get_expense(expense.id)
                if current is None or current.group_id != group_id:
                    raise NotFoundError(f"expense {expense.id} not found in group {group_id}")
                saved = await session.update_expense(expense)
            result = await self._recompute(session, group_id)
        self._log.info("expense.saved", group_id=group_id, expense_id=saved.id, amount_cents=saved.amount_cents)
        return saved, result

    async def update_expense(
        self,
        group_id: int,
        expense_id: int,
        payer_id: int,
        title: str,
        amount_cents: int,
        split_type: SplitType,
        allocations: Mapping[int, int] | Sequence[int],
    ) -> tuple[Expense, Recomputation]:
        expense = Expense(
            id=expense_id,
            group_id=group_id,
            payer_id=payer_id,
            title=title,
            amount_cents=amount_cents,
            split_type=split_type,
            splits=build_splits(expense_id, amount_cents, split_type, allocations),
        )
        return await self.save_expense(expense)

    async def delete_expense(self, group_id: int, expense_id: int) -> Recomputation:
        async with self.store.transaction(group_id) as session:
            current = await session.get_expense(expense_id)
            if current is None or current.group_id != group_id:
                raise NotFoundError(f"expense {expense_id} not found in group {group_id}")
            await session.delete_expense(expense_id)
            result = await self._recompute(session, group_id)
        self._log.info("expense.deleted", group_id=group_id, expense_id=expense_id)
        return result

    async def record_payment(
        self,
        group_id: int,
        payer_id: int,
        payee_id: int,
        amount_cents: int,
    ) -> tuple[Payment, Recomputation]:
        payment = Payment(id=None, group_id=group_id, payer_id=payer_id, payee_id=payee_id, amount_cents=amount_cents)
        async with self.store.transaction(group_id) as session:
            ledger = await session.fetch_ledger(group_id)
            validate_payment(payment, ledger.participant_ids)
            saved = await session.insert_payment(payment)
            result = await self._recompute(session, group_id)
        self._log.info("payment.recorded", group_id=group_id, payment_id=saved.id, amount_cents=amount_cents)
        return saved, result

    async def _load_debt(self, session: LedgerSession, group_id: int, debt_id: int) -> Debt:
        debt = await session.get_debt(debt_id)
        if debt is None or debt.group_id != group_id:
            raise NotFoundError(f"debt {debt_id} not found in group {group_id}")
        return debt

    async def settle_debt(self, group_id: int, debt_id: int, amount_cents: int) -> Debt:
        async with self.store.transaction(group_id) as session:
            debt = await self._load_debt(session, group_id, debt_id)
            updated = apply_settlement(debt, amount_cents, tolerance_cents=self._tolerance)
            await session.save_debt(updated)
        self._log.info("debt.settled", group_id=group_id, debt_id=debt_id, paid_cents=updated.paid_cents)
        return updated

    async def set_paid_amount(self, group_id: int, debt_id: int, paid_cents: int) -> Debt:
        async with self.store.transaction(group_id) as session:
            debt = await self._load_debt(session, group_id, debt_id)
            updated = set_paid_amount(debt, paid_cents, tolerance_cents=self._tolerance)
            if updated != debt:
                await session.save_debt(updated)
        self._log.info("debt.paid_amount_set", group_id=group_id, debt_id=debt_id, paid_cents=paid_cents)
        return updated

    async def get_debts(self, group_id: int) -> list[Debt]:
        async with self.store.transaction(group_id) as session:
            rows = await session.fetch_debts(group_id)
        return outstanding_debts(rows, tolerance_cents=self._tolerance)

    async def get_balances(self, group_id: int) -> dict[int, int]:
        async with self.store.transaction(group_id) as session:
            ledger = await session.fetch_ledger(group_id)
        sheet = calculate_balances(
            ledger,
            tolerance_cents=self._tolerance,
            slip_policy=self.settings.slip_policy,
        )
        return sheet.balances

    async def list_participants(self, group_id: int) -> list[Participant]:
        async with self.store.transaction(group_id) as session:
            await self._load_group(session, group_id)
            ledger = await session.fetch_ledger(group_id)
        return list(ledger.participants)

    async def list_expenses(self, group_id: int) -> list[Expense]:
        async with self.store.transaction(group_id) as session:
            await self._load_group(session, group_id)
            ledger = await session.fetch_ledger(group_id)
        return list(ledger.expenses)

    async def get_expense(self, group_id: int, expense_id: int) -> Expense:
        async with self.store.transaction(group_id) as session:
            expense = await session.get_expense(expense_id)
        if expense is None or expense.group_id != group_id:
            raise NotFoundError(f"expense {expense_id} not found in group {group_id}")
        return expense
