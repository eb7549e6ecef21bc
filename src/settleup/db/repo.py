from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Iterable, Optional

import asyncpg

from settleup.db.models import Debt, Expense, Group, GroupLedger, Participant, Payment, Split, SplitType
from settleup.logging import get_logger, sql_logger
from settleup.services.engine import Recomputation


class Connection:
    """Logged wrapper around one asyncpg connection."""

    def __init__(self, conn: asyncpg.Connection) -> None:
        self._conn = conn

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        sql_logger.info("sql.fetch", query=query, args=args)
        return await self._conn.fetch(query, *args)

    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        sql_logger.info("sql.fetchrow", query=query, args=args)
        return await self._conn.fetchrow(query, *args)

    async def execute(self, query: str, *args: Any) -> str:
        sql_logger.info("sql.execute", query=query, args=args)
        return await self._conn.execute(query, *args)

    async def executemany(self, command: str, args: Iterable[Iterable[Any]]) -> None:
        sql_logger.info("sql.executemany", query=command)
        await self._conn.executemany(command, args)


class Database:
    def __init__(self, dsn: str) -> None:
        self._dsn = dsn
        self._pool: asyncpg.Pool | None = None
        self._log = get_logger(__name__)

    async def connect(self) -> None:
        if self._pool is None:
            # asyncpg expects a plain postgresql:// scheme, without "+asyncpg"
            dsn = self._dsn.replace("+asyncpg", "")
            self._pool = await asyncpg.create_pool(dsn)
            self._log.info("db.pool.created")

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            self._log.info("db.pool.closed")

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Connection]:
        await self._ensure_pool()
        assert self._pool
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                yield Connection(conn)

    async def _ensure_pool(self) -> None:
        if self._pool is None:
            await self.connect()


def _group(row: Any) -> Group:
    return Group(id=row["id"], name=row["name"], currency=row["currency"], created_at=row.get("created_at"))


def _participant(row: Any) -> Participant:
    return Participant(id=row["id"], group_id=row["group_id"], name=row["name"])


def _payment(row: Any) -> Payment:
    return Payment(
        id=row["id"],
        group_id=row["group_id"],
        payer_id=row["payer_id"],
        payee_id=row["payee_id"],
        amount_cents=row["amount_cents"],
        created_at=row.get("created_at"),
    )


def _debt(row: Any) -> Debt:
    return Debt(
        id=row["id"],
        group_id=row["group_id"],
        lender_id=row["lender_id"],
        debtor_id=row["debtor_id"],
        debt_cents=row["debt_cents"],
        paid_cents=row["paid_cents"],
    )


def _expense(row: Any, splits: Iterable[Split]) -> Expense:
    return Expense(
        id=row["id"],
        group_id=row["group_id"],
        payer_id=row["payer_id"],
        title=row["title"],
        amount_cents=row["amount_cents"],
        split_type=SplitType(row["split_type"]),
        splits=tuple(splits),
        created_at=row.get("created_at"),
    )


class PgLedgerSession:
    def __init__(self, conn: Connection) -> None:
        self.conn = conn

    async def lock_group(self, group_id: int) -> None:
        await self.conn.execute("SELECT pg_advisory_xact_lock($1)", group_id)

    async def insert_group(self, name: str, currency: str) -> Group:
        row = await self.conn.fetchrow(
            "INSERT INTO groups (name, currency) VALUES ($1, $2) RETURNING *",
            name,
            currency,
        )
        assert row is not None
        return _group(row)

    async def get_group(self, group_id: int) -> Optional[Group]:
        row = await self.conn.fetchrow("SELECT * FROM groups WHERE id = $1", group_id)
        return _group(row) if row is not None else None

    async def update_group(self, group: Group) -> None:
        await self.conn.execute(
            "UPDATE groups SET name = $1, currency = $2 WHERE id = $3",
            group.name,
            group.currency,
            group.id,
        )

    async def fetch_ledger(self, group_id: int) -> GroupLedger:
        participants = await self.conn.fetch(
            "SELECT * FROM participants WHERE group_id = $1 ORDER BY id",
            group_id,
        )
        expense_rows = await self.conn.fetch(
            "SELECT * FROM expenses WHERE group_id = $1 ORDER BY id",
            group_id,
        )
        split_rows = await self.conn.fetch(
            """
            SELECT s.expense_id, s.participant_id, s.owed_cents
            FROM splits s
            JOIN expenses e ON e.id = s.expense_id
            WHERE e.group_id = $1
            ORDER BY s.expense_id, s.id
            """,
            group_id,
        )
        payment_rows = await self.conn.fetch(
            "SELECT * FROM payments WHERE group_id = $1 ORDER BY id",
            group_id,
        )

        splits_by_expense: dict[int, list[Split]] = {}
        for row in split_rows:
            splits_by_expense.setdefault(row["expense_id"], []).append(
                Split(expense_id=row["expense_id"], participant_id=row["participant_id"], owed_cents=row["owed_cents"])
            )

        return GroupLedger(
            group_id=group_id,
            participants=tuple(_participant(row) for row in participants),
            expenses=tuple(_expense(row, splits_by_expense.get(row["id"], [])) for row in expense_rows),
            payments=tuple(_payment(row) for row in payment_rows),
        )

    async def fetch_debts(self, group_id: int) -> list[Debt]:
        rows = await self.conn.fetch(
            "SELECT * FROM debts WHERE group_id = $1 ORDER BY lender_id, debtor_id, id",
            group_id,
        )
        return [_debt(row) for row in rows]

    async def get_debt(self, debt_id: int) -> Optional[Debt]:
        row = await self.conn.fetchrow("SELECT * FROM debts WHERE id = $1", debt_id)
        return _debt(row) if row is not None else None

    async def get_expense(self, expense_id: int) -> Optional[Expense]:
        row = await self.conn.fetchrow("SELECT * FROM expenses WHERE id = $1", expense_id)
        if row is None:
            return None
        split_rows = await self.conn.fetch(
            "SELECT expense_id, participant_id, owed_cents FROM splits WHERE expense_id = $1 ORDER BY id",
            expense_id,
        )
        splits = [
            Split(expense_id=s["expense_id"], participant_id=s["participant_id"], owed_cents=s["owed_cents"])
            for s in split_rows
        ]
        return _expense(row, splits)

    async def insert_participant(self, group_id: int, name: str) -> Participant:
        row = await self.conn.fetchrow(
            "INSERT INTO participants (group_id, name) VALUES ($1, $2) RETURNING *",
            group_id,
            name,
        )
        assert row is not None
        return _participant(row)

    async def rename_participant(self, participant_id: int, name: str) -> None:
        await self.conn.execute("UPDATE participants SET name = $1 WHERE id = $2", name, participant_id)

    async def delete_participant(self, participant_id: int) -> None:
        await self.conn.execute("DELETE FROM participants WHERE id = $1", participant_id)

    async def _insert_splits(self, expense_id: int, splits: Iterable[Split]) -> tuple[Split, ...]:
        saved = tuple(
            Split(expense_id=expense_id, participant_id=split.participant_id, owed_cents=split.owed_cents)
            for split in splits
        )
        if saved:
            await self.conn.executemany(
                "INSERT INTO splits (expense_id, participant_id, owed_cents) VALUES ($1, $2, $3)",
                ((split.expense_id, split.participant_id, split.owed_cents) for split in saved),
            )
        return saved

    async def insert_expense(self, expense: Expense) -> Expense:
        row = await self.conn.fetchrow(
            """
            INSERT INTO expenses (group_id, payer_id, title, amount_cents, split_type)
            VALUES ($1, $2, $3, $4, $5)
            RETURNING *
            """,
            expense.group_id,
            expense.payer_id,
            expense.title,
            expense.amount_cents,
            expense.split_type.value,
        )
        assert row is not None
        splits = await self._insert_splits(row["id"], expense.splits)
        return _expense(row, splits)

    async def update_expense(self, expense: Expense) -> Expense:
        row = await self.conn.fetchrow(
            """
            UPDATE expenses
            SET payer_id = $1, title = $2, amount_cents = $3, split_type = $4
            WHERE id = $5
            RETURNING *
            """,
            expense.payer_id,
            expense.title,
            expense.amount_cents,
            expense.split_type.value,
            expense.id,
        )
        assert row is not None
        await self.conn.execute("DELETE FROM splits WHERE expense_id = $1", expense.id)
        splits = await self._insert_splits(row["id"], expense.splits)
        return _expense(row, splits)

    async def delete_expense(self, expense_id: int) -> None:
        await self.conn.execute("DELETE FROM splits WHERE expense_id = $1", expense_id)
        await self.conn.execute("DELETE FROM expenses WHERE id = $1", expense_id)

    async def insert_payment(self, payment: Payment) -> Payment:
        row = await self.conn.fetchrow(
            """
            INSERT INTO payments (group_id, payer_id, payee_id, amount_cents)
            VALUES ($1, $2, $3, $4)
            RETURNING *
            """,
            payment.group_id,
            payment.payer_id,
            payment.payee_id,
            payment.amount_cents,
        )
        assert row is not None
        return _payment(row)

    async def save_debt(self, debt: Debt) -> None:
        await self.conn.execute(
            "UPDATE debts SET debt_cents = $1, paid_cents = $2 WHERE id = $3",
            debt.debt_cents,
            debt.paid_cents,
            debt.id,
        )

    async def apply_recomputation(self, recomputation: Recomputation) -> None:
        changes = recomputation.changes
        # deletes before inserts keep (group_id, lender_id, debtor_id) unique at every step
        if changes.deletes:
            await self.conn.execute(
                "DELETE FROM debts WHERE id = ANY($1::bigint[])",
                [debt.id for debt in changes.deletes if debt.id is not None],
            )
        for debt in changes.updates:
            await self.save_debt(debt)
        if changes.inserts:
            await self.conn.executemany(
                """
                INSERT INTO debts (group_id, lender_id, debtor_id, debt_cents, paid_cents)
                VALUES ($1, $2, $3, $4, $5)
                """,
                ((d.group_id, d.lender_id, d.debtor_id, d.debt_cents, d.paid_cents) for d in changes.inserts),
            )
        for payment in recomputation.payments:
            await self.insert_payment(payment)


class PgLedgerStore:
    def __init__(self, db: Database) -> None:
        self.db = db

    @asynccontextmanager
    async def transaction(self, group_id: Optional[int] = None) -> AsyncIterator[PgLedgerSession]:
        async with self.db.transaction() as conn:
            session = PgLedgerSession(conn)
            if group_id is not None:
                await session.lock_group(group_id)
            yield session
