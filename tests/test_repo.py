from contextlib import asynccontextmanager

import pytest

from settleup.db.models import Debt, Group, Payment
from settleup.db.repo import PgLedgerSession, PgLedgerStore
from settleup.services.engine import Recomputation
from settleup.services.reconcile import DebtChanges


class RecordingConnection:
    def __init__(self, rows=None) -> None:
        self.rows = rows or {}
        self.calls = []

    async def fetch(self, query: str, *args):
        self.calls.append(("fetch", query, args))
        for table, rows in self.rows.items():
            if f"FROM {table}" in query:
                return rows
        return []

    async def fetchrow(self, query: str, *args):
        self.calls.append(("fetchrow", query, args))
        if query.lstrip().startswith("INSERT INTO groups"):
            name, currency = args
            return {"id": 3, "name": name, "currency": currency, "created_at": None}
        if query.lstrip().startswith("INSERT INTO payments"):
            group_id, payer_id, payee_id, amount_cents = args
            return {
                "id": 99,
                "group_id": group_id,
                "payer_id": payer_id,
                "payee_id": payee_id,
                "amount_cents": amount_cents,
                "created_at": None,
            }
        return None

    async def execute(self, query: str, *args):
        self.calls.append(("execute", query, args))
        return "OK"

    async def executemany(self, command: str, args):
        self.calls.append(("executemany", command, list(args)))


def _statement(call):
    return call[1].split()[0]


@pytest.mark.asyncio
async def test_apply_recomputation_deletes_before_inserting():
    conn = RecordingConnection()
    session = PgLedgerSession(conn)  # type: ignore[arg-type]
    recomputation = Recomputation(
        group_id=1,
        balances={},
        transfers=[],
        rows=[],
        changes=DebtChanges(
            inserts=[Debt(group_id=1, lender_id=2, debtor_id=1, debt_cents=500)],
            updates=[Debt(id=4, group_id=1, lender_id=3, debtor_id=1, debt_cents=800, paid_cents=100)],
            deletes=[Debt(id=7, group_id=1, lender_id=1, debtor_id=2, debt_cents=500, paid_cents=500)],
        ),
        payments=[Payment(id=None, group_id=1, payer_id=2, payee_id=1, amount_cents=500)],
    )

    await session.apply_recomputation(recomputation)

    assert [_statement(call) for call in conn.calls] == ["DELETE", "UPDATE", "INSERT", "INSERT"]
    assert conn.calls[0][2] == ([7],)
    assert conn.calls[1][2] == (800, 100, 4)
    assert conn.calls[2][2] == [(1, 2, 1, 500, 0)]
    assert conn.calls[3][2] == (1, 2, 1, 500)


@pytest.mark.asyncio
async def test_apply_recomputation_without_changes_writes_nothing():
    conn = RecordingConnection()
    session = PgLedgerSession(conn)  # type: ignore[arg-type]

    await session.apply_recomputation(
        Recomputation(group_id=1, balances={}, transfers=[], rows=[], changes=DebtChanges())
    )

    assert conn.calls == []


@pytest.mark.asyncio
async def test_fetch_ledger_attaches_splits_to_expenses():
    conn = RecordingConnection(
        rows={
            "participants": [
                {"id": 1, "group_id": 5, "name": "Ann"},
                {"id": 2, "group_id": 5, "name": "Bob"},
            ],
            "expenses": [
                {
                    "id": 10,
                    "group_id": 5,
                    "payer_id": 1,
                    "title": "cab",
                    "amount_cents": 2000,
                    "split_type": "equal",
                    "created_at": None,
                }
            ],
            "splits": [
                {"expense_id": 10, "participant_id": 1, "owed_cents": 1000},
                {"expense_id": 10, "participant_id": 2, "owed_cents": 1000},
            ],
        }
    )
    session = PgLedgerSession(conn)  # type: ignore[arg-type]

    ledger = await session.fetch_ledger(5)

    assert ledger.participant_ids == [1, 2]
    (expense,) = ledger.expenses
    assert expense.split_total_cents == 2000
    assert [s.participant_id for s in expense.splits] == [1, 2]
    assert ledger.payments == ()


@pytest.mark.asyncio
async def test_lock_group_takes_advisory_lock():
    conn = RecordingConnection()
    session = PgLedgerSession(conn)  # type: ignore[arg-type]

    await session.lock_group(5)

    assert conn.calls == [("execute", "SELECT pg_advisory_xact_lock($1)", (5,))]


@pytest.mark.asyncio
async def test_group_rows_round_through_session():
    conn = RecordingConnection()
    session = PgLedgerSession(conn)  # type: ignore[arg-type]

    group = await session.insert_group("Trip", "EUR")
    await session.update_group(Group(id=group.id, name="Road trip", currency="USD"))

    assert group == Group(id=3, name="Trip", currency="EUR")
    assert conn.calls[0][2] == ("Trip", "EUR")
    assert conn.calls[1] == (
        "execute",
        "UPDATE groups SET name = $1, currency = $2 WHERE id = $3",
        ("Road trip", "USD", 3),
    )
    assert await session.get_group(8) is None


class StubDatabase:
    def __init__(self, conn) -> None:
        self.conn = conn

    @asynccontextmanager
    async def transaction(self):
        yield self.conn


@pytest.mark.asyncio
async def test_store_locks_only_when_a_group_is_given():
    conn = RecordingConnection()
    store = PgLedgerStore(StubDatabase(conn))  # type: ignore[arg-type]

    async with store.transaction():
        pass
    assert conn.calls == []

    async with store.transaction(5):
        pass
    assert conn.calls == [("execute", "SELECT pg_advisory_xact_lock($1)", (5,))]
