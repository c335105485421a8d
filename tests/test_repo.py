from contextlib import asynccontextmanager
from decimal import Decimal

import pytest

from cloudsplit.db.models import NewLineItem, Participant
from cloudsplit.db.repo import LedgerRepository

BILL_ID = "0b6c6e0e-8d35-4f0c-b7b1-9f1f3a1e2d01"
ALICE = "a1a1a1a1-0000-4000-8000-000000000001"
CAROL = "c3c3c3c3-0000-4000-8000-000000000003"
CAKE = "d4d4d4d4-0000-4000-8000-000000000004"


class DummyConn:
    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple]] = []

    async def execute(self, query: str, *args):
        self.calls.append((" ".join(query.split()), args))

    async def executemany(self, query: str, rows):
        self.calls.append((" ".join(query.split()), tuple(rows)))


class DummyDB:
    def __init__(self) -> None:
        self.queries: list[str] = []

    async def fetch(self, query: str, *args):
        self.queries.append(query)
        return [{"participant_name": "Alice", "paid_amount": Decimal("5.00"), "updated_at": None}]

    async def fetchrow(self, query: str, *args):
        self.queries.append(query)
        if "participant_payments" in query:
            return {"participant_name": args[0], "paid_amount": args[1], "updated_at": None}
        return None

    @asynccontextmanager
    async def transaction(self):
        self.conn = DummyConn()
        yield self.conn


@pytest.mark.asyncio
async def test_upsert_payment_returns_record():
    repo = LedgerRepository(DummyDB())  # type: ignore[arg-type]
    record = await repo.upsert_payment("Alice", Decimal("12.50"))
    assert record.participant_name == "Alice"
    assert record.paid_amount == Decimal("12.50")


@pytest.mark.asyncio
async def test_lookups_by_empty_id_list_skip_the_database():
    db = DummyDB()
    repo = LedgerRepository(db)  # type: ignore[arg-type]
    assert await repo.get_bills_by_ids([]) == []
    assert await repo.get_items_by_ids([]) == []
    assert await repo.get_participants_by_ids([]) == []
    assert db.queries == []


@pytest.mark.asyncio
async def test_list_payments():
    repo = LedgerRepository(DummyDB())  # type: ignore[arg-type]
    payments = await repo.list_payments()
    assert [(p.participant_name, p.paid_amount) for p in payments] == [("Alice", Decimal("5.00"))]


@pytest.mark.asyncio
async def test_replace_bill_items_with_new_roster():
    db = DummyDB()
    repo = LedgerRepository(db)  # type: ignore[arg-type]
    cake = NewLineItem(
        id=CAKE,
        item_name="Cake",
        unit_price=Decimal("30.00"),
        discount_ratio=Decimal("1.00"),
        discount_adjustment=Decimal("0.00"),
        sort_order=0,
        participant_ids=[ALICE, CAROL],
        share_amount=Decimal("15.00"),
    )
    roster = [
        Participant(id=ALICE, bill_id=BILL_ID, name="Alice"),
        Participant(id=CAROL, bill_id=BILL_ID, name="Carol"),
    ]
    await repo.replace_bill_items(BILL_ID, [cake], Decimal("30.00"), roster)

    queries = [query for query, _ in db.conn.calls]
    removal = queries.index("DELETE FROM bill_participants WHERE bill_id = $1 AND NOT (id = ANY($2::uuid[]))")
    assert db.conn.calls[removal][1] == (BILL_ID, [ALICE, CAROL])
    insert = next(i for i, q in enumerate(queries) if q.startswith("INSERT INTO bill_participants"))
    shares = next(i for i, q in enumerate(queries) if q.startswith("INSERT INTO split_details"))
    assert removal < insert < shares
    assert db.conn.calls[insert][1] == ((ALICE, BILL_ID, "Alice"), (CAROL, BILL_ID, "Carol"))
    assert queries[-1].startswith("UPDATE bills SET total_amount")


@pytest.mark.asyncio
async def test_replace_bill_items_keeps_roster_by_default():
    db = DummyDB()
    repo = LedgerRepository(db)  # type: ignore[arg-type]
    await repo.replace_bill_items(BILL_ID, [], Decimal("0.00"))
    assert not any("bill_participants" in query for query, _ in db.conn.calls)
