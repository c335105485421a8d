import asyncio
from datetime import date
from decimal import Decimal

import pytest

from cloudsplit.db.models import Bill, LineItem, Participant, PaymentRecord, ShareRecord
from cloudsplit.errors import FetchError, FetchTimeoutError
from cloudsplit.services.summary import chunked, load_paid_amounts, load_payment_summary

BILL = "10000000-0000-4000-8000-000000000001"


def _item_id(i: int) -> str:
    return f"20000000-0000-4000-8000-{i:012d}"


def _participant_id(i: int) -> str:
    return f"30000000-0000-4000-8000-{i:012d}"


class StubSummaryRepo:
    def __init__(self, count: int = 5) -> None:
        self.bill = Bill(id=BILL, title="Picnic", bill_date=date(2025, 6, 1), created_by=1)
        self.items = {
            _item_id(i): LineItem(id=_item_id(i), bill_id=BILL, item_name=f"Item {i}", unit_price=Decimal(10))
            for i in range(count)
        }
        self.participants = {
            _participant_id(i): Participant(id=_participant_id(i), bill_id=BILL, name="Alice" if i % 2 else "Bob")
            for i in range(count)
        }
        self.shares = [
            ShareRecord(id=str(i), bill_item_id=_item_id(i), participant_id=_participant_id(i), share_amount=Decimal(10))
            for i in range(count)
        ]
        self.item_batches: list[list[str]] = []
        self.fail_bills = False
        self.delay = 0.0

    async def list_share_records(self):
        if self.delay:
            await asyncio.sleep(self.delay)
        return list(self.shares)

    async def get_items_by_ids(self, item_ids):
        self.item_batches.append(list(item_ids))
        return [self.items[i] for i in item_ids if i in self.items]

    async def get_participants_by_ids(self, participant_ids):
        return [self.participants[i] for i in participant_ids if i in self.participants]

    async def get_bills_by_ids(self, bill_ids):
        if self.fail_bills:
            raise RuntimeError("connection reset")
        return [self.bill] if BILL in bill_ids else []

    async def list_payments(self):
        return [PaymentRecord(participant_name="Alice", paid_amount=Decimal("12.50"))]


def test_chunked():
    assert list(chunked(["a", "b", "c"], 2)) == [["a", "b"], ["c"]]
    with pytest.raises(ValueError):
        list(chunked(["a"], 0))


@pytest.mark.asyncio
async def test_load_payment_summary_batches_requests():
    repo = StubSummaryRepo(count=5)
    result = await load_payment_summary(repo, batch_size=2)

    assert [len(batch) for batch in repo.item_batches] == [2, 2, 1]
    assert [(s.participant_name, s.total_amount) for s in result.summaries] == [
        ("Alice", Decimal(20)),
        ("Bob", Decimal(30)),
    ]
    assert result.skipped == 0


@pytest.mark.asyncio
async def test_load_payment_summary_empty():
    repo = StubSummaryRepo(count=0)
    result = await load_payment_summary(repo)
    assert result.summaries == []
    assert repo.item_batches == []


@pytest.mark.asyncio
async def test_load_payment_summary_counts_malformed_ids():
    repo = StubSummaryRepo(count=2)
    repo.shares.append(ShareRecord(id="x", bill_item_id="garbage", participant_id="garbage", share_amount=Decimal(1)))
    result = await load_payment_summary(repo)
    assert result.skipped == 1
    assert result.grand_total == Decimal(20)


@pytest.mark.asyncio
async def test_load_payment_summary_fetch_failure():
    repo = StubSummaryRepo()
    repo.fail_bills = True
    with pytest.raises(FetchError) as excinfo:
        await load_payment_summary(repo)
    assert excinfo.value.collection == "bills"


@pytest.mark.asyncio
async def test_load_payment_summary_timeout():
    repo = StubSummaryRepo()
    repo.delay = 1.0
    with pytest.raises(FetchTimeoutError):
        await load_payment_summary(repo, timeout=0.01)


@pytest.mark.asyncio
async def test_load_paid_amounts():
    paid = await load_paid_amounts(StubSummaryRepo())
    assert paid == {"Alice": Decimal("12.50")}


@pytest.mark.asyncio
async def test_items_and_participants_are_fetched_concurrently():
    repo = StubSummaryRepo(count=2)
    participants_started = asyncio.Event()
    fetch_items = repo.get_items_by_ids
    fetch_participants = repo.get_participants_by_ids

    async def items_after_participants(item_ids):
        await participants_started.wait()
        return await fetch_items(item_ids)

    async def participants(participant_ids):
        participants_started.set()
        return await fetch_participants(participant_ids)

    repo.get_items_by_ids = items_after_participants
    repo.get_participants_by_ids = participants

    result = await load_payment_summary(repo, timeout=1)
    assert result.grand_total == Decimal(20)


@pytest.mark.asyncio
async def test_failed_fetch_cancels_the_other_one():
    repo = StubSummaryRepo(count=2)
    progress = {"cancelled": False, "finished": False}
    participants_started = asyncio.Event()

    async def broken_items(item_ids):
        await participants_started.wait()
        raise RuntimeError("connection reset")

    async def slow_participants(participant_ids):
        participants_started.set()
        try:
            await asyncio.sleep(0.2)
        except asyncio.CancelledError:
            progress["cancelled"] = True
            raise
        progress["finished"] = True
        return []

    repo.get_items_by_ids = broken_items
    repo.get_participants_by_ids = slow_participants

    with pytest.raises(FetchError):
        await load_payment_summary(repo, timeout=1)
    assert progress == {"cancelled": True, "finished": False}
