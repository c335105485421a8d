from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Awaitable, Callable, Iterator, Protocol, Sequence, TypeVar

from cloudsplit.db.models import Bill, LineItem, Participant, PaymentRecord, ShareRecord
from cloudsplit.errors import FetchError, FetchTimeoutError
from cloudsplit.logging import get_logger
from cloudsplit.services.aggregate import AggregationResult, aggregate_shares, valid_ids

T = TypeVar("T")

DEFAULT_TIMEOUT_SECONDS = 15.0
DEFAULT_BATCH_SIZE = 100

log = get_logger(__name__)


class SummaryRepository(Protocol):
    async def list_share_records(self) -> list[ShareRecord]: ...

    async def get_items_by_ids(self, item_ids: Sequence[str]) -> list[LineItem]: ...

    async def get_participants_by_ids(self, participant_ids: Sequence[str]) -> list[Participant]: ...

    async def get_bills_by_ids(self, bill_ids: Sequence[str]) -> list[Bill]: ...

    async def list_payments(self) -> list[PaymentRecord]: ...


def chunked(ids: Sequence[str], size: int) -> Iterator[Sequence[str]]:
    if size < 1:
        raise ValueError("size must be positive")
    for start in range(0, len(ids), size):
        yield ids[start : start + size]


async def batch_fetch(
    fetch: Callable[[Sequence[str]], Awaitable[list[T]]],
    ids: Sequence[str],
    *,
    collection: str,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> list[T]:
    """Fetch ``ids`` in round trips of at most ``batch_size`` ids each."""
    results: list[T] = []
    for number, batch in enumerate(chunked(ids, batch_size), start=1):
        try:
            results.extend(await fetch(batch))
        except Exception as exc:
            log.error("summary.fetch.failed", collection=collection, batch=number, error=str(exc))
            raise FetchError(collection) from exc
    return results


async def _collect(repo: SummaryRepository, batch_size: int) -> AggregationResult:
    try:
        shares = await repo.list_share_records()
    except Exception as exc:
        log.error("summary.fetch.failed", collection="share records", error=str(exc))
        raise FetchError("share records") from exc
    if not shares:
        return AggregationResult()

    item_ids = valid_ids(share.bill_item_id for share in shares)
    participant_ids = valid_ids(share.participant_id for share in shares)
    if not item_ids or not participant_ids:
        log.info("summary.no_valid_ids", shares=len(shares))
        return AggregationResult(skipped=len(shares))

    # A failure in either fetch cancels the other one.
    try:
        async with asyncio.TaskGroup() as group:
            items_task = group.create_task(
                batch_fetch(repo.get_items_by_ids, item_ids, collection="items", batch_size=batch_size)
            )
            participants_task = group.create_task(
                batch_fetch(
                    repo.get_participants_by_ids,
                    participant_ids,
                    collection="participants",
                    batch_size=batch_size,
                )
            )
    except ExceptionGroup as failures:
        raise failures.exceptions[0]
    items = items_task.result()
    participants = participants_task.result()

    bill_ids = valid_ids(item.bill_id for item in items)
    bills = await batch_fetch(repo.get_bills_by_ids, bill_ids, collection="bills", batch_size=batch_size)

    return aggregate_shares(
        shares,
        items={item.id: item for item in items},
        participants={p.id: p for p in participants},
        bills={bill.id: bill for bill in bills},
    )


async def load_payment_summary(
    repo: SummaryRepository,
    *,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> AggregationResult:
    """Fetch every share record with its item, participant and bill, then aggregate by name.

    A failed fetch of any collection fails the whole summary with
    :class:`FetchError`; exceeding ``timeout`` raises :class:`FetchTimeoutError`.
    """
    log.info("summary.load.start", timeout=timeout, batch_size=batch_size)
    try:
        async with asyncio.timeout(timeout):
            result = await _collect(repo, batch_size)
    except TimeoutError as exc:
        log.error("summary.load.timeout", timeout=timeout)
        raise FetchTimeoutError(timeout) from exc
    log.info(
        "summary.load.done",
        people=len(result.summaries),
        skipped=result.skipped,
        total=str(result.grand_total),
    )
    return result


async def load_paid_amounts(
    repo: SummaryRepository,
    *,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> dict[str, Decimal]:
    try:
        async with asyncio.timeout(timeout):
            records = await repo.list_payments()
    except TimeoutError as exc:
        log.error("payments.load.timeout", timeout=timeout)
        raise FetchTimeoutError(timeout) from exc
    except Exception as exc:
        log.error("payments.load.failed", error=str(exc))
        raise FetchError("payments") from exc
    return {record.participant_name: record.paid_amount for record in records}
