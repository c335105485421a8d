"""Cross-bill aggregation of share records by participant name.

A person gets a fresh participant record on every bill, so totals across
bills are joined on the participant's display name. Matching is exact and
case-sensitive: "Alice" and "alice " are two different people here.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable, Mapping, Optional, Sequence

from cloudsplit.db.models import Bill, LineItem, Participant, ShareRecord
from cloudsplit.errors import ResolutionGapError
from cloudsplit.logging import get_logger
from cloudsplit.services.split import ZERO
from cloudsplit.utils.collate import collation_key

log = get_logger(__name__)

_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
_LEADING_NUMBER_RE = re.compile(r"^(\d+)\s*-", re.ASCII)
_ANY_NUMBER_RE = re.compile(r"\d+", re.ASCII)


def is_valid_id(value: object) -> bool:
    return isinstance(value, str) and bool(_UUID_RE.match(value.strip()))


def valid_ids(values: Iterable[object]) -> list[str]:
    """Distinct well-formed ids in first-seen order."""
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        if not is_valid_id(value):
            continue
        clean = str(value).strip()
        if clean not in seen:
            seen.add(clean)
            result.append(clean)
    return result


@dataclass(slots=True)
class PaymentDetail:
    bill_id: str
    bill_title: str
    bill_date: date
    item_name: str
    item_id: str
    share_amount: Decimal


@dataclass(slots=True)
class BillGroup:
    bill_id: str
    bill_title: str
    bill_date: date
    items: list[PaymentDetail] = field(default_factory=list)
    total_amount: Decimal = ZERO


@dataclass(slots=True)
class ParticipantSummary:
    participant_name: str
    total_amount: Decimal = ZERO
    details: list[PaymentDetail] = field(default_factory=list)

    def add(self, detail: PaymentDetail) -> None:
        self.total_amount += detail.share_amount
        self.details.append(detail)

    def grouped_by_bill(self) -> list[BillGroup]:
        return group_details_by_bill(self.details)


@dataclass(slots=True)
class AggregationResult:
    summaries: list[ParticipantSummary] = field(default_factory=list)
    skipped: int = 0

    @property
    def grand_total(self) -> Decimal:
        return sum((s.total_amount for s in self.summaries), ZERO)

    def find(self, name: str) -> Optional[ParticipantSummary]:
        for summary in self.summaries:
            if summary.participant_name == name:
                return summary
        return None


def group_details_by_bill(details: Sequence[PaymentDetail]) -> list[BillGroup]:
    groups: dict[str, BillGroup] = {}
    for detail in details:
        group = groups.get(detail.bill_id)
        if group is None:
            group = BillGroup(
                bill_id=detail.bill_id,
                bill_title=detail.bill_title,
                bill_date=detail.bill_date,
            )
            groups[detail.bill_id] = group
        group.items.append(detail)
        group.total_amount += detail.share_amount
    return sorted(groups.values(), key=lambda g: g.bill_date, reverse=True)


def leading_number(name: str) -> Optional[int]:
    """Number a name is ordered by: "8 - Cafe" -> 8, "Table 3" -> 3, "Zeta" -> None."""
    match = _LEADING_NUMBER_RE.match(name)
    if match:
        return int(match.group(1))
    match = _ANY_NUMBER_RE.search(name)
    return int(match.group(0)) if match else None


def summary_sort_key(name: str) -> tuple[bool, int, tuple[int, ...]]:
    number = leading_number(name)
    return (number is None, number if number is not None else 0, collation_key(name))


def sort_summaries(summaries: Iterable[ParticipantSummary]) -> list[ParticipantSummary]:
    return sorted(summaries, key=lambda s: summary_sort_key(s.participant_name))


def _resolve(
    share: ShareRecord,
    items: Mapping[str, LineItem],
    participants: Mapping[str, Participant],
    bills: Mapping[str, Bill],
) -> tuple[Participant, LineItem, Bill]:
    participant = participants.get(share.participant_id)
    if participant is None:
        raise ResolutionGapError(share.id, "participant")
    item = items.get(share.bill_item_id)
    if item is None:
        raise ResolutionGapError(share.id, "item")
    bill = bills.get(item.bill_id)
    if bill is None:
        raise ResolutionGapError(share.id, "bill")
    return participant, item, bill


def aggregate_shares(
    shares: Iterable[ShareRecord],
    items: Mapping[str, LineItem],
    participants: Mapping[str, Participant],
    bills: Mapping[str, Bill],
) -> AggregationResult:
    """Sum share records per participant name across bills.

    Records that cannot be joined to their participant, item and bill are
    skipped and counted in ``skipped``; they never abort the aggregation.
    """
    by_name: dict[str, ParticipantSummary] = {}
    skipped = 0
    for share in shares:
        try:
            participant, item, bill = _resolve(share, items, participants, bills)
        except ResolutionGapError as exc:
            skipped += 1
            log.debug("aggregate.skip", share_id=exc.share_id, missing=exc.missing)
            continue

        summary = by_name.get(participant.name)
        if summary is None:
            summary = ParticipantSummary(participant_name=participant.name)
            by_name[participant.name] = summary
        summary.add(
            PaymentDetail(
                bill_id=bill.id,
                bill_title=bill.title,
                bill_date=bill.bill_date,
                item_name=item.item_name,
                item_id=item.id,
                share_amount=share.share_amount,
            )
        )

    if skipped:
        log.info("aggregate.skipped", count=skipped)
    return AggregationResult(summaries=sort_summaries(by_name.values()), skipped=skipped)


def merge_summaries(*results: AggregationResult) -> AggregationResult:
    by_name: dict[str, ParticipantSummary] = {}
    skipped = 0
    for result in results:
        skipped += result.skipped
        for summary in result.summaries:
            merged = by_name.setdefault(
                summary.participant_name,
                ParticipantSummary(participant_name=summary.participant_name),
            )
            for detail in summary.details:
                merged.add(detail)
    return AggregationResult(summaries=sort_summaries(by_name.values()), skipped=skipped)
