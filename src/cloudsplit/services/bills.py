from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Mapping, Optional, Protocol, Sequence

from cloudsplit.db.models import Bill, LineItem, NewLineItem, Participant, ShareRecord
from cloudsplit.errors import NotFoundError, ValidationError
from cloudsplit.logging import get_logger
from cloudsplit.services.authz import Repository, Viewer, assert_authenticated, assert_bill_owner
from cloudsplit.services.split import (
    ONE,
    ZERO,
    BillTotals,
    ItemSplit,
    Number,
    adjusted_price,
    is_billable,
    quantize_money,
    share_amount,
    to_decimal,
    totalize_bill,
    unique_participants,
)

log = get_logger(__name__)

# Largest values the NUMERIC(10,2) and NUMERIC(5,2) item columns hold.
MAX_AMOUNT = Decimal("99999999.99")
MAX_RATIO = Decimal("999.99")


class BillRepository(Protocol):
    db: Repository

    async def get_bill(self, bill_id: str) -> Optional[Bill]: ...

    async def get_bill_participants(self, bill_id: str) -> list[Participant]: ...

    async def get_bill_items(self, bill_id: str) -> list[LineItem]: ...

    async def get_bill_shares(self, bill_id: str) -> list[ShareRecord]: ...

    async def create_bill(
        self, bill: Bill, participants: Sequence[Participant], items: Sequence[NewLineItem]
    ) -> None: ...

    async def replace_bill_items(
        self,
        bill_id: str,
        items: Sequence[NewLineItem],
        total_amount: Decimal,
        participants: Optional[Sequence[Participant]] = None,
    ) -> None: ...

    async def set_bill_checked(self, bill_id: str, checked: bool) -> None: ...

    async def delete_bill(self, bill_id: str) -> None: ...


@dataclass(slots=True)
class LineItemDraft:
    item_name: str
    unit_price: Number
    discount_ratio: Number = ONE
    discount_adjustment: Number = ZERO
    participants: Sequence[str] = ()


@dataclass(slots=True)
class BillDraft:
    title: str
    participants: Sequence[str]
    items: Sequence[LineItemDraft]
    bill_date: date
    description: Optional[str] = None
    checked: bool = False
    payer: Optional[str] = None


@dataclass(slots=True)
class BillView:
    bill: Bill
    participants: list[Participant]
    items: list[LineItem]
    assignments: dict[str, list[str]]
    totals: BillTotals

    def participant_names(self, item_id: str) -> list[str]:
        names = {p.id: p.name for p in self.participants}
        return [names[pid] for pid in self.assignments.get(item_id, []) if pid in names]

    def totals_by_name(self) -> list[tuple[str, Decimal]]:
        return [(p.name, self.totals.per_participant.get(p.id, ZERO)) for p in self.participants]


def clean_participant_names(names: Sequence[str]) -> list[str]:
    cleaned = [name.strip() for name in names if name and name.strip()]
    duplicates = sorted({name for name in cleaned if cleaned.count(name) > 1})
    if duplicates:
        raise ValidationError(f"Participant names must be unique within a bill: {', '.join(duplicates)}")
    return cleaned


def validate_draft(draft: BillDraft) -> list[str]:
    if not draft.title or not draft.title.strip():
        raise ValidationError("Please enter a bill title.")
    names = clean_participant_names(draft.participants)
    if not names:
        raise ValidationError("Please add at least one participant.")
    validate_items(draft.items)
    return names


def _stored(value: Number, default: Decimal = ZERO) -> Decimal:
    return quantize_money(to_decimal(value, default))


def validate_items(items: Sequence[LineItemDraft]) -> None:
    if not items:
        raise ValidationError("Please add at least one item.")
    for index, item in enumerate(items, start=1):
        try:
            price = _stored(item.unit_price)
            ratio = _stored(item.discount_ratio, ONE)
            adjustment = _stored(item.discount_adjustment)
        except ArithmeticError as exc:
            raise ValidationError(f"Item {index} has an invalid amount.") from exc
        if price < 0:
            raise ValidationError(f"Item {index}: unit price cannot be negative.")
        if ratio < 0:
            raise ValidationError(f"Item {index}: discount ratio cannot be negative.")
        if price > MAX_AMOUNT or abs(adjustment) > MAX_AMOUNT:
            raise ValidationError(f"Item {index}: amount is too large.")
        if ratio > MAX_RATIO:
            raise ValidationError(f"Item {index}: discount ratio is too large.")


def prepare_items(
    items: Sequence[LineItemDraft],
    participant_ids_by_name: Mapping[str, str],
) -> tuple[list[NewLineItem], Decimal]:
    """Turn drafts into rows ready to insert, plus the bill total.

    Prices, ratios and adjustments are rounded to cents first, the precision
    they are stored with, so shares and the total always agree with the
    stored item. Drafts without a name or with a price that rounds to zero
    are dropped. Names that are not participants of the bill are ignored.
    """
    prepared: list[NewLineItem] = []
    total = ZERO
    for item in items:
        unit_price = _stored(item.unit_price)
        if not is_billable(item.item_name, unit_price):
            continue
        participant_ids = unique_participants(
            participant_ids_by_name[name.strip()]
            for name in item.participants
            if name and name.strip() in participant_ids_by_name
        )
        ratio = _stored(item.discount_ratio, ONE)
        adjustment = _stored(item.discount_adjustment)
        total += adjusted_price(unit_price, ratio, adjustment)
        prepared.append(
            NewLineItem(
                id=str(uuid.uuid4()),
                item_name=item.item_name.strip(),
                unit_price=unit_price,
                discount_ratio=ratio,
                discount_adjustment=adjustment,
                sort_order=len(prepared),
                participant_ids=participant_ids,
                share_amount=quantize_money(share_amount(unit_price, len(participant_ids), ratio, adjustment)),
            )
        )
    return prepared, total


async def create_bill(repo: BillRepository, viewer: Viewer, draft: BillDraft) -> Bill:
    user_id = assert_authenticated(viewer)
    names = validate_draft(draft)

    bill_id = str(uuid.uuid4())
    participants = [Participant(id=str(uuid.uuid4()), bill_id=bill_id, name=name) for name in names]
    items, total = prepare_items(draft.items, {p.name: p.id for p in participants})
    bill = Bill(
        id=bill_id,
        title=draft.title.strip(),
        bill_date=draft.bill_date,
        created_by=user_id,
        description=(draft.description or "").strip() or None,
        checked=draft.checked,
        total_amount=quantize_money(total),
        payer=(draft.payer or "").strip() or None,
    )
    await repo.create_bill(bill, participants, items)
    log.info("bill.create", bill_id=bill_id, items=len(items), participants=len(participants), total=str(bill.total_amount))
    return bill


async def save_bill_items(
    repo: BillRepository,
    viewer: Viewer,
    bill_id: str,
    items: Sequence[LineItemDraft],
    participants: Optional[Sequence[str]] = None,
) -> Decimal:
    """Recompute and replace every item and share of an existing bill.

    When ``participants`` is given it becomes the bill's new roster: people
    who keep their name keep their record, new names are added and dropped
    names are removed.
    """
    await assert_bill_owner(repo.db, viewer, bill_id)
    validate_items(items)
    current = await repo.get_bill_participants(bill_id)
    roster: Optional[list[Participant]] = None
    if participants is not None:
        existing = {p.name: p for p in current}
        roster = [
            existing.get(name) or Participant(id=str(uuid.uuid4()), bill_id=bill_id, name=name)
            for name in clean_participant_names(participants)
        ]
    people = current if roster is None else roster
    if not people:
        raise ValidationError("Please add at least one participant.")

    prepared, total = prepare_items(items, {p.name: p.id for p in people})
    total = quantize_money(total)
    await repo.replace_bill_items(bill_id, prepared, total, roster)
    log.info(
        "bill.save",
        bill_id=bill_id,
        items=len(prepared),
        participants=len(people),
        total=str(total),
    )
    return total


async def load_bill(repo: BillRepository, bill_id: str) -> BillView:
    bill = await repo.get_bill(bill_id)
    if bill is None:
        raise NotFoundError(f"Bill {bill_id} not found.")
    participants = await repo.get_bill_participants(bill_id)
    items = await repo.get_bill_items(bill_id)
    shares = await repo.get_bill_shares(bill_id)

    assignments: dict[str, list[str]] = {}
    for share in shares:
        assignments.setdefault(share.bill_item_id, []).append(share.participant_id)

    totals = totalize_bill(
        [
            ItemSplit(
                unit_price=item.unit_price,
                participant_ids=assignments.get(item.id, []),
                discount_ratio=item.discount_ratio,
                discount_adjustment=item.discount_adjustment,
                item_name=item.item_name,
            )
            for item in items
        ]
    )
    return BillView(
        bill=bill,
        participants=participants,
        items=items,
        assignments=assignments,
        totals=totals,
    )


async def toggle_checked(repo: BillRepository, viewer: Viewer, bill_id: str) -> bool:
    await assert_bill_owner(repo.db, viewer, bill_id)
    bill = await repo.get_bill(bill_id)
    if bill is None:
        raise NotFoundError(f"Bill {bill_id} not found.")
    await repo.set_bill_checked(bill_id, not bill.checked)
    log.info("bill.checked", bill_id=bill_id, checked=not bill.checked)
    return not bill.checked


async def delete_bill(repo: BillRepository, viewer: Viewer, bill_id: str) -> None:
    await assert_bill_owner(repo.db, viewer, bill_id)
    await repo.delete_bill(bill_id)
    log.info("bill.delete", bill_id=bill_id)
