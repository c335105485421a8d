from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Mapping, Sequence, Union

Number = Union[Decimal, int, float, str]

ZERO = Decimal(0)
ONE = Decimal(1)
CENT = Decimal("0.01")


def to_decimal(value: Number | None, default: Decimal = ZERO) -> Decimal:
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    # str() keeps floats like 0.9 from turning into 0.90000000000000002220...
    return Decimal(str(value).strip())


def quantize_money(value: Number) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def adjusted_price(
    unit_price: Number,
    discount_ratio: Number = ONE,
    discount_adjustment: Number = ZERO,
) -> Decimal:
    return to_decimal(unit_price) * to_decimal(discount_ratio, ONE) + to_decimal(discount_adjustment)


def share_amount(
    unit_price: Number,
    share_count: int,
    discount_ratio: Number = ONE,
    discount_adjustment: Number = ZERO,
) -> Decimal:
    """Amount owed by each of ``share_count`` participants of one line item.

    Nobody is charged for an item without participants, so a zero count
    yields zero. A negative adjustment may push the share below zero and
    is returned as is.
    """
    if share_count < 0:
        raise ValueError("share_count must be non-negative")
    if share_count == 0:
        return ZERO
    return adjusted_price(unit_price, discount_ratio, discount_adjustment) / Decimal(share_count)


@dataclass(slots=True)
class ItemSplit:
    unit_price: Decimal
    participant_ids: Sequence[str] = ()
    discount_ratio: Decimal = ONE
    discount_adjustment: Decimal = ZERO
    item_name: str = ""

    @property
    def adjusted_price(self) -> Decimal:
        return adjusted_price(self.unit_price, self.discount_ratio, self.discount_adjustment)


@dataclass(slots=True)
class BillTotals:
    bill_total: Decimal = ZERO
    per_participant: dict[str, Decimal] = field(default_factory=dict)


def unique_participants(participant_ids: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for pid in participant_ids:
        if pid not in seen:
            seen.add(pid)
            result.append(pid)
    return result


def is_billable(item_name: str, unit_price: Number) -> bool:
    return bool(item_name and item_name.strip()) and to_decimal(unit_price) > 0


def split_item(item: ItemSplit) -> dict[str, Decimal]:
    consumers = unique_participants(item.participant_ids)
    amount = share_amount(
        item.unit_price,
        len(consumers),
        item.discount_ratio,
        item.discount_adjustment,
    )
    return {consumer: amount for consumer in consumers}


def merge_shares(shares: Iterable[Mapping[str, Decimal]]) -> dict[str, Decimal]:
    result: dict[str, Decimal] = {}
    for share in shares:
        for participant_id, amount in share.items():
            result[participant_id] = result.get(participant_id, ZERO) + amount
    return result


def totalize_bill(items: Sequence[ItemSplit]) -> BillTotals:
    """Bill total over every item plus what each participant id owes.

    The bill total uses the adjusted price of each item, so an item nobody
    is assigned to still counts towards it.
    """
    bill_total = sum((item.adjusted_price for item in items), ZERO)
    per_participant = merge_shares(split_item(item) for item in items)
    return BillTotals(bill_total=bill_total, per_participant=per_participant)
