from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Literal

from cloudsplit.db.models import Bill
from cloudsplit.services.split import ZERO
from cloudsplit.utils.collate import collation_key

Period = Literal["month", "quarter"]

# Titles without a number go after every numbered one.
UNNUMBERED = 999999

_TITLE_NUMBER_RE = re.compile(r"^\s*(\d+)", re.ASCII)


@dataclass(slots=True)
class BillPeriod:
    year: int
    index: int
    period: Period
    bills: list[Bill] = field(default_factory=list)
    total_amount: Decimal = ZERO

    @property
    def label(self) -> str:
        if self.period == "quarter":
            return f"{self.year} Q{self.index}"
        return f"{self.year}-{self.index:02d}"


def title_number(title: str) -> int:
    match = _TITLE_NUMBER_RE.match(title)
    return int(match.group(1)) if match else UNNUMBERED


def bill_sort_key(bill: Bill) -> tuple[int, tuple[int, ...]]:
    return title_number(bill.title), collation_key(bill.title)


def group_bills_by_period(bills: Iterable[Bill], period: Period = "month") -> list[BillPeriod]:
    """Bucket bills by calendar month or quarter, oldest period first.

    Inside a bucket bills are ordered by the number their title starts with.
    """
    groups: dict[tuple[int, int], BillPeriod] = {}
    for bill in bills:
        year = bill.bill_date.year
        index = bill.bill_date.month if period == "month" else (bill.bill_date.month - 1) // 3 + 1
        group = groups.get((year, index))
        if group is None:
            group = BillPeriod(year=year, index=index, period=period)
            groups[(year, index)] = group
        group.bills.append(bill)
        group.total_amount += bill.total_amount

    for group in groups.values():
        group.bills.sort(key=bill_sort_key)
    return [groups[key] for key in sorted(groups)]
