from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Mapping, Optional


@dataclass(slots=True)
class User:
    id: int
    tg_id: int
    username: Optional[str]
    full_name: Optional[str]

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "User":
        return cls(
            id=int(row["id"]),
            tg_id=int(row["tg_id"]),
            username=row.get("username"),
            full_name=row.get("full_name"),
        )


@dataclass(slots=True)
class Bill:
    id: str
    title: str
    bill_date: date
    created_by: int
    description: Optional[str] = None
    checked: bool = False
    total_amount: Decimal = Decimal(0)
    payer: Optional[str] = None
    image_url: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Bill":
        return cls(
            id=str(row["id"]),
            title=row["title"],
            bill_date=row["bill_date"],
            created_by=row["created_by"],
            description=row.get("description"),
            checked=bool(row.get("checked", False)),
            total_amount=Decimal(row.get("total_amount") or 0),
            payer=row.get("payer"),
            image_url=row.get("image_url"),
        )


@dataclass(slots=True)
class Participant:
    id: str
    bill_id: str
    name: str

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Participant":
        return cls(id=str(row["id"]), bill_id=str(row["bill_id"]), name=row["name"])


@dataclass(slots=True)
class LineItem:
    id: str
    bill_id: str
    item_name: str
    unit_price: Decimal
    discount_ratio: Decimal = Decimal(1)
    discount_adjustment: Decimal = Decimal(0)
    sort_order: int = 0

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "LineItem":
        ratio = row.get("discount_ratio")
        adjustment = row.get("discount_adjustment")
        return cls(
            id=str(row["id"]),
            bill_id=str(row["bill_id"]),
            item_name=row["item_name"],
            unit_price=Decimal(row["unit_price"]),
            discount_ratio=Decimal(1) if ratio is None else Decimal(ratio),
            discount_adjustment=Decimal(0) if adjustment is None else Decimal(adjustment),
            sort_order=int(row.get("sort_order") or 0),
        )


@dataclass(slots=True)
class ShareRecord:
    id: str
    bill_item_id: str
    participant_id: str
    share_amount: Decimal

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ShareRecord":
        return cls(
            id=str(row["id"]),
            bill_item_id=str(row["bill_item_id"]),
            participant_id=str(row["participant_id"]),
            share_amount=Decimal(row["share_amount"]),
        )


@dataclass(slots=True)
class PaymentRecord:
    participant_name: str
    paid_amount: Decimal
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "PaymentRecord":
        return cls(
            participant_name=row["participant_name"],
            paid_amount=Decimal(row.get("paid_amount") or 0),
            updated_at=row.get("updated_at"),
        )


@dataclass(slots=True)
class NewLineItem:
    """A line item about to be written, with the shares computed for it."""

    id: str
    item_name: str
    unit_price: Decimal
    discount_ratio: Decimal
    discount_adjustment: Decimal
    sort_order: int
    participant_ids: list[str]
    share_amount: Decimal
