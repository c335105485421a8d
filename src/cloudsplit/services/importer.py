"""Bulk import of bills from a JSON document.

The document is either one bill object or an array of them::

    {
      "title": "Dinner",
      "bill_date": "2025-02-03",
      "participants": ["S", "P", "B"],
      "items": [
        {"item_name": "Noodles", "unit_price": 100, "quantity": 2,
         "discount_ratio": 1.0, "discount_adjustment": -10, "participants": ["S", "P"]}
      ]
    }

A line item always stands for a single unit, so ``quantity`` is expanded
into that many items. A one-off ``discount_adjustment`` only goes on the
first of them.

The same item objects, as a bare array or as ``{"participants": [...],
"items": [...]}``, replace the contents of an existing bill.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Optional, Sequence

import asyncpg
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from cloudsplit.errors import LedgerError, ValidationError
from cloudsplit.logging import get_logger
from cloudsplit.services.authz import Viewer, assert_authenticated
from cloudsplit.services.bills import BillDraft, BillRepository, LineItemDraft, create_bill, save_bill_items
from cloudsplit.utils.parse import parse_bill_date

log = get_logger(__name__)


class ImportedItem(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    item_name: str = ""
    unit_price: Decimal = Field(default=Decimal(0), ge=0)
    quantity: int = Field(default=1, ge=1, le=1000)
    discount_ratio: Decimal = Field(default=Decimal(1), ge=0)
    discount_adjustment: Decimal = Decimal(0)
    participants: list[str] = Field(default_factory=list)

    @field_validator("unit_price", "discount_adjustment", mode="before")
    @classmethod
    def _none_as_zero(cls, value: Any) -> Any:
        return 0 if value is None else value

    @field_validator("discount_ratio", "quantity", mode="before")
    @classmethod
    def _none_as_one(cls, value: Any) -> Any:
        return 1 if value is None else value


class ImportedBill(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    bill_date: Optional[date] = None
    payer: Optional[str] = None
    participants: list[str] = Field(..., min_length=1)
    items: list[ImportedItem] = Field(..., min_length=1)

    @field_validator("bill_date", mode="before")
    @classmethod
    def _parse_date(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        if isinstance(value, str):
            return parse_bill_date(value)
        return value


class ImportedEdit(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    participants: Optional[list[str]] = Field(default=None, min_length=1)
    items: list[ImportedItem] = Field(..., min_length=1)


@dataclass(slots=True)
class ImportFailure:
    index: int
    title: str
    reason: str


@dataclass(slots=True)
class ImportReport:
    imported: list[str] = field(default_factory=list)
    failures: list[ImportFailure] = field(default_factory=list)


def _describe(exc: PydanticValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "bill"
        parts.append(f"{location}: {error['msg']}")
    return "; ".join(parts)


def parse_import_document(raw: str | bytes) -> list[Any]:
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ValidationError(f"Not a valid JSON document: {exc}") from exc
    if isinstance(data, dict):
        return [data]
    if isinstance(data, list) and data:
        return data
    raise ValidationError("Expected a bill object or a non-empty array of bills.")


def validate_bill(raw: Any) -> ImportedBill:
    if not isinstance(raw, dict):
        raise ValidationError("Each bill must be a JSON object.")
    try:
        return ImportedBill.model_validate(raw)
    except PydanticValidationError as exc:
        raise ValidationError(_describe(exc)) from exc


def _expand(items: Sequence[ImportedItem], declared: Optional[set[str]]) -> list[LineItemDraft]:
    drafts: list[LineItemDraft] = []
    for item in items:
        names = [name.strip() for name in item.participants if declared is None or name.strip() in declared]
        for unit in range(item.quantity):
            name = item.item_name
            if item.quantity > 1:
                name = f"{item.item_name} ({unit + 1}/{item.quantity})"
            drafts.append(
                LineItemDraft(
                    item_name=name,
                    unit_price=item.unit_price,
                    discount_ratio=item.discount_ratio,
                    discount_adjustment=item.discount_adjustment if unit == 0 else Decimal(0),
                    participants=names,
                )
            )
    return drafts


def expand_items(bill: ImportedBill) -> list[LineItemDraft]:
    return _expand(bill.items, {name.strip() for name in bill.participants})


def to_bill_draft(bill: ImportedBill, today: date) -> BillDraft:
    return BillDraft(
        title=bill.title,
        participants=bill.participants,
        items=expand_items(bill),
        bill_date=bill.bill_date or today,
        description=bill.description,
        payer=bill.payer,
    )


async def import_bills(repo: BillRepository, viewer: Viewer, raw: str | bytes, today: date) -> ImportReport:
    """Create every bill in the document; one bad bill does not stop the rest.

    ``today`` is the date given to bills that do not carry one.
    """
    assert_authenticated(viewer)
    documents = parse_import_document(raw)
    report = ImportReport()
    for index, document in enumerate(documents, start=1):
        title = str(document.get("title", "")) if isinstance(document, dict) else ""
        try:
            bill = await create_bill(repo, viewer, to_bill_draft(validate_bill(document), today))
        except (LedgerError, asyncpg.PostgresError) as exc:
            log.warning("import.bill.failed", index=index, title=title, error=str(exc))
            report.failures.append(ImportFailure(index=index, title=title, reason=str(exc)))
            continue
        report.imported.append(bill.id)
    log.info("import.done", imported=len(report.imported), failed=len(report.failures))
    return report


def parse_edit_document(raw: str | bytes) -> ImportedEdit:
    """Parse new contents for an existing bill.

    Either an array of items, or an object with ``items`` and optionally
    ``participants`` to replace the bill's roster as well.
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ValidationError(f"Not a valid JSON document: {exc}") from exc
    if isinstance(data, list):
        data = {"items": data}
    if not isinstance(data, dict):
        raise ValidationError("Expected an array of items or an object with items.")
    try:
        return ImportedEdit.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(_describe(exc)) from exc


async def edit_bill(repo: BillRepository, viewer: Viewer, bill_id: str, raw: str | bytes) -> Decimal:
    """Replace the items, and optionally the participants, of a bill; returns the new total."""
    edit = parse_edit_document(raw)
    declared = None if edit.participants is None else {name.strip() for name in edit.participants}
    total = await save_bill_items(repo, viewer, bill_id, _expand(edit.items, declared), edit.participants)
    log.info("bill.edit", bill_id=bill_id, items=len(edit.items), roster=edit.participants is not None)
    return total
