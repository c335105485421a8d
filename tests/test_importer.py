import json
from datetime import date
from decimal import Decimal

import pytest

from cloudsplit.db.models import Participant
from cloudsplit.errors import AuthorizationError, ValidationError
from cloudsplit.services.authz import GUEST, Viewer
from cloudsplit.services.importer import (
    edit_bill,
    expand_items,
    import_bills,
    parse_edit_document,
    parse_import_document,
    to_bill_draft,
    validate_bill,
)

DINNER = {
    "title": "Dinner",
    "bill_date": "03.02.2025",
    "participants": ["S", "P", "B"],
    "items": [
        {
            "item_name": "Noodles",
            "unit_price": 100,
            "quantity": 2,
            "discount_adjustment": -10,
            "participants": ["S", "P", "Stranger"],
        },
        {"item_name": "Tea", "unit_price": None, "participants": ["B"]},
    ],
}


TODAY = date(2025, 6, 1)
BILL_ID = "0b6c6e0e-8d35-4f0c-b7b1-9f1f3a1e2d01"
ALICE = "a1a1a1a1-0000-4000-8000-000000000001"
BOB = "b2b2b2b2-0000-4000-8000-000000000002"


class StubImportRepo:
    def __init__(self) -> None:
        self.created = []

    async def create_bill(self, bill, participants, items):
        self.created.append((bill, list(participants), list(items)))


def test_parse_import_document_accepts_object_or_list():
    assert parse_import_document(json.dumps(DINNER)) == [DINNER]
    assert len(parse_import_document(json.dumps([DINNER, DINNER]))) == 2


@pytest.mark.parametrize("raw", ["{not json", "[]", "42"])
def test_parse_import_document_rejects(raw):
    with pytest.raises(ValidationError):
        parse_import_document(raw)


def test_validate_bill_parses_dates_and_defaults():
    bill = validate_bill(DINNER)
    assert bill.bill_date == date(2025, 2, 3)
    assert bill.items[0].discount_ratio == 1
    assert bill.items[1].unit_price == 0

    undated = validate_bill({**DINNER, "bill_date": ""})
    assert undated.bill_date is None
    assert to_bill_draft(undated, date(2025, 6, 1)).bill_date == date(2025, 6, 1)
    assert to_bill_draft(bill, date(2025, 6, 1)).bill_date == date(2025, 2, 3)


def test_validate_bill_reports_missing_fields():
    with pytest.raises(ValidationError) as excinfo:
        validate_bill({"title": "", "participants": [], "items": []})
    assert "title" in str(excinfo.value)


def test_expand_items_by_quantity():
    drafts = expand_items(validate_bill(DINNER))

    assert [d.item_name for d in drafts] == ["Noodles (1/2)", "Noodles (2/2)", "Tea"]
    assert [d.discount_adjustment for d in drafts[:2]] == [Decimal(-10), Decimal(0)]
    assert list(drafts[0].participants) == ["S", "P"]


@pytest.mark.asyncio
async def test_import_bills_isolates_failures():
    repo = StubImportRepo()
    broken = {"title": "Broken", "participants": ["A"], "items": [{"item_name": "X", "unit_price": -1}]}
    report = await import_bills(repo, Viewer(user_id=1), json.dumps([DINNER, broken]), TODAY)

    assert len(report.imported) == 1
    assert [(f.index, f.title) for f in report.failures] == [(2, "Broken")]

    bill, participants, items = repo.created[0]
    assert bill.total_amount == Decimal("190.00")
    assert [p.name for p in participants] == ["S", "P", "B"]
    assert [i.share_amount for i in items] == [Decimal("45.00"), Decimal("50.00")]


@pytest.mark.asyncio
async def test_import_bills_requires_registration():
    with pytest.raises(AuthorizationError):
        await import_bills(StubImportRepo(), GUEST, json.dumps(DINNER), TODAY)


class StubOwnerDB:
    def __init__(self, owner_id: int) -> None:
        self.owner_id = owner_id

    async def fetchval(self, query: str, *args: object) -> object:
        return self.owner_id


class StubEditRepo:
    def __init__(self, owner_id: int = 1) -> None:
        self.db = StubOwnerDB(owner_id)
        self.participants = [
            Participant(id=ALICE, bill_id=BILL_ID, name="Alice"),
            Participant(id=BOB, bill_id=BILL_ID, name="Bob"),
        ]
        self.replaced = []

    async def get_bill_participants(self, bill_id):
        return list(self.participants)

    async def replace_bill_items(self, bill_id, items, total_amount, participants=None):
        self.replaced.append((bill_id, list(items), total_amount, participants))


def test_parse_edit_document_accepts_items_array():
    edit = parse_edit_document(json.dumps([{"item_name": "Cake", "unit_price": 12}]))
    assert edit.participants is None
    assert [i.item_name for i in edit.items] == ["Cake"]


def test_parse_edit_document_accepts_object_with_roster():
    edit = parse_edit_document(
        json.dumps({"participants": ["Alice", " Carol "], "items": [{"item_name": "Cake", "unit_price": 12}]})
    )
    assert edit.participants == ["Alice", "Carol"]


@pytest.mark.parametrize("raw", ["{oops", "[]", "42", '{"participants": [], "items": [{"item_name": "X"}]}'])
def test_parse_edit_document_rejects(raw):
    with pytest.raises(ValidationError):
        parse_edit_document(raw)


@pytest.mark.asyncio
async def test_edit_bill_keeps_roster_for_items_array():
    repo = StubEditRepo()
    raw = json.dumps([{"item_name": "Cake", "unit_price": 30, "quantity": 2, "participants": ["Alice", "Bob"]}])
    total = await edit_bill(repo, Viewer(user_id=1), BILL_ID, raw)

    assert total == Decimal("60.00")
    bill_id, items, stored_total, roster = repo.replaced[0]
    assert bill_id == BILL_ID
    assert roster is None
    assert [i.item_name for i in items] == ["Cake (1/2)", "Cake (2/2)"]
    assert items[0].participant_ids == [ALICE, BOB]
    assert items[0].share_amount == Decimal("15.00")


@pytest.mark.asyncio
async def test_edit_bill_replaces_roster():
    repo = StubEditRepo()
    raw = json.dumps(
        {
            "participants": ["Bob", "Carol"],
            "items": [{"item_name": "Cake", "unit_price": 30, "participants": ["Alice", "Bob", "Carol"]}],
        }
    )
    await edit_bill(repo, Viewer(user_id=1), BILL_ID, raw)

    _, items, _, roster = repo.replaced[0]
    assert [p.name for p in roster] == ["Bob", "Carol"]
    assert roster[0].id == BOB
    assert items[0].participant_ids == [BOB, roster[1].id]
    assert items[0].share_amount == Decimal("15.00")


@pytest.mark.asyncio
async def test_edit_bill_requires_ownership():
    repo = StubEditRepo(owner_id=1)
    with pytest.raises(AuthorizationError):
        await edit_bill(repo, Viewer(user_id=2), BILL_ID, json.dumps([{"item_name": "Cake", "unit_price": 1}]))
    assert repo.replaced == []
