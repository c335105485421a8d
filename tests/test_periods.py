from datetime import date
from decimal import Decimal

from cloudsplit.db.models import Bill
from cloudsplit.services.periods import bill_sort_key, group_bills_by_period, title_number


def _bill(n: int, title: str, day: date, total: int = 10) -> Bill:
    return Bill(
        id=f"10000000-0000-4000-8000-{n:012d}",
        title=title,
        bill_date=day,
        created_by=1,
        total_amount=Decimal(total),
    )


BILLS = [
    _bill(1, "12 Dinner", date(2025, 2, 14)),
    _bill(2, "Snacks", date(2025, 2, 1)),
    _bill(3, "3 Lunch", date(2025, 2, 20), total=25),
    _bill(4, "Taxi", date(2024, 12, 31)),
    _bill(5, "Hotel", date(2025, 5, 2)),
]


def test_title_number():
    assert title_number(" 12 Dinner") == 12
    assert title_number("Dinner 12") == 999999


def test_group_by_month():
    periods = group_bills_by_period(BILLS)

    assert [p.label for p in periods] == ["2024-12", "2025-02", "2025-05"]
    february = periods[1]
    assert [b.title for b in february.bills] == ["3 Lunch", "12 Dinner", "Snacks"]
    assert february.total_amount == Decimal(45)


def test_group_by_quarter():
    periods = group_bills_by_period(BILLS, "quarter")

    assert [p.label for p in periods] == ["2024 Q4", "2025 Q1", "2025 Q2"]
    assert [len(p.bills) for p in periods] == [1, 3, 1]


def test_group_empty():
    assert group_bills_by_period([]) == []


def test_unnumbered_titles_sort_alphabetically():
    bills = [
        _bill(1, "cherry", date(2025, 3, 1)),
        _bill(2, "Banana", date(2025, 3, 2)),
        _bill(3, "Éclair", date(2025, 3, 3)),
        _bill(4, "apple", date(2025, 3, 4)),
    ]
    assert [b.title for b in sorted(bills, key=bill_sort_key)] == ["apple", "Banana", "cherry", "Éclair"]
