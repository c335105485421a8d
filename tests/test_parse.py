from datetime import date, datetime, timedelta, timezone

import pytest

from cloudsplit.utils.parse import parse_bill_date, parse_command_args, today_in


@pytest.mark.parametrize(
    "text",
    ["2025-02-03", "2025/02/03", "03.02.2025", "3-2-2025", " 03/02/2025 "],
)
def test_parse_bill_date_formats(text):
    assert parse_bill_date(text) == date(2025, 2, 3)


@pytest.mark.parametrize("text", ["", "tomorrow", "31.02.2025", "2025-13-01"])
def test_parse_bill_date_invalid(text):
    with pytest.raises(ValueError):
        parse_bill_date(text)


def test_parse_command_args():
    assert parse_command_args("/person  Alice Smith ", "person") == "Alice Smith"
    assert parse_command_args("/person@ledger_bot Bob", "person") == "Bob"
    assert parse_command_args("/person", "person") == ""
    assert parse_command_args(None, "person") == ""


@pytest.mark.parametrize("hours", [-11, 0, 14])
def test_today_in_uses_given_timezone(hours):
    tz = timezone(timedelta(hours=hours))
    assert today_in(tz) in (datetime.now(tz).date(), datetime.now(tz).date() - timedelta(days=1))
