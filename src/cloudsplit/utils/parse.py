from __future__ import annotations

import re
from datetime import date, datetime, tzinfo

_DAY_FIRST_RE = re.compile(r"^(\d{1,2})[\.\-/](\d{1,2})[\.\-/](\d{4})$")


def parse_bill_date(text: str) -> date:
    """
    Parse a bill date typed by a user.

    Supported formats:
    - 2025-02-03 (ISO)
    - 2025/02/03
    - 03.02.2025, 03-02-2025, 03/02/2025 (day first)
    """
    value = text.strip()
    for fmt in ("%Y-%m-%d", "%Y/%m/%d"):
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue

    match = _DAY_FIRST_RE.match(value)
    if match:
        day, month, year = (int(part) for part in match.groups())
        return date(year, month, day)

    raise ValueError(f"Unrecognised date: {text!r}")


def parse_command_args(text: str | None, command: str) -> str:
    """Everything after ``/command`` (and an optional ``@botname``) in a message."""
    if not text:
        return ""
    head, _, rest = text.strip().partition(" ")
    if head.split("@", 1)[0].lstrip("/") != command:
        return text.strip()
    return rest.strip()


def today_in(tz: tzinfo) -> date:
    return datetime.now(tz).date()
