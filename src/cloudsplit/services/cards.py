from __future__ import annotations

from decimal import Decimal
from html import escape
from typing import Sequence

from cloudsplit.db.models import Bill
from cloudsplit.services.aggregate import AggregationResult, ParticipantSummary
from cloudsplit.services.bills import BillView
from cloudsplit.services.payments import PaymentStatus
from cloudsplit.services.periods import BillPeriod
from cloudsplit.services.split import quantize_money

PROGRESS_WIDTH = 10


def format_money(amount: Decimal, symbol: str = "$") -> str:
    value = quantize_money(amount)
    sign = "-" if value < 0 else ""
    text = f"{abs(value):,.2f}"
    if text.endswith(".00"):
        text = text[:-3]
    return f"{sign}{symbol}{text}"


def progress_bar(status: PaymentStatus) -> str:
    if status.is_fully_paid:
        filled = PROGRESS_WIDTH
    else:
        filled = int(status.paid_ratio * PROGRESS_WIDTH)
    return "█" * filled + "░" * (PROGRESS_WIDTH - filled)


def format_bill_line(bill: Bill, symbol: str = "$") -> str:
    mark = "✅" if bill.checked else "○"
    return (
        f"{mark} <b>{escape(bill.title)}</b> · {bill.bill_date:%Y-%m-%d} · "
        f"{format_money(bill.total_amount, symbol)}\n<code>/bill {bill.id}</code>"
    )


def format_periods(periods: Sequence[BillPeriod], symbol: str = "$") -> str:
    if not periods:
        return "No bills yet."
    blocks = []
    for period in periods:
        header = (
            f"<b>{period.label}</b> · {len(period.bills)} bills · "
            f"{format_money(period.total_amount, symbol)}"
        )
        blocks.append("\n".join([header, *(format_bill_line(bill, symbol) for bill in period.bills)]))
    return "\n\n".join(blocks)


def format_bill_details(view: BillView, symbol: str = "$") -> str:
    bill = view.bill
    lines = [
        f"<b>{escape(bill.title)}</b>",
        f"Date: {bill.bill_date:%Y-%m-%d}",
        f"Status: {'checked' if bill.checked else 'not checked'}",
    ]
    if bill.payer:
        lines.append(f"Paid by: {escape(bill.payer)}")
    if bill.description:
        lines.append(escape(bill.description))

    lines.append("")
    lines.append("<b>Items</b>")
    for item in view.items:
        price = f"{format_money(item.unit_price, symbol)}"
        if item.discount_ratio != 1:
            price += f" × {item.discount_ratio.normalize()}"
        if item.discount_adjustment:
            sign = "+" if item.discount_adjustment > 0 else ""
            price += f" {sign}{format_money(item.discount_adjustment, symbol)}"
        names = ", ".join(escape(name) for name in view.participant_names(item.id)) or "nobody"
        lines.append(f"• {escape(item.item_name)}: {price} ({names})")

    lines.append("")
    lines.append("<b>Per person</b>")
    for name, amount in view.totals_by_name():
        lines.append(f"• {escape(name)}: {format_money(amount, symbol)}")
    lines.append(f"Total: <b>{format_money(view.totals.bill_total, symbol)}</b>")
    return "\n".join(lines)


def format_summary(
    result: AggregationResult,
    statuses: Sequence[PaymentStatus],
    symbol: str = "$",
) -> str:
    if not statuses:
        return "No shares recorded yet."
    lines = ["<b>Amounts owed</b>", ""]
    for status in statuses:
        paid = "paid" if status.is_fully_paid else f"left {format_money(status.remaining, symbol)}"
        lines.append(
            f"{progress_bar(status)} <b>{escape(status.participant_name)}</b> "
            f"{format_money(status.total_amount, symbol)} · {paid}"
        )
    lines.append("")
    lines.append(f"Total: <b>{format_money(result.grand_total, symbol)}</b>")
    if result.skipped:
        lines.append(f"<i>{result.skipped} share records could not be matched and were left out.</i>")
    return "\n".join(lines)


def format_person_history(
    summary: ParticipantSummary,
    status: PaymentStatus,
    symbol: str = "$",
) -> str:
    lines = [
        f"<b>{escape(summary.participant_name)}</b>",
        f"Owes {format_money(summary.total_amount, symbol)}, paid {format_money(status.paid_amount, symbol)}, "
        f"remaining {format_money(status.remaining, symbol)}",
    ]
    for group in summary.grouped_by_bill():
        lines.append("")
        lines.append(
            f"<b>{escape(group.bill_title)}</b> · {group.bill_date:%Y-%m-%d} · "
            f"{format_money(group.total_amount, symbol)}"
        )
        for detail in group.items:
            lines.append(f"  • {escape(detail.item_name)}: {format_money(detail.share_amount, symbol)}")
    return "\n".join(lines)
