from __future__ import annotations

from html import escape

from aiogram import F, Router
from aiogram.filters import Command
from aiogram.types import CallbackQuery, Message

from cloudsplit.config import get_settings
from cloudsplit.db.repo import get_global_repository
from cloudsplit.errors import LedgerError, NotFoundError
from cloudsplit.handlers.common import current_viewer
from cloudsplit.keyboards import (
    bill_actions_keyboard,
    cancel_payload_keyboard,
    confirm_delete_keyboard,
    periods_keyboard,
)
from cloudsplit.services.aggregate import is_valid_id
from cloudsplit.services.authz import assert_authenticated, assert_bill_owner, is_bill_owner
from cloudsplit.services.bills import delete_bill, load_bill, toggle_checked
from cloudsplit.services.cards import format_bill_details, format_periods
from cloudsplit.services.importer import ImportReport, edit_bill, import_bills
from cloudsplit.services.periods import Period, group_bills_by_period
from cloudsplit.state import state
from cloudsplit.utils.parse import parse_command_args, today_in

bills_router = Router()

IMPORT_PROMPT = (
    "📥 Send the bills as JSON, either as a message or as a .json file.\n\n"
    "One bill is an object with <code>title</code>, <code>participants</code> and "
    "<code>items</code>; send a list to import several at once."
)

EDIT_PROMPT = (
    "✏️ Send the new items of the bill as JSON: an array of items, or an object with "
    "<code>items</code> and <code>participants</code> to change who is on the bill too. "
    "Everything currently on the bill is replaced."
)


async def _periods_text(period: Period) -> str:
    repo = get_global_repository()
    bills = await repo.list_bills()
    return format_periods(group_bills_by_period(bills, period), get_settings().currency_symbol)


async def _bill_card(bill_id: str) -> tuple[str, bool]:
    view = await load_bill(get_global_repository(), bill_id)
    return format_bill_details(view, get_settings().currency_symbol), view.bill.checked


def _format_report(report: ImportReport) -> str:
    lines = [f"Imported {len(report.imported)} bill(s)."]
    for failure in report.failures:
        title = f" “{escape(failure.title)}”" if failure.title else ""
        lines.append(f"❌ #{failure.index}{title}: {escape(failure.reason)}")
    return "\n".join(lines)


@bills_router.message(Command("bills"))
async def cmd_bills(message: Message) -> None:
    period: Period = "quarter" if parse_command_args(message.text, "bills").lower().startswith("q") else "month"
    await message.answer(await _periods_text(period), reply_markup=periods_keyboard(period))


@bills_router.message(Command("mybills"))
async def cmd_my_bills(message: Message) -> None:
    repo = get_global_repository()
    viewer = await current_viewer(repo, message.from_user)
    if viewer.user_id is None:
        await message.answer("Use /register first, guests do not own any bills.")
        return
    bills = await repo.list_bills_by_owner(viewer.user_id)
    await message.answer(format_periods(group_bills_by_period(bills), get_settings().currency_symbol))


@bills_router.callback_query(F.data == "menu:bills")
async def cb_bills_menu(callback: CallbackQuery) -> None:
    if callback.message:
        await callback.message.answer(await _periods_text("month"), reply_markup=periods_keyboard("month"))
    await callback.answer()


@bills_router.callback_query(F.data.in_({"bills:month", "bills:quarter"}))
async def cb_bills_period(callback: CallbackQuery) -> None:
    period: Period = "quarter" if callback.data == "bills:quarter" else "month"
    if callback.message:
        await callback.message.edit_text(await _periods_text(period), reply_markup=periods_keyboard(period))
    await callback.answer()


@bills_router.message(Command("bill"))
async def cmd_bill(message: Message) -> None:
    bill_id = parse_command_args(message.text, "bill")
    if not is_valid_id(bill_id):
        await message.answer("Usage: /bill &lt;id&gt;")
        return
    try:
        text, checked = await _bill_card(bill_id)
    except NotFoundError as exc:
        await message.answer(str(exc))
        return
    repo = get_global_repository()
    viewer = await current_viewer(repo, message.from_user)
    owner = viewer.user_id is not None and await is_bill_owner(repo.db, viewer.user_id, bill_id)
    await message.answer(text, reply_markup=bill_actions_keyboard(bill_id, checked) if owner else None)


@bills_router.callback_query(F.data.startswith("check:"))
async def cb_toggle_checked(callback: CallbackQuery) -> None:
    bill_id = callback.data.split(":", 1)[1]
    repo = get_global_repository()
    viewer = await current_viewer(repo, callback.from_user)
    try:
        await toggle_checked(repo, viewer, bill_id)
        text, checked = await _bill_card(bill_id)
    except LedgerError as exc:
        await callback.answer(str(exc), show_alert=True)
        return
    if callback.message:
        await callback.message.edit_text(text, reply_markup=bill_actions_keyboard(bill_id, checked))
    await callback.answer("Updated")


@bills_router.callback_query(F.data.startswith("delete:"))
async def cb_delete(callback: CallbackQuery) -> None:
    bill_id = callback.data.split(":", 1)[1]
    if callback.message:
        await callback.message.edit_reply_markup(reply_markup=confirm_delete_keyboard(bill_id))
    await callback.answer()


@bills_router.callback_query(F.data.startswith("delete_cancel:"))
async def cb_delete_cancel(callback: CallbackQuery) -> None:
    bill_id = callback.data.split(":", 1)[1]
    try:
        text, checked = await _bill_card(bill_id)
    except NotFoundError as exc:
        await callback.answer(str(exc), show_alert=True)
        return
    if callback.message:
        await callback.message.edit_text(text, reply_markup=bill_actions_keyboard(bill_id, checked))
    await callback.answer()


@bills_router.callback_query(F.data.startswith("delete_confirm:"))
async def cb_delete_confirm(callback: CallbackQuery) -> None:
    bill_id = callback.data.split(":", 1)[1]
    repo = get_global_repository()
    viewer = await current_viewer(repo, callback.from_user)
    try:
        await delete_bill(repo, viewer, bill_id)
    except LedgerError as exc:
        await callback.answer(str(exc), show_alert=True)
        return
    if callback.message:
        await callback.message.edit_text("🗑 Bill deleted.")
    await callback.answer()


@bills_router.message(Command("import"))
async def cmd_import(message: Message) -> None:
    user = message.from_user
    if not user:
        return
    repo = get_global_repository()
    viewer = await current_viewer(repo, user)
    try:
        assert_authenticated(viewer)
    except LedgerError as exc:
        await message.answer(str(exc))
        return

    payload = parse_command_args(message.text, "import")
    if payload:
        await _run_import(message, payload)
        return
    state.set_importing(user.id)
    await message.answer(IMPORT_PROMPT, reply_markup=cancel_payload_keyboard())


@bills_router.callback_query(F.data == "menu:import")
async def cb_import_menu(callback: CallbackQuery) -> None:
    repo = get_global_repository()
    viewer = await current_viewer(repo, callback.from_user)
    try:
        assert_authenticated(viewer)
    except LedgerError as exc:
        await callback.answer(str(exc), show_alert=True)
        return
    state.set_importing(callback.from_user.id)
    if callback.message:
        await callback.message.answer(IMPORT_PROMPT, reply_markup=cancel_payload_keyboard())
    await callback.answer()


@bills_router.message(Command("edit"))
async def cmd_edit(message: Message) -> None:
    user = message.from_user
    if not user:
        return
    bill_id, _, payload = parse_command_args(message.text, "edit").partition(" ")
    if not is_valid_id(bill_id):
        await message.answer("Usage: /edit &lt;bill id&gt; [JSON]")
        return
    repo = get_global_repository()
    viewer = await current_viewer(repo, user)
    try:
        await assert_bill_owner(repo.db, viewer, bill_id)
    except LedgerError as exc:
        await message.answer(str(exc))
        return

    if payload.strip():
        await _run_edit(message, bill_id, payload)
        return
    state.set_editing(user.id, bill_id)
    await message.answer(EDIT_PROMPT, reply_markup=cancel_payload_keyboard())


@bills_router.callback_query(F.data.startswith("edit:"))
async def cb_edit(callback: CallbackQuery) -> None:
    bill_id = callback.data.split(":", 1)[1]
    repo = get_global_repository()
    viewer = await current_viewer(repo, callback.from_user)
    try:
        await assert_bill_owner(repo.db, viewer, bill_id)
    except LedgerError as exc:
        await callback.answer(str(exc), show_alert=True)
        return
    state.set_editing(callback.from_user.id, bill_id)
    if callback.message:
        await callback.message.answer(EDIT_PROMPT, reply_markup=cancel_payload_keyboard())
    await callback.answer()


@bills_router.callback_query(F.data == "payload:cancel")
async def cb_payload_cancel(callback: CallbackQuery) -> None:
    state.clear_importing(callback.from_user.id)
    state.clear_editing(callback.from_user.id)
    if callback.message:
        await callback.message.edit_text("Cancelled.")
    await callback.answer()


async def _run_import(message: Message, raw: str | bytes) -> None:
    repo = get_global_repository()
    viewer = await current_viewer(repo, message.from_user)
    try:
        report = await import_bills(repo, viewer, raw, today_in(get_settings().zoneinfo))
    except LedgerError as exc:
        await message.answer(f"❌ {escape(str(exc))}")
        return
    await message.answer(_format_report(report))


async def _run_edit(message: Message, bill_id: str, raw: str | bytes) -> None:
    repo = get_global_repository()
    viewer = await current_viewer(repo, message.from_user)
    try:
        await edit_bill(repo, viewer, bill_id, raw)
        text, checked = await _bill_card(bill_id)
    except LedgerError as exc:
        await message.answer(f"❌ {escape(str(exc))}")
        return
    await message.answer(text, reply_markup=bill_actions_keyboard(bill_id, checked))


@bills_router.message(lambda m: m.from_user is not None and state.awaits_payload(m.from_user.id))
async def handle_payload(message: Message) -> None:
    user = message.from_user
    assert user is not None
    if message.text and message.text.startswith("/"):
        state.clear_importing(user.id)
        state.clear_editing(user.id)
        await message.answer("Cancelled.")
        return

    if message.document:
        if message.bot is None:
            return
        buffer = await message.bot.download(message.document)
        if buffer is None:
            await message.answer("Could not download the file, please try again.")
            return
        raw: str | bytes = buffer.read()
    elif message.text:
        raw = message.text
    else:
        await message.answer("Send the JSON as text or as a file.")
        return

    bill_id = state.get_editing(user.id)
    state.clear_importing(user.id)
    state.clear_editing(user.id)
    if bill_id is None:
        await _run_import(message, raw)
    else:
        await _run_edit(message, bill_id, raw)
