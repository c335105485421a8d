from __future__ import annotations

from html import escape
from typing import Optional

from aiogram import F, Router
from aiogram.filters import Command
from aiogram.types import CallbackQuery, InlineKeyboardMarkup, Message

from cloudsplit.config import get_settings
from cloudsplit.db.repo import LedgerRepository, get_global_repository
from cloudsplit.errors import FetchError, FetchTimeoutError, LedgerError, NotFoundError, ValidationError
from cloudsplit.handlers.common import current_viewer
from cloudsplit.keyboards import retry_keyboard
from cloudsplit.services.aggregate import AggregationResult
from cloudsplit.services.cards import format_money, format_person_history, format_summary
from cloudsplit.services.payments import PaymentStatus, reconcile, save_paid_amount
from cloudsplit.services.summary import load_paid_amounts, load_payment_summary
from cloudsplit.state import state
from cloudsplit.utils.parse import parse_command_args

summary_router = Router()


async def _load_overview(repo: LedgerRepository) -> tuple[AggregationResult, list[PaymentStatus]]:
    settings = get_settings()
    result = await load_payment_summary(
        repo,
        timeout=settings.query_timeout_seconds,
        batch_size=settings.fetch_batch_size,
    )
    paid = await load_paid_amounts(repo, timeout=settings.query_timeout_seconds)
    return result, reconcile(result.summaries, paid)


async def _summary_reply() -> tuple[str, Optional[InlineKeyboardMarkup]]:
    try:
        result, statuses = await _load_overview(get_global_repository())
    except (FetchError, FetchTimeoutError) as exc:
        return f"⚠️ {escape(str(exc))}", retry_keyboard()
    return format_summary(result, statuses, get_settings().currency_symbol), None


@summary_router.message(Command("summary"))
async def cmd_summary(message: Message) -> None:
    text, keyboard = await _summary_reply()
    await message.answer(text, reply_markup=keyboard)


@summary_router.callback_query(F.data == "menu:summary")
async def cb_summary_menu(callback: CallbackQuery) -> None:
    text, keyboard = await _summary_reply()
    if callback.message:
        await callback.message.answer(text, reply_markup=keyboard)
    await callback.answer()


@summary_router.callback_query(F.data == "summary:reload")
async def cb_summary_reload(callback: CallbackQuery) -> None:
    text, keyboard = await _summary_reply()
    if callback.message:
        await callback.message.edit_text(text, reply_markup=keyboard)
    await callback.answer()


@summary_router.message(Command("person"))
async def cmd_person(message: Message) -> None:
    name = parse_command_args(message.text, "person")
    if not name:
        await message.answer("Usage: /person &lt;name&gt;")
        return
    try:
        result, statuses = await _load_overview(get_global_repository())
    except (FetchError, FetchTimeoutError) as exc:
        await message.answer(f"⚠️ {escape(str(exc))}", reply_markup=retry_keyboard())
        return
    summary = result.find(name)
    if summary is None:
        await message.answer(f"No shares recorded for {escape(name)}.")
        return
    status = next(s for s in statuses if s.participant_name == name)
    await message.answer(format_person_history(summary, status, get_settings().currency_symbol))


@summary_router.message(Command("paid"))
async def cmd_paid(message: Message) -> None:
    user = message.from_user
    if not user:
        return
    parts = parse_command_args(message.text, "paid").rsplit(maxsplit=1)
    if len(parts) != 2:
        await message.answer("Usage: /paid &lt;name&gt; &lt;amount&gt;")
        return
    name, amount_text = parts[0].strip(), parts[1]

    repo = get_global_repository()
    viewer = await current_viewer(repo, user)
    try:
        paid = await load_paid_amounts(repo, timeout=get_settings().query_timeout_seconds)
        editor = state.editor(user.id, viewer, paid)
        try:
            editor.edit(name, amount_text)
            amount = editor.commit(name)
        except ValidationError:
            editor.discard(name)
            raise
        record = await save_paid_amount(repo, viewer, name, amount)
    except LedgerError as exc:
        await message.answer(f"❌ {escape(str(exc))}")
        return
    symbol = get_settings().currency_symbol
    await message.answer(
        f"💾 {escape(record.participant_name)} has paid {format_money(record.paid_amount, symbol)}."
    )


@summary_router.message(Command("fill"))
async def cmd_fill(message: Message) -> None:
    user = message.from_user
    if not user:
        return
    name = parse_command_args(message.text, "fill")
    if not name:
        await message.answer("Usage: /fill &lt;name&gt;")
        return

    repo = get_global_repository()
    viewer = await current_viewer(repo, user)
    try:
        result, statuses = await _load_overview(repo)
        summary = result.find(name)
        if summary is None:
            raise NotFoundError(f"No shares recorded for {name}.")
        editor = state.editor(user.id, viewer, {s.participant_name: s.paid_amount for s in statuses})
        amount = editor.fill_to_total(name, summary.total_amount)
        await save_paid_amount(repo, viewer, name, amount)
    except LedgerError as exc:
        await message.answer(f"❌ {escape(str(exc))}")
        return
    symbol = get_settings().currency_symbol
    await message.answer(f"✅ {escape(name)} is fully paid ({format_money(amount, symbol)}).")
