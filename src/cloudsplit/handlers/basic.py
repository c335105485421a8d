from __future__ import annotations

from html import escape

from aiogram import F, Router
from aiogram.filters import Command, CommandStart
from aiogram.types import CallbackQuery, InlineKeyboardButton, InlineKeyboardMarkup, Message

from cloudsplit.db.repo import get_global_repository
from cloudsplit.keyboards import main_menu_keyboard
from cloudsplit.logging import get_logger
from cloudsplit.state import state

basic_router = Router()

log = get_logger(__name__)

HELP_TEXT = (
    "<b>📖 Commands</b>\n\n"
    "<b>Bills:</b>\n"
    "/bills - bills grouped by month (/bills quarter for quarters)\n"
    "/mybills - bills you created\n"
    "/bill &lt;id&gt; - one bill with its items and per-person totals\n"
    "/import - import bills from a JSON document\n"
    "/edit &lt;id&gt; - replace the items of a bill you own\n\n"
    "<b>Payments:</b>\n"
    "/summary - what everybody owes across all bills\n"
    "/person &lt;name&gt; - one person's shares, grouped by bill\n"
    "/paid &lt;name&gt; &lt;amount&gt; - record how much somebody has paid\n"
    "/fill &lt;name&gt; - mark somebody as fully paid\n\n"
    "Anyone can look around. Use /register before changing anything."
)


def _welcome(first_name: str) -> str:
    return (
        f"👋 Hi, {escape(first_name)}!\n\n"
        "I keep the shared bills of the group and work out who owes what.\n\n"
        "Pick an action:"
    )


@basic_router.message(CommandStart())
async def cmd_start(message: Message) -> None:
    user = message.from_user
    if not user:
        return
    state.clear_user(user.id)
    await message.answer(_welcome(user.first_name), reply_markup=main_menu_keyboard())


@basic_router.message(Command("register"))
async def cmd_register(message: Message) -> None:
    user = message.from_user
    if not user:
        return
    repo = get_global_repository()
    existing = await repo.get_user_by_tg_id(user.id)
    if existing:
        await message.answer("You are already registered and can edit bills.")
        return
    created = await repo.ensure_user(user.id, user.username, user.full_name)
    log.info("user.register", user_id=created.id, tg_id=user.id)
    await message.answer("✅ Registered. You can now import bills and record payments.")


@basic_router.callback_query(F.data == "menu:main")
async def cb_main_menu(callback: CallbackQuery) -> None:
    user = callback.from_user
    state.clear_user(user.id)
    if callback.message:
        await callback.message.edit_text(_welcome(user.first_name), reply_markup=main_menu_keyboard())
    await callback.answer()


@basic_router.callback_query(F.data == "menu:help")
async def cb_help_menu(callback: CallbackQuery) -> None:
    keyboard = InlineKeyboardMarkup(
        inline_keyboard=[[InlineKeyboardButton(text="◀️ Back", callback_data="menu:main")]]
    )
    if callback.message:
        await callback.message.edit_text(HELP_TEXT, reply_markup=keyboard)
    await callback.answer()


@basic_router.message(Command("help"))
async def cmd_help(message: Message) -> None:
    await message.answer(HELP_TEXT)
