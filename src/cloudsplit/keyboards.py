from __future__ import annotations

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup


def main_menu_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text="🧾 Bills", callback_data="menu:bills")],
            [InlineKeyboardButton(text="💰 Who owes what", callback_data="menu:summary")],
            [InlineKeyboardButton(text="📥 Import bills", callback_data="menu:import")],
            [InlineKeyboardButton(text="ℹ️ Help", callback_data="menu:help")],
        ]
    )


def periods_keyboard(active: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [
                InlineKeyboardButton(
                    text="· By month" if active == "month" else "By month",
                    callback_data="bills:month",
                ),
                InlineKeyboardButton(
                    text="· By quarter" if active == "quarter" else "By quarter",
                    callback_data="bills:quarter",
                ),
            ]
        ]
    )


def bill_actions_keyboard(bill_id: str, checked: bool) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [
                InlineKeyboardButton(
                    text="↩️ Mark unchecked" if checked else "✅ Mark checked",
                    callback_data=f"check:{bill_id}",
                )
            ],
            [
                InlineKeyboardButton(text="✏️ Edit items", callback_data=f"edit:{bill_id}"),
                InlineKeyboardButton(text="🗑 Delete", callback_data=f"delete:{bill_id}"),
            ],
        ]
    )


def confirm_delete_keyboard(bill_id: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [
                InlineKeyboardButton(text="Delete", callback_data=f"delete_confirm:{bill_id}"),
                InlineKeyboardButton(text="Keep", callback_data=f"delete_cancel:{bill_id}"),
            ]
        ]
    )


def retry_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[[InlineKeyboardButton(text="🔄 Retry", callback_data="summary:reload")]]
    )


def cancel_payload_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[[InlineKeyboardButton(text="Cancel", callback_data="payload:cancel")]]
    )
