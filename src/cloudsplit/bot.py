from __future__ import annotations

import asyncio

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode

from cloudsplit.config import get_settings
from cloudsplit.db.repo import Database, LedgerRepository, set_global_repository
from cloudsplit.handlers import basic_router, bills_router, summary_router
from cloudsplit.logging import configure_logging, get_logger


async def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    bot = Bot(token=settings.bot_token, default=DefaultBotProperties(parse_mode=ParseMode.HTML))
    dp = Dispatcher()
    db = Database(settings.database_url)
    await db.connect()
    set_global_repository(LedgerRepository(db))

    dp.include_router(basic_router)
    dp.include_router(summary_router)
    # Last: its import handler catches free text while an import is pending.
    dp.include_router(bills_router)

    log = get_logger(__name__)
    log.info("bot.start")
    try:
        await dp.start_polling(bot)
    finally:
        await db.close()
        await bot.session.close()
        log.info("bot.stop")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
