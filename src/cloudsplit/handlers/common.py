from __future__ import annotations

from typing import Optional

from aiogram.types import User as TelegramUser

from cloudsplit.db.repo import LedgerRepository
from cloudsplit.services.authz import GUEST, Viewer, resolve_viewer


async def current_viewer(repo: LedgerRepository, user: Optional[TelegramUser]) -> Viewer:
    if user is None:
        return GUEST
    return await resolve_viewer(repo, user.id)
