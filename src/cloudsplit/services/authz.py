from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

from cloudsplit.db.models import User
from cloudsplit.errors import AuthorizationError, NotFoundError


class Repository(Protocol):
    async def fetchval(self, query: str, *args: object) -> object: ...


class UserLookup(Protocol):
    async def get_user_by_tg_id(self, tg_id: int) -> Optional[User]: ...


@dataclass(slots=True, frozen=True)
class Viewer:
    """Whoever is looking at the ledger. ``user_id`` is ``None`` for guests."""

    user_id: Optional[int] = None

    @property
    def is_guest(self) -> bool:
        return self.user_id is None


GUEST = Viewer()


async def resolve_viewer(repo: UserLookup, tg_id: int) -> Viewer:
    user = await repo.get_user_by_tg_id(tg_id)
    return Viewer(user_id=user.id) if user else GUEST


def assert_authenticated(viewer: Viewer) -> int:
    """Return the viewer's user id, refusing guests."""
    if viewer.user_id is None:
        raise AuthorizationError("Guests can only view the ledger. Use /register to make changes.")
    return viewer.user_id


async def is_bill_owner(repo: Repository, user_id: int, bill_id: str) -> bool:
    owner_id = await repo.fetchval(
        "SELECT created_by FROM bills WHERE id = $1",
        bill_id,
    )
    return owner_id == user_id


async def assert_bill_owner(repo: Repository, viewer: Viewer, bill_id: str) -> None:
    user_id = assert_authenticated(viewer)
    owner_id = await repo.fetchval(
        "SELECT created_by FROM bills WHERE id = $1",
        bill_id,
    )
    if owner_id is None:
        raise NotFoundError(f"Bill {bill_id} not found.")
    if owner_id != user_id:
        raise AuthorizationError("Only the owner of the bill can change it.")
