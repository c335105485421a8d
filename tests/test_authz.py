import pytest

from cloudsplit.db.models import User
from cloudsplit.errors import AuthorizationError, NotFoundError
from cloudsplit.services.authz import (
    GUEST,
    Viewer,
    assert_authenticated,
    assert_bill_owner,
    is_bill_owner,
    resolve_viewer,
)

BILL_ID = "6f1c2b8e-0d7a-4a51-9a57-3c1c6f3c2a10"


class StubRepo:
    def __init__(self, owner_id: int | None) -> None:
        self.owner_id = owner_id

    async def fetchval(self, query: str, *args: object) -> object:
        if "created_by" in query and args[0] == BILL_ID:
            return self.owner_id
        return None


class StubUsers:
    def __init__(self, users: dict[int, User]) -> None:
        self.users = users

    async def get_user_by_tg_id(self, tg_id: int) -> User | None:
        return self.users.get(tg_id)


@pytest.mark.asyncio
async def test_is_bill_owner():
    repo = StubRepo(owner_id=42)
    assert await is_bill_owner(repo, 42, BILL_ID) is True
    assert await is_bill_owner(repo, 7, BILL_ID) is False


@pytest.mark.asyncio
async def test_assert_bill_owner_denied():
    with pytest.raises(AuthorizationError):
        await assert_bill_owner(StubRepo(owner_id=10), Viewer(user_id=11), BILL_ID)


@pytest.mark.asyncio
async def test_assert_bill_owner_missing_bill():
    with pytest.raises(NotFoundError):
        await assert_bill_owner(StubRepo(owner_id=None), Viewer(user_id=11), BILL_ID)


@pytest.mark.asyncio
async def test_assert_bill_owner_rejects_guest():
    with pytest.raises(AuthorizationError):
        await assert_bill_owner(StubRepo(owner_id=10), GUEST, BILL_ID)


@pytest.mark.asyncio
async def test_assert_bill_owner_allows_owner():
    await assert_bill_owner(StubRepo(owner_id=10), Viewer(user_id=10), BILL_ID)


def test_assert_authenticated():
    assert assert_authenticated(Viewer(user_id=1)) == 1
    with pytest.raises(AuthorizationError):
        assert_authenticated(GUEST)


@pytest.mark.asyncio
async def test_resolve_viewer():
    users = StubUsers({555: User(id=3, tg_id=555, username="alice", full_name="Alice")})
    assert await resolve_viewer(users, 555) == Viewer(user_id=3)
    assert (await resolve_viewer(users, 999)).is_guest
