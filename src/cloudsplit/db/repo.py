from __future__ import annotations

from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any, AsyncIterator, Iterable, Optional, Sequence

import asyncpg

from cloudsplit.db.models import (
    Bill,
    LineItem,
    NewLineItem,
    Participant,
    PaymentRecord,
    ShareRecord,
    User,
)
from cloudsplit.logging import get_logger, sql_logger

BILL_COLUMNS = (
    "id::text AS id, title, description, bill_date, created_by, total_amount, "
    "checked, payer, image_url"
)
PARTICIPANT_COLUMNS = "id::text AS id, bill_id::text AS bill_id, name"
ITEM_COLUMNS = (
    "id::text AS id, bill_id::text AS bill_id, item_name, unit_price, "
    "discount_ratio, discount_adjustment, sort_order"
)
SHARE_COLUMNS = (
    "id::text AS id, bill_item_id::text AS bill_item_id, "
    "participant_id::text AS participant_id, share_amount"
)


class Database:
    def __init__(self, dsn: str) -> None:
        self._dsn = dsn
        self._pool: asyncpg.Pool | None = None
        self._log = get_logger(__name__)

    async def connect(self) -> None:
        if self._pool is None:
            # asyncpg expects a plain postgresql:// scheme without the "+asyncpg" driver suffix
            dsn = self._dsn.replace("+asyncpg", "")
            self._pool = await asyncpg.create_pool(dsn)
            self._log.info("db.pool.created")

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            self._log.info("db.pool.closed")

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        await self._ensure_pool()
        assert self._pool
        sql_logger.info("sql.fetch", query=query, args=args)
        return await self._pool.fetch(query, *args)

    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        await self._ensure_pool()
        assert self._pool
        sql_logger.info("sql.fetchrow", query=query, args=args)
        return await self._pool.fetchrow(query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        await self._ensure_pool()
        assert self._pool
        sql_logger.info("sql.fetchval", query=query, args=args)
        return await self._pool.fetchval(query, *args)

    async def execute(self, query: str, *args: Any) -> str:
        await self._ensure_pool()
        assert self._pool
        sql_logger.info("sql.execute", query=query, args=args)
        return await self._pool.execute(query, *args)

    async def executemany(self, command: str, args: Iterable[Iterable[Any]]) -> None:
        await self._ensure_pool()
        assert self._pool
        sql_logger.info("sql.executemany", query=command)
        await self._pool.executemany(command, args)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        await self._ensure_pool()
        assert self._pool
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                sql_logger.info("sql.transaction")
                yield conn

    async def _ensure_pool(self) -> None:
        if self._pool is None:
            await self.connect()


async def _insert_items(conn: asyncpg.Connection, bill_id: str, items: Sequence[NewLineItem]) -> None:
    if not items:
        return
    await conn.executemany(
        """
        INSERT INTO bill_items
            (id, bill_id, item_name, unit_price, discount_ratio, discount_adjustment, sort_order)
        VALUES ($1, $2, $3, $4, $5, $6, $7)
        """,
        [
            (
                item.id,
                bill_id,
                item.item_name,
                item.unit_price,
                item.discount_ratio,
                item.discount_adjustment,
                item.sort_order,
            )
            for item in items
        ],
    )
    shares = [
        (item.id, participant_id, item.share_amount)
        for item in items
        for participant_id in item.participant_ids
    ]
    if shares:
        await conn.executemany(
            """
            INSERT INTO split_details (bill_item_id, participant_id, share_amount)
            VALUES ($1, $2, $3)
            """,
            shares,
        )


class LedgerRepository:
    def __init__(self, db: Database) -> None:
        self.db = db

    async def ensure_user(self, tg_id: int, username: Optional[str], full_name: Optional[str]) -> User:
        row = await self.db.fetchrow(
            """
            INSERT INTO users (tg_id, username, full_name)
            VALUES ($1, $2, $3)
            ON CONFLICT (tg_id) DO UPDATE
                SET username = EXCLUDED.username,
                    full_name = EXCLUDED.full_name
            RETURNING *
            """,
            tg_id,
            username,
            full_name,
        )
        assert row is not None
        return User.from_row(row)

    async def get_user_by_tg_id(self, tg_id: int) -> User | None:
        row = await self.db.fetchrow("SELECT * FROM users WHERE tg_id = $1", tg_id)
        return User.from_row(row) if row else None

    async def list_bills(self) -> list[Bill]:
        rows = await self.db.fetch(
            f"SELECT {BILL_COLUMNS} FROM bills ORDER BY bill_date DESC, created_at DESC"
        )
        return [Bill.from_row(row) for row in rows]

    async def list_bills_by_owner(self, user_id: int) -> list[Bill]:
        rows = await self.db.fetch(
            f"SELECT {BILL_COLUMNS} FROM bills WHERE created_by = $1 ORDER BY bill_date DESC, created_at DESC",
            user_id,
        )
        return [Bill.from_row(row) for row in rows]

    async def get_bill(self, bill_id: str) -> Bill | None:
        row = await self.db.fetchrow(f"SELECT {BILL_COLUMNS} FROM bills WHERE id = $1", bill_id)
        return Bill.from_row(row) if row else None

    async def get_bills_by_ids(self, bill_ids: Sequence[str]) -> list[Bill]:
        if not bill_ids:
            return []
        rows = await self.db.fetch(
            f"SELECT {BILL_COLUMNS} FROM bills WHERE id = ANY($1::uuid[])",
            list(bill_ids),
        )
        return [Bill.from_row(row) for row in rows]

    async def get_bill_participants(self, bill_id: str) -> list[Participant]:
        rows = await self.db.fetch(
            f"SELECT {PARTICIPANT_COLUMNS} FROM bill_participants WHERE bill_id = $1 ORDER BY created_at, name",
            bill_id,
        )
        return [Participant.from_row(row) for row in rows]

    async def get_participants_by_ids(self, participant_ids: Sequence[str]) -> list[Participant]:
        if not participant_ids:
            return []
        rows = await self.db.fetch(
            f"SELECT {PARTICIPANT_COLUMNS} FROM bill_participants WHERE id = ANY($1::uuid[])",
            list(participant_ids),
        )
        return [Participant.from_row(row) for row in rows]

    async def get_bill_items(self, bill_id: str) -> list[LineItem]:
        rows = await self.db.fetch(
            f"SELECT {ITEM_COLUMNS} FROM bill_items WHERE bill_id = $1 ORDER BY sort_order, created_at",
            bill_id,
        )
        return [LineItem.from_row(row) for row in rows]

    async def get_items_by_ids(self, item_ids: Sequence[str]) -> list[LineItem]:
        if not item_ids:
            return []
        rows = await self.db.fetch(
            f"SELECT {ITEM_COLUMNS} FROM bill_items WHERE id = ANY($1::uuid[])",
            list(item_ids),
        )
        return [LineItem.from_row(row) for row in rows]

    async def get_bill_shares(self, bill_id: str) -> list[ShareRecord]:
        rows = await self.db.fetch(
            f"""
            SELECT {SHARE_COLUMNS}
            FROM split_details
            WHERE bill_item_id IN (SELECT id FROM bill_items WHERE bill_id = $1)
            """,
            bill_id,
        )
        return [ShareRecord.from_row(row) for row in rows]

    async def list_share_records(self) -> list[ShareRecord]:
        rows = await self.db.fetch(f"SELECT {SHARE_COLUMNS} FROM split_details")
        return [ShareRecord.from_row(row) for row in rows]

    async def create_bill(
        self,
        bill: Bill,
        participants: Sequence[Participant],
        items: Sequence[NewLineItem],
    ) -> None:
        async with self.db.transaction() as conn:
            await conn.execute(
                """
                INSERT INTO bills
                    (id, title, description, bill_date, created_by, total_amount, checked, payer, image_url)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                """,
                bill.id,
                bill.title,
                bill.description,
                bill.bill_date,
                bill.created_by,
                bill.total_amount,
                bill.checked,
                bill.payer,
                bill.image_url,
            )
            if participants:
                await conn.executemany(
                    "INSERT INTO bill_participants (id, bill_id, name) VALUES ($1, $2, $3)",
                    [(p.id, bill.id, p.name) for p in participants],
                )
            await _insert_items(conn, bill.id, items)

    async def replace_bill_items(
        self,
        bill_id: str,
        items: Sequence[NewLineItem],
        total_amount: Decimal,
        participants: Optional[Sequence[Participant]] = None,
    ) -> None:
        async with self.db.transaction() as conn:
            await conn.execute(
                """
                DELETE FROM split_details
                WHERE bill_item_id IN (SELECT id FROM bill_items WHERE bill_id = $1)
                """,
                bill_id,
            )
            await conn.execute("DELETE FROM bill_items WHERE bill_id = $1", bill_id)
            if participants is not None:
                await conn.execute(
                    "DELETE FROM bill_participants WHERE bill_id = $1 AND NOT (id = ANY($2::uuid[]))",
                    bill_id,
                    [p.id for p in participants],
                )
                await conn.executemany(
                    """
                    INSERT INTO bill_participants (id, bill_id, name)
                    VALUES ($1, $2, $3)
                    ON CONFLICT (id) DO NOTHING
                    """,
                    [(p.id, bill_id, p.name) for p in participants],
                )
            await _insert_items(conn, bill_id, items)
            await conn.execute(
                "UPDATE bills SET total_amount = $1, updated_at = now() WHERE id = $2",
                total_amount,
                bill_id,
            )

    async def set_bill_checked(self, bill_id: str, checked: bool) -> None:
        await self.db.execute(
            "UPDATE bills SET checked = $1, updated_at = now() WHERE id = $2",
            checked,
            bill_id,
        )

    async def delete_bill(self, bill_id: str) -> None:
        await self.db.execute("DELETE FROM bills WHERE id = $1", bill_id)

    async def list_payments(self) -> list[PaymentRecord]:
        rows = await self.db.fetch(
            "SELECT participant_name, paid_amount, updated_at FROM participant_payments"
        )
        return [PaymentRecord.from_row(row) for row in rows]

    async def upsert_payment(self, participant_name: str, paid_amount: Decimal) -> PaymentRecord:
        row = await self.db.fetchrow(
            """
            INSERT INTO participant_payments (participant_name, paid_amount, updated_at)
            VALUES ($1, $2, now())
            ON CONFLICT (participant_name) DO UPDATE
                SET paid_amount = EXCLUDED.paid_amount,
                    updated_at = EXCLUDED.updated_at
            RETURNING participant_name, paid_amount, updated_at
            """,
            participant_name,
            paid_amount,
        )
        assert row is not None
        return PaymentRecord.from_row(row)


_global_repo: LedgerRepository | None = None


def set_global_repository(repo: LedgerRepository) -> None:
    global _global_repo
    _global_repo = repo


def get_global_repository() -> LedgerRepository:
    if _global_repo is None:
        raise RuntimeError("Repository is not initialised")
    return _global_repo
