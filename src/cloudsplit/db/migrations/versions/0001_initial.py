"""ledger schema

Revision ID: 0001
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=False),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("tg_id", sa.BigInteger(), nullable=False, unique=True),
        sa.Column("username", sa.Text()),
        sa.Column("full_name", sa.Text()),
    )

    op.create_table(
        "bills",
        _uuid_pk(),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("bill_date", sa.Date(), nullable=False, server_default=sa.func.current_date()),
        sa.Column("created_by", sa.BigInteger(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("checked", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("payer", sa.Text()),
        sa.Column("image_url", sa.Text()),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "bill_participants",
        _uuid_pk(),
        sa.Column(
            "bill_id",
            postgresql.UUID(as_uuid=False),
            sa.ForeignKey("bills.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.Text(), nullable=False),
        _created_at(),
        sa.UniqueConstraint("bill_id", "name", name="bill_participants_bill_name_key"),
    )

    op.create_table(
        "bill_items",
        _uuid_pk(),
        sa.Column(
            "bill_id",
            postgresql.UUID(as_uuid=False),
            sa.ForeignKey("bills.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("item_name", sa.Text(), nullable=False),
        sa.Column("unit_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("discount_ratio", sa.Numeric(5, 2), nullable=False, server_default="1"),
        sa.Column("discount_adjustment", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "split_details",
        _uuid_pk(),
        sa.Column(
            "bill_item_id",
            postgresql.UUID(as_uuid=False),
            sa.ForeignKey("bill_items.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "participant_id",
            postgresql.UUID(as_uuid=False),
            sa.ForeignKey("bill_participants.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("share_amount", sa.Numeric(10, 2), nullable=False),
        _created_at(),
        sa.UniqueConstraint("bill_item_id", "participant_id", name="split_details_item_participant_key"),
    )

    op.create_table(
        "participant_payments",
        _uuid_pk(),
        sa.Column("participant_name", sa.Text(), nullable=False, unique=True),
        sa.Column("paid_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("paid_amount >= 0", name="participant_payments_paid_amount_check"),
    )

    op.create_index("ix_bills_bill_date", "bills", ["bill_date"])
    op.create_index("ix_bill_participants_bill_id", "bill_participants", ["bill_id"])
    op.create_index("ix_bill_items_bill_id", "bill_items", ["bill_id"])
    op.create_index("ix_split_details_participant_id", "split_details", ["participant_id"])


def downgrade() -> None:
    op.drop_index("ix_split_details_participant_id", table_name="split_details")
    op.drop_index("ix_bill_items_bill_id", table_name="bill_items")
    op.drop_index("ix_bill_participants_bill_id", table_name="bill_participants")
    op.drop_index("ix_bills_bill_date", table_name="bills")
    op.drop_table("participant_payments")
    op.drop_table("split_details")
    op.drop_table("bill_items")
    op.drop_table("bill_participants")
    op.drop_table("bills")
    op.drop_table("users")
