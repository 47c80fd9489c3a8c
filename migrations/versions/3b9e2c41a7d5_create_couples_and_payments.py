"""create couples and payments tables"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "3b9e2c41a7d5"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "couples",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("slug", sa.String(length=160), nullable=False),
        sa.Column("names", sa.String(length=120), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone_number", sa.String(length=32), nullable=True),
        sa.Column("wedding_date", sa.Date(), nullable=True),
        sa.Column("country", sa.String(length=80), nullable=True),
        sa.Column("story", sa.String(length=500), nullable=True),
        sa.Column("photo_url", sa.Text(), nullable=False),
        sa.Column("thumb_url", sa.Text(), nullable=False),
        sa.Column("photo_key", sa.String(length=512), nullable=True),
        sa.Column("thumb_key", sa.String(length=512), nullable=True),
        sa.Column("secret_code", sa.String(length=8), nullable=False),
        sa.Column(
            "status",
            sa.String(length=16),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("payment_id", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_couples_status",
        ),
    )
    op.create_index("ix_couples_slug", "couples", ["slug"], unique=True)
    op.create_index("ix_couples_status", "couples", ["status"])
    op.create_index("ix_couples_payment_id", "couples", ["payment_id"])
    op.create_index(
        "ix_couples_status_created_at", "couples", ["status", "created_at"]
    )
    op.create_index(
        "ix_couples_secret_code_names", "couples", ["secret_code", "names"]
    )

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("session_id", sa.String(length=255), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="usd"),
        sa.Column(
            "status",
            sa.String(length=16),
            nullable=False,
            server_default="created",
        ),
        sa.Column(
            "couple_id",
            sa.Integer(),
            sa.ForeignKey("couples.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("extra_fields", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_payments_session_id", "payments", ["session_id"], unique=True)
    op.create_index("ix_payments_status", "payments", ["status"])


def downgrade() -> None:
    op.drop_index("ix_payments_status", table_name="payments")
    op.drop_index("ix_payments_session_id", table_name="payments")
    op.drop_table("payments")
    op.drop_index("ix_couples_secret_code_names", table_name="couples")
    op.drop_index("ix_couples_status_created_at", table_name="couples")
    op.drop_index("ix_couples_payment_id", table_name="couples")
    op.drop_index("ix_couples_status", table_name="couples")
    op.drop_index("ix_couples_slug", table_name="couples")
    op.drop_table("couples")
