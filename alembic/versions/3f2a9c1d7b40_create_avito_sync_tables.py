"""Create properties, rates, bookings, integrations, sync logs and sync queue

Revision ID: 3f2a9c1d7b40
Revises:
Create Date: 2026-10-17 10:12:03.418220

"""

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op  # type: ignore[attr-defined]

# revision identifiers, used by Alembic.
revision = "3f2a9c1d7b40"
down_revision = None
branch_labels = None
depends_on = None

SCHEMA = "pms"


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id", postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")
    )


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    op.execute(f"CREATE SCHEMA IF NOT EXISTS {SCHEMA}")

    op.create_table(
        "properties",
        _uuid_pk(),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("base_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("minimum_booking_days", sa.Integer(), server_default=sa.text("1"), nullable=False),
        sa.Column("currency", sa.String(3), server_default=sa.text("'RUB'"), nullable=False),
        *_timestamps(),
        schema=SCHEMA,
    )

    op.create_table(
        "property_rates",
        _uuid_pk(),
        sa.Column(
            "property_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey(f"{SCHEMA}.properties.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("daily_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("min_stay", sa.Integer(), nullable=True),
        sa.Column("currency", sa.String(3), server_default=sa.text("'RUB'"), nullable=False),
        sa.UniqueConstraint("property_id", "date", name="uq_property_rates_property_date"),
        schema=SCHEMA,
    )
    op.create_index("ix_pms_property_rates_property_id", "property_rates", ["property_id"], schema=SCHEMA)

    op.create_table(
        "bookings",
        _uuid_pk(),
        sa.Column(
            "property_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey(f"{SCHEMA}.properties.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("avito_booking_id", sa.BigInteger(), nullable=True, unique=True),
        sa.Column("guest_name", sa.String(), nullable=False),
        sa.Column("guest_phone", sa.String(), nullable=True),
        sa.Column("guest_email", sa.String(), nullable=True),
        sa.Column("check_in", sa.Date(), nullable=False),
        sa.Column("check_out", sa.Date(), nullable=False),
        sa.Column("total_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("currency", sa.String(3), server_default=sa.text("'RUB'"), nullable=False),
        sa.Column("status", sa.String(), server_default=sa.text("'confirmed'"), nullable=False),
        sa.Column("source", sa.String(), server_default=sa.text("'manual'"), nullable=False),
        sa.Column("guests_count", sa.Integer(), server_default=sa.text("1"), nullable=False),
        *_timestamps(),
        schema=SCHEMA,
    )
    op.create_index("ix_pms_bookings_property_id", "bookings", ["property_id"], schema=SCHEMA)

    op.create_table(
        "integrations",
        _uuid_pk(),
        sa.Column(
            "property_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey(f"{SCHEMA}.properties.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("platform", sa.String(), server_default=sa.text("'avito'"), nullable=False),
        sa.Column("avito_account_id", sa.String(), nullable=True),
        sa.Column("avito_item_id", sa.String(), nullable=True),
        sa.Column("markup_type", sa.String(), server_default=sa.text("'percent'"), nullable=False),
        sa.Column("markup_value", sa.Numeric(12, 2), server_default=sa.text("0"), nullable=False),
        sa.Column("access_token_encrypted", sa.String(), nullable=True),
        sa.Column("refresh_token_encrypted", sa.String(), nullable=True),
        sa.Column("token_expires_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("scope", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("TRUE"), nullable=False),
        sa.Column("last_sync_at", sa.TIMESTAMP(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("property_id", "platform", name="uq_integrations_property_platform"),
        schema=SCHEMA,
    )
    op.create_index("ix_pms_integrations_property_id", "integrations", ["property_id"], schema=SCHEMA)

    op.create_table(
        "sync_logs",
        _uuid_pk(),
        sa.Column(
            "integration_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey(f"{SCHEMA}.integrations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("property_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("details", postgresql.JSONB(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        schema=SCHEMA,
    )
    op.create_index("ix_pms_sync_logs_integration_id", "sync_logs", ["integration_id"], schema=SCHEMA)

    op.create_table(
        "sync_queue",
        _uuid_pk(),
        sa.Column(
            "integration_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey(f"{SCHEMA}.integrations.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("property_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("next_sync_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("status", sa.String(), server_default=sa.text("'pending'"), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        *_timestamps(),
        schema=SCHEMA,
    )


def downgrade() -> None:
    """Downgrade schema."""
    for table in ("sync_queue", "sync_logs", "integrations", "bookings", "property_rates", "properties"):
        op.drop_table(table, schema=SCHEMA)
