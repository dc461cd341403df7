"""Initial schema — counseling appointments, profiles, message log, audit log.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from __future__ import annotations

from typing import Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, tuple[str, ...], None] = None
depends_on: Union[str, tuple[str, ...], None] = None


def _base_columns() -> list[sa.Column]:
    return [
        sa.Column("id", postgresql.UUID(as_uuid=False), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    # ── Profiles ───────────────────────────────────────────────────────

    op.create_table(
        "counselors",
        sa.Column("church_id", postgresql.UUID(as_uuid=False), nullable=False, index=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(30)),
        sa.Column("gender", sa.String(20)),
        sa.Column("topics", postgresql.ARRAY(sa.String(50)), comment="Counseling specialties"),
        sa.Column("availability", postgresql.JSONB(astext_type=sa.Text()), comment="{weekday: ['HH:MM', ...]}"),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_base_columns(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "pastors_and_leaders",
        sa.Column("church_id", postgresql.UUID(as_uuid=False), nullable=False, index=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("email", sa.String(255)),
        sa.Column("role", sa.String(30), nullable=False, comment="Administrador, Pastor, Coordenador"),
        *_base_columns(),
        sa.PrimaryKeyConstraint("id"),
    )

    # ── Appointments ───────────────────────────────────────────────────

    op.create_table(
        "counseling_appointments",
        sa.Column("church_id", postgresql.UUID(as_uuid=False), nullable=False, index=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("email", sa.String(255)),
        sa.Column("status", sa.String(30), server_default="Pendente", nullable=False, index=True),
        sa.Column(
            "version",
            sa.Integer(),
            server_default=sa.text("1"),
            nullable=False,
            comment="Compare-and-swap token, bumped on every write",
        ),
        sa.Column("form_data", postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'{}'::jsonb"), nullable=False),
        *_base_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "uq_counseling_live_slot",
        "counseling_appointments",
        [sa.text("(form_data->>'counselor_id')"), sa.text("(form_data->>'date')")],
        unique=True,
        postgresql_where=sa.text(
            "status IN ('Pendente', 'Marcado', 'Em Aconselhamento') "
            "AND form_data->>'counselor_id' IS NOT NULL"
        ),
    )

    # ── Outbound messages and audit ────────────────────────────────────

    op.create_table(
        "message_history",
        sa.Column("church_id", postgresql.UUID(as_uuid=False), index=True),
        sa.Column("campaign_id", sa.String(100), nullable=False),
        sa.Column("member_name", sa.String(200)),
        sa.Column("member_phone", sa.String(30), nullable=False),
        sa.Column("message_body", sa.Text(), nullable=False),
        sa.Column("status", sa.String(20), server_default="pending", nullable=False),
        sa.Column("sent_by", sa.String(100), server_default="System", nullable=False),
        *_base_columns(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "audit_log",
        sa.Column("event_type", sa.String(100), nullable=False, index=True),
        sa.Column("appointment_id", postgresql.UUID(as_uuid=False), index=True),
        sa.Column("church_id", postgresql.UUID(as_uuid=False), index=True),
        sa.Column("actor_id", sa.String(100), comment="User id or 'system'"),
        sa.Column("actor_role", sa.String(50)),
        sa.Column("data", postgresql.JSONB(astext_type=sa.Text())),
        *_base_columns(),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("message_history")
    op.drop_index("uq_counseling_live_slot", table_name="counseling_appointments")
    op.drop_table("counseling_appointments")
    op.drop_table("pastors_and_leaders")
    op.drop_table("counselors")
