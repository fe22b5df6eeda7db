"""create_plan_records

Revision ID: 3c7e91d0b5a2
Revises:
Create Date: 2026-10-18 00:00:00.000000

Creates the plan history table and its source enum. Requires the uuid-ossp
extension for the server-side primary key default.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "3c7e91d0b5a2"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

ENUM_PLAN_SOURCE = postgresql.ENUM(
	"engine",
	"da_schedule",
	"imported",
	name="plan_source",
	create_type=False,
)


def upgrade() -> None:
	op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')
	ENUM_PLAN_SOURCE.create(op.get_bind(), checkfirst=True)

	op.create_table(
		"plan_records",
		sa.Column(
			"id",
			postgresql.UUID(as_uuid=True),
			server_default=sa.text("uuid_generate_v4()"),
			nullable=False,
		),
		sa.Column("owner_ref", sa.String(length=255), nullable=True),
		sa.Column("source", ENUM_PLAN_SOURCE, nullable=False, server_default=sa.text("'engine'")),
		sa.Column("reading", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
		sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
		sa.Column(
			"created_at",
			sa.DateTime(timezone=True),
			server_default=sa.text("now()"),
			nullable=False,
		),
		sa.Column(
			"updated_at",
			sa.DateTime(timezone=True),
			server_default=sa.text("now()"),
			nullable=False,
		),
		sa.PrimaryKeyConstraint("id"),
	)
	op.create_index("ix_plan_records_owner_created", "plan_records", ["owner_ref", "created_at"])


def downgrade() -> None:
	op.drop_index("ix_plan_records_owner_created", table_name="plan_records")
	op.drop_table("plan_records")
	ENUM_PLAN_SOURCE.drop(op.get_bind(), checkfirst=True)
