"""Stored fertilizer plans.

``payload`` keeps the plan exactly as it was produced or imported, whatever
its shape; it is re-parsed into a schedule on every read and never rewritten.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import Enum, Index, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from fertisense.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from fertisense.models.enums import PlanSourceEnum


class PlanRecord(Base, UUIDPrimaryKeyMixin, TimestampMixin):
	"""One history entry: the soil reading and the raw plan payload."""

	__tablename__ = "plan_records"
	__table_args__ = (
		Index("ix_plan_records_owner_created", "owner_ref", "created_at"),
	)

	owner_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
	source: Mapped[PlanSourceEnum] = mapped_column(
		Enum(
			PlanSourceEnum,
			name="plan_source",
			create_constraint=False,
			native_enum=True,
		),
		nullable=False,
		default=PlanSourceEnum.engine,
		server_default=PlanSourceEnum.engine.value,
	)
	reading: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
	payload: Mapped[Any] = mapped_column(JSONB, nullable=False)

	def __repr__(self) -> str:
		return f"<PlanRecord id={self.id} owner={self.owner_ref} source={self.source}>"
