"""Plan history persistence; stored payloads are re-parsed on every read."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fertisense.models.enums import PlanSourceEnum
from fertisense.models.history import PlanRecord
from fertisense.schemas.catalog import Product
from fertisense.schemas.history import PlanRecordCreate, PlanRecordRead
from fertisense.schemas.recommendation import NutrientReading, RecommendationResponse
from fertisense.services.catalog import ProductResolver
from fertisense.services.schedule_parser import parse_history_entry

_logger = logging.getLogger("fertisense.history")

DEFAULT_PAGE_SIZE = 50


class HistoryService:
	def __init__(self, db: AsyncSession, catalog: Iterable[Product] | None = None):
		self.db = db
		self.resolver = ProductResolver(catalog)

	async def save_recommendation(
		self,
		response: RecommendationResponse,
		reading: NutrientReading,
		owner_ref: str | None = None,
	) -> PlanRecord:
		return await self._add(
			owner_ref=owner_ref,
			source=PlanSourceEnum.engine,
			reading=reading.model_dump(mode="json"),
			payload=response.history_payload(),
		)

	async def save_raw(self, payload: PlanRecordCreate) -> PlanRecord:
		return await self._add(
			owner_ref=payload.owner_ref,
			source=payload.source,
			reading=payload.reading,
			payload=payload.payload,
		)

	async def list_records(
		self,
		owner_ref: str | None = None,
		limit: int = DEFAULT_PAGE_SIZE,
	) -> list[PlanRecord]:
		stmt = select(PlanRecord).order_by(PlanRecord.created_at.desc()).limit(limit)
		if owner_ref is not None:
			stmt = stmt.where(PlanRecord.owner_ref == owner_ref)
		rows = await self.db.execute(stmt)
		return list(rows.scalars().all())

	async def get_record(self, record_id: uuid.UUID) -> PlanRecord:
		row = await self.db.execute(select(PlanRecord).where(PlanRecord.id == record_id))
		record = row.scalar_one_or_none()
		if record is None:
			raise LookupError(f"Plan record {record_id} not found")
		return record

	def to_read(self, record: PlanRecord) -> PlanRecordRead:
		schedules = parse_history_entry(record.payload, self.resolver)
		if not schedules:
			_logger.info("history_payload_unparsed", extra={"record_id": str(record.id)})
		return PlanRecordRead(
			id=record.id,
			owner_ref=record.owner_ref,
			source=record.source,
			reading=record.reading,
			payload=record.payload,
			schedules=schedules,
			created_at=record.created_at,
			updated_at=record.updated_at,
		)

	async def _add(self, **values: Any) -> PlanRecord:
		record = PlanRecord(**values)
		self.db.add(record)
		await self.db.flush()
		await self.db.refresh(record)
		_logger.info(
			"plan_record_saved",
			extra={"record_id": str(record.id), "source": record.source.value},
		)
		return record
