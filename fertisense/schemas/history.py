"""Pydantic schemas for stored fertilizer plans."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from fertisense.models.enums import PlanSourceEnum
from fertisense.schemas.schedule import ScheduleModel


class PlanRecordCreate(BaseModel):
	owner_ref: str | None = Field(default=None, max_length=255)
	source: PlanSourceEnum = PlanSourceEnum.imported
	reading: dict[str, Any] | None = None
	payload: Any


class PlanRecordRead(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	id: uuid.UUID
	owner_ref: str | None
	source: PlanSourceEnum
	reading: dict[str, Any] | None = None
	payload: Any
	schedules: list[ScheduleModel] = Field(default_factory=list)
	created_at: datetime
	updated_at: datetime


class PlanRecordListRead(BaseModel):
	items: list[PlanRecordRead]
	count: int
