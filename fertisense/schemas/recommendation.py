"""Pydantic request/response schemas for fertilizer recommendations."""

from __future__ import annotations

import uuid
from typing import Any

from pydantic import BaseModel, Field

from fertisense.models.enums import NutrientEnum, RatingEnum
from fertisense.schemas.allocation import AllocationResult
from fertisense.schemas.catalog import NutrientTriple
from fertisense.schemas.schedule import PlanProjection, ScheduleModel


class NutrientReading(BaseModel):
	"""Sensor reading in ppm. Values are validated by the classifier, not here."""

	n: Any = None
	p: Any = None
	k: Any = None
	ph: float | None = None


class RecommendationRequest(BaseModel):
	reading: NutrientReading
	variety: str | None = None
	soil_class: str | None = None
	season: str | None = None
	area_ha: float | None = None
	threshold_profile: str | None = None
	save: bool = False
	owner_ref: str | None = Field(default=None, max_length=255)


class RecommendedPlan(BaseModel):
	name: str
	strategy: str
	allocation: AllocationResult
	schedule: ScheduleModel | None = None
	projection: PlanProjection | None = None
	is_cheapest: bool = False


class RecommendationResponse(BaseModel):
	ratings: dict[NutrientEnum, RatingEnum]
	ph_status: str | None = None
	variety: str
	soil_class: str
	season: str
	area_ha: float
	threshold_profile: str
	target_per_ha: NutrientTriple
	target_kg: NutrientTriple
	currency: str
	narrative_tl: str
	narrative_en: str
	plans: list[RecommendedPlan]
	# Fixed DA schedule for the rating code, shown beside the priced plans.
	da_schedule: ScheduleModel | None = None
	record_id: uuid.UUID | None = None

	def history_payload(self) -> dict[str, Any]:
		"""History entry in the shape the mobile app stores and re-reads.

		Each plan keeps its display lines and, under ``stages``, the staged
		amounts the display lines flatten away.
		"""
		plans: list[dict[str, Any]] = []
		for plan in self.plans:
			if plan.projection is None or plan.schedule is None:
				continue
			stored = plan.projection.model_dump()
			stored["stages"] = {
				stage.value: dict(amounts) for stage, amounts in plan.schedule.stage_amounts.items()
			}
			plans.append(stored)
		return {
			"recommendationText": self.narrative_tl,
			"englishText": self.narrative_en,
			"fertilizerPlans": plans,
		}
