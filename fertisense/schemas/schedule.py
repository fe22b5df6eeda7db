"""Pydantic schemas for staged application schedules and their projections."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from fertisense.errors import UnbuildableScheduleError
from fertisense.models.enums import STAGE_ORDER, StageEnum
from fertisense.services.numbers import round2

_TOTALS_TOLERANCE = 0.01


class ScheduleModel(BaseModel):
	"""Bags per product code for each application stage.

	Build instances with :meth:`from_stages`; it drops non-positive amounts and
	refuses to produce a schedule without entries.
	"""

	model_config = ConfigDict(frozen=True)

	stage_amounts: dict[StageEnum, dict[str, float]]
	totals_by_product: dict[str, float]
	title: str | None = None
	total_cost_text: str | None = None

	@model_validator(mode="after")
	def _totals_match_stages(self) -> ScheduleModel:
		summed: dict[str, float] = {}
		for amounts in self.stage_amounts.values():
			for code, bags in amounts.items():
				summed[code] = summed.get(code, 0.0) + bags
		if set(summed) != set(self.totals_by_product):
			raise ValueError("totals_by_product codes differ from stage entries")
		for code, total in self.totals_by_product.items():
			if abs(summed[code] - total) > _TOTALS_TOLERANCE:
				raise ValueError(f"total for {code} does not match its stage amounts")
		return self

	@classmethod
	def from_stages(
		cls,
		stage_amounts: Mapping[StageEnum, Mapping[str, float]],
		title: str | None = None,
		total_cost_text: str | None = None,
	) -> ScheduleModel:
		stages: dict[StageEnum, dict[str, float]] = {}
		totals: dict[str, float] = {}
		for stage in STAGE_ORDER:
			amounts = stage_amounts.get(stage) or {}
			kept = {code: round2(bags) for code, bags in amounts.items() if round2(bags) > 0}
			if not kept:
				continue
			stages[stage] = kept
			for code, bags in kept.items():
				totals[code] = round2(totals.get(code, 0.0) + bags)

		if not totals:
			raise UnbuildableScheduleError("schedule has no product entries")
		return cls(
			stage_amounts=stages,
			totals_by_product=totals,
			title=title,
			total_cost_text=total_cost_text,
		)

	def entries(self) -> Iterator[tuple[StageEnum, str, float]]:
		for stage in STAGE_ORDER:
			for code, bags in self.stage_amounts.get(stage, {}).items():
				yield stage, code, bags

	def bags_for(self, stage: StageEnum, code: str) -> float:
		return self.stage_amounts.get(stage, {}).get(code, 0.0)


class PlanProjection(BaseModel):
	"""Display form persisted with history: a name, a cost and one line per product.

	The cost is text such as ``"18610"``, the form stored history records use.
	"""

	name: str
	cost: str
	details: list[str]


# ── Legacy DA breakdown ─────────────────────────────────────────────────────


class DaEntry(BaseModel):
	code: str = Field(min_length=1)
	bags: float = Field(ge=0)


class DaBreakdown(BaseModel):
	"""Stage buckets as stored by the legacy DA recommendation screen."""

	model_config = ConfigDict(populate_by_name=True)

	organic: list[DaEntry] = Field(default_factory=list)
	basal: list[DaEntry] = Field(default_factory=list)
	after_30_dat: list[DaEntry] = Field(default_factory=list, alias="after30DAT")
	top_dress: list[DaEntry] = Field(default_factory=list, alias="topdress60DBH")
	title: str | None = None
	total_cost_text: str | None = None

	def buckets(self) -> dict[StageEnum, list[DaEntry]]:
		return {
			StageEnum.organic: self.organic,
			StageEnum.basal: self.basal,
			StageEnum.after_30_dat: self.after_30_dat,
			StageEnum.top_dress: self.top_dress,
		}


# ── API payloads ────────────────────────────────────────────────────────────


class ScheduleParseRequest(BaseModel):
	raw: Any = None
	resolve_with_catalog: bool = True


class ScheduleParseResponse(BaseModel):
	schedule: ScheduleModel | None = None


class ScheduleBuildResponse(BaseModel):
	schedule: ScheduleModel | None = None
	projection: PlanProjection | None = None
