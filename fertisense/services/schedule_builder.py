"""Turn allocations, legacy DA breakdowns and the DA rating table into staged schedules."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from fertisense.errors import UnbuildableScheduleError
from fertisense.models.enums import STAGE_ORDER, NutrientEnum, ProductCategoryEnum, RatingEnum, StageEnum
from fertisense.schemas.allocation import AllocationResult
from fertisense.schemas.catalog import Product
from fertisense.schemas.schedule import DaBreakdown, PlanProjection, ScheduleModel
from fertisense.services.agronomy_config import rating_code
from fertisense.services.numbers import format_amount, round2

_logger = logging.getLogger("fertisense.schedule")

StagePolicy = Mapping[ProductCategoryEnum, Mapping[StageEnum, float]]

_NUTRIENTS = frozenset(NutrientEnum)

DEFAULT_STAGE_POLICY: dict[ProductCategoryEnum, dict[StageEnum, float]] = {
	ProductCategoryEnum.balanced: {StageEnum.basal: 1.0},
	ProductCategoryEnum.np_base: {StageEnum.basal: 1.0},
	ProductCategoryEnum.k_only: {StageEnum.basal: 1.0},
	ProductCategoryEnum.n_only: {StageEnum.after_30_dat: 0.5, StageEnum.top_dress: 0.5},
}


def split_bags(bags: float, fractions: Mapping[StageEnum, float]) -> dict[StageEnum, float]:
	"""Split a bag count across stages; the last stage absorbs rounding."""
	stages = [stage for stage in STAGE_ORDER if fractions.get(stage, 0) > 0]
	if not stages:
		return {StageEnum.basal: bags}

	split: dict[StageEnum, float] = {}
	assigned = 0.0
	for stage in stages[:-1]:
		share = round2(bags * fractions[stage])
		split[stage] = share
		assigned += share
	split[stages[-1]] = round2(bags - assigned)
	return split


def _unbuildable_to_none(
	stage_amounts: Mapping[StageEnum, Mapping[str, float]],
	title: str | None,
	total_cost_text: str | None,
) -> ScheduleModel | None:
	try:
		return ScheduleModel.from_stages(stage_amounts, title=title, total_cost_text=total_cost_text)
	except UnbuildableScheduleError:
		_logger.info("schedule_empty", extra={"title": title})
		return None


def build_from_allocation(
	result: AllocationResult,
	stage_policy: StagePolicy | None = None,
	title: str | None = None,
	total_cost_text: str | None = None,
) -> ScheduleModel | None:
	policy = stage_policy or DEFAULT_STAGE_POLICY
	stage_amounts: dict[StageEnum, dict[str, float]] = {}
	for row in result.rows:
		fractions = policy.get(row.category) or {StageEnum.basal: 1.0}
		for stage, bags in split_bags(row.bags, fractions).items():
			amounts = stage_amounts.setdefault(stage, {})
			amounts[row.product.code] = amounts.get(row.product.code, 0.0) + bags
	return _unbuildable_to_none(stage_amounts, title, total_cost_text)


def build_from_da(breakdown: DaBreakdown | Mapping[str, Any]) -> ScheduleModel | None:
	"""Copy the DA stage buckets verbatim; repeated codes within a bucket add up."""
	if not isinstance(breakdown, DaBreakdown):
		breakdown = DaBreakdown.model_validate(breakdown)

	stage_amounts: dict[StageEnum, dict[str, float]] = {}
	for stage, entries in breakdown.buckets().items():
		amounts = stage_amounts.setdefault(stage, {})
		for entry in entries:
			amounts[entry.code] = amounts.get(entry.code, 0.0) + entry.bags
	return _unbuildable_to_none(stage_amounts, breakdown.title, breakdown.total_cost_text)


def build_from_ratings(
	ratings: Mapping[NutrientEnum, RatingEnum],
	da_schedules: Mapping[str, DaBreakdown],
	area_ha: float = 1.0,
) -> ScheduleModel | None:
	"""Look up the DA schedule for a rating code such as ``"LMH"``, scaled to the area."""
	code = rating_code(dict(ratings))
	breakdown = da_schedules.get(code) if code else None
	if breakdown is None:
		_logger.info("da_schedule_missing", extra={"rating_code": code})
		return None

	stage_amounts: dict[StageEnum, dict[str, float]] = {}
	for stage, entries in breakdown.buckets().items():
		amounts = stage_amounts.setdefault(stage, {})
		for entry in entries:
			amounts[entry.code] = amounts.get(entry.code, 0.0) + entry.bags * area_ha
	title = breakdown.title or f"DA schedule {code}"
	return _unbuildable_to_none(stage_amounts, title, breakdown.total_cost_text)


def _is_ratings(source: Mapping[Any, Any]) -> bool:
	return bool(source) and all(key in _NUTRIENTS for key in source)


def build(source: AllocationResult | DaBreakdown | Mapping[str, Any] | None, **kwargs: Any) -> ScheduleModel | None:
	"""Build from an allocation, a DA breakdown, or N/P/K ratings plus ``da_schedules``."""
	if source is None:
		return None
	if isinstance(source, AllocationResult):
		return build_from_allocation(source, **kwargs)
	if isinstance(source, Mapping) and _is_ratings(source):
		return build_from_ratings(source, **kwargs)
	if isinstance(source, (DaBreakdown, Mapping)):
		return build_from_da(source)
	raise TypeError(f"cannot build a schedule from {type(source).__name__}")


def project_plan(
	schedule: ScheduleModel,
	products: Iterable[Product] | Mapping[str, Product],
	currency: str,
	name: str | None = None,
) -> PlanProjection:
	"""Flatten a schedule into the persisted ``{name, cost, details}`` display form."""
	if isinstance(products, Mapping):
		by_code = dict(products)
	else:
		by_code = {product.code: product for product in products}

	details: list[str] = []
	cost = 0.0
	for code, bags in schedule.totals_by_product.items():
		product = by_code.get(code)
		label = product.label if product else code
		price = product.price_per_bag if product else 0.0
		subtotal = bags * price
		cost += subtotal
		details.append(
			f"{format_amount(bags)} bag(s) - {label} | {currency} {format_amount(price)}/bag"
			f" | Subtotal: {currency} {format_amount(subtotal)}"
		)

	return PlanProjection(
		name=name or schedule.title or "Fertilizer plan",
		cost=format_amount(cost),
		details=details,
	)
