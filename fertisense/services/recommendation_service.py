"""Recommendation pipeline: reading → ratings → targets → allocation → schedules."""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from enum import StrEnum
from typing import Any, TypeVar

from fertisense.config import Settings, get_settings
from fertisense.errors import CatalogInsufficientError, InvalidInputError
from fertisense.models.enums import (
	RatingEnum,
	RiceVarietyEnum,
	SeasonEnum,
	SoilClassEnum,
	StageEnum,
)
from fertisense.schemas.allocation import AllocationResult
from fertisense.schemas.catalog import NutrientTriple, Product, ProductSelection
from fertisense.schemas.recommendation import (
	RecommendationRequest,
	RecommendationResponse,
	RecommendedPlan,
)
from fertisense.services import target_table
from fertisense.services.agronomy_config import AgronomyConfig, get_agronomy_config
from fertisense.services.allocation import get_strategy
from fertisense.services.catalog import extract_currency, extract_products, select_products
from fertisense.services.classifier import classify_reading
from fertisense.services.numbers import format_amount, round_half_up
from fertisense.schemas.schedule import ScheduleModel
from fertisense.services.schedule_builder import build_from_allocation, build_from_ratings, project_plan

_logger = logging.getLogger("fertisense.recommendation")

_E = TypeVar("_E", bound=StrEnum)

PH_ACIDIC_BELOW = 5.5
PH_ALKALINE_ABOVE = 7.5


def ph_status(ph: float | None) -> str | None:
	if ph is None or not math.isfinite(ph):
		return None
	if ph < PH_ACIDIC_BELOW:
		return "acidic"
	if ph > PH_ALKALINE_ABOVE:
		return "alkaline"
	return "neutral"


def _choice(enum_type: type[_E], value: str | None, default: _E, field: str) -> _E:
	if value is None or value == "":
		return default
	try:
		return enum_type(value)
	except ValueError as exc:
		allowed = ", ".join(member.value for member in enum_type)
		raise InvalidInputError(f"unknown {field} {value!r}; expected one of {allowed}") from exc


def _narrative(prefix: str, target: NutrientTriple, context: str) -> str:
	return (
		f"{prefix}: {round_half_up(target.N)}kg N, {round_half_up(target.P)}kg P, "
		f"{round_half_up(target.K)}kg K. ({context})"
	)


def _plan_name(result: AllocationResult) -> str:
	return " + ".join(row.product.label for row in result.rows) or "No plan"


class RecommendationService:
	"""Runs the pure recommendation engine for one request and one catalog snapshot."""

	def __init__(self, settings: Settings | None = None, agronomy: AgronomyConfig | None = None):
		self.settings = settings or get_settings()
		self.agronomy = agronomy or get_agronomy_config()

	def recommend(
		self,
		request: RecommendationRequest,
		catalog_doc: Mapping[str, Any],
	) -> RecommendationResponse:
		settings = self.settings
		variety = _choice(RiceVarietyEnum, request.variety, settings.default_variety, "variety")
		soil_class = _choice(SoilClassEnum, request.soil_class, settings.default_soil_class, "soil class")
		season = _choice(SeasonEnum, request.season, settings.default_season, "season")

		area_ha = 1.0 if request.area_ha is None else request.area_ha
		if not math.isfinite(area_ha) or area_ha <= 0:
			raise InvalidInputError("area_ha must be a finite number greater than 0")

		profile = request.threshold_profile or settings.npk_threshold_profile
		if profile not in self.agronomy.threshold_profiles:
			raise InvalidInputError(f"unknown threshold profile {profile!r}")
		ratings = classify_reading(request.reading, self.agronomy.breakpoints(profile))

		invalid = [n.value for n, rating in ratings.items() if rating is RatingEnum.not_available]
		if invalid:
			raise InvalidInputError(
				f"invalid soil reading for {', '.join(invalid)}: values must be positive ppm numbers"
			)

		per_ha = target_table.lookup(variety, soil_class, season, ratings, config=self.agronomy)
		target = per_ha.for_area(area_ha)

		products = extract_products(catalog_doc)
		if not settings.include_inactive_products:
			products = [product for product in products if product.active]
		currency = extract_currency(catalog_doc, settings.default_currency)
		selection = select_products(products)

		results = self._allocate(target, selection, products)
		plans = self._plans(results, products, currency, area_ha)
		da_schedule = build_from_ratings(ratings, self.agronomy.da_schedules, area_ha)

		context = f"{variety.value}, {soil_class.value}, {season.value}, {format_amount(area_ha)} ha"
		_logger.info(
			"recommendation_built",
			extra={
				"ratings": {n.value: r.value for n, r in ratings.items()},
				"profile": profile,
				"plans": len(plans),
			},
		)
		return RecommendationResponse(
			ratings=ratings,
			ph_status=ph_status(request.reading.ph),
			variety=variety.value,
			soil_class=soil_class.value,
			season=season.value,
			area_ha=area_ha,
			threshold_profile=profile,
			target_per_ha=NutrientTriple(N=per_ha.n_kg, P=per_ha.p_kg, K=per_ha.k_kg),
			target_kg=target,
			currency=currency,
			narrative_tl=_narrative("Kailangang sustansya", target, context),
			narrative_en=_narrative("Target", target, context),
			plans=plans,
			da_schedule=da_schedule,
		)

	def _allocate(
		self,
		target: NutrientTriple,
		selection: ProductSelection,
		products: list[Product],
	) -> list[AllocationResult]:
		results: list[AllocationResult] = []
		first_error: CatalogInsufficientError | None = None
		for name in self.settings.allocation_strategies:
			strategy = get_strategy(name, allow_partial=self.settings.allow_partial_plans)
			try:
				results.append(strategy.allocate(target, selection, products))
			except CatalogInsufficientError as exc:
				_logger.warning(
					"allocation_catalog_insufficient",
					extra={"strategy": name, "nutrient": exc.nutrient, "category": exc.category},
				)
				first_error = first_error or exc
		if not results and first_error is not None:
			raise first_error
		return results

	def _plans(
		self,
		results: list[AllocationResult],
		products: list[Product],
		currency: str,
		area_ha: float,
	) -> list[RecommendedPlan]:
		plans: list[RecommendedPlan] = []
		seen: set[tuple[tuple[str, float], ...]] = set()
		for result in results:
			key = result.row_key()
			if key in seen:
				continue
			seen.add(key)

			name = _plan_name(result)
			schedule = build_from_allocation(
				result,
				self.agronomy.stage_policy,
				title=name,
				total_cost_text=f"{currency} {format_amount(result.total_cost)}",
			)
			if schedule is not None and not self._within_bag_caps(schedule, area_ha):
				_logger.warning(
					"plan_rejected_bag_caps",
					extra={"strategy": result.strategy, "bags": sum(schedule.totals_by_product.values())},
				)
				continue
			projection = project_plan(schedule, products, currency, name=name) if schedule else None
			plans.append(
				RecommendedPlan(
					name=name,
					strategy=result.strategy,
					allocation=result,
					schedule=schedule,
					projection=projection,
				)
			)

		priced = [plan for plan in plans if not plan.allocation.is_empty]
		if priced:
			cheapest = min(priced, key=lambda plan: plan.allocation.total_cost)
			cheapest.is_cheapest = True
		return plans

	def _within_bag_caps(self, schedule: ScheduleModel, area_ha: float) -> bool:
		basal = sum(schedule.stage_amounts.get(StageEnum.basal, {}).values())
		total = sum(schedule.totals_by_product.values())
		return (
			basal <= self.settings.max_basal_bags_per_ha * area_ha
			and total <= self.settings.max_total_bags_per_ha * area_ha
		)
