from __future__ import annotations

import pytest
from pydantic import ValidationError

from fertisense.errors import UnbuildableScheduleError
from fertisense.models.enums import NutrientEnum, RatingEnum, StageEnum
from fertisense.schemas.allocation import AllocationResult
from fertisense.schemas.catalog import NutrientTriple, Product, ProductSelection
from fertisense.schemas.schedule import DaBreakdown, ScheduleModel
from fertisense.services.allocation import ThreePhaseHeuristic
from fertisense.services.schedule_builder import (
	build,
	build_from_allocation,
	build_from_da,
	build_from_ratings,
	project_plan,
	split_bags,
)


@pytest.fixture
def allocation(selection: ProductSelection) -> AllocationResult:
	return ThreePhaseHeuristic().allocate(NutrientTriple(N=110, P=70, K=90), selection)


def test_default_policy_splits_nitrogen(allocation: AllocationResult, agronomy) -> None:
	schedule = build_from_allocation(allocation, agronomy.stage_policy, title="Plan A")

	assert schedule is not None
	assert schedule.title == "Plan A"
	assert schedule.stage_amounts[StageEnum.basal] == {"NPK_14_14_14": 10.0, "MOP_0_0_60": 0.67}
	assert schedule.stage_amounts[StageEnum.after_30_dat] == {"UREA_46_0_0": 0.87}
	assert schedule.stage_amounts[StageEnum.top_dress] == {"UREA_46_0_0": 0.87}
	assert StageEnum.organic not in schedule.stage_amounts
	assert schedule.totals_by_product == {
		"NPK_14_14_14": 10.0,
		"MOP_0_0_60": 0.67,
		"UREA_46_0_0": 1.74,
	}


def test_builder_defaults_to_bundled_policy(allocation: AllocationResult) -> None:
	schedule = build_from_allocation(allocation)
	assert schedule is not None
	assert schedule.bags_for(StageEnum.top_dress, "UREA_46_0_0") == 0.87


@pytest.mark.parametrize("bags", [1.75, 0.01, 3.33, 1.74, 12.05])
def test_split_keeps_the_exact_total(bags: float) -> None:
	split = split_bags(bags, {StageEnum.after_30_dat: 0.5, StageEnum.top_dress: 0.5})
	assert set(split) == {StageEnum.after_30_dat, StageEnum.top_dress}
	assert sum(split.values()) == pytest.approx(bags)
	assert abs(split[StageEnum.after_30_dat] - bags / 2) <= 0.01


def test_split_without_fractions_goes_basal() -> None:
	assert split_bags(2.0, {}) == {StageEnum.basal: 2.0}


def test_empty_allocation_builds_nothing() -> None:
	assert build_from_allocation(AllocationResult(strategy="three_phase")) is None


def test_da_breakdown_is_copied_verbatim() -> None:
	schedule = build_from_da(
		{
			"organic": [{"code": "ORGANIC", "bags": 10}],
			"basal": [{"code": "NPK_14_14_14", "bags": 4}, {"code": "NPK_14_14_14", "bags": 1}],
			"after30DAT": [{"code": "UREA_46_0_0", "bags": 1}],
			"topdress60DBH": [{"code": "UREA_46_0_0", "bags": 1.5}],
			"title": "DA plan",
		}
	)

	assert schedule is not None
	assert schedule.title == "DA plan"
	assert schedule.stage_amounts[StageEnum.organic] == {"ORGANIC": 10.0}
	assert schedule.stage_amounts[StageEnum.basal] == {"NPK_14_14_14": 5.0}
	assert schedule.totals_by_product["UREA_46_0_0"] == 2.5


def test_empty_da_breakdown_builds_nothing() -> None:
	assert build_from_da(DaBreakdown()) is None
	assert build_from_da({"basal": [{"code": "UREA_46_0_0", "bags": 0}]}) is None


def test_build_dispatches_on_source(allocation: AllocationResult, agronomy) -> None:
	assert build(None) is None
	assert build(allocation).totals_by_product["UREA_46_0_0"] == 1.74
	assert build({"basal": [{"code": "X", "bags": 1}]}).totals_by_product == {"X": 1.0}
	assert build({"N": "high", "P": "high", "K": "high"}, da_schedules=agronomy.da_schedules).title == "DA schedule HHH"
	with pytest.raises(TypeError):
		build(42)


def test_schedule_factory_refuses_empty_input() -> None:
	with pytest.raises(UnbuildableScheduleError):
		ScheduleModel.from_stages({})
	with pytest.raises(UnbuildableScheduleError):
		ScheduleModel.from_stages({StageEnum.basal: {"UREA": 0, "MOP": -1}})


def test_schedule_rejects_inconsistent_totals() -> None:
	with pytest.raises(ValidationError):
		ScheduleModel(
			stage_amounts={StageEnum.basal: {"UREA": 1.0}},
			totals_by_product={"UREA": 2.0},
		)


def test_projection_lines(allocation: AllocationResult, by_code: dict[str, Product]) -> None:
	schedule = build_from_allocation(allocation, title="Complete + Urea + Potash")
	projection = project_plan(schedule, by_code, "PHP")

	assert projection.name == "Complete + Urea + Potash"
	assert projection.details == [
		"10 bag(s) - Complete (14-14-14) | PHP 1600/bag | Subtotal: PHP 16000",
		"0.67 bag(s) - Muriate of Potash (0-0-60) | PHP 1700/bag | Subtotal: PHP 1139",
		"1.74 bag(s) - Urea (46-0-0) | PHP 1500/bag | Subtotal: PHP 2610",
	]
	assert projection.cost == "19749"


def test_projection_of_unknown_code_uses_code_and_zero_price() -> None:
	schedule = ScheduleModel.from_stages({StageEnum.organic: {"ORGANIC": 10}})
	projection = project_plan(schedule, [], "PHP")
	assert projection.details == ["10 bag(s) - ORGANIC | PHP 0/bag | Subtotal: PHP 0"]
	assert projection.name == "Fertilizer plan"


def test_da_table_lookup_by_ratings(agronomy) -> None:
	ratings = {NutrientEnum.N: RatingEnum.medium, NutrientEnum.P: RatingEnum.low, NutrientEnum.K: RatingEnum.medium}
	schedule = build_from_ratings(ratings, agronomy.da_schedules)

	assert schedule.title == "DA schedule MLM"
	assert schedule.stage_amounts == {
		StageEnum.basal: {"MOP_0_0_60": 1.5, "DAP_18_46_0": 2.5},
		StageEnum.after_30_dat: {"UREA_46_0_0": 1.5},
		StageEnum.top_dress: {"UREA_46_0_0": 1.5},
	}


def test_da_table_covers_every_rating_code(agronomy) -> None:
	assert len(agronomy.da_schedules) == 27


def test_da_table_without_usable_ratings_builds_nothing(agronomy) -> None:
	ratings = {NutrientEnum.N: RatingEnum.not_available, NutrientEnum.P: RatingEnum.low, NutrientEnum.K: RatingEnum.low}
	assert build_from_ratings(ratings, agronomy.da_schedules) is None
	assert build_from_ratings({NutrientEnum.N: RatingEnum.low}, agronomy.da_schedules) is None
	assert build_from_ratings({n: RatingEnum.low for n in NutrientEnum}, {}) is None
