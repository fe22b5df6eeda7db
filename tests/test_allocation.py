from __future__ import annotations

import pytest

from fertisense.errors import CatalogInsufficientError, ConfigurationError
from fertisense.models.enums import NutrientEnum, ProductCategoryEnum
from fertisense.schemas.catalog import NutrientTriple, ProductSelection
from fertisense.services.allocation import (
	ClassicAmmosulRecipe,
	ClassicUreaRecipe,
	HighEfficiencyMix,
	NpBaseHeuristic,
	ThreePhaseHeuristic,
	available_strategies,
	find_by_hint,
	get_strategy,
	pick_best_source,
)
from fertisense.services.catalog import extract_products, select_products


def _rows(result) -> list[tuple[str, float, ProductCategoryEnum]]:
	return [(row.product.code, row.bags, row.category) for row in result.rows]


def test_complete_fertilizer_covers_p_and_k(selection: ProductSelection) -> None:
	target = NutrientTriple(N=110, P=70, K=70)
	result = ThreePhaseHeuristic().allocate(target, selection)

	# 10 bags of 14-14-14 supply 70 kg each of N, P and K; no potash remainder.
	assert _rows(result) == [
		("NPK_14_14_14", 10.0, ProductCategoryEnum.balanced),
		("UREA_46_0_0", 1.74, ProductCategoryEnum.n_only),
	]
	assert result.total_cost == pytest.approx(10 * 1600 + 1.74 * 1500)
	assert result.unmet == []
	assert result.strategy == "three_phase"


def test_potash_row_added_for_k_remainder(selection: ProductSelection) -> None:
	result = ThreePhaseHeuristic().allocate(NutrientTriple(N=110, P=70, K=90), selection)
	assert _rows(result) == [
		("NPK_14_14_14", 10.0, ProductCategoryEnum.balanced),
		("UREA_46_0_0", 1.74, ProductCategoryEnum.n_only),
		("MOP_0_0_60", 0.67, ProductCategoryEnum.k_only),
	]


def test_bags_round_up_to_two_decimals(selection: ProductSelection) -> None:
	result = ThreePhaseHeuristic().allocate(NutrientTriple(N=80, P=50, K=50), selection)
	assert _rows(result)[0] == ("NPK_14_14_14", 7.15, ProductCategoryEnum.balanced)
	assert _rows(result)[1] == ("UREA_46_0_0", 1.31, ProductCategoryEnum.n_only)


@pytest.mark.parametrize(
	"target",
	[
		NutrientTriple(N=110, P=70, K=70),
		NutrientTriple(N=80, P=50, K=50),
		NutrientTriple(N=275, P=175, K=175),
		NutrientTriple(N=33.3, P=12.1, K=47.9),
		NutrientTriple(N=0, P=0, K=40),
	],
)
def test_supply_never_falls_below_target(target: NutrientTriple, selection: ProductSelection) -> None:
	result = ThreePhaseHeuristic().allocate(target, selection)
	for nutrient in NutrientEnum:
		assert result.supplied_kg.get(nutrient) >= target.get(nutrient) - 1e-9
	assert result.target_kg == target


def test_missing_complete_fertilizer_raises(dap_urea_mop_doc) -> None:
	selection = select_products(extract_products(dap_urea_mop_doc))
	with pytest.raises(CatalogInsufficientError) as exc_info:
		ThreePhaseHeuristic().allocate(NutrientTriple(N=110, P=70, K=70), selection)

	assert exc_info.value.nutrient == "P"
	assert exc_info.value.category == "balanced"
	assert exc_info.value.to_detail()["error"] == "catalog_insufficient"


def test_np_base_handles_classic_three_product_catalog(dap_urea_mop_doc) -> None:
	selection = select_products(extract_products(dap_urea_mop_doc))
	result = NpBaseHeuristic().allocate(NutrientTriple(N=110, P=70, K=70), selection)

	assert _rows(result) == [
		("DAP_18_46_0", 3.05, ProductCategoryEnum.np_base),
		("UREA_46_0_0", 3.59, ProductCategoryEnum.n_only),
		("MOP_0_0_60", 2.34, ProductCategoryEnum.k_only),
	]
	assert result.strategy == "np_base"


def test_missing_single_nutrient_product_gives_empty_plan(selection: ProductSelection) -> None:
	no_potash = selection.model_copy(update={"k_only": None})
	result = ThreePhaseHeuristic().allocate(NutrientTriple(N=110, P=70, K=90), no_potash)

	assert result.rows == []
	assert result.is_empty
	assert result.unmet == [NutrientEnum.K]
	assert result.total_cost == 0


def test_partial_plan_when_allowed(selection: ProductSelection) -> None:
	no_potash = selection.model_copy(update={"k_only": None})
	result = ThreePhaseHeuristic(allow_partial=True).allocate(NutrientTriple(N=110, P=70, K=90), no_potash)

	assert [code for code, _, _ in _rows(result)] == ["NPK_14_14_14", "UREA_46_0_0"]
	assert result.unmet == [NutrientEnum.K]


def test_unneeded_missing_category_is_ignored(selection: ProductSelection) -> None:
	no_potash = selection.model_copy(update={"k_only": None})
	result = ThreePhaseHeuristic().allocate(NutrientTriple(N=110, P=70, K=70), no_potash)
	assert result.unmet == []
	assert len(result.rows) == 2


def test_zero_phosphorus_needs_no_base_product() -> None:
	selection = select_products(
		extract_products({"items": {"UREA": {"pricePerBag": 1500, "npk": {"N": 46}}}})
	)
	result = ThreePhaseHeuristic().allocate(NutrientTriple(N=46, P=0, K=0), selection)
	assert [(row.product.code, row.bags) for row in result.rows] == [("UREA", 2.0)]


@pytest.mark.parametrize(
	("nutrient", "values"),
	[
		(NutrientEnum.N, range(60, 301, 5)),
		(NutrientEnum.K, range(20, 201, 5)),
		(NutrientEnum.P, range(10, 201, 10)),
	],
)
def test_cost_and_supply_are_monotonic_in_each_target(nutrient, values, selection: ProductSelection) -> None:
	base = {"N": 110.0, "P": 70.0, "K": 70.0}
	strategy = ThreePhaseHeuristic()
	previous_cost = -1.0
	previous_supply = -1.0
	for value in values:
		target = NutrientTriple(**{**base, nutrient.value: float(value)})
		result = strategy.allocate(target, selection)
		assert result.total_cost >= previous_cost
		assert result.supplied_kg.get(nutrient) >= previous_supply - 1e-9
		previous_cost = result.total_cost
		previous_supply = result.supplied_kg.get(nutrient)


def test_strategy_registry() -> None:
	assert available_strategies() == [
		"classic_ammosul",
		"classic_urea",
		"high_efficiency",
		"np_base",
		"three_phase",
	]
	assert isinstance(get_strategy("three_phase"), ThreePhaseHeuristic)
	strategy = get_strategy("np_base", allow_partial=True)
	assert isinstance(strategy, NpBaseHeuristic)
	assert strategy.allow_partial is True
	with pytest.raises(ConfigurationError):
		get_strategy("linear_program")


def test_high_efficiency_mix_uses_cheapest_straight_sources(selection: ProductSelection, products) -> None:
	result = HighEfficiencyMix().allocate(NutrientTriple(N=110, P=70, K=70), selection, products)

	assert _rows(result) == [
		("MOP_0_0_60", 2.34, ProductCategoryEnum.k_only),
		("DAP_18_46_0", 3.05, ProductCategoryEnum.np_base),
		("UREA_46_0_0", 3.59, ProductCategoryEnum.n_only),
	]
	assert result.total_cost == pytest.approx(14853)
	assert result.strategy == "high_efficiency"


def test_high_efficiency_falls_back_to_selected_products(selection: ProductSelection, products) -> None:
	target = NutrientTriple(N=110, P=70, K=70)
	assert HighEfficiencyMix().allocate(target, selection).row_key() == (
		HighEfficiencyMix().allocate(target, selection, products).row_key()
	)


def test_high_efficiency_merges_rows_of_one_product() -> None:
	products = extract_products({"items": {"NPK_14_14_14": {"pricePerBag": 1600, "npk": {"N": 14, "P": 14, "K": 14}}}})
	result = HighEfficiencyMix().allocate(NutrientTriple(N=110, P=70, K=70), select_products(products), products)

	# 10 bags cover K and P; N still needs 40 kg, another 5.72 bags.
	assert _rows(result) == [("NPK_14_14_14", 15.72, ProductCategoryEnum.balanced)]
	assert result.total_cost == pytest.approx(15.72 * 1600)


def test_high_efficiency_without_phosphorus_source_raises() -> None:
	products = extract_products(
		{"items": {"UREA": {"pricePerBag": 1500, "npk": {"N": 46}}, "MOP": {"pricePerBag": 1700, "npk": {"K": 60}}}}
	)
	with pytest.raises(CatalogInsufficientError) as exc_info:
		HighEfficiencyMix().allocate(NutrientTriple(N=110, P=70, K=70), select_products(products), products)
	assert exc_info.value.nutrient == "P"


def test_high_efficiency_missing_potash_is_unmet(dap_urea_mop_doc) -> None:
	del dap_urea_mop_doc["items"]["MOP_0_0_60"]
	products = extract_products(dap_urea_mop_doc)
	result = HighEfficiencyMix().allocate(NutrientTriple(N=110, P=70, K=70), select_products(products), products)
	assert result.is_empty
	assert result.unmet == [NutrientEnum.K]


def test_classic_urea_recipe(selection: ProductSelection, products) -> None:
	result = ClassicUreaRecipe().allocate(NutrientTriple(N=110, P=70, K=70), selection, products)

	assert _rows(result) == [
		("DAP_18_46_0", 3.05, ProductCategoryEnum.np_base),
		("MOP_0_0_60", 2.34, ProductCategoryEnum.k_only),
		("UREA_46_0_0", 3.59, ProductCategoryEnum.n_only),
	]
	assert result.total_cost == pytest.approx(14853)


def test_classic_ammosul_recipe(selection: ProductSelection, products) -> None:
	result = ClassicAmmosulRecipe().allocate(NutrientTriple(N=110, P=70, K=70), selection, products)

	assert [(code, bags) for code, bags, _ in _rows(result)] == [
		("DAP_18_46_0", 3.05),
		("MOP_0_0_60", 2.34),
		("AMMOSUL_21_0_0", 7.87),
	]
	assert result.total_cost == pytest.approx(3.05 * 1800 + 2.34 * 1700 + 7.87 * 900)
	assert result.strategy == "classic_ammosul"


def test_classic_recipe_without_ammosul_uses_cheapest_nitrogen(dap_urea_mop_doc) -> None:
	products = extract_products(dap_urea_mop_doc)
	result = ClassicAmmosulRecipe().allocate(NutrientTriple(N=110, P=70, K=70), select_products(products), products)
	assert [row.product.code for row in result.rows] == ["DAP_18_46_0", "MOP_0_0_60", "UREA_46_0_0"]


def test_classic_recipe_without_dap_raises(catalog_doc) -> None:
	del catalog_doc["items"]["DAP_18_46_0"]
	products = extract_products(catalog_doc)
	with pytest.raises(CatalogInsufficientError) as exc_info:
		ClassicUreaRecipe().allocate(NutrientTriple(N=110, P=70, K=70), select_products(products), products)
	assert (exc_info.value.nutrient, exc_info.value.category) == ("P", "np_base")


@pytest.mark.parametrize(
	"strategy_cls",
	[HighEfficiencyMix, ClassicUreaRecipe, ClassicAmmosulRecipe],
)
@pytest.mark.parametrize(
	"target",
	[
		NutrientTriple(N=110, P=70, K=70),
		NutrientTriple(N=33.3, P=12.1, K=47.9),
		NutrientTriple(N=40, P=0, K=0),
	],
)
def test_alternative_strategies_cover_the_target(strategy_cls, target, selection, products) -> None:
	result = strategy_cls().allocate(target, selection, products)
	for nutrient in NutrientEnum:
		assert result.supplied_kg.get(nutrient) >= target.get(nutrient) - 1e-9


def test_cross_nutrient_penalty_prefers_straight_potash() -> None:
	products = extract_products(
		{
			"items": {
				"MOP_0_0_60": {"pricePerBag": 1700, "npk": {"K": 60}},
				"PK_0_20_20": {"pricePerBag": 500, "npk": {"P": 20, "K": 20}},
			}
		}
	)
	# 500 / 10 kg K = 50 per kg, below MOP's 56.67 until the 30% penalty applies.
	assert pick_best_source(products, NutrientEnum.K).code == "PK_0_20_20"
	assert pick_best_source(products, NutrientEnum.K, avoid_cross=True).code == "MOP_0_0_60"
	assert pick_best_source(products, NutrientEnum.N) is None


def test_find_by_hint_matches_code_or_label_case_insensitively() -> None:
	products = extract_products(
		{
			"items": {
				"X1": {"label": "Prilled urea", "pricePerBag": 1500, "npk": {"N": 46}},
				"X2": {"label": "Ammonium sulfate", "pricePerBag": 900, "npk": {"N": 21}},
			}
		}
	)
	assert find_by_hint(products, ("UREA_46_0_0", "UREA")).code == "X1"
	assert find_by_hint(products, ("ammonium",)).code == "X2"
	assert find_by_hint(products, ("DAP",)) is None


def test_row_key_ignores_row_order(selection: ProductSelection, products) -> None:
	target = NutrientTriple(N=110, P=70, K=70)
	mix = HighEfficiencyMix().allocate(target, selection, products)
	np_base = NpBaseHeuristic().allocate(target, selection, products)
	assert [row.product.code for row in mix.rows] != [row.product.code for row in np_base.rows]
	assert mix.row_key() == np_base.row_key()
