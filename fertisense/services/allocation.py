"""Greedy bag allocation that covers an N/P/K target with catalog products.

The default three-phase heuristic runs in a fixed order: a base product sized
to the phosphorus target, then a nitrogen-only product for the N still
missing, then a potassium-only product for the K still missing. The other
strategies reproduce the alternative plans the field app offers: a mix with
no base product, and the classic DAP + MOP recipes. Bags are rounded up to 2
decimals, so the supplied amounts never fall below the target.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterable, Sequence
from typing import Protocol

from fertisense.errors import CatalogInsufficientError, ConfigurationError
from fertisense.models.enums import NutrientEnum, ProductCategoryEnum
from fertisense.schemas.allocation import AllocationResult, AllocationRow
from fertisense.schemas.catalog import NutrientTriple, Product, ProductSelection
from fertisense.services.catalog import categorize
from fertisense.services.numbers import ceil2, round2

_logger = logging.getLogger("fertisense.allocation")

# Score multiplier per extra nutrient a source carries when cross supply is avoided.
CROSS_NUTRIENT_PENALTY = 0.3

CLASSIC_P_HINTS = ("DAP_18_46_0", "18-46-0", "DAP")
CLASSIC_K_HINTS = ("MOP_0_0_60", "0-0-60", "MOP")
UREA_HINTS = ("UREA_46_0_0", "46-0-0", "UREA")
AMMOSUL_HINTS = ("AMMOSUL_21_0_0", "21-0-0", "AMMOSUL")

# Category used for stage placement when a product fits none of the four.
_ROLE_CATEGORY: dict[NutrientEnum, ProductCategoryEnum] = {
	NutrientEnum.N: ProductCategoryEnum.n_only,
	NutrientEnum.P: ProductCategoryEnum.np_base,
	NutrientEnum.K: ProductCategoryEnum.k_only,
}


class AllocationStrategy(Protocol):
	name: str
	allow_partial: bool

	def allocate(
		self,
		target_kg: NutrientTriple,
		selection: ProductSelection,
		products: Sequence[Product] = (),
	) -> AllocationResult:
		...


def pick_best_source(
	products: Iterable[Product],
	nutrient: NutrientEnum,
	avoid_cross: bool = False,
) -> Product | None:
	"""Cheapest product per kg of ``nutrient``; ties go to the smaller code."""
	best: tuple[float, str, Product] | None = None
	for product in products:
		score = product.cost_per_kg(nutrient)
		if score == math.inf:
			continue
		if avoid_cross:
			extra = sum(
				1
				for other in NutrientEnum
				if other is not nutrient and product.nutrient_percent.get(other) > 0
			)
			score *= 1 + CROSS_NUTRIENT_PENALTY * extra
		if best is None or (score, product.code) < best[:2]:
			best = (score, product.code, product)
	return best[2] if best else None


def find_by_hint(products: Iterable[Product], hints: Iterable[str]) -> Product | None:
	"""First product whose code or label contains one of ``hints`` (case-insensitive)."""
	wanted = [hint.upper() for hint in hints]
	for product in products:
		code, label = product.code.upper(), product.label.upper()
		if any(hint in code or hint in label for hint in wanted):
			return product
	return None


def _role_category(product: Product, nutrient: NutrientEnum) -> ProductCategoryEnum:
	return categorize(product) or _ROLE_CATEGORY[nutrient]


class _PlanLedger:
	"""Rows merged by product code plus the kilograms they supply."""

	def __init__(self, target_kg: NutrientTriple):
		self.target_kg = target_kg
		self.rows: dict[str, AllocationRow] = {}
		self.supplied = {nutrient: 0.0 for nutrient in NutrientEnum}

	def add(self, product: Product, bags: float, category: ProductCategoryEnum) -> None:
		if bags <= 0:
			return
		current = self.rows.get(product.code)
		if current is not None:
			category = current.category
			bags_total = round2(current.bags + bags)
		else:
			bags_total = bags
		self.rows[product.code] = AllocationRow(product=product, bags=bags_total, category=category)
		for nutrient in NutrientEnum:
			self.supplied[nutrient] += bags * product.kg_per_bag(nutrient)

	def remaining(self, nutrient: NutrientEnum) -> float:
		return max(0.0, self.target_kg.get(nutrient) - self.supplied[nutrient])

	def top_up(self, product: Product, nutrient: NutrientEnum, category: ProductCategoryEnum) -> None:
		remaining = self.remaining(nutrient)
		if remaining > 0:
			self.add(product, ceil2(remaining / product.kg_per_bag(nutrient)), category)

	def finish(self, strategy: AllocationStrategy, unmet: list[NutrientEnum]) -> AllocationResult:
		if unmet and not strategy.allow_partial:
			_logger.warning(
				"allocation_unmet",
				extra={"strategy": strategy.name, "unmet": [n.value for n in unmet]},
			)
			return AllocationResult(target_kg=self.target_kg, unmet=unmet, strategy=strategy.name)

		rows = list(self.rows.values())
		total_cost = sum(row.bags * row.product.price_per_bag for row in rows)
		return AllocationResult(
			rows=rows,
			supplied_kg=NutrientTriple(
				N=self.supplied[NutrientEnum.N],
				P=self.supplied[NutrientEnum.P],
				K=self.supplied[NutrientEnum.K],
			),
			target_kg=self.target_kg,
			total_cost=round2(total_cost),
			unmet=unmet,
			strategy=strategy.name,
		)


class ThreePhaseHeuristic:
	"""Complete fertilizer for P, then urea-type N, then potash-type K."""

	name = "three_phase"
	base_category = ProductCategoryEnum.balanced

	def __init__(self, allow_partial: bool = False):
		self.allow_partial = allow_partial

	def allocate(
		self,
		target_kg: NutrientTriple,
		selection: ProductSelection,
		products: Sequence[Product] = (),
	) -> AllocationResult:
		ledger = _PlanLedger(target_kg)
		unmet: list[NutrientEnum] = []

		# Phase 1: base product sized to phosphorus.
		if target_kg.P > 0:
			base = selection.get(self.base_category)
			if base is None:
				raise CatalogInsufficientError(NutrientEnum.P.value, self.base_category.value)
			ledger.add(base, ceil2(target_kg.P / base.kg_per_bag(NutrientEnum.P)), self.base_category)

		# Phases 2 and 3: single-nutrient top-ups.
		for nutrient, category in (
			(NutrientEnum.N, ProductCategoryEnum.n_only),
			(NutrientEnum.K, ProductCategoryEnum.k_only),
		):
			if ledger.remaining(nutrient) <= 0:
				continue
			product = selection.get(category)
			if product is None:
				unmet.append(nutrient)
				continue
			ledger.top_up(product, nutrient, category)

		return ledger.finish(self, unmet)


class NpBaseHeuristic(ThreePhaseHeuristic):
	"""Same phases with an N+P product (DAP-type) as the phosphorus base."""

	name = "np_base"
	base_category = ProductCategoryEnum.np_base


class HighEfficiencyMix:
	"""No base product: the cheapest source per kg of K, then of P, then of N.

	K and P sources pay a score penalty for each other nutrient they carry, so
	straight fertilizers win unless a blend is clearly cheaper. Nitrogen is
	ranked on price alone.
	"""

	name = "high_efficiency"

	def __init__(self, allow_partial: bool = False):
		self.allow_partial = allow_partial

	def allocate(
		self,
		target_kg: NutrientTriple,
		selection: ProductSelection,
		products: Sequence[Product] = (),
	) -> AllocationResult:
		pool = list(products) or selection.chosen()
		ledger = _PlanLedger(target_kg)
		unmet: list[NutrientEnum] = []

		for nutrient, avoid_cross in (
			(NutrientEnum.K, True),
			(NutrientEnum.P, True),
			(NutrientEnum.N, False),
		):
			if ledger.remaining(nutrient) <= 0:
				continue
			product = pick_best_source(pool, nutrient, avoid_cross=avoid_cross)
			if product is None:
				if nutrient is NutrientEnum.P:
					raise CatalogInsufficientError(nutrient.value, _ROLE_CATEGORY[nutrient].value)
				unmet.append(nutrient)
				continue
			ledger.top_up(product, nutrient, _role_category(product, nutrient))

		return ledger.finish(self, unmet)


class ClassicRecipe:
	"""DAP sized to P, MOP for the K remainder, a named N source for the rest.

	Products are found by code or label hints. When the K or N product is
	missing the cheapest source of that nutrient stands in.
	"""

	name = "classic"
	n_hints: tuple[str, ...] = UREA_HINTS

	def __init__(self, allow_partial: bool = False):
		self.allow_partial = allow_partial

	def allocate(
		self,
		target_kg: NutrientTriple,
		selection: ProductSelection,
		products: Sequence[Product] = (),
	) -> AllocationResult:
		pool = list(products) or selection.chosen()
		ledger = _PlanLedger(target_kg)
		unmet: list[NutrientEnum] = []

		if target_kg.P > 0:
			base = find_by_hint(pool, CLASSIC_P_HINTS)
			if base is None or base.kg_per_bag(NutrientEnum.P) <= 0:
				raise CatalogInsufficientError(NutrientEnum.P.value, ProductCategoryEnum.np_base.value)
			ledger.top_up(base, NutrientEnum.P, _role_category(base, NutrientEnum.P))

		for nutrient, hints, avoid_cross in (
			(NutrientEnum.K, CLASSIC_K_HINTS, True),
			(NutrientEnum.N, self.n_hints, False),
		):
			if ledger.remaining(nutrient) <= 0:
				continue
			product = find_by_hint(pool, hints)
			if product is None or product.kg_per_bag(nutrient) <= 0:
				product = pick_best_source(pool, nutrient, avoid_cross=avoid_cross)
			if product is None:
				unmet.append(nutrient)
				continue
			ledger.top_up(product, nutrient, _role_category(product, nutrient))

		return ledger.finish(self, unmet)


class ClassicUreaRecipe(ClassicRecipe):
	name = "classic_urea"
	n_hints = UREA_HINTS


class ClassicAmmosulRecipe(ClassicRecipe):
	name = "classic_ammosul"
	n_hints = AMMOSUL_HINTS


_STRATEGIES: dict[str, Callable[..., AllocationStrategy]] = {
	ThreePhaseHeuristic.name: ThreePhaseHeuristic,
	NpBaseHeuristic.name: NpBaseHeuristic,
	HighEfficiencyMix.name: HighEfficiencyMix,
	ClassicUreaRecipe.name: ClassicUreaRecipe,
	ClassicAmmosulRecipe.name: ClassicAmmosulRecipe,
}


def available_strategies() -> list[str]:
	return sorted(_STRATEGIES)


def get_strategy(name: str, allow_partial: bool = False) -> AllocationStrategy:
	try:
		strategy_cls = _STRATEGIES[name]
	except KeyError as exc:
		raise ConfigurationError(f"unknown allocation strategy: {name}") from exc
	return strategy_cls(allow_partial=allow_partial)
