"""Pydantic schemas for nutrient targets and allocation results."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from fertisense.models.enums import NutrientEnum, ProductCategoryEnum
from fertisense.schemas.catalog import NutrientTriple, Product


class TargetRow(BaseModel):
	"""Per-hectare N/P/K requirement in kilograms."""

	model_config = ConfigDict(frozen=True)

	n_kg: float = Field(ge=0)
	p_kg: float = Field(ge=0)
	k_kg: float = Field(ge=0)

	def for_area(self, area_ha: float) -> NutrientTriple:
		return NutrientTriple(N=self.n_kg * area_ha, P=self.p_kg * area_ha, K=self.k_kg * area_ha)


class AllocationRow(BaseModel):
	model_config = ConfigDict(frozen=True)

	product: Product
	bags: float = Field(gt=0)
	category: ProductCategoryEnum


class AllocationResult(BaseModel):
	rows: list[AllocationRow] = Field(default_factory=list)
	supplied_kg: NutrientTriple = NutrientTriple()
	target_kg: NutrientTriple = NutrientTriple()
	total_cost: float = 0.0
	unmet: list[NutrientEnum] = Field(default_factory=list)
	strategy: str

	@property
	def is_empty(self) -> bool:
		return not self.rows

	def row_key(self) -> tuple[tuple[str, float], ...]:
		"""Order-independent identity of the rows, for de-duplicating plans."""
		return tuple(sorted((row.product.code, row.bags) for row in self.rows))
