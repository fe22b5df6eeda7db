"""Pydantic schemas for fertilizer products and the price catalog."""

from __future__ import annotations

import math

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fertisense.models.enums import NutrientEnum, ProductCategoryEnum


class NutrientTriple(BaseModel):
	"""N/P/K values; kilograms or percentages depending on context."""

	model_config = ConfigDict(frozen=True)

	N: float = 0.0
	P: float = 0.0
	K: float = 0.0

	def get(self, nutrient: NutrientEnum) -> float:
		return float(getattr(self, nutrient.value))

	def scaled(self, factor: float) -> NutrientTriple:
		return NutrientTriple(N=self.N * factor, P=self.P * factor, K=self.K * factor)


class Product(BaseModel):
	model_config = ConfigDict(frozen=True)

	code: str = Field(min_length=1)
	label: str
	price_per_bag: float = Field(ge=0)
	bag_weight_kg: float = Field(default=50.0, gt=0)
	nutrient_percent: NutrientTriple = NutrientTriple()
	active: bool = True

	@field_validator("nutrient_percent")
	@classmethod
	def _percent_range(cls, value: NutrientTriple) -> NutrientTriple:
		for nutrient in NutrientEnum:
			if not 0 <= value.get(nutrient) <= 100:
				raise ValueError(f"{nutrient.value} percent must be within 0-100")
		return value

	def kg_per_bag(self, nutrient: NutrientEnum) -> float:
		return self.bag_weight_kg * self.nutrient_percent.get(nutrient) / 100.0

	def cost_per_kg(self, nutrient: NutrientEnum) -> float:
		kg = self.kg_per_bag(nutrient)
		if kg <= 0:
			return math.inf
		return self.price_per_bag / kg

	@property
	def ratio_text(self) -> str:
		pct = self.nutrient_percent
		return f"{pct.N:g}-{pct.P:g}-{pct.K:g}"


class ProductSelection(BaseModel):
	"""Cheapest product per category; a category may be absent."""

	model_config = ConfigDict(frozen=True)

	balanced: Product | None = None
	n_only: Product | None = None
	k_only: Product | None = None
	np_base: Product | None = None

	def get(self, category: ProductCategoryEnum) -> Product | None:
		return getattr(self, category.value)

	def chosen(self) -> list[Product]:
		"""The selected products, one per category present."""
		return [product for product in (self.balanced, self.np_base, self.n_only, self.k_only) if product]


class CatalogResponse(BaseModel):
	currency: str
	source: str
	products: list[Product]
	selection: ProductSelection
