"""Price catalog normalization, product selection and product code resolution."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import ValidationError

from fertisense.models.enums import NutrientEnum, ProductCategoryEnum
from fertisense.schemas.catalog import NutrientTriple, Product, ProductSelection
from fertisense.services.numbers import as_finite_number

_logger = logging.getLogger("fertisense.catalog")

DEFAULT_BAG_KG = 50.0

# Grade names used by older plans and the DA screens, keyed to catalog codes.
LEGACY_CODE_KEYS: dict[str, str] = {
	"46-0-0": "UREA_46_0_0",
	"18-46-0": "DAP_18_46_0",
	"16-20-0": "NPK_16_20_0",
	"0-0-60": "MOP_0_0_60",
	"14-14-14": "NPK_14_14_14",
	"21-0-0": "AMMOSUL_21_0_0",
}

_RATIO = re.compile(r"\b(\d{1,2})-(\d{1,2})-(\d{1,2})\b")
# Catalog-style codes that carry their grade, e.g. UREA_46_0_0.
_GRADE_CODE = re.compile(r"^[A-Z][A-Z0-9]*(?:_[A-Z0-9]+)*_\d{1,2}_\d{1,2}_\d{1,2}$")

# Nutrient that a category's cost ranking is based on.
_RANK_NUTRIENT: dict[ProductCategoryEnum, NutrientEnum] = {
	ProductCategoryEnum.balanced: NutrientEnum.P,
	ProductCategoryEnum.n_only: NutrientEnum.N,
	ProductCategoryEnum.k_only: NutrientEnum.K,
	ProductCategoryEnum.np_base: NutrientEnum.P,
}


def _skip(code: Any, reason: str) -> None:
	_logger.warning("catalog_item_skipped", extra={"code": str(code), "reason": reason})


def _percent(npk: Any, nutrient: NutrientEnum) -> float:
	if not isinstance(npk, Mapping):
		return 0.0
	value = as_finite_number(npk.get(nutrient.value, npk.get(nutrient.value.lower())))
	return value if value is not None else 0.0


def extract_products(doc: Any) -> list[Product]:
	"""Normalize a raw ``{currency, items: {code: {...}}}`` document into products.

	The ``active`` flag is carried through, not filtered.
	"""
	if not isinstance(doc, Mapping):
		return []
	items = doc.get("items")
	if not isinstance(items, Mapping):
		return []

	products: list[Product] = []
	for code, item in items.items():
		if not isinstance(item, Mapping):
			_skip(code, "item is not an object")
			continue

		raw_price = item.get("pricePerBag", 0)
		price = as_finite_number(raw_price if raw_price is not None else 0)
		if price is None or price < 0:
			_skip(code, "invalid price per bag")
			continue

		raw_bag = item.get("bagKg")
		bag_kg = DEFAULT_BAG_KG if raw_bag is None else as_finite_number(raw_bag)
		if bag_kg is None or bag_kg <= 0:
			_skip(code, "invalid bag weight")
			continue

		npk = item.get("npk")
		label = item.get("label")
		try:
			product = Product(
				code=str(code),
				label=str(label) if label else str(code),
				price_per_bag=price,
				bag_weight_kg=bag_kg,
				nutrient_percent=NutrientTriple(
					N=_percent(npk, NutrientEnum.N),
					P=_percent(npk, NutrientEnum.P),
					K=_percent(npk, NutrientEnum.K),
				),
				active=item.get("active", True) is not False,
			)
		except ValidationError as exc:
			_skip(code, exc.errors()[0].get("msg", "invalid item"))
			continue
		products.append(product)
	return products


def extract_currency(doc: Any, default: str) -> str:
	if isinstance(doc, Mapping):
		currency = doc.get("currency")
		if isinstance(currency, str) and currency.strip():
			return currency.strip()
	return default


def categorize(product: Product) -> ProductCategoryEnum | None:
	pct = product.nutrient_percent
	has_n, has_p, has_k = pct.N > 0, pct.P > 0, pct.K > 0
	if has_n and has_p and has_k:
		return ProductCategoryEnum.balanced
	if has_n and not has_p and not has_k:
		return ProductCategoryEnum.n_only
	if has_k and not has_n and not has_p:
		return ProductCategoryEnum.k_only
	if has_n and has_p and not has_k:
		return ProductCategoryEnum.np_base
	return None


def select_products(products: Iterable[Product]) -> ProductSelection:
	"""Pick the cheapest product per category by cost per kg of its ranking nutrient.

	Ties go to the lexically smaller code.
	"""
	best: dict[ProductCategoryEnum, tuple[float, str, Product]] = {}
	for product in products:
		category = categorize(product)
		if category is None:
			continue
		cost = product.cost_per_kg(_RANK_NUTRIENT[category])
		if cost == float("inf"):
			continue
		key = (cost, product.code, product)
		current = best.get(category)
		if current is None or key[:2] < current[:2]:
			best[category] = key

	return ProductSelection(**{category.value: entry[2] for category, entry in best.items()})


def _ratio_key(text: str) -> str | None:
	match = _RATIO.search(text)
	if match is None:
		return None
	return "-".join(str(int(part)) for part in match.groups())


class ProductResolver:
	"""Maps free-form plan tokens (codes, labels, NPK grades) to product codes."""

	def __init__(self, products: Iterable[Product] | None = None):
		self._by_code: dict[str, str] = {}
		self._by_label: dict[str, str] = {}
		self._by_ratio: dict[str, str] = {}
		for product in products or ():
			self._by_code.setdefault(product.code.upper(), product.code)
			self._by_label.setdefault(product.label.strip().lower(), product.code)
			self._by_ratio.setdefault(product.ratio_text, product.code)

	def resolve(self, token: str) -> str:
		text = token.strip()
		if ":" in text:
			text = text.rsplit(":", 1)[1].strip() or text
		text = text.strip(" -*•")
		if not text:
			return token.strip()

		code = self._by_code.get(text.upper()) or self._by_label.get(text.lower())
		if code is not None:
			return code

		ratio = _ratio_key(text)
		if ratio is not None:
			return self._by_ratio.get(ratio) or LEGACY_CODE_KEYS.get(ratio, ratio)
		return text

	def knows(self, token: str) -> bool:
		"""Whether ``token`` names a catalog product, a grade-style code or an NPK grade."""
		text = token.strip().strip(" -*•")
		if not text:
			return False
		return (
			text.upper() in self._by_code
			or text.lower() in self._by_label
			or _GRADE_CODE.match(text.upper()) is not None
			or _ratio_key(text) is not None
		)
