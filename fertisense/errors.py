"""Exception taxonomy for the recommendation engine.

Each error also derives from the builtin the HTTP layer already maps
(``ValueError`` → 400, ``LookupError`` → 404) so generic handlers keep
working; routes map the specific classes first.
"""

from __future__ import annotations

from typing import Any


class FertisenseError(Exception):
	"""Base class for engine errors."""


class InvalidInputError(FertisenseError, ValueError):
	"""Reading, area or crop parameters that cannot produce a recommendation."""


class ConfigurationError(FertisenseError, RuntimeError):
	"""Agronomy configuration is incomplete, or an engine lookup went out of range."""


class CatalogInsufficientError(FertisenseError, LookupError):
	"""The price catalog lacks a product category the plan actually needs."""

	def __init__(self, nutrient: str, category: str, message: str | None = None) -> None:
		self.nutrient = nutrient
		self.category = category
		super().__init__(message or f"no suitable {category} product in catalog to supply {nutrient}")

	def to_detail(self) -> dict[str, Any]:
		return {
			"error": "catalog_insufficient",
			"nutrient": self.nutrient,
			"category": self.category,
			"message": str(self),
		}


class UnbuildableScheduleError(FertisenseError, ValueError):
	"""A schedule with no product entries in any stage."""


class PriceCatalogError(FertisenseError, RuntimeError):
	"""Raised when the upstream price catalog cannot be fetched or decoded."""
