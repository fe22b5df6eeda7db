"""Rice nutrient target lookup by variety, soil class, season and ratings."""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from typing import Any, TypeVar

from fertisense.errors import ConfigurationError
from fertisense.models.enums import (
	NutrientEnum,
	RatingEnum,
	RiceVarietyEnum,
	SeasonEnum,
	SoilClassEnum,
)
from fertisense.schemas.allocation import TargetRow
from fertisense.services.agronomy_config import AgronomyConfig, get_agronomy_config

_E = TypeVar("_E", bound=StrEnum)


def _axis(enum_type: type[_E], value: Any, axis: str) -> _E:
	try:
		return enum_type(value)
	except ValueError as exc:
		raise ConfigurationError(f"{axis} {value!r} is outside the target table") from exc


def lookup(
	variety: RiceVarietyEnum | str,
	soil_class: SoilClassEnum | str,
	season: SeasonEnum | str,
	ratings: Mapping[NutrientEnum, RatingEnum | str],
	config: AgronomyConfig | None = None,
) -> TargetRow:
	"""Per-hectare kg target for the given crop context and soil ratings."""
	config = config or get_agronomy_config()
	cell = config.rice_targets[_axis(RiceVarietyEnum, variety, "variety")][
		_axis(SoilClassEnum, soil_class, "soil class")
	][_axis(SeasonEnum, season, "season")]

	kg: dict[NutrientEnum, float] = {}
	for nutrient in NutrientEnum:
		if nutrient not in ratings:
			raise ConfigurationError(f"no rating supplied for {nutrient.value}")
		rating = _axis(RatingEnum, ratings[nutrient], f"{nutrient.value} rating")
		kg[nutrient] = cell[nutrient].for_rating(rating)

	return TargetRow(
		n_kg=kg[NutrientEnum.N],
		p_kg=kg[NutrientEnum.P],
		k_kg=kg[NutrientEnum.K],
	)
