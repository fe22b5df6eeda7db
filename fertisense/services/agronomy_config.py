"""Agronomy configuration: sensor breakpoints, rice target table and stage policy.

The bundled ``fertisense/data/agronomy.json`` carries the Department of
Agriculture sensor profile and the IRRI lab profile; a deployment can point
``AGRONOMY_CONFIG_PATH`` at its own file with the same shape.
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from fertisense.config import get_settings
from fertisense.errors import ConfigurationError
from fertisense.models.enums import (
	NutrientEnum,
	ProductCategoryEnum,
	RatingEnum,
	RiceVarietyEnum,
	SeasonEnum,
	SoilClassEnum,
	StageEnum,
)
from fertisense.schemas.schedule import DaBreakdown

_logger = logging.getLogger("fertisense.agronomy")

DEFAULT_AGRONOMY_PATH = Path(__file__).resolve().parents[1] / "data" / "agronomy.json"
_FRACTION_TOLERANCE = 1e-6


class Breakpoints(BaseModel):
	"""Inclusive upper bounds in ppm: ``x <= low`` is Low, ``x <= mid`` is Medium."""

	model_config = ConfigDict(frozen=True)

	low: float = Field(gt=0)
	mid: float = Field(gt=0)

	@model_validator(mode="after")
	def _ordered(self) -> Breakpoints:
		if self.low > self.mid:
			raise ValueError("low breakpoint must not exceed mid breakpoint")
		return self


BreakpointTable = dict[NutrientEnum, Breakpoints]


class TargetBand(BaseModel):
	"""kg/ha of one nutrient for each soil rating."""

	model_config = ConfigDict(frozen=True)

	low: float = Field(ge=0)
	medium: float = Field(ge=0)
	high: float = Field(ge=0)

	def for_rating(self, rating: RatingEnum) -> float:
		if rating is RatingEnum.not_available:
			raise ConfigurationError("no target for rating n/a")
		return getattr(self, rating.value)


TargetTable = dict[RiceVarietyEnum, dict[SoilClassEnum, dict[SeasonEnum, dict[NutrientEnum, TargetBand]]]]
StagePolicy = dict[ProductCategoryEnum, dict[StageEnum, float]]

_RATING_LETTERS = {RatingEnum.low: "L", RatingEnum.medium: "M", RatingEnum.high: "H"}


def rating_code(ratings: dict[NutrientEnum, RatingEnum]) -> str | None:
	"""Three-letter N/P/K key such as ``"LMH"``; ``None`` when a rating is unusable."""
	letters = [_RATING_LETTERS.get(ratings.get(nutrient)) for nutrient in NutrientEnum]
	if None in letters:
		return None
	return "".join(letters)


def ratings_from_code(code: str) -> dict[NutrientEnum, RatingEnum] | None:
	"""Inverse of :func:`rating_code`; ``None`` for anything but three L/M/H letters."""
	by_letter = {letter: rating for rating, letter in _RATING_LETTERS.items()}
	letters = code.strip().upper()
	if len(letters) != 3 or any(letter not in by_letter for letter in letters):
		return None
	return {nutrient: by_letter[letter] for nutrient, letter in zip(NutrientEnum, letters)}


class AgronomyConfig(BaseModel):
	threshold_profiles: dict[str, BreakpointTable]
	rice_targets: TargetTable
	stage_policy: StagePolicy
	# DA schedules per hectare keyed by rating code; optional in custom files.
	da_schedules: dict[str, DaBreakdown] = Field(default_factory=dict)

	@model_validator(mode="after")
	def _complete(self) -> AgronomyConfig:
		if not self.threshold_profiles:
			raise ValueError("at least one threshold profile is required")

		for variety in RiceVarietyEnum:
			for soil_class in SoilClassEnum:
				for season in SeasonEnum:
					cell = self.rice_targets.get(variety, {}).get(soil_class, {}).get(season)
					if cell is None:
						raise ValueError(f"rice target missing for {variety}/{soil_class}/{season}")
					missing = [n.value for n in NutrientEnum if n not in cell]
					if missing:
						raise ValueError(
							f"rice target {variety}/{soil_class}/{season} lacks {', '.join(missing)}"
						)

		for category in ProductCategoryEnum:
			fractions = self.stage_policy.get(category)
			if not fractions:
				raise ValueError(f"stage policy missing for category {category}")
			if any(value < 0 for value in fractions.values()):
				raise ValueError(f"stage policy for {category} has a negative fraction")
			if abs(sum(fractions.values()) - 1.0) > _FRACTION_TOLERANCE:
				raise ValueError(f"stage policy fractions for {category} must sum to 1")

		for key in self.da_schedules:
			if len(key) != 3 or set(key) - set(_RATING_LETTERS.values()):
				raise ValueError(f"DA schedule key {key!r} is not an N/P/K rating code like LMH")
		return self

	def breakpoints(self, profile: str) -> BreakpointTable:
		table = self.threshold_profiles.get(profile)
		if table is None:
			raise ConfigurationError(f"unknown threshold profile: {profile}")
		return table


def load_agronomy_config(path: str | Path | None = None) -> AgronomyConfig:
	"""Read and validate an agronomy file; any defect raises ``ConfigurationError``."""
	source = Path(path) if path else DEFAULT_AGRONOMY_PATH
	try:
		raw = json.loads(source.read_text(encoding="utf-8"))
	except (OSError, json.JSONDecodeError) as exc:
		raise ConfigurationError(f"cannot read agronomy config {source}: {exc}") from exc

	try:
		config = AgronomyConfig.model_validate(raw)
	except ValidationError as exc:
		raise ConfigurationError(f"invalid agronomy config {source}: {exc}") from exc

	_logger.info(
		"agronomy_config_loaded",
		extra={"path": str(source), "profiles": sorted(config.threshold_profiles)},
	)
	return config


@lru_cache
def get_agronomy_config() -> AgronomyConfig:
	"""Process-wide agronomy config for the configured path (cached after first call)."""
	return load_agronomy_config(get_settings().agronomy_config_path or None)
