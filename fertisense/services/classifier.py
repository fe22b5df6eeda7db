"""Soil nutrient classifier: ppm readings to Low / Medium / High ratings."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from fertisense.models.enums import NutrientEnum, RatingEnum
from fertisense.services.agronomy_config import Breakpoints
from fertisense.services.numbers import as_finite_number, round_half_up

_logger = logging.getLogger("fertisense.classifier")


def classify(
	nutrient: NutrientEnum,
	value: Any,
	breakpoints: Mapping[NutrientEnum, Breakpoints],
) -> RatingEnum:
	"""Rate one reading against inclusive breakpoints.

	Readings that are not finite positive numbers rate as ``n/a``. A nutrient
	with no breakpoint entry rates as Medium.
	"""
	number = as_finite_number(value)
	if number is None or number <= 0:
		return RatingEnum.not_available

	bounds = breakpoints.get(nutrient)
	if bounds is None:
		_logger.warning(
			"classifier_breakpoints_missing",
			extra={"nutrient": nutrient.value, "fallback": RatingEnum.medium.value},
		)
		return RatingEnum.medium

	ppm = round_half_up(number)
	if ppm <= bounds.low:
		return RatingEnum.low
	if ppm <= bounds.mid:
		return RatingEnum.medium
	return RatingEnum.high


def classify_reading(
	reading: Any,
	breakpoints: Mapping[NutrientEnum, Breakpoints],
) -> dict[NutrientEnum, RatingEnum]:
	"""Rate all three nutrients of a reading (attribute or mapping access)."""
	ratings: dict[NutrientEnum, RatingEnum] = {}
	for nutrient in NutrientEnum:
		key = nutrient.value.lower()
		if isinstance(reading, Mapping):
			value = reading.get(key, reading.get(nutrient.value))
		else:
			value = getattr(reading, key, None)
		ratings[nutrient] = classify(nutrient, value, breakpoints)
	return ratings
