"""Rounding and number formatting shared by the allocation and schedule code."""

from __future__ import annotations

import math
from typing import Any


def round_half_up(value: float) -> int:
	"""Round to the nearest integer with .5 going up (not banker's rounding)."""
	return int(math.floor(value + 0.5))


def ceil2(value: float) -> float:
	"""Round up to 2 decimals so supplied quantities never fall below a target."""
	# round() first strips float noise such as 10.000000000000002 → 1001 cents
	return math.ceil(round(value * 100, 6)) / 100


def round2(value: float) -> float:
	return round(value + 0.0, 2)


def format_amount(value: float) -> str:
	"""2-decimal text with trailing zeros stripped: 10.0 → "10", 1.5 → "1.5"."""
	text = format(round2(value), "f").rstrip("0").rstrip(".")
	return text or "0"


def as_finite_number(value: Any) -> float | None:
	"""Coerce ints, floats and numeric strings; anything else becomes ``None``."""
	if isinstance(value, bool):
		return None
	if isinstance(value, (int, float)):
		number = float(value)
	elif isinstance(value, str):
		try:
			number = float(value.strip())
		except ValueError:
			return None
	else:
		return None
	if not math.isfinite(number):
		return None
	return number
