"""Recover staged schedules from stored plans of any historical shape.

Stored plans come as free-text detail lines, stage-keyed objects, row lists
with a stage column, or bare ``code -> bags`` maps. Input is first classified
into one of those shapes, each shape has its own reader, and all readers feed
the same normalization into :class:`ScheduleModel`. Nothing here raises:
unrecognized input yields ``None``.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from fertisense.errors import UnbuildableScheduleError
from fertisense.models.enums import StageEnum
from fertisense.schemas.catalog import Product
from fertisense.schemas.schedule import ScheduleModel
from fertisense.services.catalog import ProductResolver
from fertisense.services.numbers import as_finite_number, format_amount

_logger = logging.getLogger("fertisense.schedule_parser")

ORGANIC_CODE = "ORGANIC"

_NUM = r"\d+(?:\.\d+)?"
_BAG = r"(?:bag\(s\)|bags?|sacks?|sako)"

_LEADING_BULLET = re.compile(r"^[\s\-*•·]+(?=\S)")
_ORGANIC_LINE = re.compile(rf"\borganic\b[^\d|]*?({_NUM})\s*{_BAG}", re.I)
_PROJECTION_LINE = re.compile(rf"^({_NUM})\s*{_BAG}\s*-\s*([^|]+)", re.I)
# "CODE: N bags", possibly after a stage prefix such as "After 30 days: ".
_CODE_COLON_LINE = re.compile(rf"(?:^|:)\s*([^:]+?)\s*:\s*({_NUM})\s*{_BAG}", re.I)
_CODE_DASH_LINE = re.compile(rf"^(.+?)\s+-\s+({_NUM})\s*{_BAG}", re.I)
_NPK_RATIO = re.compile(r"\b\d{1,2}-\d{1,2}-\d{1,2}\b")
_BAG_COUNT = re.compile(rf"({_NUM})\s*{_BAG}", re.I)
_NUMBER = re.compile(_NUM)

# Keywords that file a data line under a stage. Bare "30"/"60" are excluded
# here since prices and grades (1300, 0-0-60) would match them.
_INLINE_STAGE_PATTERNS: tuple[tuple[StageEnum, re.Pattern[str]], ...] = (
	(StageEnum.organic, re.compile(r"\borganic\b", re.I)),
	(StageEnum.top_dress, re.compile(r"top\s*-?\s*dress|\bdbh\b|\b60\s*days?\b", re.I)),
	(
		StageEnum.after_30_dat,
		re.compile(r"\bika\s*30\b|\bafter\s*30|\b30\s*(?:dat|days?|araw)\b", re.I),
	),
	(StageEnum.basal, re.compile(r"\bbasal\b|\bsa\s+pagtan[io]m\b|\bat\s+planting\b", re.I)),
)

# Header lines carry no amount, so looser keywords are safe there.
_HEADER_STAGE_PATTERNS: tuple[tuple[StageEnum, re.Pattern[str]], ...] = (
	(StageEnum.organic, re.compile(r"\borganic\b", re.I)),
	(StageEnum.top_dress, re.compile(r"top\s*-?\s*dress|\bdbh\b|\b60\b", re.I)),
	(StageEnum.after_30_dat, re.compile(r"\bafter\s*30|\bika\s*30\b|\b30\b", re.I)),
	(StageEnum.basal, re.compile(r"\bbasal\b|\bpagtan[io]m\b|\bplanting\b", re.I)),
)

_STAGE_KEY_ALIASES: dict[str, StageEnum] = {
	"organic": StageEnum.organic,
	"organicfertilizer": StageEnum.organic,
	"basal": StageEnum.basal,
	"basalapplication": StageEnum.basal,
	"sapagtanim": StageEnum.basal,
	"sapagtanom": StageEnum.basal,
	"atplanting": StageEnum.basal,
	"planting": StageEnum.basal,
	"after30dat": StageEnum.after_30_dat,
	"after30": StageEnum.after_30_dat,
	"after30days": StageEnum.after_30_dat,
	"ika30": StageEnum.after_30_dat,
	"30dat": StageEnum.after_30_dat,
	"dat30": StageEnum.after_30_dat,
	"topdress60dbh": StageEnum.top_dress,
	"topdress": StageEnum.top_dress,
	"topdress60": StageEnum.top_dress,
	"topdressing": StageEnum.top_dress,
	"60dbh": StageEnum.top_dress,
}

_CODE_FIELDS = ("code", "key", "type", "product", "productcode", "fertilizer", "name", "label")
_BAGS_FIELDS = ("bags", "qty", "quantity", "amount", "bag", "sacks", "count")
_STAGE_FIELDS = ("stage", "phase")
_CONTAINER_KEYS = ("daSchedule", "schedule", "stages")
_TITLE_KEYS = ("name", "title")
_COST_KEYS = ("cost", "total", "totalCost")

# Keys of history records and plan wrappers that never name a product.
_META_KEYS = frozenset(
	{
		"id",
		"date",
		"createdat",
		"ownerref",
		"ph",
		"n",
		"p",
		"k",
		"reading",
		"area",
		"areaha",
		"variety",
		"soilclass",
		"season",
		"price",
		"nvalue",
		"pvalue",
		"kvalue",
		"recommendationtext",
		"englishtext",
		"fertilizerplans",
		"plans",
		"name",
		"title",
		"cost",
		"total",
		"totalcost",
		"dacost",
		"currency",
		"details",
		"narrative",
		"note",
		"notes",
	}
)


def _normalize_key(value: Any) -> str:
	return re.sub(r"[^a-z0-9]", "", str(value).lower())


# ── Raw plan shapes ─────────────────────────────────────────────────────────


@dataclass
class FreeTextPlan:
	lines: list[str]
	title: str | None = None
	cost_text: str | None = None


@dataclass
class NestedStagePlan:
	stages: Mapping[str, Any]
	title: str | None = None
	cost_text: str | None = None


@dataclass
class CodeRowsPlan:
	rows: list[Any]
	title: str | None = None
	cost_text: str | None = None


@dataclass
class FlatCodeMap:
	amounts: Mapping[str, Any]
	title: str | None = None
	cost_text: str | None = None


RawPlan = FreeTextPlan | NestedStagePlan | CodeRowsPlan | FlatCodeMap


@dataclass
class _Collector:
	"""Accumulates ``(stage, code, bags)`` entries for one schedule."""

	resolver: ProductResolver
	amounts: dict[StageEnum, dict[str, float]] = field(default_factory=dict)

	def add(self, stage: StageEnum, token: str, bags: float | None, resolve: bool = True) -> bool:
		if bags is None or bags <= 0:
			return False
		code = self.resolver.resolve(token) if resolve else token
		if not code:
			return False
		stage_amounts = self.amounts.setdefault(stage, {})
		stage_amounts[code] = stage_amounts.get(code, 0.0) + bags
		return True


# ── Field helpers ───────────────────────────────────────────────────────────


def _bags(value: Any) -> float | None:
	"""Amounts arrive as numbers or as text such as ``"2.00 bags"``."""
	if isinstance(value, str):
		match = _NUMBER.search(value)
		return float(match.group(0)) if match else None
	return as_finite_number(value)


def _first_field(row: Mapping[str, Any], names: Iterable[str]) -> Any:
	normalized = {_normalize_key(key): value for key, value in row.items()}
	for name in names:
		value = normalized.get(name)
		if value is not None and value != "":
			return value
	return None


def _stage_from_key(key: Any) -> StageEnum | None:
	return _STAGE_KEY_ALIASES.get(_normalize_key(key))


def _stage_from_text(text: str, patterns=_HEADER_STAGE_PATTERNS) -> StageEnum | None:
	for stage, pattern in patterns:
		if pattern.search(text):
			return stage
	return None


def _stage_value(value: Any) -> StageEnum | None:
	if value is None:
		return None
	return _stage_from_key(value) or _stage_from_text(str(value))


def _text_value(value: Any) -> str | None:
	if value is None or isinstance(value, bool):
		return None
	if isinstance(value, (int, float)):
		number = as_finite_number(value)
		return format_amount(number) if number is not None else None
	if isinstance(value, str):
		return value.strip() or None
	return None


def _title(raw: Mapping[str, Any]) -> str | None:
	for key in _TITLE_KEYS:
		title = _text_value(raw.get(key))
		if title:
			return title
	return None


def _cost_text(raw: Mapping[str, Any]) -> str | None:
	for key in _COST_KEYS:
		text = _text_value(raw.get(key))
		if text:
			return text
	da_cost = raw.get("daCost")
	if isinstance(da_cost, Mapping):
		return _text_value(da_cost.get("total"))
	return None


# ── Classification ──────────────────────────────────────────────────────────


def _has_row_fields(raw: Mapping[str, Any]) -> bool:
	keys = {_normalize_key(key) for key in raw}
	return bool(keys & set(_CODE_FIELDS)) and bool(keys & set(_BAGS_FIELDS))


def _is_plan_row(item: Any) -> bool:
	"""A single ``{stage?, code, bags}`` row rather than a whole plan."""
	if not isinstance(item, Mapping) or "details" in item:
		return False
	if any(key in item for key in _CONTAINER_KEYS):
		return False
	if any(_stage_from_key(key) is not None for key in item):
		return False
	return _has_row_fields(item)


def _lines(value: Any) -> list[str]:
	if isinstance(value, str):
		return value.splitlines()
	if isinstance(value, list):
		return [item for item in value if isinstance(item, str)]
	return []


def _classify(raw: Any, depth: int = 0) -> RawPlan | None:
	if raw is None or depth > 4:
		return None

	if isinstance(raw, (bytes, bytearray)):
		raw = raw.decode("utf-8", errors="replace")

	if isinstance(raw, str):
		text = raw.strip()
		if not text:
			return None
		if text[0] in "[{":
			try:
				decoded = json.loads(text)
			except json.JSONDecodeError:
				decoded = None
			if decoded is not None:
				return _classify(decoded, depth + 1)
		return FreeTextPlan(lines=text.splitlines())

	if isinstance(raw, list):
		if not raw:
			return None
		if any(isinstance(item, Mapping) for item in raw):
			return CodeRowsPlan(rows=list(raw))
		lines = _lines(raw)
		return FreeTextPlan(lines=lines) if lines else None

	if not isinstance(raw, Mapping):
		return None

	title, cost_text = _title(raw), _cost_text(raw)

	for key in _CONTAINER_KEYS:
		inner = raw.get(key)
		if isinstance(inner, Mapping):
			return NestedStagePlan(stages=inner, title=title, cost_text=cost_text)
		if isinstance(inner, (list, str)):
			plan = _classify(inner, depth + 1)
			if plan is not None:
				plan.title = plan.title or title
				plan.cost_text = plan.cost_text or cost_text
			return plan

	details = raw.get("details")
	if isinstance(details, (list, str)):
		return FreeTextPlan(lines=_lines(details), title=title, cost_text=cost_text)

	if any(_stage_from_key(key) is not None for key in raw):
		return NestedStagePlan(stages=raw, title=title, cost_text=cost_text)

	if _has_row_fields(raw):
		return CodeRowsPlan(rows=[raw], title=title, cost_text=cost_text)

	return FlatCodeMap(amounts=raw, title=title, cost_text=cost_text)


# ── Readers ─────────────────────────────────────────────────────────────────


def _read_line(line: str, current: StageEnum | None, collector: _Collector) -> StageEnum | None:
	"""File one data line, or switch context on a header. Returns the new context."""
	text = _LEADING_BULLET.sub("", line).strip()
	if not text:
		return current

	inline = _stage_from_text(text, _INLINE_STAGE_PATTERNS)
	stage = inline or current or StageEnum.basal

	organic = _ORGANIC_LINE.search(text)
	if organic is not None:
		collector.add(StageEnum.organic, ORGANIC_CODE, float(organic.group(1)), resolve=False)
		return current

	projection = _PROJECTION_LINE.match(text)
	if projection is not None:
		collector.add(stage, projection.group(2), float(projection.group(1)))
		return current

	for match in (_CODE_COLON_LINE.search(text), _CODE_DASH_LINE.match(text)):
		if match is not None:
			collector.add(stage, match.group(1), float(match.group(2)))
			return current

	ratio = _NPK_RATIO.search(text)
	if ratio is not None:
		count = _BAG_COUNT.search(text, ratio.end()) or _BAG_COUNT.search(text[: ratio.start()])
		if count is not None:
			collector.add(stage, ratio.group(0), float(count.group(1)))
			return current

	header = _stage_from_text(text)
	return header if header is not None else current


def _read_free_text(plan: FreeTextPlan, collector: _Collector) -> None:
	current: StageEnum | None = None
	for line in plan.lines:
		current = _read_line(line, current, collector)


def _read_row(row: Any, default_stage: StageEnum, collector: _Collector) -> None:
	if isinstance(row, str):
		_read_line(row, default_stage, collector)
		return
	if not isinstance(row, Mapping):
		return
	code = _text_value(_first_field(row, _CODE_FIELDS))
	if code is None:
		return
	stage = _stage_value(_first_field(row, _STAGE_FIELDS)) or default_stage
	collector.add(stage, code, _bags(_first_field(row, _BAGS_FIELDS)))


def _read_stage_value(value: Any, stage: StageEnum, collector: _Collector) -> None:
	if isinstance(value, list):
		for row in value:
			_read_row(row, stage, collector)
	elif isinstance(value, Mapping):
		keys = {_normalize_key(key) for key in value}
		if keys & set(_CODE_FIELDS):
			_read_row(value, stage, collector)
		else:
			for code, amount in value.items():
				collector.add(stage, str(code), _bags(amount))
	elif isinstance(value, str):
		for line in value.splitlines():
			_read_line(line, stage, collector)


def _read_nested(plan: NestedStagePlan, collector: _Collector) -> None:
	for key, value in plan.stages.items():
		stage = _stage_from_key(key)
		if stage is not None:
			_read_stage_value(value, stage, collector)


def _read_code_rows(plan: CodeRowsPlan, collector: _Collector) -> None:
	for row in plan.rows:
		_read_row(row, StageEnum.basal, collector)


def _read_flat(plan: FlatCodeMap, collector: _Collector) -> None:
	for code, amount in plan.amounts.items():
		if _normalize_key(code) in _META_KEYS:
			continue
		if isinstance(amount, (Mapping, list)) or not collector.resolver.knows(str(code)):
			continue
		collector.add(StageEnum.basal, str(code), _bags(amount))


_READERS = {
	FreeTextPlan: _read_free_text,
	NestedStagePlan: _read_nested,
	CodeRowsPlan: _read_code_rows,
	FlatCodeMap: _read_flat,
}


# ── Public API ──────────────────────────────────────────────────────────────


def parse_schedule(raw: Any, catalog: Iterable[Product] | None = None) -> ScheduleModel | None:
	"""Best-effort schedule recovery; ``None`` when nothing usable is found.

	With a catalog, codes, labels and NPK grades resolve to catalog product
	codes; without one, known grades map to their standard codes.
	"""
	resolver = catalog if isinstance(catalog, ProductResolver) else ProductResolver(catalog)
	try:
		plan = _classify(raw)
		if plan is None:
			return None
		collector = _Collector(resolver=resolver)
		_READERS[type(plan)](plan, collector)
		return ScheduleModel.from_stages(
			collector.amounts,
			title=plan.title,
			total_cost_text=plan.cost_text,
		)
	except UnbuildableScheduleError:
		return None
	except (TypeError, ValueError, AttributeError, RecursionError) as exc:
		_logger.warning(
			"schedule_parse_failed",
			extra={"error": str(exc), "input_type": type(raw).__name__},
		)
		return None


def parse_history_entry(entry: Any, catalog: Iterable[Product] | None = None) -> list[ScheduleModel]:
	"""Parse every plan stored in a history item; unparseable plans are dropped."""
	resolver = catalog if isinstance(catalog, ProductResolver) else ProductResolver(catalog)
	if isinstance(entry, Mapping):
		for key in ("fertilizerPlans", "plans"):
			plans = entry.get(key)
			# Guest records store one plan as a flat list of stage rows.
			if isinstance(plans, list) and plans and all(_is_plan_row(plan) for plan in plans):
				schedule = parse_schedule(plans, resolver)
				return [schedule] if schedule is not None else []
			if isinstance(plans, list):
				parsed = (parse_schedule(plan, resolver) for plan in plans)
				return [schedule for schedule in parsed if schedule is not None]
	schedule = parse_schedule(entry, resolver)
	return [schedule] if schedule is not None else []
