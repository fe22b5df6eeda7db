"""Schedule parsing, DA breakdown and DA table routes."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, Request, status

from fertisense.config import get_settings
from fertisense.errors import PriceCatalogError
from fertisense.schemas.schedule import (
	DaBreakdown,
	ScheduleBuildResponse,
	ScheduleParseRequest,
	ScheduleParseResponse,
)
from fertisense.services.agronomy_config import get_agronomy_config, ratings_from_code
from fertisense.services.catalog import extract_currency, extract_products
from fertisense.services.catalog_client import PriceCatalogClient
from fertisense.services.schedule_builder import build_from_da, build_from_ratings, project_plan
from fertisense.services.schedule_parser import parse_schedule

router = APIRouter(prefix="/schedules", tags=["schedules"])


def _map_error(exc: Exception) -> HTTPException:
	if isinstance(exc, PriceCatalogError):
		return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
	if isinstance(exc, ValueError):
		return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
	return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="schedule failure")


@router.post("/parse", response_model=ScheduleParseResponse)
async def parse_raw_schedule(payload: ScheduleParseRequest, request: Request) -> ScheduleParseResponse:
	products = None
	if payload.resolve_with_catalog:
		client = PriceCatalogClient(getattr(request.app.state, "redis", None))
		try:
			products = extract_products(await client.get_catalog())
		except Exception as exc:
			raise _map_error(exc) from exc
	return ScheduleParseResponse(schedule=parse_schedule(payload.raw, products))


@router.post("/build", response_model=ScheduleBuildResponse)
async def build_da_schedule(payload: DaBreakdown, request: Request) -> ScheduleBuildResponse:
	client = PriceCatalogClient(getattr(request.app.state, "redis", None))
	try:
		doc = await client.get_catalog()
		schedule = build_from_da(payload)
	except Exception as exc:
		raise _map_error(exc) from exc

	if schedule is None:
		return ScheduleBuildResponse()
	currency = extract_currency(doc, get_settings().default_currency)
	return ScheduleBuildResponse(
		schedule=schedule,
		projection=project_plan(schedule, extract_products(doc), currency),
	)


@router.get("/da/{rating_code}", response_model=ScheduleBuildResponse)
async def da_table_schedule(
	rating_code: str,
	request: Request,
	area_ha: float = Query(default=1.0, gt=0),
) -> ScheduleBuildResponse:
	ratings = ratings_from_code(rating_code)
	if ratings is None:
		raise HTTPException(
			status_code=status.HTTP_400_BAD_REQUEST,
			detail=f"rating code must be three of L, M, H for N, P, K; got {rating_code!r}",
		)
	schedule = build_from_ratings(ratings, get_agronomy_config().da_schedules, area_ha)
	if schedule is None:
		raise HTTPException(
			status_code=status.HTTP_404_NOT_FOUND,
			detail=f"no DA schedule for rating code {rating_code.upper()}",
		)

	client = PriceCatalogClient(getattr(request.app.state, "redis", None))
	try:
		doc = await client.get_catalog()
	except Exception as exc:
		raise _map_error(exc) from exc
	currency = extract_currency(doc, get_settings().default_currency)
	return ScheduleBuildResponse(
		schedule=schedule,
		projection=project_plan(schedule, extract_products(doc), currency),
	)
