"""Stored plan history routes."""

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from fertisense.database import get_db
from fertisense.errors import PriceCatalogError
from fertisense.schemas.history import PlanRecordCreate, PlanRecordListRead, PlanRecordRead
from fertisense.services.catalog import extract_products
from fertisense.services.catalog_client import PriceCatalogClient
from fertisense.services.history_service import DEFAULT_PAGE_SIZE, HistoryService

router = APIRouter(prefix="/history", tags=["history"])
_logger = logging.getLogger("fertisense.history")


def _map_error(exc: Exception) -> HTTPException:
	if isinstance(exc, LookupError):
		return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
	if isinstance(exc, ValueError):
		return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
	return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="history failure")


async def _history_service(request: Request, db: AsyncSession) -> HistoryService:
	"""History service resolving codes with the current catalog, or without one if it is down."""
	client = PriceCatalogClient(getattr(request.app.state, "redis", None))
	try:
		doc = await client.get_catalog()
	except PriceCatalogError as exc:
		_logger.warning("history_catalog_unavailable", extra={"error": str(exc)})
		return HistoryService(db, None)
	return HistoryService(db, extract_products(doc))


@router.post("", response_model=PlanRecordRead, status_code=status.HTTP_201_CREATED)
async def create_plan_record(
	payload: PlanRecordCreate,
	request: Request,
	db: AsyncSession = Depends(get_db),
) -> PlanRecordRead:
	try:
		service = await _history_service(request, db)
		record = await service.save_raw(payload)
		return service.to_read(record)
	except Exception as exc:
		raise _map_error(exc) from exc


@router.get("", response_model=PlanRecordListRead)
async def list_plan_records(
	request: Request,
	owner_ref: str | None = Query(default=None, max_length=255),
	limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=500),
	db: AsyncSession = Depends(get_db),
) -> PlanRecordListRead:
	try:
		service = await _history_service(request, db)
		records = await service.list_records(owner_ref=owner_ref, limit=limit)
		items = [service.to_read(record) for record in records]
	except Exception as exc:
		raise _map_error(exc) from exc
	return PlanRecordListRead(items=items, count=len(items))


@router.get("/{record_id}", response_model=PlanRecordRead)
async def get_plan_record(
	record_id: uuid.UUID,
	request: Request,
	db: AsyncSession = Depends(get_db),
) -> PlanRecordRead:
	try:
		service = await _history_service(request, db)
		return service.to_read(await service.get_record(record_id))
	except Exception as exc:
		raise _map_error(exc) from exc
