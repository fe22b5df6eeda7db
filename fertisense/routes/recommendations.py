"""Fertilizer recommendation routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from fertisense.database import get_db
from fertisense.errors import (
	CatalogInsufficientError,
	ConfigurationError,
	InvalidInputError,
	PriceCatalogError,
)
from fertisense.schemas.recommendation import RecommendationRequest, RecommendationResponse
from fertisense.services.catalog import extract_products
from fertisense.services.catalog_client import PriceCatalogClient
from fertisense.services.history_service import HistoryService
from fertisense.services.recommendation_service import RecommendationService

router = APIRouter(prefix="/recommendations", tags=["recommendations"])


def _map_error(exc: Exception) -> HTTPException:
	if isinstance(exc, CatalogInsufficientError):
		return HTTPException(status_code=422, detail=exc.to_detail())
	if isinstance(exc, PriceCatalogError):
		return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
	if isinstance(exc, ConfigurationError):
		return HTTPException(
			status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
			detail=f"agronomy configuration error: {exc}",
		)
	if isinstance(exc, (InvalidInputError, ValueError)):
		return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
	if isinstance(exc, LookupError):
		return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
	return HTTPException(
		status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
		detail="Unexpected recommendation failure",
	)


@router.post("", response_model=RecommendationResponse)
async def create_recommendation(
	payload: RecommendationRequest,
	request: Request,
	db: AsyncSession = Depends(get_db),
) -> RecommendationResponse:
	client = PriceCatalogClient(getattr(request.app.state, "redis", None))
	try:
		catalog_doc = await client.get_catalog()
		response = RecommendationService().recommend(payload, catalog_doc)
		if payload.save:
			history = HistoryService(db, extract_products(catalog_doc))
			record = await history.save_recommendation(response, payload.reading, payload.owner_ref)
			response.record_id = record.id
	except Exception as exc:
		raise _map_error(exc) from exc
	return response
