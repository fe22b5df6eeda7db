"""Price catalog routes."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request, status

from fertisense.config import get_settings
from fertisense.errors import PriceCatalogError
from fertisense.schemas.catalog import CatalogResponse
from fertisense.services.catalog import extract_currency, extract_products, select_products
from fertisense.services.catalog_client import PriceCatalogClient

router = APIRouter(prefix="/catalog", tags=["catalog"])


def _map_error(exc: Exception) -> HTTPException:
	if isinstance(exc, PriceCatalogError):
		return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
	return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="catalog failure")


@router.get("", response_model=CatalogResponse)
async def get_catalog(request: Request) -> CatalogResponse:
	settings = get_settings()
	client = PriceCatalogClient(getattr(request.app.state, "redis", None), settings)
	try:
		doc = await client.get_catalog()
	except Exception as exc:
		raise _map_error(exc) from exc

	products = extract_products(doc)
	if not settings.include_inactive_products:
		products = [product for product in products if product.active]
	return CatalogResponse(
		currency=extract_currency(doc, settings.default_currency),
		source="upstream" if settings.price_catalog_url else "bundled",
		products=products,
		selection=select_products(products),
	)
