"""Fertilizer price catalog retrieval with Redis caching."""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any

import httpx
from redis.asyncio import Redis

from fertisense.config import Settings, get_settings
from fertisense.errors import PriceCatalogError

_logger = logging.getLogger("fertisense.price_catalog")

DEFAULT_CATALOG_PATH = Path(__file__).resolve().parents[1] / "data" / "default_catalog.json"
CATALOG_CACHE_KEY = "price_catalog:current"


def load_default_catalog() -> dict[str, Any]:
	return json.loads(DEFAULT_CATALOG_PATH.read_text(encoding="utf-8"))


class PriceCatalogClient:
	def __init__(
		self,
		redis_client: Redis | None = None,
		settings: Settings | None = None,
		transport: httpx.AsyncBaseTransport | None = None,
	):
		self.redis_client = redis_client
		self.settings = settings or get_settings()
		self.transport = transport

	async def get_catalog(self) -> dict[str, Any]:
		"""Current catalog document: cache, then upstream, then the bundled default."""
		cached = await self._read_cached()
		if cached is not None:
			return cached

		if self.settings.price_catalog_url:
			doc = await self._fetch()
			source = "upstream"
		else:
			doc = load_default_catalog()
			source = "bundled"

		await self._write_cached(doc)
		_logger.info("price_catalog_loaded", extra={"source": source})
		return doc

	async def _fetch(self) -> dict[str, Any]:
		url = self.settings.price_catalog_url
		start = time.perf_counter()
		try:
			async with httpx.AsyncClient(
				timeout=self.settings.price_catalog_timeout_seconds,
				transport=self.transport,
			) as client:
				response = await client.get(url, headers={"accept": "application/json"})
				response.raise_for_status()
				payload = response.json()
		except (httpx.HTTPError, json.JSONDecodeError) as exc:
			_logger.error("price_catalog_fetch_failed", extra={"url": url, "error": str(exc)})
			raise PriceCatalogError(f"price catalog fetch failed: {exc}") from exc

		if not isinstance(payload, dict) or not isinstance(payload.get("items"), dict):
			raise PriceCatalogError("price catalog response has no items object")

		_logger.info(
			"price_catalog_fetched",
			extra={
				"url": url,
				"items": len(payload["items"]),
				"duration_ms": round((time.perf_counter() - start) * 1000.0, 2),
			},
		)
		return payload

	async def _read_cached(self) -> dict[str, Any] | None:
		if self.redis_client is None:
			return None
		value = await self.redis_client.get(CATALOG_CACHE_KEY)
		if value is None:
			return None
		return json.loads(value)

	async def _write_cached(self, doc: dict[str, Any]) -> None:
		if self.redis_client is None:
			return
		await self.redis_client.setex(
			CATALOG_CACHE_KEY,
			self.settings.price_catalog_cache_ttl_seconds,
			json.dumps(doc),
		)

	async def invalidate(self) -> None:
		if self.redis_client is not None:
			await self.redis_client.delete(CATALOG_CACHE_KEY)
