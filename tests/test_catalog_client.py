from __future__ import annotations

import json

import httpx
import pytest

from fertisense.config import Settings
from fertisense.errors import PriceCatalogError
from fertisense.services.catalog_client import CATALOG_CACHE_KEY, PriceCatalogClient, load_default_catalog

UPSTREAM_URL = "https://prices.example.test/catalog.json"
UPSTREAM_DOC = {
	"currency": "PHP",
	"items": {"UREA_46_0_0": {"label": "Urea", "pricePerBag": 1550, "npk": {"N": 46}}},
}


def _settings(**overrides) -> Settings:
	return Settings(_env_file=None, price_catalog_url=UPSTREAM_URL, price_catalog_cache_ttl_seconds=120, **overrides)


def _transport(status_code: int = 200, body=UPSTREAM_DOC, calls: list[httpx.Request] | None = None):
	def handler(request: httpx.Request) -> httpx.Response:
		if calls is not None:
			calls.append(request)
		if isinstance(body, str):
			return httpx.Response(status_code, text=body)
		return httpx.Response(status_code, json=body)

	return httpx.MockTransport(handler)


async def test_fetches_upstream_and_caches_with_ttl(fake_redis) -> None:
	calls: list[httpx.Request] = []
	client = PriceCatalogClient(fake_redis, _settings(), transport=_transport(calls=calls))

	doc = await client.get_catalog()

	assert doc == UPSTREAM_DOC
	assert [str(request.url) for request in calls] == [UPSTREAM_URL]
	assert json.loads(fake_redis.store[CATALOG_CACHE_KEY]) == UPSTREAM_DOC
	assert fake_redis.ttls[CATALOG_CACHE_KEY] == 120


async def test_cached_catalog_skips_upstream(fake_redis) -> None:
	fake_redis.store[CATALOG_CACHE_KEY] = json.dumps({"items": {"CACHED": {"pricePerBag": 1}}})
	calls: list[httpx.Request] = []
	client = PriceCatalogClient(fake_redis, _settings(), transport=_transport(calls=calls))

	doc = await client.get_catalog()

	assert list(doc["items"]) == ["CACHED"]
	assert calls == []
	fake_redis.setex.assert_not_awaited()


@pytest.mark.parametrize(
	("status_code", "body"),
	[
		(500, {"error": "boom"}),
		(200, "not json"),
		(200, {"products": []}),
		(200, {"items": ["UREA"]}),
	],
)
async def test_bad_upstream_raises(status_code, body, fake_redis) -> None:
	client = PriceCatalogClient(fake_redis, _settings(), transport=_transport(status_code, body))

	with pytest.raises(PriceCatalogError):
		await client.get_catalog()
	assert CATALOG_CACHE_KEY not in fake_redis.store


async def test_bundled_catalog_without_url_or_redis() -> None:
	client = PriceCatalogClient(None, Settings(_env_file=None, price_catalog_url=""))
	assert await client.get_catalog() == load_default_catalog()


async def test_invalidate_drops_cached_document(fake_redis) -> None:
	client = PriceCatalogClient(fake_redis, Settings(_env_file=None))
	await client.get_catalog()
	assert CATALOG_CACHE_KEY in fake_redis.store

	await client.invalidate()

	assert CATALOG_CACHE_KEY not in fake_redis.store
	fake_redis.delete.assert_awaited_once_with(CATALOG_CACHE_KEY)
