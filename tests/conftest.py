"""Shared pytest fixtures: async test client, fake DB session and Redis, catalog data."""

from __future__ import annotations

import copy
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from fertisense.config import Settings
from fertisense.database import get_db
from fertisense.main import app
from fertisense.schemas.catalog import Product
from fertisense.services.agronomy_config import AgronomyConfig, load_agronomy_config
from fertisense.services.catalog import extract_products, select_products
from fertisense.services.catalog_client import load_default_catalog


class FakeAsyncSession:
	def __init__(self) -> None:
		self.commit = AsyncMock()
		self.rollback = AsyncMock()
		self.close = AsyncMock()
		self.execute = AsyncMock()
		self.flush = AsyncMock()
		self.refresh = AsyncMock()
		self.added: list[Any] = []

	def add(self, instance: Any) -> None:
		self.added.append(instance)


class FakeRedis:
	"""Dict-backed stand-in for the redis.asyncio calls the services make."""

	def __init__(self) -> None:
		self.store: dict[str, str] = {}
		self.ttls: dict[str, int] = {}
		self.get = AsyncMock(side_effect=self._get)
		self.setex = AsyncMock(side_effect=self._setex)
		self.delete = AsyncMock(side_effect=self._delete)

	async def _get(self, key: str) -> str | None:
		return self.store.get(key)

	async def _setex(self, key: str, ttl: int, value: str) -> bool:
		self.store[key] = value
		self.ttls[key] = ttl
		return True

	async def _delete(self, key: str) -> int:
		return 1 if self.store.pop(key, None) is not None else 0


@pytest.fixture
def fake_db_session() -> FakeAsyncSession:
	"""A lightweight async-session stub for dependency overrides in API tests."""
	return FakeAsyncSession()


@pytest.fixture
def fake_redis() -> FakeRedis:
	return FakeRedis()


@pytest.fixture(scope="session")
def agronomy() -> AgronomyConfig:
	return load_agronomy_config()


@pytest.fixture
def settings() -> Settings:
	"""Settings with defaults only, independent of any local .env file."""
	return Settings(_env_file=None)


@pytest.fixture
def catalog_doc() -> dict[str, Any]:
	return copy.deepcopy(load_default_catalog())


@pytest.fixture
def dap_urea_mop_doc(catalog_doc: dict[str, Any]) -> dict[str, Any]:
	"""The classic three-product catalog with no complete fertilizer."""
	items = catalog_doc["items"]
	catalog_doc["items"] = {code: items[code] for code in ("DAP_18_46_0", "UREA_46_0_0", "MOP_0_0_60")}
	return catalog_doc


@pytest.fixture
def products(catalog_doc: dict[str, Any]) -> list[Product]:
	return extract_products(catalog_doc)


@pytest.fixture
def by_code(products: list[Product]) -> dict[str, Product]:
	return {product.code: product for product in products}


@pytest.fixture
def selection(products: list[Product]):
	return select_products(products)


@pytest.fixture
async def client(fake_db_session: FakeAsyncSession) -> AsyncGenerator[AsyncClient, None]:
	"""HTTPX async client with lifespan disabled and DB dependency mocked."""

	async def override_get_db() -> AsyncGenerator[Any, None]:
		yield fake_db_session

	app.dependency_overrides[get_db] = override_get_db
	original_lifespan = app.router.lifespan_context

	@asynccontextmanager
	async def noop_lifespan(_: Any) -> AsyncGenerator[None, None]:
		yield

	app.router.lifespan_context = noop_lifespan

	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://test") as test_client:
		yield test_client

	app.router.lifespan_context = original_lifespan
	app.dependency_overrides.clear()
