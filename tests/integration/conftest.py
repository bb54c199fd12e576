from __future__ import annotations

import httpx
import pytest_asyncio

import hitcounter.main as main_module
from hitcounter.aggregator import CounterService
from hitcounter.main import app
from hitcounter.store import JsonCounterStore


@pytest_asyncio.fixture(autouse=True)
async def clean_state(monkeypatch, tmp_path) -> None:
    for name in ["COUNTER_CONFIG_FILE", "ALLOW_ALL", "ALLOWED_ROOT_DOMAINS", "ANONYMIZE_IP"]:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)

    service = CounterService(JsonCounterStore(tmp_path / "counts.json"))
    monkeypatch.setattr(main_module, "counter_service", service)
    yield
    await service.close()


@pytest_asyncio.fixture
async def client() -> httpx.AsyncClient:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as test_client:
        yield test_client
