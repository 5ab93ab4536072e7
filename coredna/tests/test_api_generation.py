"""
coredna/tests/test_api_generation.py

HTTP surface for generation, exercised through httpx.AsyncClient + ASGITransport.
"""

import pytest
from httpx import ASGITransport, AsyncClient

from coredna.api.deps import get_dispatcher
from coredna.core.store import get_store
from coredna.features.generation.dispatcher import GenerationDispatcher
from coredna.features.providers.registry import ProviderRegistry
from coredna.main import app


@pytest.fixture(autouse=True)
def live_dispatcher(adapters):
    dispatcher = GenerationDispatcher(store=get_store(), adapters=adapters)
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    yield dispatcher
    app.dependency_overrides.pop(get_dispatcher, None)


def _client():
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


def body(**overrides):
    payload = {"category": "image", "prompt": "blue sneakers with red laces", "user_id": "u1", "tier": "free"}
    payload.update(overrides)
    return payload


@pytest.mark.asyncio
async def test_generate_image_fallback():
    async with _client() as ac:
        resp = await ac.post("/v1/generate", json=body())

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["assetUrl"] == "https://source.unsplash.com/800x600/?blue%20sneakers"
    assert data["fallback"] is True
    assert data["costCredits"] == 0
    assert data["engineUsed"] == "unsplash-free"
    assert "generatedAt" in data


@pytest.mark.asyncio
async def test_generate_video_success(make_adapter):
    ProviderRegistry("u1", get_store()).set_credentials("video", "ltx2", "fal-key")
    make_adapter("video", "ltx2", asset="https://cdn.example.com/clip.mp4")

    async with _client() as ac:
        resp = await ac.post("/v1/generate", json=body(category="video", tier="hunter", prompt="Teaser"))

    assert resp.status_code == 200
    assert resp.json()["data"]["assetUrl"] == "https://cdn.example.com/clip.mp4"
    assert resp.json()["data"]["costCredits"] == 1


@pytest.mark.asyncio
async def test_tier_error_is_403_with_required_tier():
    async with _client() as ac:
        resp = await ac.post("/v1/generate", json=body(category="video", tier="pro", engine="sora2"))

    assert resp.status_code == 403
    error = resp.json()["error"]
    assert error["code"] == "tier_insufficient"
    assert error["details"]["required_tier"] == "hunter"
    assert error["hint"]
    assert error["request_id"] == resp.headers["x-request-id"]


@pytest.mark.asyncio
async def test_quota_error_is_429_with_limit(make_adapter):
    ProviderRegistry("u1", get_store()).set_credentials("video", "ltx2", "fal-key")
    make_adapter("video", "ltx2")

    async with _client() as ac:
        for _ in range(5):
            ok = await ac.post("/v1/generate", json=body(category="video", prompt="Teaser"))
            assert ok.status_code == 200
        resp = await ac.post("/v1/generate", json=body(category="video", prompt="Teaser"))

    assert resp.status_code == 429
    assert resp.json()["error"]["code"] == "quota_exceeded"
    assert resp.json()["error"]["details"]["limit"] == 5


@pytest.mark.asyncio
async def test_llm_without_provider_is_424():
    async with _client() as ac:
        resp = await ac.post("/v1/generate", json=body(category="llm", prompt="Tagline"))

    assert resp.status_code == 424
    error = resp.json()["error"]
    assert error["code"] == "no_provider_configured"
    assert "API Keys" in error["hint"]


@pytest.mark.asyncio
async def test_video_without_provider_is_503():
    async with _client() as ac:
        resp = await ac.post("/v1/generate", json=body(category="video", tier="hunter"))

    assert resp.status_code == 503
    assert resp.json()["error"]["code"] == "generation_unavailable"


@pytest.mark.asyncio
async def test_invalid_tier_is_rejected():
    async with _client() as ac:
        resp = await ac.post("/v1/generate", json=body(tier="platinum"))
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_batch_endpoint():
    payload = {"requests": [body(), body(category="llm"), body(category="video", tier="pro", engine="veo3")]}
    async with _client() as ac:
        resp = await ac.post("/v1/generate/batch", json=payload)

    assert resp.status_code == 200
    items = resp.json()["data"]
    assert [item["ok"] for item in items] == [True, False, False]
    assert items[0]["data"]["fallback"] is True
    assert items[1]["status"] == 424
    assert items[1]["error"]["code"] == "no_provider_configured"
    assert items[2]["error"]["code"] == "tier_insufficient"


@pytest.mark.asyncio
async def test_video_usage_endpoint(make_adapter):
    ProviderRegistry("u1", get_store()).set_credentials("video", "ltx2", "fal-key")
    make_adapter("video", "ltx2")

    async with _client() as ac:
        await ac.post("/v1/generate", json=body(category="video", prompt="Teaser"))
        resp = await ac.get("/v1/generate/video/usage", params={"user_id": "u1", "tier": "free"})

    assert resp.status_code == 200
    assert resp.json()["data"]["used"] == 1
    assert resp.json()["data"]["remaining"] == 4


@pytest.mark.asyncio
async def test_metrics_exposes_generation_counters():
    async with _client() as ac:
        await ac.post("/v1/generate", json=body())
        resp = await ac.get("/metrics")

    assert resp.status_code == 200
    assert 'coredna_generation_fallbacks_total{category="image",reason="no_provider_configured"} 1.0' in resp.text
    assert "coredna_generations_total" in resp.text
