# coredna/conftest.py
import asyncio
from datetime import datetime, timezone

import pytest

from coredna.core.metrics import METRICS
from coredna.core.store import InMemoryStore, reset_store, set_store
from coredna.features.generation.adapters import AdapterRegistry
from coredna.features.generation.dispatcher import GenerationDispatcher
from coredna.features.providers.registry import ProviderRegistry


FIXED_NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


class FakeAdapter:
    """Adapter double: returns a canned asset or raises, and records calls."""

    def __init__(self, provider_id: str, asset: str = None, error: Exception = None, delay: float = None):
        self.provider_id = provider_id
        self.asset = asset if asset is not None else f"https://cdn.example.com/{provider_id}/asset.bin"
        self.error = error
        self.delay = delay
        self.calls = []

    async def generate(self, credentials, prompt, options):
        self.calls.append({"credentials": credentials, "prompt": prompt, "options": options})
        if self.delay is not None:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.asset


@pytest.fixture(autouse=True)
def isolated_store():
    """Fresh in-memory store and zeroed counters for every test."""
    from coredna.api.deps import reset_dispatcher

    store = InMemoryStore()
    set_store(store)
    reset_dispatcher()
    METRICS.reset()
    yield store
    reset_dispatcher()
    reset_store()


@pytest.fixture
def store(isolated_store):
    return isolated_store


@pytest.fixture
def fixed_now():
    return FIXED_NOW


@pytest.fixture
def adapters():
    return AdapterRegistry()


@pytest.fixture
def make_adapter(adapters):
    """Register a FakeAdapter for (category, provider_id) and return it."""

    def _make(category, provider_id, asset=None, error=None, delay=None):
        adapter = FakeAdapter(provider_id, asset=asset, error=error, delay=delay)
        adapters.register(category, provider_id, adapter)
        return adapter

    return _make


@pytest.fixture
def dispatcher(store, adapters, fixed_now):
    return GenerationDispatcher(store=store, adapters=adapters, clock=lambda: fixed_now)


@pytest.fixture
def registry_for(store):
    def _registry(user_id):
        return ProviderRegistry(user_id, store)

    return _registry
