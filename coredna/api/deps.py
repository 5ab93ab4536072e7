"""Shared FastAPI dependencies: the store and the generation dispatcher."""

from typing import Optional

from coredna.core.store import KeyValueStore, get_store
from coredna.features.generation.dispatcher import GenerationDispatcher

_dispatcher: Optional[GenerationDispatcher] = None


def get_kv_store() -> KeyValueStore:
    return get_store()


def get_dispatcher() -> GenerationDispatcher:
    """Process-wide dispatcher bound to the configured store."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = GenerationDispatcher(store=get_store())
    return _dispatcher


def reset_dispatcher() -> None:
    """FOR TESTING ONLY - rebuild on next get_dispatcher() call."""
    global _dispatcher
    _dispatcher = None
