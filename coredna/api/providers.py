"""
Provider API

GET    /v1/providers/{category}                 — catalog merged with the user's keys
PUT    /v1/providers/{category}/active          — select the active provider
PUT    /v1/providers/{category}/{provider_id}   — store a key
DELETE /v1/providers/{category}/{provider_id}   — remove a key
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from coredna.api.deps import get_kv_store
from coredna.core.store import KeyValueStore
from coredna.features.providers.registry import ProviderRegistry
from coredna.models.tier import Category

router = APIRouter(prefix="/v1/providers", tags=["providers"])


class CredentialsBody(BaseModel):
    user_id: str = Field(min_length=1)
    api_key: str = Field(min_length=1)
    base_url: Optional[str] = None
    default_model: Optional[str] = None
    make_active: bool = False


class ActiveBody(BaseModel):
    user_id: str = Field(min_length=1)
    provider_id: str = Field(min_length=1)


@router.get("/{category}")
async def list_providers(
    category: Category,
    user_id: str = Query(..., min_length=1, description="User ID"),
    store: KeyValueStore = Depends(get_kv_store),
) -> dict:
    registry = ProviderRegistry(user_id, store)
    rows = registry.list_providers(category)
    return {
        "data": [row.model_dump(mode="json") for row in rows],
        "active": registry.active_provider(category),
        "configured": registry.configured_providers(category),
    }


# Declared before /{provider_id} so "active" is never taken for a provider id.
@router.put("/{category}/active")
async def set_active_provider(category: Category, body: ActiveBody, store: KeyValueStore = Depends(get_kv_store)) -> dict:
    registry = ProviderRegistry(body.user_id, store)
    registry.set_active(category, body.provider_id)
    return {"data": {"category": category.value, "active": body.provider_id}}


@router.put("/{category}/{provider_id}")
async def put_credentials(
    category: Category,
    provider_id: str,
    body: CredentialsBody,
    store: KeyValueStore = Depends(get_kv_store),
) -> dict:
    registry = ProviderRegistry(body.user_id, store)
    row = registry.set_credentials(
        category,
        provider_id,
        body.api_key,
        base_url=body.base_url,
        default_model=body.default_model,
        make_active=body.make_active,
    )
    return {"data": row.model_dump(mode="json")}


@router.delete("/{category}/{provider_id}")
async def delete_credentials(
    category: Category,
    provider_id: str,
    user_id: str = Query(..., min_length=1, description="User ID"),
    store: KeyValueStore = Depends(get_kv_store),
) -> dict:
    registry = ProviderRegistry(user_id, store)
    active = registry.remove_credentials(category, provider_id)
    return {"data": {"category": category.value, "removed": provider_id, "active": active}}
