"""
State API

GET    /v1/state/{user_id}/export — opaque snapshot (contains API keys)
POST   /v1/state/{user_id}/import — replace the user's state with a snapshot
DELETE /v1/state/{user_id}        — remove every record for the user
"""

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends

from coredna.api.deps import get_kv_store
from coredna.core.store import KeyValueStore
from coredna.features.state.service import clear_state, export_state, import_state

router = APIRouter(prefix="/v1/state", tags=["state"])


@router.get("/{user_id}/export")
async def export_user_state(user_id: str, store: KeyValueStore = Depends(get_kv_store)) -> dict:
    return {"data": export_state(user_id, store)}


@router.post("/{user_id}/import")
async def import_user_state(
    user_id: str,
    document: Dict[str, Any] = Body(...),
    store: KeyValueStore = Depends(get_kv_store),
) -> dict:
    count = import_state(user_id, document, store)
    return {"data": {"user_id": user_id, "records": count}}


@router.delete("/{user_id}")
async def delete_user_state(user_id: str, store: KeyValueStore = Depends(get_kv_store)) -> dict:
    return {"data": {"user_id": user_id, "removed": clear_state(user_id, store)}}
