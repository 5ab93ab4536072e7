"""
Credits API

GET  /v1/credits/{user_id} — balance and available packs
POST /v1/credits/{user_id} — add credits (pack purchase already settled upstream)
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from coredna.api.deps import get_kv_store
from coredna.core.store import KeyValueStore
from coredna.features.capabilities.matrix import CREDIT_PACKS
from coredna.features.credits.balance import CreditBalance

router = APIRouter(prefix="/v1/credits", tags=["credits"])


class CreditBody(BaseModel):
    amount: int = Field(gt=0, le=1_000_000)


@router.get("/{user_id}")
async def get_credits(user_id: str, store: KeyValueStore = Depends(get_kv_store)) -> dict:
    balance = CreditBalance(store).balance(user_id)
    return {"data": {"user_id": user_id, "balance": balance, "packs": [dict(p) for p in CREDIT_PACKS]}}


@router.post("/{user_id}")
async def add_credits(user_id: str, body: CreditBody, store: KeyValueStore = Depends(get_kv_store)) -> dict:
    balance = CreditBalance(store).credit(user_id, body.amount)
    return {"data": {"user_id": user_id, "balance": balance}}
