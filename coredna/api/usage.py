"""
Usage API

GET /v1/usage/{user_id} — this month's usage per category
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from coredna.api.deps import get_kv_store
from coredna.core.store import KeyValueStore
from coredna.features.quota.gate import QuotaGate
from coredna.features.usage.ledger import UsageLedger, month_start
from coredna.models.tier import Tier

router = APIRouter(prefix="/v1/usage", tags=["usage"])


@router.get("/{user_id}")
async def get_usage(
    user_id: str,
    tier: Optional[Tier] = Query(None, description="Include allowance figures for this tier"),
    include_events: bool = Query(False),
    store: KeyValueStore = Depends(get_kv_store),
) -> dict:
    ledger = UsageLedger(store)
    data = {
        "user_id": user_id,
        "window_start": month_start().isoformat(),
        "counts": ledger.reduce_usage(user_id),
        "credits_spent": ledger.credits_spent(user_id),
    }
    if tier is not None:
        data["video"] = QuotaGate(ledger).video_usage(user_id, tier)
    if include_events:
        data["events"] = [e.to_record() for e in ledger.events(user_id, start=month_start())]
    return {"data": data}
