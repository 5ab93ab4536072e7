"""
Tier API

GET /v1/tiers/{tier} — capability record, price and video allowance
"""

from fastapi import APIRouter

from coredna.core.errors import NotFoundError
from coredna.features.capabilities.matrix import tier_summary, video_tier_info
from coredna.models.tier import coerce_tier

router = APIRouter(prefix="/v1/tiers", tags=["tiers"])


@router.get("/{tier}")
async def get_tier(tier: str) -> dict:
    try:
        resolved = coerce_tier(tier)
    except ValueError:
        raise NotFoundError(f"Unknown tier '{tier}'", details={"tier": tier}) from None
    summary = tier_summary(resolved)
    summary["video"] = video_tier_info(resolved)
    return {"data": summary}
