"""
Generation API

POST /v1/generate — run one generation request
POST /v1/generate/batch — run several requests concurrently
GET /v1/generate/video/usage — this month's video allowance
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from coredna.core.errors import AppError
from coredna.features.generation.dispatcher import GenerationDispatcher
from coredna.api.deps import get_dispatcher
from coredna.models.generation import GenerationRequest, GenerationResult
from coredna.models.tier import Category, Tier

router = APIRouter(prefix="/v1/generate", tags=["generation"])


class GenerateBody(BaseModel):
    category: Category
    prompt: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    tier: Tier
    engine: Optional[str] = None
    options: Dict[str, Any] = Field(default_factory=dict)

    def to_request(self) -> GenerationRequest:
        return GenerationRequest(
            category=self.category,
            engine=self.engine or None,
            prompt=self.prompt,
            user_id=self.user_id,
            tier=self.tier,
            options=self.options,
        )


class BatchBody(BaseModel):
    requests: List[GenerateBody] = Field(min_length=1, max_length=50)


def _serialize(result: GenerationResult) -> dict:
    return result.model_dump(by_alias=True, mode="json")


@router.post("")
async def generate(body: GenerateBody, dispatcher: GenerationDispatcher = Depends(get_dispatcher)) -> dict:
    """
    Generate one asset.

    Returns:
        {"data": {"assetUrl", "engineUsed", "costCredits", "fallback", "generatedAt", ...}}

    Typed errors (quota, tier, provider) are rendered by the app error handler.
    """
    result = await dispatcher.dispatch(body.to_request())
    return {"data": _serialize(result)}


@router.post("/batch")
async def generate_batch(body: BatchBody, dispatcher: GenerationDispatcher = Depends(get_dispatcher)) -> dict:
    """Per-item outcomes in request order; one failure never fails the batch."""
    outcomes = await dispatcher.dispatch_batch([item.to_request() for item in body.requests])
    items = []
    for outcome in outcomes:
        if isinstance(outcome, AppError):
            items.append({"ok": False, "status": outcome.status_code, "error": outcome.to_dict()})
        else:
            items.append({"ok": True, "data": _serialize(outcome)})
    return {"data": items}


@router.get("/video/usage")
async def video_usage(
    user_id: str = Query(..., min_length=1, description="User ID"),
    tier: Tier = Query(..., description="Subscription tier"),
    dispatcher: GenerationDispatcher = Depends(get_dispatcher),
) -> dict:
    return {"data": dispatcher.gate.video_usage(user_id, tier)}
