"""
coredna/models/generation.py

Request/response models for the generation dispatcher.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from coredna.models.tier import Category, Tier, _Unlimited, serialize_limit


class GenerationRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: Category
    engine: Optional[str] = Field(default=None, description="Explicit provider id; resolved when omitted")
    prompt: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    tier: Tier
    options: Dict[str, Any] = Field(default_factory=dict)


class GenerationResult(BaseModel):
    """Normalized outcome of one generation. Serialized with camelCase aliases."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    asset_url: str = Field(alias="assetUrl", min_length=1)
    engine_used: str = Field(alias="engineUsed")
    cost_credits: int = Field(alias="costCredits", ge=0)
    fallback: bool = False
    generated_at: datetime = Field(alias="generatedAt", default_factory=lambda: datetime.now(timezone.utc))
    category: Category
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_serializer("generated_at")
    def _iso(self, value: datetime) -> str:
        return value.isoformat()


class AdmissionDecision(BaseModel):
    """What the quota gate admitted: counts at admission time and the planned cost."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    category: Category
    engine: Optional[str] = None
    used: int = 0
    limit: Union[int, _Unlimited]
    remaining: Union[int, _Unlimited]
    cost_credits: int = 0

    def to_dict(self) -> dict:
        return {
            "category": self.category.value,
            "engine": self.engine,
            "used": self.used,
            "limit": serialize_limit(self.limit),
            "remaining": serialize_limit(self.remaining),
            "cost_credits": self.cost_credits,
        }
