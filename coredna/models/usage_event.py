"""
coredna/models/usage_event.py
UsageEvent model: one successful (or fallback) generation or extraction.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class UsageEvent(BaseModel):
    """Immutable ledger entry."""

    model_config = ConfigDict(frozen=True)

    user_id: str = Field(min_length=1)
    category: str = Field(description="Category value or 'extraction'")
    engine: Optional[str] = None
    credits: int = Field(default=0, ge=0)
    occurred_at: datetime
    fallback: bool = False

    @field_validator("occurred_at")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def to_record(self) -> dict:
        return {
            "user_id": self.user_id,
            "category": self.category,
            "engine": self.engine,
            "credits": self.credits,
            "occurred_at": self.occurred_at.isoformat(),
            "fallback": self.fallback,
        }

    @classmethod
    def from_record(cls, record: dict) -> "UsageEvent":
        return cls.model_validate(record)
