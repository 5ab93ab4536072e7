"""
coredna/models/provider.py
Provider catalog rows and per-user provider selections.
"""

from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from coredna.models.tier import Category, Tier


class CatalogEntry(BaseModel):
    """Static description of a third-party provider."""

    model_config = ConfigDict(frozen=True)

    id: str
    category: Category
    name: str
    min_tier: Tier = Tier.FREE


class ProviderConfig(BaseModel):
    """A provider as seen by one user: catalog data merged with stored credentials."""

    model_config = ConfigDict(frozen=True)

    id: str
    category: Category
    name: str
    configured: bool = Field(description="A non-empty credential is stored")
    active: bool = False
    min_tier: Tier = Tier.FREE


class ProviderSelection(BaseModel):
    """Resolved provider plus the credentials to call it with. Never logged."""

    model_config = ConfigDict(frozen=True)

    provider_id: str
    category: Category
    credentials: Dict[str, str] = Field(default_factory=dict)

    @property
    def api_key(self) -> Optional[str]:
        return self.credentials.get("api_key")

    def __repr__(self) -> str:
        return f"ProviderSelection(provider_id={self.provider_id!r}, category={self.category.value!r})"

    __str__ = __repr__
