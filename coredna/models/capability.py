"""
coredna/models/capability.py

Per-tier capability record. Immutable; one instance per tier in the matrix.
"""

from typing import Dict, FrozenSet, Union

from pydantic import BaseModel, ConfigDict, Field

from coredna.models.tier import Category, Tier, _Unlimited, serialize_limit

ALL_PROVIDERS = "all"


class CapabilityRecord(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    tier: Tier
    extractions_per_month: Union[int, _Unlimited]
    workflows: FrozenSet[str] = Field(default_factory=frozenset)
    category_providers: Dict[Category, Union[FrozenSet[str], str]] = Field(default_factory=dict)

    bulk_extraction: bool = False
    white_label_branding: bool = False
    blog_section: bool = False
    rocket_deploy: bool = False
    auto_post: bool = False
    workflow_editing: bool = False
    rlm: bool = False
    inference: bool = False

    team_members: Union[int, _Unlimited] = 1
    support: str = "community"

    monthly_video_limit: Union[int, _Unlimited] = 0
    credit_costs: Dict[str, int] = Field(default_factory=dict, description="video engine -> credits")
    default_video_credit_cost: int = 0
    unlocks: FrozenSet[Tier] = Field(default_factory=frozenset, description="Provider min-tiers this tier satisfies")

    def providers_for(self, category: Category) -> Union[FrozenSet[str], str]:
        return self.category_providers.get(category, frozenset())

    def to_dict(self) -> dict:
        """JSON-friendly view (UNLIMITED rendered as "unlimited")."""
        return {
            "tier": self.tier.value,
            "extractions_per_month": serialize_limit(self.extractions_per_month),
            "workflows": sorted(self.workflows),
            "category_providers": {
                category.value: value if isinstance(value, str) else sorted(value)
                for category, value in self.category_providers.items()
            },
            "bulk_extraction": self.bulk_extraction,
            "white_label_branding": self.white_label_branding,
            "blog_section": self.blog_section,
            "rocket_deploy": self.rocket_deploy,
            "auto_post": self.auto_post,
            "workflow_editing": self.workflow_editing,
            "rlm": self.rlm,
            "inference": self.inference,
            "team_members": serialize_limit(self.team_members),
            "support": self.support,
            "monthly_video_limit": serialize_limit(self.monthly_video_limit),
            "credit_costs": dict(self.credit_costs),
            "default_video_credit_cost": self.default_video_credit_cost,
            "unlocks": sorted(t.value for t in self.unlocks),
        }
